"""Column and schema metadata models."""

from collections.abc import Iterable

from pydantic import BaseModel, Field


class Column(BaseModel):
    """A single column in a result set or table."""

    name: str
    type: str | None = None
    nullable: bool = True
    primary_key: bool = False
    default: object | None = None
    table: str | None = None


class Schema(BaseModel):
    """Shape of a result set, table or view."""

    columns: list[Column] = Field(default_factory=list)
    tables: list[str] = Field(default_factory=list)
    kind: str | None = None

    @property
    def column_names(self) -> list[str]:
        """Column names in result order."""
        return [column.name for column in self.columns]

    @classmethod
    def from_names(cls, names: Iterable[str], **kwargs: object) -> "Schema":
        """Build an untyped schema from bare column names."""
        return cls(columns=[Column(name=name) for name in names], **kwargs)
