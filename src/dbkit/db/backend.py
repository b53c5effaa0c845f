"""Collaborator protocols: what the handle and results expect from engines.

The database handle never talks to an engine directly. Each backend
(SQLite, the in-memory mock, ...) supplies a statement type satisfying
``Statement``, and results decode their rows through any class satisfying
``FetchDriverType``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from dbkit.db.result import Result


@runtime_checkable
class Statement(Protocol):
    """A prepared query bound to one database handle."""

    def execute(self, *binds: Any) -> Result:
        """Run the query and return a buffered result."""
        ...

    def execute_modification(self, *binds: Any) -> int:
        """Run a data-modifying query and return the affected row count."""
        ...

    def finish(self) -> None:
        """Release engine-side resources. Safe to call more than once."""
        ...


@runtime_checkable
class RowFetcher(Protocol):
    """A decoding strategy bound to exactly one result."""

    def fetch(self, row_count: int | str) -> list[Any]:
        """Decode the next ``row_count`` rows, or every row for ``ALL``."""
        ...


class FetchDriverType(Protocol):
    """Anything constructible from a result that yields a ``RowFetcher``."""

    def __call__(self, result: Result, *args: Any, **kwargs: Any) -> RowFetcher:
        """Bind a new driver instance to ``result``."""
        ...
