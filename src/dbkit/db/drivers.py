"""Fetch drivers: interchangeable row decoders over a result's buffer.

A driver is bound to exactly one Result and decodes its buffered rows on
demand. Switching drivers with ``Result.as_()`` builds a fresh instance,
which rewinds the result, so decoding always restarts from the first row.

Drivers can be selected by class or by registered name::

    res.as_("Struct").fetch(ALL)
    res.fetch(10, ModelDriver, User)
"""

from __future__ import annotations

import logging
from collections import namedtuple
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from dbkit.db.backend import FetchDriverType
    from dbkit.db.result import Result

logger = logging.getLogger(__name__)

_REGISTRY: dict[str, FetchDriverType] = {}


class FetchDriver:
    """Base driver: fetches raw rows and passes each through ``convert_row``."""

    def __init__(self, result: Result, *args: Any, **kwargs: Any) -> None:
        """Bind to ``result`` and rewind it."""
        self.result = result
        self.result.rewind()

    def fetch(self, row_count: int | str) -> list[Any]:
        """Decode the next ``row_count`` rows, or every row for ``ALL``."""
        return [self.convert_row(row) for row in self.result.raw_fetch(row_count)]

    def convert_row(self, row: tuple[Any, ...]) -> Any:
        """Turn one raw row into its caller-facing value."""
        return row


class ArrayDriver(FetchDriver):
    """Plain tuples, optionally run through a per-row converter."""

    def __init__(
        self, result: Result, converter: Callable[[tuple[Any, ...]], Any] | None = None
    ) -> None:
        """Bind to ``result``; ``converter`` defaults to returning rows unchanged."""
        super().__init__(result)
        self.converter = converter

    def convert_row(self, row: tuple[Any, ...]) -> Any:
        """Apply the converter, if any."""
        if self.converter is None:
            return row
        return self.converter(row)


class StructDriver(FetchDriver):
    """Named tuples with one field per schema column."""

    def __init__(self, result: Result, *, rename: bool = True) -> None:
        """Bind to ``result`` and build the row type from its schema."""
        super().__init__(result)
        # rename=True turns names like "count(*)" into positional field names
        self.row_type = namedtuple(  # type: ignore[misc]
            "Row", result.schema.column_names, rename=rename
        )

    def convert_row(self, row: tuple[Any, ...]) -> Any:
        """Build a named tuple from the raw row."""
        return self.row_type._make(row)


class ModelDriver(FetchDriver):
    """Instances of a pydantic model, validated from column name to value."""

    def __init__(self, result: Result, model: type[BaseModel]) -> None:
        """Bind to ``result`` and decode into ``model``."""
        super().__init__(result)
        self.model = model
        self.column_names = result.schema.column_names

    def convert_row(self, row: tuple[Any, ...]) -> Any:
        """Validate the row into a model instance."""
        return self.model.model_validate(dict(zip(self.column_names, row, strict=True)))


def register_fetch_driver(name: str, driver: FetchDriverType) -> None:
    """Make ``driver`` selectable by ``name`` in ``Result.as_()``."""
    if name in _REGISTRY:
        logger.debug("Replacing fetch driver %r", name)
    _REGISTRY[name] = driver


def resolve_fetch_driver(driver: str | FetchDriverType) -> FetchDriverType:
    """Return the driver class for a registered name, or ``driver`` itself."""
    if not isinstance(driver, str):
        return driver
    try:
        return _REGISTRY[driver]
    except KeyError:
        raise ValueError(
            f"Unknown fetch driver {driver!r}; registered: {sorted(_REGISTRY)}"
        ) from None


register_fetch_driver("Array", ArrayDriver)
register_fetch_driver("Struct", StructDriver)
register_fetch_driver("Model", ModelDriver)
