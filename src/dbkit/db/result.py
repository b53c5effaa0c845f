"""Buffered result sets with a read cursor and a swappable fetch driver."""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, Final

from dbkit.config import get_default_fetch_driver
from dbkit.db.drivers import resolve_fetch_driver
from dbkit.models.schema import Schema

if TYPE_CHECKING:
    from dbkit.db.backend import FetchDriverType, RowFetcher, Statement

# Sentinel row count: every buffered row, cursor untouched
ALL: Final = "all"

_FINISHED = "Result has been finished"


class Result:
    """Rows produced by one statement execution, fully materialized.

    The row content never changes after construction. Reading goes through
    the bound fetch driver, which decodes rows from the shared buffer, so the
    same rows can be read as tuples, named tuples or models without running
    the query again::

        res = dbh.execute("SELECT id, name FROM users")
        res.fetch(ALL)                    # [(1, 'ada'), ...]
        res.as_("Struct").fetch(1)[0].name
        res.finish()

    Not thread-safe: the cursor and the driver binding are plain attributes.
    """

    def __init__(
        self,
        data: Iterable[Sequence[Any]],
        schema: Schema,
        sth: Statement | None = None,
        binds: Sequence[Any] = (),
    ) -> None:
        """Buffer ``data`` and bind the default fetch driver."""
        self._data: list[tuple[Any, ...]] | None = [tuple(row) for row in data]
        self._schema: Schema | None = schema
        self._rows = len(self._data)
        self._sth = sth
        # Deep copy: mappings among the binds belong to the caller
        self._binds: list[Any] | None = copy.deepcopy(list(binds))
        self._index = 0
        self._finished = False
        self._driver: FetchDriverType | None = None
        self._fetch_handle: RowFetcher | None = None
        self.as_(get_default_fetch_driver())

    def _buffer(self) -> list[tuple[Any, ...]]:
        if self._finished or self._data is None:
            raise RuntimeError(_FINISHED)
        return self._data

    # -- Metadata --

    @property
    def schema(self) -> Schema:
        """Column metadata for the buffered rows."""
        if self._finished or self._schema is None:
            raise RuntimeError(_FINISHED)
        return self._schema

    @property
    def sth(self) -> Statement | None:
        """The statement that produced this result (diagnostics only)."""
        return self._sth

    @property
    def rows(self) -> int:
        """Number of buffered rows."""
        return self._rows

    @property
    def index(self) -> int:
        """Position of the read cursor."""
        return self._index

    @property
    def binds(self) -> list[Any]:
        """A deep copy of the bind values used to produce this result."""
        if self._finished or self._binds is None:
            raise RuntimeError(_FINISHED)
        return copy.deepcopy(self._binds)

    @property
    def driver(self) -> FetchDriverType | None:
        """The active fetch driver class."""
        return self._driver

    @property
    def fetch_handle(self) -> RowFetcher | None:
        """The active fetch driver instance."""
        return self._fetch_handle

    @property
    def complete(self) -> bool:
        """Whether every row has arrived. Results are always fully buffered."""
        return True

    @property
    def eof(self) -> bool:
        """True once the cursor has passed the last row."""
        return self._index >= len(self._buffer())

    @property
    def has_data(self) -> bool:
        """True when at least one row was returned."""
        return len(self._buffer()) > 0

    # -- Reading --

    def each(self) -> Iterator[tuple[Any, ...]]:
        """Yield every buffered row, ignoring the cursor."""
        yield from self._buffer()

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        return self.each()

    def __len__(self) -> int:
        return self._rows

    def rewind(self) -> None:
        """Move the cursor back to the first row."""
        self._buffer()
        self._index = 0

    def as_(self, driver: str | FetchDriverType, *args: Any, **kwargs: Any) -> RowFetcher:
        """Bind a new fetch driver, which also rewinds the cursor."""
        self._buffer()
        driver_type = resolve_fetch_driver(driver)
        self._driver = driver_type
        self._fetch_handle = driver_type(self, *args, **kwargs)
        return self._fetch_handle

    def fetch(
        self,
        row_count: int | str,
        driver: str | FetchDriverType | None = None,
        *args: Any,
        **kwargs: Any,
    ) -> list[Any]:
        """Decode ``row_count`` rows with the active driver.

        Passing ``driver`` rebinds first (see ``as_``), so reading restarts
        at the first row.
        """
        if driver is not None:
            self.as_(driver, *args, **kwargs)
        if self._finished or self._fetch_handle is None:
            raise RuntimeError(_FINISHED)
        return self._fetch_handle.fetch(row_count)

    read = fetch

    def raw_fetch(self, row_count: int | str) -> list[tuple[Any, ...]]:
        """Return undecoded rows from the buffer.

        ``ALL`` returns a copy of the whole buffer and leaves the cursor
        alone. A count returns exactly that many rows from the cursor (fewer
        at the end of the buffer) and advances past them.
        """
        data = self._buffer()
        if row_count == ALL:
            return list(data)
        if isinstance(row_count, bool) or not isinstance(row_count, int) or row_count < 0:
            raise ValueError(f"row_count must be a non-negative integer or ALL, got {row_count!r}")
        rows = data[self._index : self._index + row_count]
        self._index = min(self._index + row_count, self._rows)
        return rows

    # -- Lifecycle --

    def finish(self) -> None:
        """Drop the buffer and every reference held by this result."""
        self._finished = True
        self._data = None
        self._schema = None
        self._sth = None
        self._binds = None
        self._driver = None
        self._fetch_handle = None

    def __enter__(self) -> Result:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.finish()

    def __repr__(self) -> str:
        state = "finished" if self._finished else f"index={self._index}"
        return f"Result(rows={self._rows}, {state})"
