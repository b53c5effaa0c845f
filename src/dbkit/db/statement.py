"""Base class for backend statements.

Backends subclass ``BaseStatement`` and implement the engine hooks
``new_execution`` and ``new_modification`` (and ``release`` if they hold
engine resources). The base class takes care of the bookkeeping every
backend needs: registration with the handle's open-statement registry,
wrapping rows in a ``Result``, and idempotent ``finish``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from dbkit.db.result import Result

if TYPE_CHECKING:
    from dbkit.db.database import Database
    from dbkit.models.schema import Schema

logger = logging.getLogger(__name__)


class BaseStatement:
    """A query prepared against one database handle."""

    def __init__(self, query: str, dbh: Database) -> None:
        """Prepare ``query`` and register with ``dbh`` until finished."""
        self.query = query
        self.dbh = dbh
        self.rewindable_result = dbh.rewindable_result
        self._finished = False
        dbh.register_statement(self)
        logger.debug("Prepared statement %#x: %s", id(self), query)

    @property
    def finished(self) -> bool:
        """Whether ``finish`` has been called."""
        return self._finished

    def _check_open(self) -> None:
        if self._finished:
            raise RuntimeError(f"Statement has been finished: {self.query!r}")

    def execute(self, *binds: Any) -> Result:
        """Run the query and buffer its rows in a ``Result``."""
        self._check_open()
        rows, schema = self.new_execution(*binds)
        return Result(rows, schema, self, binds)

    def execute_modification(self, *binds: Any) -> int:
        """Run a data-modifying query and return the affected row count."""
        self._check_open()
        return self.new_modification(*binds)

    def finish(self) -> None:
        """Release the statement. Later calls are no-ops."""
        if self._finished:
            return
        self._finished = True
        self.dbh.unregister_statement(self)
        self.release()

    # -- Engine hooks --

    def new_execution(self, *binds: Any) -> tuple[list[tuple[Any, ...]], Schema]:
        """Run the query on the engine and return ``(rows, schema)``."""
        raise NotImplementedError("this method is not implemented in this driver")

    def new_modification(self, *binds: Any) -> int:
        """Run a modification on the engine and return the affected row count."""
        raise NotImplementedError("this method is not implemented in this driver")

    def release(self) -> None:
        """Free engine-side resources. Called once, from ``finish``."""

    def __enter__(self) -> BaseStatement:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.finish()

    def __repr__(self) -> str:
        state = "finished" if self._finished else "open"
        return f"{type(self).__name__}({self.query!r}, {state})"
