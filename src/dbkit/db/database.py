"""Database handle: the caller-facing connection object.

``Database`` coordinates statements and transactions for one connection.
It never talks to an engine itself: backends subclass it and implement
``new_statement`` (plus ``ping``, ``schema``, ``table_schema``, and the
engine side of ``commit``/``rollback`` where the engine supports them).

Command dispatch (``prepare``, ``execute``, ``execute_modification``) runs
under the handle's lock, so a handle has at most one command in flight.
Callers that need concurrency should open one handle per thread.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar, overload

from dbkit.db.preprocess import Quoter, preprocess

if TYPE_CHECKING:
    from dbkit.db.backend import Statement
    from dbkit.db.result import Result
    from dbkit.models.schema import Schema

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NOT_IMPLEMENTED = "this method is not implemented in this driver"


def _normalize_args(
    connect_args: Mapping[Any, Any] | None, extra: Mapping[str, Any]
) -> dict[str, Any]:
    """Merge connection arguments and normalize keys to lower-case strings."""
    merged: dict[str, Any] = {}
    for source in (connect_args or {}, extra):
        for key, value in source.items():
            merged[str(key).strip().lower()] = value
    return merged


class Database:
    """Base class for database handles.

    Transactions nest by depth. ``transaction()`` opens a level and commits
    it when the block returns, or rolls it back if the block raises::

        with dbh.transaction():
            dbh.execute_modification("UPDATE accounts SET ...")
            dbh.execute_modification("INSERT INTO audit ...")

    Calling ``commit()`` or ``rollback()`` inside the block ends the
    transaction there and then: the rest of the block runs autocommitted,
    and nothing more is committed when it returns. ``in_transaction``
    reports the current depth.

    Backends that set ``self.preprocess_quoter`` to a callable
    ``(key, names, positional) -> str`` in their ``__init__`` get their own
    quoting during ``preprocess_query``; otherwise values are rendered as
    generic single-quoted literals.
    """

    def __init__(self, connect_args: Mapping[Any, Any] | None = None, **kwargs: Any) -> None:
        """Create a handle. Usually done by ``dbkit.db.connect``."""
        self._connect_args = MappingProxyType(_normalize_args(connect_args, kwargs))
        self.database_name: str | None = self._connect_args.get("database")
        self.rewindable_result = False
        self.preprocess_quoter: Quoter | None = None
        self._connected = True
        self._in_transaction = 0
        self._mutex = threading.RLock()
        self._last_query: str | None = None
        self._last_statement: Statement | None = None
        self._open_statements: dict[int, Statement] = {}

    # -- State --

    @property
    def connect_args(self) -> Mapping[str, Any]:
        """Read-only view of the arguments used to create the connection."""
        return self._connect_args

    @property
    def connected(self) -> bool:
        """Whether the handle is connected."""
        return self._connected

    @property
    def in_transaction(self) -> int:
        """Transaction nesting depth; 0 means autocommit."""
        return self._in_transaction

    @property
    def mutex(self) -> threading.RLock:
        """Lock serializing command dispatch on this handle.

        Re-entrant for the thread holding it, so blocks run by ``prepare``
        and ``execute`` may issue further commands on the same handle.
        """
        return self._mutex

    @property
    def last_query(self) -> str | None:
        """The last query sent through this handle."""
        with self._mutex:
            return self._last_query

    @property
    def last_statement(self) -> Statement | None:
        """The last statement allocated by ``prepare`` or ``execute``."""
        with self._mutex:
            return self._last_statement

    @property
    def open_statements(self) -> dict[int, Statement]:
        """Snapshot of every statement not yet finished, keyed by identity."""
        with self._mutex:
            return dict(self._open_statements)

    def register_statement(self, sth: Statement) -> None:
        """Track ``sth`` until it is finished."""
        with self._mutex:
            self._open_statements[id(sth)] = sth

    def unregister_statement(self, sth: Statement) -> None:
        """Stop tracking ``sth``."""
        with self._mutex:
            self._open_statements.pop(id(sth), None)

    # -- Capabilities backends may provide --

    def new_statement(self, query: str) -> Statement:
        """Create a backend statement for ``query``."""
        raise NotImplementedError(_NOT_IMPLEMENTED)

    def ping(self) -> int:
        """Check the connection is alive."""
        raise NotImplementedError(_NOT_IMPLEMENTED)

    def schema(self) -> list[Schema]:
        """Describe every table in the database."""
        raise NotImplementedError(_NOT_IMPLEMENTED)

    def table_schema(self, table_name: str) -> Schema | None:
        """Describe one table, or return None if it does not exist."""
        raise NotImplementedError(_NOT_IMPLEMENTED)

    # -- Connection lifecycle --

    def reconnect(self) -> None:
        """Drop any existing connection and mark the handle connected."""
        try:
            self.disconnect()
        except Exception:
            logger.warning("Ignoring failed disconnect during reconnect", exc_info=True)
        self._connected = True

    def disconnect(self) -> None:
        """Disconnect, finishing any statements left open.

        Every statement is finished even if some fail; the first failure is
        re-raised once all of them have been tried.
        """
        self._connected = False
        with self._mutex:
            leftover = list(self._open_statements.values())
            self._open_statements = {}
        first_error: Exception | None = None
        for sth in leftover:
            logger.warning("Finishing statement left open at disconnect: %r", sth)
            try:
                sth.finish()
            except Exception as exc:
                logger.exception("Failed to finish statement %r", sth)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    # -- Transactions --

    def begin(self) -> None:
        """Engine hook run when a transaction level opens.

        Called by ``transaction()`` after the depth has been raised, so
        ``in_transaction`` is the depth of the new level. The base
        implementation does nothing.
        """

    def commit(self) -> None:
        """End the current transaction level.

        The base implementation only keeps the depth counter. Backends
        perform the engine commit around a call to ``super().commit()``.
        """
        if self._in_transaction > 0:
            self._in_transaction -= 1

    def rollback(self) -> None:
        """End the current transaction level, discarding its work.

        Bookkeeping only, as with ``commit``.
        """
        if self._in_transaction > 0:
            self._in_transaction -= 1

    @overload
    def transaction(self, block: None = None) -> AbstractContextManager[Database]: ...

    @overload
    def transaction(self, block: Callable[[Database], T]) -> T: ...

    def transaction(self, block: Callable[[Database], T] | None = None) -> Any:
        """Run ``block(self)`` inside a transaction and return its result.

        Without a block, return a context manager for the same transaction.
        Any exception rolls the transaction back and is re-raised as-is.
        """
        if block is None:
            return self._transaction_scope()
        with self._transaction_scope():
            return block(self)

    @contextmanager
    def _transaction_scope(self) -> Iterator[Database]:
        self._in_transaction += 1
        depth = self._in_transaction
        try:
            self.begin()
        except Exception:
            self._in_transaction -= 1
            raise
        try:
            yield self
            # A block that committed or rolled back itself already ended this level
            if self._in_transaction >= depth:
                logger.debug("Committing transaction at depth %d", depth)
                self.commit()
        except Exception:
            logger.debug("Rolling back transaction at depth %d", depth)
            self.rollback()
            raise
        finally:
            if self._in_transaction >= depth:
                self._in_transaction -= 1

    # -- Command dispatch --

    def prepare(self, query: str, block: Callable[[Statement], Any] | None = None) -> Statement:
        """Prepare ``query`` and return the statement.

        With ``block``, the statement is passed to it and finished before
        ``prepare`` returns, whether or not the block raises. Without a
        block, the caller must ``finish`` the statement (or use it as a
        context manager).
        """
        with self._mutex:
            self._last_query = query
            sth = self.new_statement(query)
            self._last_statement = sth
            if block is not None:
                try:
                    block(sth)
                finally:
                    sth.finish()
        return sth

    def execute(self, query: str, *binds: Any, block: Callable[[Result], T] | None = None) -> Any:
        """Prepare and execute ``query`` with ``binds``, returning the result.

        With ``block``, the result is passed to it, the result and its
        statement are finished afterwards, and the block's return value is
        returned instead.
        """
        with self._mutex:
            self._last_query = query
            sth = self.new_statement(query)
            self._last_statement = sth
            res = sth.execute(*binds)
            if block is None:
                return res
            try:
                return block(res)
            finally:
                res.finish()
                sth.finish()

    def execute_modification(self, query: str, *binds: Any) -> int:
        """Execute a data-modifying ``query`` and return the affected row count."""
        with self._mutex:
            self._last_query = query
            sth = self.new_statement(query)
            self._last_statement = sth
            try:
                return sth.execute_modification(*binds)
            finally:
                sth.finish()

    def preprocess_query(self, query: str, *binds: Any) -> str:
        """Return ``query`` with ``binds`` substituted as literal SQL.

        Mappings among ``binds`` fill ``:name`` placeholders; everything
        else fills ``?`` placeholders by position.
        """
        with self._mutex:
            self._last_query = query
        return preprocess(query, *binds, quoter=self.preprocess_quoter)

    def __repr__(self) -> str:
        state = "connected" if self._connected else "disconnected"
        return f"{type(self).__name__}({self.database_name!r}, {state})"
