"""SQLite implementation of the database handle.

Thin wrapper around a ``sqlite3.Connection``. SQLite understands both
``?`` and ``:name`` placeholders natively, so binds are passed straight
through; only a mix of positional and named binds falls back to literal
substitution through ``preprocess_query``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dbkit.config import get_db_path
from dbkit.db.database import Database
from dbkit.db.preprocess import split_binds
from dbkit.db.statement import BaseStatement
from dbkit.models.schema import Column, Schema

logger = logging.getLogger(__name__)


class SQLiteStatement(BaseStatement):
    """Runs one query on the handle's connection through its own cursor."""

    dbh: SQLiteDatabase

    def __init__(self, query: str, dbh: SQLiteDatabase) -> None:
        """Prepare ``query`` with a fresh cursor."""
        # Cursor first: a closed connection must fail before registration
        self._cursor = dbh.raw.cursor()
        super().__init__(query, dbh)

    def _run(self, binds: tuple[Any, ...]) -> sqlite3.Cursor:
        named_count = sum(1 for bind in binds if isinstance(bind, Mapping))
        if named_count == 0:
            self._cursor.execute(self.query, binds)
        elif named_count == len(binds):
            names, _ = split_binds(binds)
            self._cursor.execute(self.query, names)
        else:
            self._cursor.execute(self.dbh.preprocess_query(self.query, *binds))
        self.dbh.autocommit()
        return self._cursor

    def new_execution(self, *binds: Any) -> tuple[list[tuple[Any, ...]], Schema]:
        """Execute and buffer every row."""
        cursor = self._run(binds)
        rows = [tuple(row) for row in cursor.fetchall()]
        names = [d[0] for d in cursor.description or ()]
        return rows, Schema.from_names(names)

    def new_modification(self, *binds: Any) -> int:
        """Execute and report how many rows changed."""
        cursor = self._run(binds)
        return cursor.rowcount

    def release(self) -> None:
        """Close the cursor."""
        self._cursor.close()


class SQLiteDatabase(Database):
    """SQLite handle.

    The outermost transaction level is an engine transaction. Each nested
    level is a savepoint, so rolling back an inner level discards only the
    work done inside it and the outer level carries on. Outside a
    transaction each statement is committed as soon as it runs.
    """

    def __init__(self, connect_args: Mapping[Any, Any] | None = None, **kwargs: Any) -> None:
        """Open the database named by the ``database`` argument."""
        super().__init__(connect_args, **kwargs)
        self.database_name = self.connect_args.get("database") or get_db_path()
        self.rewindable_result = True
        self._conn = self._open()

    def _open(self) -> sqlite3.Connection:
        path = str(self.database_name)
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        logger.info("Opening SQLite database at %s", path)
        # Access is serialized by the handle mutex, not by thread affinity
        return sqlite3.connect(path, check_same_thread=False)

    @property
    def raw(self) -> sqlite3.Connection:
        """The underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def new_statement(self, query: str) -> SQLiteStatement:
        """Create a statement for ``query``."""
        return SQLiteStatement(query, self)

    def autocommit(self) -> None:
        """Commit the engine transaction unless a transaction block is open."""
        if self.in_transaction == 0:
            self._conn.commit()

    # -- Introspection --

    def ping(self) -> int:
        """Run a trivial query; returns 1 when the connection answers."""
        with self.mutex:
            row = self._conn.execute("SELECT 1").fetchone()
        return int(row[0])

    def schema(self) -> list[Schema]:
        """Describe every user table and view."""
        with self.mutex:
            names = [
                row[0]
                for row in self._conn.execute(
                    "SELECT name FROM sqlite_master"
                    " WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'"
                    " ORDER BY name"
                )
            ]
        return [s for s in (self.table_schema(name) for name in names) if s is not None]

    def table_schema(self, table_name: str) -> Schema | None:
        """Describe one table or view, or None if it does not exist."""
        with self.mutex:
            kind_row = self._conn.execute(
                "SELECT type FROM sqlite_master WHERE name = ?", (table_name,)
            ).fetchone()
            if kind_row is None:
                return None
            info = self._conn.execute(
                "SELECT name, type, \"notnull\", dflt_value, pk FROM pragma_table_info(?)",
                (table_name,),
            ).fetchall()
        columns = [
            Column(
                name=name,
                type=col_type or None,
                nullable=not notnull,
                default=default,
                primary_key=pk > 0,
                table=table_name,
            )
            for name, col_type, notnull, default, pk in info
        ]
        return Schema(columns=columns, tables=[table_name], kind=kind_row[0])

    # -- Transactions --

    @staticmethod
    def _savepoint(depth: int) -> str:
        return f"dbkit_level_{depth}"

    def begin(self) -> None:
        """Open the engine transaction, or a savepoint for a nested level."""
        depth = self.in_transaction
        with self.mutex:
            if depth > 1:
                logger.debug("SQLite savepoint at depth %d", depth)
                self._conn.execute(f"SAVEPOINT {self._savepoint(depth)}")
            elif not self._conn.in_transaction:
                logger.debug("SQLite begin")
                self._conn.execute("BEGIN")

    def commit(self) -> None:
        """Close one transaction level; commit the engine at the outermost."""
        depth = self.in_transaction
        super().commit()
        with self.mutex:
            if depth > 1:
                self._conn.execute(f"RELEASE SAVEPOINT {self._savepoint(depth)}")
            else:
                logger.debug("SQLite commit")
                self._conn.commit()

    def rollback(self) -> None:
        """Close one transaction level, discarding its work.

        A nested level rolls back to its savepoint; the outermost level rolls
        back the engine transaction.
        """
        depth = self.in_transaction
        super().rollback()
        with self.mutex:
            if depth > 1:
                savepoint = self._savepoint(depth)
                logger.debug("SQLite rollback to savepoint at depth %d", depth)
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            else:
                logger.debug("SQLite rollback")
                self._conn.rollback()

    # -- Connection lifecycle --

    def disconnect(self) -> None:
        """Finish open statements and close the connection."""
        try:
            super().disconnect()
        finally:
            self._conn.close()

    def reconnect(self) -> None:
        """Close the current connection, if any, and open a new one."""
        super().reconnect()
        self._conn = self._open()
