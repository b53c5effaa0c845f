"""In-memory mock backend.

Every statement returns the same canned rows and affected-row count, and
every execution is logged, which makes ``MockDatabase`` a stand-in for a
real engine in tests of code that takes a handle.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from dbkit.db.database import Database
from dbkit.db.statement import BaseStatement
from dbkit.models.schema import Schema

logger = logging.getLogger(__name__)


class MockStatement(BaseStatement):
    """Statement that answers from its handle's canned data."""

    dbh: MockDatabase

    def new_execution(self, *binds: Any) -> tuple[list[tuple[Any, ...]], Schema]:
        """Log the call and return the canned rows and schema."""
        self.dbh.executed.append((self.query, binds))
        return [tuple(row) for row in self.dbh.data], self.dbh.result_schema

    def new_modification(self, *binds: Any) -> int:
        """Log the call and return the canned affected-row count."""
        self.dbh.executed.append((self.query, binds))
        return self.dbh.affected_rows

    def release(self) -> None:
        """Count the release."""
        self.dbh.finished_count += 1


class MockDatabase(Database):
    """Handle backed by canned data instead of an engine.

    ``engine_commits`` and ``engine_rollbacks`` count how often a real
    backend would have hit its engine: a commit only when the outermost
    transaction level ends, a rollback on every request.
    """

    def __init__(
        self,
        connect_args: Mapping[Any, Any] | None = None,
        *,
        data: Iterable[Sequence[Any]] = (),
        schema: Schema | None = None,
        affected_rows: int = 0,
        **kwargs: Any,
    ) -> None:
        """Create a mock handle returning ``data`` from every query."""
        super().__init__(connect_args, **kwargs)
        self.data = [tuple(row) for row in data]
        self.result_schema = schema or Schema()
        self.affected_rows = affected_rows
        self.executed: list[tuple[str, tuple[Any, ...]]] = []
        self.finished_count = 0
        self.engine_commits = 0
        self.engine_rollbacks = 0

    def new_statement(self, query: str) -> MockStatement:
        """Create a mock statement."""
        return MockStatement(query, self)

    def ping(self) -> int:
        """Always alive while connected."""
        return 1 if self.connected else 0

    def schema(self) -> list[Schema]:
        """The canned schema, as if it were the only table."""
        return [self.result_schema]

    def table_schema(self, table_name: str) -> Schema | None:
        """The canned schema if it names ``table_name``."""
        if table_name in self.result_schema.tables:
            return self.result_schema
        return None

    def commit(self) -> None:
        """Count an engine commit when the outermost level ends."""
        super().commit()
        if self.in_transaction == 0:
            self.engine_commits += 1
            logger.debug("Mock commit")

    def rollback(self) -> None:
        """Count an engine rollback."""
        self.engine_rollbacks += 1
        logger.debug("Mock rollback")
        super().rollback()
