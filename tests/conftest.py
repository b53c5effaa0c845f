"""Shared test fixtures."""

import pytest

from dbkit.db.mock_backend import MockDatabase
from dbkit.db.result import Result
from dbkit.db.sqlite_backend import SQLiteDatabase
from dbkit.models.schema import Column, Schema

ROWS = [(1, "ada", 36), (2, "grace", 85), (3, "linus", 28), (4, "barbara", 84), (5, "ken", 81)]


@pytest.fixture
def people_schema():
    """Schema for the canned ``people`` rows."""
    return Schema(
        columns=[
            Column(name="id", type="integer", primary_key=True, table="people"),
            Column(name="name", type="text", table="people"),
            Column(name="age", type="integer", table="people"),
        ],
        tables=["people"],
        kind="table",
    )


@pytest.fixture
def mock_db(people_schema):
    """Mock handle answering every query with the canned ``people`` rows."""
    dbh = MockDatabase(data=ROWS, schema=people_schema, affected_rows=2, database="people")
    yield dbh
    dbh.disconnect()


@pytest.fixture
def result(people_schema):
    """A standalone result over the canned ``people`` rows."""
    res = Result(ROWS, people_schema, None, [{"min_age": 20}, 5])
    yield res
    res.finish()


@pytest.fixture
def sqlite_db():
    """In-memory SQLite handle with a populated ``people`` table."""
    dbh = SQLiteDatabase(database=":memory:")
    dbh.execute_modification(
        "CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT NOT NULL, age INTEGER)"
    )
    for row in ROWS:
        dbh.execute_modification("INSERT INTO people (id, name, age) VALUES (?, ?, ?)", *row)
    yield dbh
    dbh.disconnect()


@pytest.fixture
def rows():
    """The canned ``people`` rows."""
    return list(ROWS)
