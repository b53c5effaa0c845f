"""Database handles, statements, results and fetch drivers."""

from dbkit.db.backend import FetchDriverType, RowFetcher, Statement
from dbkit.db.connection import connect, register_database
from dbkit.db.database import Database
from dbkit.db.drivers import (
    ArrayDriver,
    FetchDriver,
    ModelDriver,
    StructDriver,
    register_fetch_driver,
    resolve_fetch_driver,
)
from dbkit.db.mock_backend import MockDatabase, MockStatement
from dbkit.db.preprocess import preprocess
from dbkit.db.result import ALL, Result
from dbkit.db.sqlite_backend import SQLiteDatabase, SQLiteStatement
from dbkit.db.statement import BaseStatement

__all__ = [
    "ALL",
    "ArrayDriver",
    "BaseStatement",
    "Database",
    "FetchDriver",
    "FetchDriverType",
    "MockDatabase",
    "MockStatement",
    "ModelDriver",
    "Result",
    "RowFetcher",
    "SQLiteDatabase",
    "SQLiteStatement",
    "Statement",
    "StructDriver",
    "connect",
    "preprocess",
    "register_database",
    "register_fetch_driver",
    "resolve_fetch_driver",
]
