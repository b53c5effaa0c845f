"""Connection factory: pick a backend by name and open a handle."""

import logging
from typing import Any

from dbkit.config import get_default_driver
from dbkit.db.database import Database
from dbkit.db.mock_backend import MockDatabase
from dbkit.db.sqlite_backend import SQLiteDatabase

logger = logging.getLogger(__name__)

_BACKENDS: dict[str, type[Database]] = {
    "sqlite": SQLiteDatabase,
    "mock": MockDatabase,
}


def register_database(name: str, cls: type[Database]) -> None:
    """Make a backend available to ``connect`` under ``name``."""
    _BACKENDS[name.lower()] = cls


def connect(driver: str | type[Database] | None = None, **connect_args: Any) -> Database:
    """Open a database handle.

    ``driver`` is a ``Database`` subclass or a registered backend name.
    Without one, the backend comes from DBKIT_DRIVER. The remaining
    keyword arguments are the connection arguments for the backend.
    """
    if driver is None:
        driver = get_default_driver()
    if isinstance(driver, str):
        try:
            cls = _BACKENDS[driver.lower()]
        except KeyError:
            raise ValueError(
                f"No backend registered for driver {driver!r}; known: {sorted(_BACKENDS)}"
            ) from None
    else:
        cls = driver
    logger.debug("Connecting with %s", cls.__name__)
    return cls(connect_args)
