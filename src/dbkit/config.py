"""Environment-variable-based configuration."""

import logging
import os
import sys
from pathlib import Path


def get_default_driver() -> str:
    """Return the database driver name used by connect() from DBKIT_DRIVER."""
    return os.environ.get("DBKIT_DRIVER", "sqlite")


def get_db_path() -> str:
    """Return the database path from DBKIT_DB_PATH.

    ``:memory:`` is passed through untouched; anything else is treated as a
    filesystem path and has ``~`` expanded.
    """
    raw = os.environ.get("DBKIT_DB_PATH", ":memory:")
    if raw == ":memory:":
        return raw
    return str(Path(raw).expanduser())


def get_default_fetch_driver() -> str:
    """Return the fetch driver bound to new results from DBKIT_FETCH_DRIVER."""
    return os.environ.get("DBKIT_FETCH_DRIVER", "Array")


def get_log_level() -> str:
    """Return the logging level from DBKIT_LOG_LEVEL."""
    return os.environ.get("DBKIT_LOG_LEVEL", "WARNING")


def configure_logging() -> None:
    """Send dbkit logging to stderr at the configured level."""
    logging.basicConfig(
        level=getattr(logging, get_log_level().upper()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
