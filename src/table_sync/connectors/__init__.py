"""Database drivers for Table Sync."""

from __future__ import annotations

from typing import Callable

from table_sync.connectors.base import (
    BatchApplier,
    ChangeSet,
    ColumnDefinition,
    Database,
    Row,
    UpdateRow,
)
from table_sync.connectors.d1_client import D1Database
from table_sync.connectors.sqlite import SQLiteDatabase
from table_sync.exceptions import DriverInitError

DatabaseFactory = Callable[[], Database]

_DRIVERS: dict[str, DatabaseFactory] = {
    "sqlite": SQLiteDatabase,
    "d1": D1Database,
}


def register_database(db_type: str, factory: DatabaseFactory) -> None:
    """Register a driver factory for a database type (e.g. a host's MySQL driver)."""
    _DRIVERS[db_type.strip().lower()] = factory


def create_database(db_type: str) -> Database:
    """Create an unconnected driver for ``db_type``."""
    factory = _DRIVERS.get(db_type.strip().lower())
    if factory is None:
        raise DriverInitError(db_type)
    return factory()


__all__ = [
    "BatchApplier",
    "ChangeSet",
    "ColumnDefinition",
    "D1Database",
    "Database",
    "Row",
    "SQLiteDatabase",
    "UpdateRow",
    "create_database",
    "register_database",
]
