"""Exceptions raised by the sync engine and its database drivers."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync errors."""


class DriverInitError(SyncError):
    """Raised when no driver exists for a database type."""

    def __init__(self, db_type: str, side: str = "") -> None:
        if db_type.strip():
            message = f"Unsupported database type: {db_type}"
        else:
            message = "Database type is required"
        if side:
            message = f"{side.capitalize()} driver init failed: {message}"
        super().__init__(message)
        self.db_type = db_type
        self.side = side


class ConnectError(SyncError):
    """Raised when a database connection cannot be opened."""


class TableNotFoundError(SyncError):
    """Raised by drivers when a table does not exist."""

    def __init__(self, table: str) -> None:
        super().__init__(f"Table not found: {table}")
        self.table = table


class PrimaryKeyError(SyncError):
    """Raised when a table does not have exactly one primary key column."""

    def __init__(self, message: str, pk_columns: list[str]) -> None:
        super().__init__(message)
        self.pk_columns = pk_columns


class SchemaAlignError(SyncError):
    """Raised when the target table cannot be brought in line with the source."""


class ApplyError(SyncError):
    """Raised by batch appliers when a change set cannot be written."""
