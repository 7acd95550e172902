"""
Database capability interface.

Every engine driver implements :class:`Database`. Drivers that can write a
whole change set inside one transaction additionally implement
:class:`BatchApplier`; the sync engine probes for it once per target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from table_sync.config import ConnectionConfig


Row = dict[str, Any]


@dataclass
class ColumnDefinition:
    """Information about a table column."""

    name: str
    type: str = ""
    nullable: str = "YES"  # YES/NO
    key: str = ""  # PRI, UNI, MUL
    default: str | None = None
    extra: str = ""
    comment: str = ""

    @property
    def is_primary_key(self) -> bool:
        return self.key in ("PRI", "PK")


@dataclass
class UpdateRow:
    """A row update: ``keys`` form the WHERE clause, ``values`` the SET clause."""

    keys: Row
    values: Row


@dataclass
class ChangeSet:
    """Inserts, updates and deletes to apply to one target table."""

    inserts: list[Row] = field(default_factory=list)
    updates: list[UpdateRow] = field(default_factory=list)
    deletes: list[Row] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


@runtime_checkable
class Database(Protocol):
    """Capabilities the sync engine needs from a database driver."""

    def connect(self, config: ConnectionConfig) -> None: ...

    def close(self) -> None: ...

    def query(self, sql: str) -> tuple[list[Row], list[str]]: ...

    def exec(self, sql: str) -> int: ...

    def get_columns(self, schema: str, table: str) -> list[ColumnDefinition]: ...

    def get_create_statement(self, schema: str, table: str) -> str: ...


@runtime_checkable
class BatchApplier(Protocol):
    """Optional capability: apply a change set transactionally."""

    def apply_changes(self, table: str, changes: ChangeSet) -> None: ...
