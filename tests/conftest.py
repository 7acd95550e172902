"""Shared fixtures: real SQLite files and in-memory fake drivers."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Callable

import pytest

from table_sync.config import ConnectionConfig
from table_sync.connectors.base import ChangeSet, ColumnDefinition, Row
from table_sync.exceptions import TableNotFoundError


def make_sqlite_db(path: Path, *statements: str) -> Path:
    """Create a SQLite file and run the given statements in it."""
    conn = sqlite3.connect(path)
    try:
        for sql in statements:
            conn.execute(sql)
        conn.commit()
    finally:
        conn.close()
    return path


def read_rows(path: Path, sql: str) -> list[tuple[Any, ...]]:
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


def sqlite_config(path: Path) -> ConnectionConfig:
    return ConnectionConfig(type="sqlite", path=path)


@pytest.fixture
def db_factory(tmp_path: Path) -> Callable[..., Path]:
    """Build SQLite files under tmp_path: ``db_factory("src.db", "CREATE ...")``."""

    def factory(name: str, *statements: str) -> Path:
        return make_sqlite_db(tmp_path / name, *statements)

    return factory


class FakeDatabase:
    """
    In-memory driver for dialects without a reference driver.

    Tables are ``{name: (columns, rows)}``. Every ``exec`` is recorded and
    ``ALTER TABLE ... ADD COLUMN`` statements extend the column list so
    refresh-after-add paths can be observed.
    """

    def __init__(
        self,
        tables: dict[str, tuple[list[ColumnDefinition], list[Row]]] | None = None,
        create_statements: dict[str, str] | None = None,
    ) -> None:
        self.tables = tables or {}
        self.create_statements = create_statements or {}
        self.executed: list[str] = []
        self.queries: list[str] = []
        self.connected_with: ConnectionConfig | None = None
        self.closed = False
        self.fail_exec: str | None = None
        self.fail_connect: Exception | None = None

    def connect(self, config: ConnectionConfig) -> None:
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected_with = config

    def close(self) -> None:
        self.closed = True

    def _table(self, table: str) -> tuple[list[ColumnDefinition], list[Row]]:
        name = table.split(".")[-1].strip('"`')
        if name not in self.tables:
            raise TableNotFoundError(name)
        return self.tables[name]

    def query(self, sql: str) -> tuple[list[Row], list[str]]:
        self.queries.append(sql)
        table = sql.rsplit(" FROM ", 1)[1]
        columns, rows = self._table(table)
        return [dict(r) for r in rows], [c.name for c in columns]

    def exec(self, sql: str) -> int:
        if self.fail_exec and self.fail_exec in sql:
            raise RuntimeError(f"exec failed: {sql}")
        self.executed.append(sql)
        if " ADD COLUMN " in sql:
            head, _, tail = sql.partition(" ADD COLUMN ")
            table = head.removeprefix("ALTER TABLE ")
            name = tail.split(" ", 1)[0].strip('"`')
            column_type = tail.split(" ", 1)[1].removesuffix(" NULL")
            self._table(table)[0].append(ColumnDefinition(name=name, type=column_type))
        return 0

    def get_columns(self, schema: str, table: str) -> list[ColumnDefinition]:
        return list(self._table(table)[0])

    def get_create_statement(self, schema: str, table: str) -> str:
        return self.create_statements.get(table, "")


class FakeApplierDatabase(FakeDatabase):
    """FakeDatabase that also records applied change sets."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.applied: list[tuple[str, ChangeSet]] = []

    def apply_changes(self, table: str, changes: ChangeSet) -> None:
        self.applied.append((table, changes))


def pk_column(name: str = "id", type: str = "int") -> ColumnDefinition:
    return ColumnDefinition(name=name, type=type, nullable="NO", key="PRI")


def column(name: str, type: str = "varchar(255)") -> ColumnDefinition:
    return ColumnDefinition(name=name, type=type)
