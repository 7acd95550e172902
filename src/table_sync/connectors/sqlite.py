"""
SQLite Database Driver.

Provides read/write access to SQLite databases for the sync engine with:
- Schema introspection (PRAGMA table_info, sqlite_master DDL)
- Full-table snapshot queries
- Transactional change set application
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Sequence

from table_sync.config import ConnectionConfig
from table_sync.connectors.base import ChangeSet, ColumnDefinition, Row
from table_sync.exceptions import ApplyError, ConnectError, TableNotFoundError


def quote(ident: str) -> str:
    return '"' + ident.replace('"', '""') + '"'


class SQLiteDatabase:
    """
    Driver for SQLite database files.

    The database path comes from ``ConnectionConfig.path`` and falls back to
    ``ConnectionConfig.database``.

    Example:
        db = SQLiteDatabase()
        db.connect(ConnectionConfig(type="sqlite", path="app.db"))

        rows, columns = db.query('SELECT * FROM "users"')
        db.close()
    """

    def __init__(self) -> None:
        self.path: Path | None = None
        self.timeout: float = 30.0
        self._connection: sqlite3.Connection | None = None

    def connect(self, config: ConnectionConfig) -> None:
        """Open the database file named by the connection config."""
        raw = config.path or (config.database.strip() or None)
        if raw is None:
            raise ConnectError("SQLite connection requires a database path")

        self.path = Path(raw)
        if config.timeout > 0:
            self.timeout = float(config.timeout)

        try:
            self._connection = self._create_connection(self.path)
        except (sqlite3.Error, FileNotFoundError) as e:
            raise ConnectError(f"Cannot open SQLite database {self.path}: {e}") from e

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get the open connection, rolling back on error."""
        if self._connection is None:
            raise ConnectError("Connection not open")

        try:
            yield self._connection
        except Exception:
            self._connection.rollback()
            raise

    def _create_connection(self, path: Path) -> sqlite3.Connection:
        """Create a new database connection."""
        if not path.exists():
            raise FileNotFoundError(f"Database not found: {path}")

        conn = sqlite3.connect(
            path,
            check_same_thread=False,
            timeout=self.timeout,
        )

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA temp_store=MEMORY")

        return conn

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> "SQLiteDatabase":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def query(self, sql: str) -> tuple[list[Row], list[str]]:
        """Run a query and return all rows as dicts plus the column order."""
        with self.connection() as conn:
            cursor = conn.execute(sql)
            columns = [d[0] for d in cursor.description or ()]
            rows = [dict(row) for row in cursor.fetchall()]
            return rows, columns

    def exec(self, sql: str, params: Sequence[Any] = ()) -> int:
        """
        Execute a SQL statement and return affected row count.

        Args:
            sql: SQL statement
            params: Query parameters

        Returns:
            Number of affected rows (0 for DDL)
        """
        with self.connection() as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            return max(cursor.rowcount, 0)

    def get_columns(self, schema: str, table: str) -> list[ColumnDefinition]:
        """Get column information for a table. ``schema`` is ignored."""
        name = table.strip()
        if not name:
            raise ValueError("Table name required")

        columns: list[ColumnDefinition] = []
        with self.connection() as conn:
            cursor = conn.execute(f"PRAGMA table_info({quote(name)})")
            for row in cursor:
                default = row["dflt_value"]
                columns.append(
                    ColumnDefinition(
                        name=row["name"],
                        type=row["type"] or "",
                        nullable="NO" if row["notnull"] else "YES",
                        key="PRI" if row["pk"] else "",
                        default=None if default is None else str(default),
                    )
                )

        if not columns:
            raise TableNotFoundError(name)
        return columns

    def get_create_statement(self, schema: str, table: str) -> str:
        """Get the CREATE TABLE statement for a table."""
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT sql FROM sqlite_master WHERE type='table' AND name=?",
                (table,),
            )
            row = cursor.fetchone()
            if row is None or not row["sql"]:
                raise TableNotFoundError(table)
            return row["sql"]

    def apply_changes(self, table: str, changes: ChangeSet) -> None:
        """
        Apply a change set inside one transaction.

        Order is deletes, then updates, then inserts. Any failure rolls the
        whole change set back.
        """
        target = quote(table)

        with self.connection() as conn:
            try:
                with conn:
                    for pk in changes.deletes:
                        if not pk:
                            continue
                        wheres = " AND ".join(f"{quote(k)} = ?" for k in pk)
                        try:
                            conn.execute(
                                f"DELETE FROM {target} WHERE {wheres}",
                                list(pk.values()),
                            )
                        except sqlite3.Error as e:
                            raise ApplyError(f"delete error: {e}") from e

                    for update in changes.updates:
                        if not update.values:
                            continue
                        if not update.keys:
                            raise ApplyError("update requires keys")
                        sets = ", ".join(f"{quote(k)} = ?" for k in update.values)
                        wheres = " AND ".join(f"{quote(k)} = ?" for k in update.keys)
                        params = [*update.values.values(), *update.keys.values()]
                        try:
                            conn.execute(
                                f"UPDATE {target} SET {sets} WHERE {wheres}",
                                params,
                            )
                        except sqlite3.Error as e:
                            raise ApplyError(f"update error: {e}") from e

                    for row in changes.inserts:
                        if not row:
                            continue
                        col_str = ", ".join(quote(c) for c in row)
                        placeholders = ", ".join("?" for _ in row)
                        try:
                            conn.execute(
                                f"INSERT INTO {target} ({col_str}) VALUES ({placeholders})",
                                list(row.values()),
                            )
                        except sqlite3.Error as e:
                            raise ApplyError(f"insert error: {e}") from e
            except sqlite3.Error as e:
                raise ApplyError(str(e)) from e
