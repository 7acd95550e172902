"""Tests for SQLite driver."""

import sqlite3
from pathlib import Path

import pytest

from table_sync.config import ConnectionConfig
from table_sync.connectors import BatchApplier, Database, create_database
from table_sync.connectors.base import ChangeSet, UpdateRow
from table_sync.connectors.sqlite import SQLiteDatabase
from table_sync.exceptions import ApplyError, ConnectError, DriverInitError, TableNotFoundError

from conftest import make_sqlite_db, read_rows, sqlite_config


@pytest.fixture
def sample_db(tmp_path: Path) -> Path:
    """Create a sample SQLite database for testing."""
    return make_sqlite_db(
        tmp_path / "test.db",
        """
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            active INTEGER DEFAULT 1
        )
        """,
        "INSERT INTO users VALUES (1, 'Alice', 'alice@example.com', 1)",
        "INSERT INTO users VALUES (2, 'Bob', 'bob@example.com', 1)",
        "INSERT INTO users VALUES (3, 'Charlie', NULL, 0)",
        "CREATE TABLE memberships (user_id INTEGER, group_id INTEGER, "
        "PRIMARY KEY (user_id, group_id))",
    )


@pytest.fixture
def db(sample_db: Path):
    database = SQLiteDatabase()
    database.connect(sqlite_config(sample_db))
    yield database
    database.close()


class TestRegistry:
    """Tests for the driver registry."""

    def test_create_known_types(self) -> None:
        assert isinstance(create_database("sqlite"), SQLiteDatabase)
        assert isinstance(create_database(" SQLite "), SQLiteDatabase)

    def test_unknown_type(self) -> None:
        with pytest.raises(DriverInitError, match="Unsupported database type: oracle"):
            create_database("oracle")

    def test_blank_type(self) -> None:
        with pytest.raises(DriverInitError, match="Database type is required"):
            create_database("  ")

    def test_register_database(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Hosts plug in drivers for further engines by type name."""
        from table_sync import connectors

        monkeypatch.setattr(connectors, "_DRIVERS", dict(connectors._DRIVERS))
        connectors.register_database("MySQL", SQLiteDatabase)
        assert isinstance(create_database("mysql"), SQLiteDatabase)

    def test_capabilities(self) -> None:
        """SQLite driver satisfies both the base and batch capability."""
        database = SQLiteDatabase()
        assert isinstance(database, Database)
        assert isinstance(database, BatchApplier)


class TestSQLiteConnection:
    """Tests for opening and closing connections."""

    def test_connect_with_path(self, sample_db: Path) -> None:
        """Test database connection."""
        with SQLiteDatabase() as database:
            database.connect(sqlite_config(sample_db))
            assert database.path == sample_db

    def test_connect_with_database_field(self, sample_db: Path) -> None:
        """The database field doubles as the path for file engines."""
        with SQLiteDatabase() as database:
            database.connect(ConnectionConfig(type="sqlite", database=str(sample_db)))
            rows, _ = database.query('SELECT COUNT(*) AS n FROM "users"')
            assert rows == [{"n": 3}]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConnectError, match="Cannot open SQLite database"):
            SQLiteDatabase().connect(sqlite_config(tmp_path / "missing.db"))

    def test_missing_path(self) -> None:
        with pytest.raises(ConnectError, match="requires a database path"):
            SQLiteDatabase().connect(ConnectionConfig(type="sqlite"))

    def test_query_after_close(self, db: SQLiteDatabase) -> None:
        db.close()
        with pytest.raises(ConnectError):
            db.query("SELECT 1")


class TestSQLiteIntrospection:
    """Tests for column and DDL introspection."""

    def test_get_columns(self, db: SQLiteDatabase) -> None:
        """Test getting column information."""
        columns = db.get_columns("", "users")
        assert [c.name for c in columns] == ["id", "name", "email", "active"]

        id_col = columns[0]
        assert id_col.type == "INTEGER"
        assert id_col.is_primary_key

        name_col = columns[1]
        assert name_col.nullable == "NO"
        assert not name_col.is_primary_key

        assert columns[3].default == "1"

    def test_composite_key_detected(self, db: SQLiteDatabase) -> None:
        """Every PK member is marked, so composite keys are visible."""
        columns = db.get_columns("", "memberships")
        assert [c.name for c in columns if c.is_primary_key] == ["user_id", "group_id"]

    def test_missing_table(self, db: SQLiteDatabase) -> None:
        with pytest.raises(TableNotFoundError):
            db.get_columns("", "nope")

    def test_get_create_statement(self, db: SQLiteDatabase) -> None:
        ddl = db.get_create_statement("", "users")
        assert ddl.startswith("CREATE TABLE users")

    def test_get_create_statement_missing(self, db: SQLiteDatabase) -> None:
        with pytest.raises(TableNotFoundError):
            db.get_create_statement("", "nope")


class TestSQLiteReadWrite:
    """Tests for query, exec and apply_changes."""

    def test_query_rows_as_dicts(self, db: SQLiteDatabase) -> None:
        rows, columns = db.query('SELECT * FROM "users" ORDER BY id')
        assert columns == ["id", "name", "email", "active"]
        assert rows[0] == {"id": 1, "name": "Alice", "email": "alice@example.com", "active": 1}
        assert rows[2]["email"] is None

    def test_exec_returns_rowcount(self, db: SQLiteDatabase) -> None:
        assert db.exec('UPDATE "users" SET active = 0') == 3
        assert db.exec('ALTER TABLE "users" ADD COLUMN "nick" TEXT NULL') == 0

    def test_apply_changes(self, db: SQLiteDatabase, sample_db: Path) -> None:
        """Deletes, updates and inserts land in one transaction."""
        db.apply_changes(
            "users",
            ChangeSet(
                inserts=[{"id": 4, "name": "Diana", "email": None, "active": 1}],
                updates=[UpdateRow(keys={"id": 2}, values={"name": "Robert"})],
                deletes=[{"id": 3}],
            ),
        )

        rows = read_rows(sample_db, "SELECT id, name FROM users ORDER BY id")
        assert rows == [(1, "Alice"), (2, "Robert"), (4, "Diana")]

    def test_apply_changes_rolls_back(self, db: SQLiteDatabase, sample_db: Path) -> None:
        """A failing insert undoes the delete that ran before it."""
        with pytest.raises(ApplyError, match="insert error"):
            db.apply_changes(
                "users",
                ChangeSet(
                    inserts=[{"id": 1, "name": "Duplicate"}],
                    deletes=[{"id": 3}],
                ),
            )

        rows = read_rows(sample_db, "SELECT id FROM users ORDER BY id")
        assert rows == [(1,), (2,), (3,)]

    def test_update_without_keys(self, db: SQLiteDatabase) -> None:
        with pytest.raises(ApplyError, match="update requires keys"):
            db.apply_changes("users", ChangeSet(updates=[UpdateRow(keys={}, values={"name": "x"})]))

    def test_quoted_identifiers(self, tmp_path: Path) -> None:
        """Table and column names with quotes survive the round trip."""
        path = make_sqlite_db(
            tmp_path / "odd.db",
            'CREATE TABLE "we""ird" (id INTEGER PRIMARY KEY, "na""me" TEXT)',
        )
        database = SQLiteDatabase()
        database.connect(sqlite_config(path))
        try:
            database.apply_changes('we"ird', ChangeSet(inserts=[{"id": 1, 'na"me': "x"}]))
            rows, _ = database.query('SELECT * FROM "we""ird"')
        finally:
            database.close()
        assert rows == [{"id": 1, 'na"me': "x"}]
