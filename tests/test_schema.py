"""Tests for schema alignment."""

from pathlib import Path

import pytest

from table_sync.config import ConnectionConfig, SyncConfig
from table_sync.connectors.base import ChangeSet, UpdateRow
from table_sync.connectors.sqlite import SQLiteDatabase
from table_sync.core.identifiers import TableRef
from table_sync.core.schema import (
    SchemaAligner,
    collect_required_columns,
    filter_insert_rows,
    filter_update_rows,
)
from table_sync.exceptions import SchemaAlignError

from conftest import FakeDatabase, column, make_sqlite_db, pk_column, sqlite_config


def make_config(source_type: str, target_type: str, auto_add: bool = False) -> SyncConfig:
    return SyncConfig(
        source_config=ConnectionConfig(type=source_type, database="app"),
        target_config=ConnectionConfig(type=target_type, database="app"),
        tables=["users"],
        auto_add_columns=auto_add,
    )


class LogRecorder:
    def __init__(self) -> None:
        self.lines: list[tuple[str, str]] = []

    def __call__(self, level: str, message: str) -> None:
        self.lines.append((level, message))

    def messages(self, level: str) -> list[str]:
        return [m for lvl, m in self.lines if lvl == level]


@pytest.fixture
def log() -> LogRecorder:
    return LogRecorder()


def users_source() -> FakeDatabase:
    return FakeDatabase(
        {"users": ([pk_column(), column("name"), column("email", "varchar(320)")], [])}
    )


def users_target() -> FakeDatabase:
    return FakeDatabase({"users": ([pk_column(), column("name")], [])})


class TestHelpers:
    """Tests for column bookkeeping helpers."""

    def test_collect_required_columns(self) -> None:
        """First-seen spelling wins; names match case-insensitively."""
        required = collect_required_columns(
            [{"id": 1, "Name": "a"}],
            [UpdateRow(keys={"id": 1}, values={"name": "b", "email": "x"})],
        )
        assert required == {"id": "id", "name": "Name", "email": "email"}

    def test_filter_insert_rows(self) -> None:
        rows = filter_insert_rows([{"id": 1, "Extra": 2}], {"id"})
        assert rows == [{"id": 1}]

    def test_filter_update_rows_drops_empty(self) -> None:
        """Updates left with no values are removed entirely."""
        updates = filter_update_rows(
            [
                UpdateRow(keys={"id": 1}, values={"extra": 1}),
                UpdateRow(keys={"id": 2}, values={"name": "b", "extra": 1}),
            ],
            {"id", "name"},
        )
        assert updates == [UpdateRow(keys={"id": 2}, values={"name": "b"})]


class TestSyncTableSchema:
    """Tests for SchemaAligner.sync_table_schema."""

    def test_adds_missing_columns_same_family(self, log: LogRecorder) -> None:
        """Within one family the source column type is reused."""
        config = make_config("mysql", "mariadb")
        target = users_target()
        aligner = SchemaAligner(config, users_source(), target, log)

        aligner.sync_table_schema(TableRef.resolve(config.source_config, config.target_config, "users"))

        assert target.executed == [
            "ALTER TABLE `app`.`users` ADD COLUMN `email` varchar(320) NULL"
        ]
        assert "Table schema synced: users (1 column(s) added)" in log.messages("info")

    def test_cross_family_uses_text(self, log: LogRecorder) -> None:
        config = make_config("mysql", "postgres")
        target = users_target()
        aligner = SchemaAligner(config, users_source(), target, log)

        aligner.sync_table_schema(TableRef.resolve(config.source_config, config.target_config, "users"))

        assert target.executed == ['ALTER TABLE "public"."users" ADD COLUMN "email" TEXT NULL']

    def test_consistent_schema(self, log: LogRecorder) -> None:
        config = make_config("mysql", "mysql")
        target = users_source()
        aligner = SchemaAligner(config, users_source(), target, log)

        aligner.sync_table_schema(TableRef.resolve(config.source_config, config.target_config, "users"))

        assert target.executed == []
        assert "Table schema is consistent: users" in log.messages("info")

    def test_unsupported_target_skipped(self, log: LogRecorder) -> None:
        config = make_config("mysql", "oracle")
        target = users_target()
        aligner = SchemaAligner(config, users_source(), target, log)

        aligner.sync_table_schema(TableRef.resolve(config.source_config, config.target_config, "users"))

        assert target.executed == []
        assert any("not supported" in m for m in log.messages("warn"))

    def test_missing_table_cross_family_fails(self, log: LogRecorder) -> None:
        """Without a shared DDL dialect a missing target table is an error."""
        config = make_config("mysql", "postgres")
        aligner = SchemaAligner(config, users_source(), FakeDatabase(), log)

        with pytest.raises(SchemaAlignError, match="automatic creation"):
            aligner.sync_table_schema(
                TableRef.resolve(config.source_config, config.target_config, "users")
            )

    def test_missing_table_created_from_source_ddl(
        self, tmp_path: Path, log: LogRecorder
    ) -> None:
        """SQLite to SQLite replays the source CREATE TABLE."""
        source_path = make_sqlite_db(
            tmp_path / "src.db",
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)",
        )
        target_path = make_sqlite_db(tmp_path / "dst.db", "CREATE TABLE other (x INTEGER)")

        config = SyncConfig(
            source_config=sqlite_config(source_path),
            target_config=sqlite_config(target_path),
        )
        with SQLiteDatabase() as source, SQLiteDatabase() as target:
            source.connect(config.source_config)
            target.connect(config.target_config)
            aligner = SchemaAligner(config, source, target, log)
            aligner.sync_table_schema(
                TableRef.resolve(config.source_config, config.target_config, "users")
            )
            columns = target.get_columns("", "users")

        assert [c.name for c in columns] == ["id", "name"]
        assert "Target table created: users" in log.messages("info")


class TestAlignChangeSet:
    """Tests for SchemaAligner.align_change_set."""

    @pytest.fixture
    def changes(self) -> ChangeSet:
        return ChangeSet(
            inserts=[{"id": 3, "name": "c", "email": "c@x"}],
            updates=[
                UpdateRow(keys={"id": 2}, values={"email": "b@x"}),
                UpdateRow(keys={"id": 5}, values={"name": "e", "email": "e@x"}),
            ],
            deletes=[{"id": 4}],
        )

    def test_auto_add_columns(self, changes: ChangeSet, log: LogRecorder) -> None:
        """Missing columns are added and the change set is kept whole."""
        config = make_config("mysql", "mysql", auto_add=True)
        source = users_source()
        target = users_target()
        aligner = SchemaAligner(config, source, target, log)
        ref = TableRef.resolve(config.source_config, config.target_config, "users")

        result = aligner.align_change_set(ref, changes, source.get_columns("app", "users"))

        assert target.executed == [
            "ALTER TABLE `app`.`users` ADD COLUMN `email` varchar(320) NULL"
        ]
        assert result.inserts == changes.inserts
        assert result.updates == changes.updates
        assert any("added=1 failed=0" in m for m in log.messages("info"))

    def test_missing_columns_stripped(self, changes: ChangeSet, log: LogRecorder) -> None:
        """With auto-add off, unknown columns are dropped with a warning."""
        config = make_config("mysql", "mysql", auto_add=False)
        source = users_source()
        target = users_target()
        aligner = SchemaAligner(config, source, target, log)
        ref = TableRef.resolve(config.source_config, config.target_config, "users")

        result = aligner.align_change_set(ref, changes, source.get_columns("app", "users"))

        assert target.executed == []
        assert result.inserts == [{"id": 3, "name": "c"}]
        assert result.updates == [UpdateRow(keys={"id": 5}, values={"name": "e"})]
        assert result.deletes == [{"id": 4}]
        assert any("auto-add disabled" in m and "email" in m for m in log.messages("warn"))

    def test_failed_add_strips_column(self, changes: ChangeSet, log: LogRecorder) -> None:
        config = make_config("mysql", "mysql", auto_add=True)
        source = users_source()
        target = users_target()
        target.fail_exec = "ADD COLUMN"
        aligner = SchemaAligner(config, source, target, log)
        ref = TableRef.resolve(config.source_config, config.target_config, "users")

        result = aligner.align_change_set(ref, changes, source.get_columns("app", "users"))

        assert result.inserts == [{"id": 3, "name": "c"}]
        assert any("Failed to add column" in m for m in log.messages("error"))

    def test_unsupported_target_strips(self, changes: ChangeSet, log: LogRecorder) -> None:
        """Auto-add is ignored where the target cannot ALTER TABLE ADD COLUMN."""
        config = make_config("mysql", "oracle", auto_add=True)
        source = users_source()
        target = users_target()
        aligner = SchemaAligner(config, source, target, log)
        ref = TableRef.resolve(config.source_config, config.target_config, "users")

        result = aligner.align_change_set(ref, changes, source.get_columns("app", "users"))

        assert target.executed == []
        assert result.inserts == [{"id": 3, "name": "c"}]

    def test_target_columns_unreadable(self, changes: ChangeSet, log: LogRecorder) -> None:
        config = make_config("mysql", "mysql", auto_add=True)
        aligner = SchemaAligner(config, users_source(), FakeDatabase(), log)
        ref = TableRef.resolve(config.source_config, config.target_config, "users")

        result = aligner.align_change_set(ref, changes, [])

        assert result is changes
        assert any("column check skipped" in m for m in log.messages("warn"))

    def test_nothing_missing(self, log: LogRecorder) -> None:
        config = make_config("mysql", "mysql")
        aligner = SchemaAligner(config, users_source(), users_target(), log)
        ref = TableRef.resolve(config.source_config, config.target_config, "users")
        changes = ChangeSet(inserts=[{"id": 1, "name": "a"}])

        assert aligner.align_change_set(ref, changes, []) is changes
        assert log.lines == []
