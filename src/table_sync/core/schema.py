"""
Schema alignment between source and target tables.

Alignment only ever adds: missing tables are created from the source's own
DDL (same engine family only) and missing columns are added as nullable.
Nothing on the target is dropped, renamed or retyped.
"""

from __future__ import annotations

from typing import Callable, Sequence

from table_sync.config import SyncConfig
from table_sync.connectors.base import ChangeSet, ColumnDefinition, Database, Row, UpdateRow
from table_sync.core.identifiers import (
    TableRef,
    quote_ident,
    quote_qualified_ident,
    same_family,
    sanitize_column_type,
    shares_native_ddl,
    supports_add_column,
)
from table_sync.exceptions import SchemaAlignError

LogFunc = Callable[[str, str], None]


def column_key(name: str) -> str:
    return name.strip().lower()


def column_name_set(columns: Sequence[ColumnDefinition]) -> set[str]:
    """Lower-cased, non-empty column names."""
    return {column_key(c.name) for c in columns if column_key(c.name)}


def collect_required_columns(inserts: list[Row], updates: list[UpdateRow]) -> dict[str, str]:
    """Columns a change set writes, as ``{lower_name: first_seen_name}``."""
    required: dict[str, str] = {}
    for row in inserts:
        for name in row:
            key = column_key(name)
            if key:
                required.setdefault(key, name)
    for update in updates:
        for name in update.values:
            key = column_key(name)
            if key:
                required.setdefault(key, name)
    return required


def filter_insert_rows(inserts: list[Row], allowed: set[str]) -> list[Row]:
    """Drop columns the target does not have from every insert row."""
    if not inserts or not allowed:
        return inserts
    return [
        {k: v for k, v in row.items() if column_key(k) in allowed} if row else row
        for row in inserts
    ]


def filter_update_rows(updates: list[UpdateRow], allowed: set[str]) -> list[UpdateRow]:
    """Drop unknown columns from update values; keys are never touched."""
    if not updates or not allowed:
        return updates

    out: list[UpdateRow] = []
    for update in updates:
        values = {k: v for k, v in update.values.items() if column_key(k) in allowed}
        if values:
            out.append(UpdateRow(keys=update.keys, values=values))
    return out


class SchemaAligner:
    """
    Brings one target table in line with what the source (or a pending
    change set) needs.

    Example:
        aligner = SchemaAligner(config, source_db, target_db, log)
        aligner.sync_table_schema(ref)
        changes = aligner.align_change_set(ref, changes, source_columns)
    """

    def __init__(
        self,
        config: SyncConfig,
        source: Database,
        target: Database,
        log: LogFunc,
    ) -> None:
        self.config = config
        self.source = source
        self.target = target
        self.log = log
        self.source_type = config.source_config.dialect
        self.target_type = config.target_config.dialect

    def _column_type_for(self, source_column: ColumnDefinition | None) -> str:
        if source_column is not None and same_family(self.source_type, self.target_type):
            return sanitize_column_type(source_column.type)
        return "TEXT"

    def _add_column(self, ref: TableRef, name: str, column_type: str) -> None:
        sql = (
            f"ALTER TABLE {quote_qualified_ident(self.target_type, ref.target_query_table)} "
            f"ADD COLUMN {quote_ident(self.target_type, name)} {column_type} NULL"
        )
        self.target.exec(sql)

    def _ensure_table(self, ref: TableRef) -> list[ColumnDefinition]:
        """Return target columns, creating the table from source DDL if absent."""
        try:
            columns = self.target.get_columns(ref.target_schema, ref.target_table)
        except Exception as e:
            missing_reason: Exception | None = e
        else:
            if columns:
                return columns
            missing_reason = None

        if not shares_native_ddl(self.source_type, self.target_type):
            raise SchemaAlignError(
                f"Target table is missing and automatic creation from "
                f"{self.config.source_config.type} to {self.config.target_config.type} "
                f"is not supported: {missing_reason or 'no columns returned'}"
            )

        self.log("warn", f"Target table {ref.name} does not exist, creating it from source DDL")
        try:
            create_sql = self.source.get_create_statement(ref.source_schema, ref.source_table)
        except Exception as e:
            raise SchemaAlignError(f"Failed to read source CREATE TABLE statement: {e}") from e
        if not create_sql.strip():
            raise SchemaAlignError("Failed to read source CREATE TABLE statement: empty statement")

        try:
            self.target.exec(create_sql)
        except Exception as e:
            raise SchemaAlignError(f"Failed to create target table: {e}") from e
        self.log("info", f"Target table created: {ref.name}")

        try:
            return self.target.get_columns(ref.target_schema, ref.target_table)
        except Exception as e:
            raise SchemaAlignError(f"Failed to read target columns after creating table: {e}") from e

    def sync_table_schema(self, ref: TableRef) -> None:
        """
        Make sure the target table exists and has every source column.

        Raises:
            SchemaAlignError: the table cannot be created or introspected
        """
        if not supports_add_column(self.target_type):
            self.log(
                "warn",
                f"Schema sync is not supported for target type "
                f"{self.config.target_config.type}; skipped table {ref.name}",
            )
            return

        try:
            source_columns = self.source.get_columns(ref.source_schema, ref.source_table)
        except Exception as e:
            raise SchemaAlignError(f"Failed to read source columns: {e}") from e

        existing = column_name_set(self._ensure_table(ref))

        added = 0
        for column in source_columns:
            name = column.name.strip()
            if not name or column_key(name) in existing:
                continue

            column_type = self._column_type_for(column)
            try:
                self._add_column(ref, name, column_type)
            except Exception as e:
                self.log("error", f"  -> Failed to add column: table={ref.name} column={name} error={e}")
                continue
            added += 1
            self.log("info", f"  -> Added column: table={ref.name} column={name} type={column_type}")

        if added == 0:
            self.log("info", f"Table schema is consistent: {ref.name}")
        else:
            self.log("info", f"Table schema synced: {ref.name} ({added} column(s) added)")

    def align_change_set(
        self,
        ref: TableRef,
        changes: ChangeSet,
        source_columns: Sequence[ColumnDefinition],
    ) -> ChangeSet:
        """
        Reconcile target columns with the columns a change set writes.

        Missing columns are added when ``auto_add_columns`` is on and the target
        supports it. Whatever is still missing afterwards is stripped from the
        change set so the apply step cannot fail on unknown columns.
        """
        required = collect_required_columns(changes.inserts, changes.updates)
        try:
            target_columns = self.target.get_columns(ref.target_schema, ref.target_table)
        except Exception as e:
            self.log("warn", f"  -> Failed to read target columns, column check skipped: {e}")
            return changes

        existing = column_name_set(target_columns)
        missing = sorted(name for key, name in required.items() if key not in existing)
        if not missing:
            return changes

        if self.config.auto_add_columns and supports_add_column(self.target_type):
            self.log(
                "warn",
                f"  -> Target is missing {len(missing)} column(s), adding: {', '.join(missing)}",
            )
            by_name = {column_key(c.name): c for c in source_columns if column_key(c.name)}
            added = 0
            for name in missing:
                column_type = self._column_type_for(by_name.get(column_key(name)))
                try:
                    self._add_column(ref, name, column_type)
                except Exception as e:
                    self.log("error", f"  -> Failed to add column: column={name} error={e}")
                    continue
                added += 1
            self.log(
                "info",
                f"  -> Column auto-add finished: added={added} failed={len(missing) - added}",
            )

            try:
                existing = column_name_set(
                    self.target.get_columns(ref.target_schema, ref.target_table)
                )
            except Exception as e:
                self.log("warn", f"  -> Failed to refresh target columns: {e}")
        elif self.config.auto_add_columns:
            self.log(
                "warn",
                f"  -> Target is missing {len(missing)} column(s) and "
                f"{self.config.target_config.type} cannot add columns, ignoring: "
                f"{', '.join(missing)}",
            )
        else:
            self.log(
                "warn",
                f"  -> Target is missing {len(missing)} column(s) (auto-add disabled), "
                f"ignoring: {', '.join(missing)}",
            )

        return ChangeSet(
            inserts=filter_insert_rows(changes.inserts, existing),
            updates=filter_update_rows(changes.updates, existing),
            deletes=changes.deletes,
        )
