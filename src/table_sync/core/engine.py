"""
Sync Engine - Main orchestration for sync jobs.

Coordinates all components for the three job entry points:
- analyze: per-table diff counts (dry run)
- preview: sampled diff rows for one table
- run_sync: schema alignment, diffing and change application

Tables are processed one after another. Only a driver or connection failure
aborts a job; every other problem is recorded against its table and the job
moves on.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from table_sync.config import (
    PREVIEW_DEFAULT_LIMIT,
    PREVIEW_MAX_LIMIT,
    SyncConfig,
    SyncMode,
    is_known_sync_mode,
    normalize_sync_mode,
    resolve_content,
)
from table_sync.connectors import create_database
from table_sync.connectors.base import BatchApplier, ChangeSet, Database, Row
from table_sync.core.diff import (
    TableDiffPreview,
    TableDiffSummary,
    diff_snapshots,
    resolve_primary_key,
)
from table_sync.core.events import Reporter, SyncLogEvent, SyncProgressEvent, compute_percent
from table_sync.core.identifiers import TRUNCATE_DIALECTS, TableRef, quote_qualified_ident
from table_sync.core.schema import SchemaAligner
from table_sync.core.selection import apply_table_options
from table_sync.exceptions import (
    ConnectError,
    DriverInitError,
    PrimaryKeyError,
    SchemaAlignError,
    SyncError,
)

logger = logging.getLogger("table_sync.engine")

_LOG_LEVELS = {"info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}


class TableStatus(str, Enum):
    """Outcome of one table within a sync job."""

    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"
    UNSUPPORTED = "unsupported"  # target cannot apply change sets


@dataclass
class TableSyncReport:
    """What happened to one requested table."""

    table: str
    status: TableStatus
    message: str = ""
    inserted: int = 0
    updated: int = 0
    deleted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "status": self.status.value,
            "message": self.message,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
        }


@dataclass
class SyncResult:
    """Result of a run_sync job."""

    success: bool = True
    message: str = ""
    logs: list[str] = field(default_factory=list)
    tables_synced: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    rows_deleted: int = 0
    tables: list[TableSyncReport] = field(default_factory=list)

    @property
    def failed_tables(self) -> list[TableSyncReport]:
        return [t for t in self.tables if t.status is TableStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "logs": list(self.logs),
            "tablesSynced": self.tables_synced,
            "rowsInserted": self.rows_inserted,
            "rowsUpdated": self.rows_updated,
            "rowsDeleted": self.rows_deleted,
            "tables": [t.to_dict() for t in self.tables],
        }


@dataclass
class SyncAnalyzeResult:
    """Result of an analyze job."""

    success: bool = True
    message: str = ""
    tables: list[TableDiffSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "tables": [t.to_dict() for t in self.tables],
        }


@dataclass
class _Job:
    """Per-call state shared by the table steps of run_sync."""

    config: SyncConfig
    result: SyncResult
    source: Database
    target: Database
    applier: BatchApplier | None
    aligner: SchemaAligner
    mode: SyncMode
    sync_schema: bool
    sync_data: bool
    total: int

    @property
    def job_id(self) -> str:
        return self.config.job_id


DatabaseFactory = Callable[[str], Database]


class SyncEngine:
    """
    Main sync engine coordinating all operations.

    The engine keeps no state between calls besides its reporter, so one
    instance may serve any number of jobs.

    Example:
        engine = SyncEngine(Reporter(on_log=print))

        summary = engine.analyze(config)
        preview = engine.preview(config, "users", limit=50)
        result = engine.run_sync(config)
    """

    def __init__(
        self,
        reporter: Reporter | None = None,
        database_factory: DatabaseFactory = create_database,
    ) -> None:
        """
        Initialize sync engine.

        Args:
            reporter: Optional log/progress hooks
            database_factory: Builds an unconnected driver for a database type
        """
        self.reporter = reporter or Reporter()
        self.database_factory = database_factory

    # =========================================================================
    # Event helpers
    # =========================================================================

    def _log(self, job_id: str, result: SyncResult | None, level: str, message: str) -> None:
        if result is not None:
            result.logs.append(message)
        logger.log(_LOG_LEVELS.get(level, logging.INFO), message, extra={"job_id": job_id})
        if self.reporter.on_log is not None and job_id.strip():
            self.reporter.on_log(SyncLogEvent.now(job_id, level, message))

    def _progress(self, job_id: str, current: int, total: int, table: str, stage: str) -> None:
        if self.reporter.on_progress is None or not job_id.strip():
            return
        percent, current = compute_percent(current, total)
        self.reporter.on_progress(
            SyncProgressEvent(
                job_id=job_id,
                percent=percent,
                current=current,
                total=total,
                table=table,
                stage=stage,
            )
        )

    def _fail(self, job_id: str, total: int, result: SyncResult, message: str) -> SyncResult:
        result.success = False
        result.message = message
        self._log(job_id, result, "error", "Fatal error: " + message)
        self._progress(job_id, result.tables_synced, total, "", "Sync failed")
        return result

    # =========================================================================
    # Connections
    # =========================================================================

    def _create_drivers(self, config: SyncConfig) -> tuple[Database, Database]:
        drivers = []
        for side, conn in (("source", config.source_config), ("target", config.target_config)):
            try:
                drivers.append(self.database_factory(conn.type))
            except DriverInitError as e:
                logger.error("%s driver init failed: type=%r", side.capitalize(), conn.type)
                raise DriverInitError(conn.type, side) from e
        return drivers[0], drivers[1]

    def _connect(self, stack: ExitStack, db: Database, side: str, config: SyncConfig) -> None:
        conn = config.source_config if side == "source" else config.target_config
        try:
            db.connect(conn)
        except Exception as e:
            logger.error("%s connection failed: %s", side.capitalize(), conn.summary())
            raise ConnectError(f"{side.capitalize()} database connection failed: {e}") from e
        stack.callback(db.close)

    def _open(self, stack: ExitStack, config: SyncConfig) -> tuple[Database, Database]:
        """Create and connect both drivers; closing is registered on ``stack``."""
        source, target = self._create_drivers(config)
        self._connect(stack, source, "source", config)
        self._connect(stack, target, "target", config)
        return source, target

    # =========================================================================
    # Analyze
    # =========================================================================

    def analyze(self, config: SyncConfig) -> SyncAnalyzeResult:
        """
        Count per-table differences without writing anything.

        A table that cannot be analyzed gets ``can_sync=False`` and a message;
        the job itself only fails when a database cannot be reached.
        """
        result = SyncAnalyzeResult()
        job_id = config.job_id

        sync_schema, sync_data, known = resolve_content(config.content)
        if not known:
            self._log(
                job_id, None, "warn",
                f"Unknown sync content {config.content!r}, falling back to data only",
            )

        total = len(config.tables)
        self._progress(job_id, 0, total, "", "Analysis started")

        with ExitStack() as stack:
            try:
                source, target = self._open(stack, config)
            except SyncError as e:
                return SyncAnalyzeResult(success=False, message=str(e))

            for i, table_name in enumerate(config.tables):
                self._progress(job_id, i, total, table_name, f"Analyzing table ({i + 1}/{total})")
                result.tables.append(
                    self._analyze_table(config, source, target, table_name, sync_schema, sync_data)
                )

        self._progress(job_id, total, total, "", "Analysis finished")
        result.message = f"Analyzed {len(result.tables)} table(s)"
        return result

    def _analyze_table(
        self,
        config: SyncConfig,
        source: Database,
        target: Database,
        table_name: str,
        sync_schema: bool,
        sync_data: bool,
    ) -> TableDiffSummary:
        summary = TableDiffSummary(table=table_name, has_schema=sync_schema)
        ref = TableRef.resolve(config.source_config, config.target_config, table_name)

        try:
            columns = source.get_columns(ref.source_schema, ref.source_table)
        except Exception as e:
            summary.message = f"Failed to read source columns: {e}"
            return summary

        try:
            summary.pk_column = resolve_primary_key(columns)
        except PrimaryKeyError as e:
            summary.message = str(e)
            return summary

        if not sync_data:
            summary.can_sync = True
            summary.message = "Schema only; data diff not analyzed"
            return summary

        try:
            source_rows, target_rows = self._fetch_snapshots(config, source, target, ref)
        except SyncError as e:
            summary.message = str(e)
            return summary

        diff = diff_snapshots(summary.pk_column, source_rows, target_rows)
        return TableDiffSummary.from_diff(table_name, diff, has_schema=sync_schema)

    def _fetch_rows(self, db: Database, db_type: str, query_table: str, side: str) -> list[Row]:
        try:
            rows, _ = db.query(f"SELECT * FROM {quote_qualified_ident(db_type, query_table)}")
        except Exception as e:
            raise SyncError(f"Failed to read {side} table: {e}") from e
        return rows

    def _fetch_snapshots(
        self,
        config: SyncConfig,
        source: Database,
        target: Database,
        ref: TableRef,
    ) -> tuple[list[Row], list[Row]]:
        source_rows = self._fetch_rows(
            source, config.source_config.type, ref.source_query_table, "source"
        )
        target_rows = self._fetch_rows(
            target, config.target_config.type, ref.target_query_table, "target"
        )
        return source_rows, target_rows

    # =========================================================================
    # Preview
    # =========================================================================

    def preview(
        self,
        config: SyncConfig,
        table_name: str,
        limit: int = PREVIEW_DEFAULT_LIMIT,
    ) -> TableDiffPreview:
        """
        Sample the rows a sync would insert, update and delete for one table.

        Args:
            config: Job configuration (source/target connections)
            table_name: Table to preview
            limit: Rows per partition; <= 0 means the default, capped at 500

        Raises:
            DriverInitError, ConnectError: a database cannot be reached
            PrimaryKeyError: the table does not have exactly one PK column
            SyncError: columns or rows cannot be read
        """
        if limit <= 0:
            limit = PREVIEW_DEFAULT_LIMIT
        limit = min(limit, PREVIEW_MAX_LIMIT)

        with ExitStack() as stack:
            source, target = self._open(stack, config)
            ref = TableRef.resolve(config.source_config, config.target_config, table_name)

            try:
                columns = source.get_columns(ref.source_schema, ref.source_table)
            except Exception as e:
                raise SyncError(f"Failed to read source columns: {e}") from e

            pk_column = resolve_primary_key(columns)
            source_rows, target_rows = self._fetch_snapshots(config, source, target, ref)

        diff = diff_snapshots(pk_column, source_rows, target_rows)
        return TableDiffPreview.from_diff(table_name, diff, limit)

    # =========================================================================
    # Run
    # =========================================================================

    def run_sync(self, config: SyncConfig) -> SyncResult:
        """
        Synchronize every requested table from source to target.

        Returns:
            SyncResult with totals, per-table reports and the log transcript.
            ``success`` is False only when a driver or connection failed.
        """
        result = SyncResult()
        job_id = config.job_id
        total = len(config.tables)

        logger.info(
            "Starting data sync: source=[%s] target=[%s] tables=%d",
            config.source_config.summary(),
            config.target_config.summary(),
            total,
        )
        self._progress(job_id, 0, total, "", "Sync started")

        sync_schema, sync_data, known = resolve_content(config.content)
        if not known:
            self._log(
                job_id, result, "warn",
                f"Unknown sync content {config.content!r}, falling back to data only",
            )
        if not is_known_sync_mode(config.mode):
            self._log(
                job_id, result, "warn",
                f"Unknown sync mode {config.mode!r}, falling back to insert_update",
            )
        mode = normalize_sync_mode(config.mode)

        if sync_schema and sync_data:
            content_label = "schema + data"
        elif sync_schema:
            content_label = "schema only"
        else:
            content_label = "data only"
        self._log(
            job_id, result, "info",
            f"Sync content: {content_label}; mode: {mode.value}; "
            f"auto-add columns: {config.auto_add_columns}",
        )

        with ExitStack() as stack:
            try:
                source, target = self._create_drivers(config)
                self._log(
                    job_id, result, "info",
                    f"Connecting to source database: {config.source_config.summary()}",
                )
                self._progress(job_id, 0, total, "", "Connecting to source database")
                self._connect(stack, source, "source", config)

                self._log(
                    job_id, result, "info",
                    f"Connecting to target database: {config.target_config.summary()}",
                )
                self._progress(job_id, 0, total, "", "Connecting to target database")
                self._connect(stack, target, "target", config)
            except SyncError as e:
                return self._fail(job_id, total, result, str(e))

            job = _Job(
                config=config,
                result=result,
                source=source,
                target=target,
                applier=target if isinstance(target, BatchApplier) else None,
                aligner=SchemaAligner(
                    config,
                    source,
                    target,
                    lambda level, message: self._log(job_id, result, level, message),
                ),
                mode=mode,
                sync_schema=sync_schema,
                sync_data=sync_data,
                total=total,
            )

            for i, table_name in enumerate(config.tables):
                self._log(job_id, result, "info", f"Syncing table: {table_name}")
                self._progress(job_id, i, total, table_name, f"Syncing table ({i + 1}/{total})")
                try:
                    report = self._sync_table(job, i, table_name)
                finally:
                    self._progress(job_id, i + 1, total, table_name, "Table finished")

                result.tables.append(report)
                if report.status is TableStatus.SYNCED:
                    result.tables_synced += 1
                    result.rows_inserted += report.inserted
                    result.rows_updated += report.updated
                    result.rows_deleted += report.deleted

        self._progress(job_id, total, total, "", "Sync finished")
        result.message = f"Synced {result.tables_synced}/{total} table(s)"
        return result

    def _sync_table(self, job: _Job, index: int, table_name: str) -> TableSyncReport:
        config = job.config

        def log(level: str, message: str) -> None:
            self._log(job.job_id, job.result, level, message)

        def stage(name: str) -> None:
            self._progress(job.job_id, index, job.total, table_name, name)

        def report(status: TableStatus, message: str = "") -> TableSyncReport:
            return TableSyncReport(table=table_name, status=status, message=message)

        ref = TableRef.resolve(config.source_config, config.target_config, table_name)

        if job.sync_schema:
            stage("Syncing table schema")
            try:
                job.aligner.sync_table_schema(ref)
            except SchemaAlignError as e:
                message = f"Table schema sync failed: table={table_name} error={e}"
                log("error", message)
                return report(TableStatus.FAILED, message)

        if not job.sync_data:
            return report(TableStatus.SYNCED, "Schema only")

        try:
            columns = job.source.get_columns(ref.source_schema, ref.source_table)
        except Exception as e:
            logger.exception("Failed to read source columns: table=%s", table_name)
            message = f"Failed to read columns of table {table_name}: {e}"
            log("error", message)
            return report(TableStatus.FAILED, message)

        try:
            pk_column = resolve_primary_key(columns)
        except PrimaryKeyError as e:
            message = f"Table {table_name}: {e}; data sync skipped"
            log("warn", message)
            return report(TableStatus.SKIPPED, message)

        options = config.options_for(table_name)
        if not options.any_enabled:
            message = f"Table {table_name} has no operation selected, skipped"
            log("info", message)
            return report(TableStatus.SKIPPED, message)

        stage("Reading source rows")
        try:
            source_rows = self._fetch_rows(
                job.source, config.source_config.type, ref.source_query_table, "source"
            )
        except SyncError as e:
            log("error", f"  -> {e}")
            return report(TableStatus.FAILED, str(e))

        if job.mode is SyncMode.INSERT_UPDATE:
            stage("Reading target rows")
            try:
                target_rows = self._fetch_rows(
                    job.target, config.target_config.type, ref.target_query_table, "target"
                )
            except SyncError as e:
                log("error", f"  -> {e}")
                return report(TableStatus.FAILED, str(e))

            stage("Comparing rows")
            diff = diff_snapshots(pk_column, source_rows, target_rows)
            changes = apply_table_options(
                pk_column, diff.to_change_set(include_deletes=options.delete), options
            )
        else:
            changes = ChangeSet(inserts=source_rows)

            if job.mode is SyncMode.FULL_OVERWRITE:
                log("warn", f"  -> Full overwrite: clearing target table {table_name}")
                stage("Clearing target table")
                target_type = config.target_config.type
                quoted = quote_qualified_ident(target_type, ref.target_query_table)
                if config.target_config.dialect in TRUNCATE_DIALECTS:
                    clear_sql = f"TRUNCATE TABLE {quoted}"
                else:
                    clear_sql = f"DELETE FROM {quoted}"
                try:
                    job.target.exec(clear_sql)
                except Exception as e:
                    message = f"Failed to clear target table: {e}"
                    log("error", f"  -> {message}")
                    return report(TableStatus.FAILED, message)

        stage("Checking columns")
        changes = job.aligner.align_change_set(ref, changes, columns)

        stage("Applying changes")
        return self._apply(job, ref, changes, log)

    def _apply(
        self,
        job: _Job,
        ref: TableRef,
        changes: ChangeSet,
        log: Callable[[str, str], None],
    ) -> TableSyncReport:
        table_report = TableSyncReport(table=ref.name, status=TableStatus.SYNCED)

        if changes.is_empty():
            log("info", "  -> Data is consistent, nothing to change.")
            return table_report

        log(
            "info",
            f"  -> To insert: {len(changes.inserts)} rows, "
            f"to update: {len(changes.updates)} rows, "
            f"to delete: {len(changes.deletes)} rows",
        )

        if job.applier is None:
            table_report.status = TableStatus.UNSUPPORTED
            table_report.message = "Target driver does not support applying changes (apply_changes)"
            log("warn", f"  -> {table_report.message}.")
            return table_report

        try:
            job.applier.apply_changes(ref.target_table, changes)
        except Exception as e:
            table_report.status = TableStatus.FAILED
            table_report.message = f"Applying changes failed: {e}"
            log("error", f"  -> {table_report.message}")
            return table_report

        table_report.inserted = len(changes.inserts)
        table_report.updated = len(changes.updates)
        table_report.deleted = len(changes.deletes)
        return table_report
