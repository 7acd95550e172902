"""Core sync engine components for Table Sync."""

from table_sync.core.engine import (
    SyncAnalyzeResult,
    SyncEngine,
    SyncResult,
    TableStatus,
    TableSyncReport,
)
from table_sync.core.diff import TableDiffPreview, TableDiffSummary, diff_snapshots
from table_sync.core.events import Reporter, SyncLogEvent, SyncProgressEvent
from table_sync.core.schema import SchemaAligner

__all__ = [
    "SyncEngine",
    "SyncResult",
    "SyncAnalyzeResult",
    "TableStatus",
    "TableSyncReport",
    "TableDiffSummary",
    "TableDiffPreview",
    "diff_snapshots",
    "Reporter",
    "SyncLogEvent",
    "SyncProgressEvent",
    "SchemaAligner",
]
