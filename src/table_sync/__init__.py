"""Table Sync - primary-key based table synchronization between databases."""

__version__ = "1.0.0"
__author__ = "Table Sync Contributors"

from table_sync.config import ConnectionConfig, Settings, SyncConfig, TableOptions

__all__ = ["ConnectionConfig", "Settings", "SyncConfig", "TableOptions", "__version__"]
