"""Utility modules for Table Sync."""

from table_sync.utils.logger import setup_logging
from table_sync.utils.display import ProgressDisplay

__all__ = ["setup_logging", "ProgressDisplay"]
