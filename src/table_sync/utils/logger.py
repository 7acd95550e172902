"""
Logging setup for the table-sync CLI.

Engine log lines carry the job id in ``record.job_id``; every handler
installed here shows it, or ``-`` for lines logged outside a job.
"""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from table_sync.config import LoggingConfig


# Log output shares stderr with the live progress panel
console = Console(stderr=True)

logger = logging.getLogger("table_sync")

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(job_id)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(job_id)s | %(name)s | %(message)s"


class JobIdFilter(logging.Filter):
    """Give records logged outside a sync job a placeholder job id."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "job_id", ""):
            record.job_id = "-"
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``job_id`` is included when known."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        job_id = getattr(record, "job_id", "")
        if job_id and job_id != "-":
            log_data["job_id"] = job_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def _console_handler(format_style: str) -> logging.Handler:
    handler: logging.Handler
    if format_style == "rich":
        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("[%(job_id)s] %(message)s"))
    elif format_style == "json":
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(config: LoggingConfig, level: str | None = None) -> None:
    """
    Install console (and optional rotating file) handlers on the package logger.

    Args:
        config: Logging section of the application settings
        level: Overrides ``config.level``; the CLI lowers console noise with it
            while a progress display is on screen
    """
    log_level = getattr(logging, (level or config.level).upper(), logging.INFO)

    logger.handlers.clear()
    logger.setLevel(log_level)

    handlers: list[logging.Handler] = [_console_handler(config.format)]

    if config.file:
        file_path = Path(config.file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(log_level)
        handler.addFilter(JobIdFilter())
        logger.addHandler(handler)
