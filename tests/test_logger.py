"""Tests for logging setup."""

import json
import logging
from pathlib import Path

import pytest

from table_sync.config import LoggingConfig
from table_sync.utils.logger import JobIdFilter, JsonFormatter, logger, setup_logging


@pytest.fixture
def reset_logger():
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


def make_record(name: str = "table_sync.engine", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name, logging.WARNING, __file__, 1, "column %s missing", ("email",), None
    )
    record.__dict__.update(extra)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_includes_job_id(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(job_id="job-7")))

        assert data["message"] == "column email missing"
        assert data["level"] == "WARNING"
        assert data["logger"] == "table_sync.engine"
        assert data["job_id"] == "job-7"

    def test_without_job_id(self) -> None:
        assert "job_id" not in json.loads(JsonFormatter().format(make_record()))

    def test_placeholder_job_id_dropped(self) -> None:
        """Records outside a job pass through JobIdFilter but stay id-less in JSON."""
        record = make_record()
        JobIdFilter().filter(record)

        assert record.job_id == "-"
        assert "job_id" not in json.loads(JsonFormatter().format(record))


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_level_override(self, reset_logger) -> None:
        setup_logging(LoggingConfig(level="DEBUG", format="simple"), level="WARNING")

        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_file_handler(self, tmp_path: Path, reset_logger) -> None:
        """A log file gets a rotating handler next to the console handler."""
        log_file = tmp_path / "logs" / "sync.log"
        setup_logging(LoggingConfig(level="DEBUG", format="json", file=log_file))

        engine_logger = logging.getLogger("table_sync.engine")
        engine_logger.info("Syncing table: users", extra={"job_id": "job-1"})
        logging.getLogger("table_sync.cli").info("Loaded job file")
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        lines = log_file.read_text().splitlines()
        assert lines[0].endswith("| job-1 | table_sync.engine | Syncing table: users")
        assert lines[1].endswith("| - | table_sync.cli | Loaded job file")
