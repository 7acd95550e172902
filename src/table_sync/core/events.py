"""Log and progress events emitted while a sync job runs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

EVENT_SYNC_START = "sync:start"
EVENT_SYNC_PROGRESS = "sync:progress"
EVENT_SYNC_LOG = "sync:log"
EVENT_SYNC_DONE = "sync:done"


@dataclass
class SyncLogEvent:
    """One log line of a job."""

    job_id: str
    level: str  # info/warn/error
    message: str
    ts: int  # Unix milli

    @classmethod
    def now(cls, job_id: str, level: str, message: str) -> "SyncLogEvent":
        return cls(job_id=job_id, level=level, message=message, ts=int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        return {"jobId": self.job_id, "level": self.level, "message": self.message, "ts": self.ts}


@dataclass
class SyncProgressEvent:
    """Job progress; ``current`` and ``total`` count tables."""

    job_id: str
    percent: int
    current: int
    total: int
    table: str = ""
    stage: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "jobId": self.job_id,
            "percent": self.percent,
            "current": self.current,
            "total": self.total,
        }
        if self.table:
            data["table"] = self.table
        if self.stage:
            data["stage"] = self.stage
        return data


def compute_percent(current: int, total: int) -> tuple[int, int]:
    """Clamp ``current`` into ``[0, total]`` and return ``(percent, current)``."""
    if total <= 0:
        return (100 if current > 0 else 0), current
    current = min(max(current, 0), total)
    return (current * 100) // total, current


@dataclass
class Reporter:
    """
    Callback hooks the engine calls inline while a job runs.

    Either hook may be None. The host decides where events go (a terminal
    display, a GUI event bus, a queue).
    """

    on_log: Callable[[SyncLogEvent], None] | None = None
    on_progress: Callable[[SyncProgressEvent], None] | None = None
