# src/beads_ralph/ralph/cycle_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..tasks.task_models import iso_ts


class CycleStatus(StrEnum):
    """running -> completed | failed; both outcomes are terminal."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LogLevel(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class CycleLogEntry:
    timestamp: float
    level: LogLevel
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": iso_ts(self.timestamp),
            "level": self.level.value,
            "message": self.message,
            "data": self.data,
        }


@dataclass(slots=True)
class ExecutionCycle:
    """One attempt to execute one task, with its own append-only log."""

    id: str
    task_id: str
    started_at: float
    status: CycleStatus = CycleStatus.RUNNING
    completed_at: float | None = None
    logs: list[CycleLogEntry] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.status != CycleStatus.RUNNING

    def to_dict(self, *, include_logs: bool = True) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "taskId": self.task_id,
            "startedAt": iso_ts(self.started_at),
            "completedAt": iso_ts(self.completed_at),
            "status": self.status.value,
        }
        if include_logs:
            out["logs"] = [entry.to_dict() for entry in self.logs]
        return out
