# src/beads_ralph/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..context.models import RuleContext, SkillContext
from ..errors import ValidationError


def iso_ts(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, UTC).isoformat()


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - "blocked" always means at least one unresolved entry in blocked_by.
    - Failed executions return a task to "pending" so the scheduler can retry it.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, raw: str | TaskStatus | None) -> TaskStatus:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(f"Invalid status {raw!r}; expected one of: {allowed}") from None


class TaskPriority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Selection order: lower rank is picked first."""
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, raw: str | TaskPriority | None) -> TaskPriority:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls.MEDIUM
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValidationError(f"Invalid priority {raw!r}; expected one of: {allowed}") from None


_PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}


@dataclass(slots=True)
class TaskResult:
    """Outcome of one execution attempt, as reported by the orchestrator."""

    success: bool
    output: str
    files_modified: list[str] = field(default_factory=list)
    errors: list[str] | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "filesModified": list(self.files_modified),
            "errors": list(self.errors) if self.errors is not None else None,
            "duration": self.duration_ms,
        }


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    created_at: float
    updated_at: float

    criteria: list[str] = field(default_factory=list)
    target_files: list[str] | None = None

    # Resolved once at creation time; never re-resolved when rules change.
    related_rules: list[str] = field(default_factory=list)
    related_skill: str | None = None

    blocked_by: list[str] = field(default_factory=list)
    # Derived inverse of blocked_by; rebuilt by the store, never edited directly.
    blocks: list[str] = field(default_factory=list)

    completed_at: float | None = None
    result: TaskResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "relatedRules": list(self.related_rules),
            "relatedSkill": self.related_skill,
            "blockedBy": list(self.blocked_by),
            "blocks": list(self.blocks),
            "criteria": list(self.criteria),
            "targetFiles": list(self.target_files) if self.target_files is not None else None,
            "createdAt": iso_ts(self.created_at),
            "updatedAt": iso_ts(self.updated_at),
            "completedAt": iso_ts(self.completed_at),
            "result": self.result.to_dict() if self.result else None,
        }


@dataclass(slots=True)
class TaskContext:
    """Everything the orchestrator needs to run a task."""

    task: Task
    rules: list[RuleContext]
    skill: SkillContext | None
    guidelines: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "rules": [r.to_dict() for r in self.rules],
            "skill": self.skill.to_dict() if self.skill else None,
            "guidelines": list(self.guidelines),
        }


@dataclass(slots=True)
class PlanItem:
    """One entry of a bulk plan; depends_on holds titles of other plan entries."""

    title: str
    description: str
    priority: TaskPriority | None = None
    criteria: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PlanItem:
        if not isinstance(raw, dict):
            raise ValidationError("Plan items must be objects")
        title = str(raw.get("title") or "").strip()
        description = str(raw.get("description") or "").strip()
        if not title or not description:
            raise ValidationError("Title and description are required")
        priority = raw.get("priority")
        return cls(
            title=title,
            description=description,
            priority=TaskPriority.parse(priority) if priority is not None else None,
            criteria=[str(c) for c in (raw.get("criteria") or [])],
            depends_on=[str(d) for d in (raw.get("dependsOn") or raw.get("depends_on") or [])],
        )


@dataclass(slots=True)
class TaskSummary:
    total: int
    by_status: dict[TaskStatus, int]
    by_priority: dict[TaskPriority, int]
    completion_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "byStatus": {s.value: n for s, n in self.by_status.items()},
            "byPriority": {p.value: n for p, n in self.by_priority.items()},
            "completionRate": self.completion_rate,
        }
