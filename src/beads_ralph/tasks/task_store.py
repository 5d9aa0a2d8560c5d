# src/beads_ralph/tasks/task_store.py

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Iterable
from typing import Any

from ..context.loader import RuleSkillLoader
from ..context.matching import find_relevant_rules, find_relevant_skill
from ..context.models import ProjectContext, RuleContext
from ..core.ports import TaskRepo
from ..errors import InvalidTransitionError, ValidationError
from .task_models import (
    PlanItem,
    Task,
    TaskContext,
    TaskPriority,
    TaskResult,
    TaskStatus,
    TaskSummary,
)
from .task_repo import InMemoryTaskRepo

logger = logging.getLogger(__name__)


class TaskStore:
    """
    Dependency-aware task graph ("Beads").

    - New tasks are tagged with relevant rules / a skill from the loaded project context.
    - blocked_by edges are the source of truth; each task's `blocks` list is rebuilt
      from them after every change to the edge set.
    - Completing a task rescans every task and releases the ones it was blocking
      (pull-style, no topological queue).

    Thread-safety:
    - one RLock guards every read-modify-write of the task collection,
      including the unblocking scan
    """

    def __init__(self, loader: RuleSkillLoader, repo: TaskRepo | None = None) -> None:
        self._loader = loader
        self._repo: TaskRepo = repo if repo is not None else InMemoryTaskRepo()
        self._context: ProjectContext | None = None
        self._lock = threading.RLock()

    @property
    def loader(self) -> RuleSkillLoader:
        return self._loader

    @property
    def project_context(self) -> ProjectContext | None:
        return self._context

    def get_project_context(self) -> ProjectContext | None:
        return self._context

    def initialize(self) -> ProjectContext:
        """(Re)load rule/skill context. Safe to call repeatedly."""
        context = self._loader.load_project_context()
        with self._lock:
            self._context = context
        logger.info(
            "TaskStore initialized with %d rules and %d skills",
            len(context.rules),
            len(context.skills),
        )
        return context

    # ---- creation ----

    def create_task(
        self,
        *,
        title: str,
        description: str,
        priority: TaskPriority | str | None = None,
        criteria: Iterable[str] | None = None,
        target_files: Iterable[str] | None = None,
        blocked_by: Iterable[str] | None = None,
    ) -> Task:
        title = (title or "").strip()
        description = (description or "").strip()
        if not title or not description:
            raise ValidationError("Title and description are required")
        prio = TaskPriority.parse(priority)

        context = self._context if self._context is not None else self.initialize()
        text = f"{title} {description}"
        rules = find_relevant_rules(context.rules, text)
        skill = find_relevant_skill(context.skills, text)

        with self._lock:
            blockers = self._resolve_blocker_ids(blocked_by or [])
            now = time.time()
            task = Task(
                id=uuid.uuid4().hex,
                title=title,
                description=description,
                status=TaskStatus.BLOCKED if blockers else TaskStatus.PENDING,
                priority=prio,
                created_at=now,
                updated_at=now,
                criteria=[str(c) for c in (criteria or [])],
                target_files=[str(f) for f in target_files] if target_files is not None else None,
                related_rules=[r.name for r in rules],
                related_skill=skill.name if skill else None,
                blocked_by=blockers,
            )
            self._repo.add(task)
            self._rebuild_blocking_index()

        logger.info(
            "Created task id=%s title=%r priority=%s status=%s rules=%s skill=%s",
            task.id,
            task.title,
            task.priority.value,
            task.status.value,
            ",".join(task.related_rules) or "none",
            task.related_skill or "none",
        )
        return task

    def create_tasks_from_plan(self, items: Iterable[PlanItem | dict[str, Any]]) -> list[Task]:
        """
        Create a batch of tasks whose dependencies refer to each other by title.

        Pass 1 creates every task so each title has an id; pass 2 wires depends_on.
        Titles that match nothing in the plan are dropped (logged), as are
        self-references; a task with at least one resolved dependency starts blocked.
        """
        plan = [i if isinstance(i, PlanItem) else PlanItem.from_dict(i) for i in items]
        if not plan:
            raise ValidationError("Plan must be a non-empty array")

        created: list[Task] = []
        title_to_id: dict[str, str] = {}
        for item in plan:
            task = self.create_task(
                title=item.title,
                description=item.description,
                priority=item.priority,
                criteria=item.criteria,
            )
            created.append(task)
            title_to_id[item.title] = task.id

        with self._lock:
            now = time.time()
            for item, task in zip(plan, created):
                resolved: list[str] = []
                for dep_title in item.depends_on:
                    dep_id = title_to_id.get(dep_title)
                    if dep_id is None:
                        logger.warning(
                            "Plan task %r depends on unknown title %r; dependency dropped",
                            item.title,
                            dep_title,
                        )
                        continue
                    if dep_id == task.id:
                        logger.warning("Plan task %r depends on itself; dependency dropped", item.title)
                        continue
                    resolved.append(dep_id)

                if resolved:
                    task.blocked_by = list(dict.fromkeys(resolved))
                    task.status = TaskStatus.BLOCKED
                    task.updated_at = now
                    self._repo.update(task)

            self._rebuild_blocking_index()

        logger.info("Created %d tasks from plan", len(created))
        return created

    # ---- queries ----

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            return self._repo.get(task_id)

    def get_all_tasks(self) -> list[Task]:
        with self._lock:
            return self._repo.list_all()

    def get_tasks_by_status(self, status: TaskStatus | str) -> list[Task]:
        wanted = TaskStatus.parse(status)
        return [t for t in self.get_all_tasks() if t.status == wanted]

    def get_next_task(self, *, exclude: Iterable[str] = ()) -> Task | None:
        """
        Highest-priority pending task; ties go to the earliest created.

        `exclude` lets the execution loop skip tasks it has given up on for the current run.
        """
        skip = set(exclude)
        pending = [
            t for t in self.get_tasks_by_status(TaskStatus.PENDING) if t.id not in skip
        ]
        if not pending:
            return None
        # min() keeps the first of equal keys, i.e. insertion order.
        return min(pending, key=lambda t: t.priority.rank)

    def get_task_context(self, task_id: str) -> TaskContext | None:
        task = self.get_task(task_id)
        if task is None:
            return None

        rules: list[RuleContext] = []
        for name in task.related_rules:
            rule = self._loader.get_rule_by_name(name)
            if rule is not None:
                rules.append(rule)

        skill = self._loader.get_skill_by_name(task.related_skill) if task.related_skill else None
        guidelines = list(dict.fromkeys(point for rule in rules for point in rule.key_points))

        return TaskContext(task=task, rules=rules, skill=skill, guidelines=guidelines)

    def get_summary(self) -> TaskSummary:
        tasks = self.get_all_tasks()
        by_status = {s: 0 for s in TaskStatus}
        by_priority = {p: 0 for p in TaskPriority}
        for t in tasks:
            by_status[t.status] += 1
            by_priority[t.priority] += 1

        total = len(tasks)
        rate = (by_status[TaskStatus.COMPLETED] / total) * 100 if total else 0.0
        return TaskSummary(
            total=total,
            by_status=by_status,
            by_priority=by_priority,
            completion_rate=rate,
        )

    # ---- mutations ----

    def update_task_status(self, task_id: str, status: TaskStatus | str) -> Task | None:
        """
        Set a task's status. Returns None for an unknown id.

        Any transition is accepted except moving a task into "blocked" while it has
        no unresolved blocker (InvalidTransitionError).
        """
        target = TaskStatus.parse(status)
        with self._lock:
            task = self._repo.get(task_id)
            if task is None:
                return None

            if target == TaskStatus.BLOCKED and not self._unresolved_blockers(task):
                raise InvalidTransitionError(
                    task.id, task.status.value, target.value, "task has no unresolved blockers"
                )

            previous = task.status
            now = time.time()
            task.status = target
            task.updated_at = now
            self._repo.update(task)

            if target == TaskStatus.COMPLETED:
                self._on_completed(task, now)

        logger.info("Task %s status %s -> %s", task_id, previous.value, target.value)
        return task

    def set_task_result(self, task_id: str, result: TaskResult) -> Task | None:
        """
        Record an execution result.

        Success completes the task (and releases its dependents). Failure puts it
        back in the queue: pending, or blocked if it still has unresolved blockers.
        """
        with self._lock:
            task = self._repo.get(task_id)
            if task is None:
                return None

            now = time.time()
            task.result = result
            task.updated_at = now

            if result.success:
                task.status = TaskStatus.COMPLETED
                self._repo.update(task)
                self._on_completed(task, now)
            else:
                task.status = (
                    TaskStatus.BLOCKED if self._unresolved_blockers(task) else TaskStatus.PENDING
                )
                self._repo.update(task)

        logger.info(
            "Task %s result success=%s -> %s", task_id, result.success, task.status.value
        )
        return task

    def clear_tasks(self) -> None:
        """Drop every task. The loaded rule/skill context is kept."""
        with self._lock:
            n = self._repo.count()
            self._repo.clear()
        logger.info("Cleared %d tasks", n)

    # ---- internals (call with the lock held) ----

    def _resolve_blocker_ids(self, ids: Iterable[str]) -> list[str]:
        out: list[str] = []
        for bid in dict.fromkeys(str(i) for i in ids):
            blocker = self._repo.get(bid)
            if blocker is None:
                logger.warning("Unknown blocker id %s dropped", bid)
                continue
            if blocker.status == TaskStatus.COMPLETED:
                continue
            out.append(bid)
        return out

    def _unresolved_blockers(self, task: Task) -> list[str]:
        out: list[str] = []
        for bid in task.blocked_by:
            blocker = self._repo.get(bid)
            if blocker is not None and blocker.status != TaskStatus.COMPLETED:
                out.append(bid)
        return out

    def _on_completed(self, task: Task, now: float) -> None:
        if task.completed_at is None:
            task.completed_at = now
            self._repo.update(task)
        self._unblock_dependents(task.id, now)

    def _unblock_dependents(self, completed_id: str, now: float) -> None:
        for task in self._repo.list_all():
            if completed_id not in task.blocked_by:
                continue

            task.blocked_by = [b for b in task.blocked_by if b != completed_id]
            task.updated_at = now
            if task.status == TaskStatus.BLOCKED and not self._unresolved_blockers(task):
                task.status = TaskStatus.PENDING
                logger.info("Task %s unblocked by %s", task.id, completed_id)
            self._repo.update(task)

        self._rebuild_blocking_index()

    def _rebuild_blocking_index(self) -> None:
        tasks = self._repo.list_all()
        inverse: dict[str, list[str]] = {t.id: [] for t in tasks}
        for t in tasks:
            for bid in t.blocked_by:
                if bid in inverse and t.id not in inverse[bid]:
                    inverse[bid].append(t.id)

        for t in tasks:
            if t.blocks != inverse[t.id]:
                t.blocks = inverse[t.id]
                self._repo.update(t)
