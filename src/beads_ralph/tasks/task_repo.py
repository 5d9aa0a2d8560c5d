# src/beads_ralph/tasks/task_repo.py

from __future__ import annotations

import logging

from .task_models import Task

logger = logging.getLogger(__name__)


class InMemoryTaskRepo:
    """
    In-process TaskRepo backed by a dict keyed by task id.

    Durable storage is out of scope; anything implementing core.ports.TaskRepo
    can replace this. Locking is the task store's job, not the repo's.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def add(self, task: Task) -> None:
        if task.id in self._tasks:
            raise KeyError(f"Task {task.id} already exists")
        self._tasks[task.id] = task

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def update(self, task: Task) -> None:
        if task.id not in self._tasks:
            raise KeyError(f"Task {task.id} does not exist")
        self._tasks[task.id] = task

    def list_all(self) -> list[Task]:
        return list(self._tasks.values())

    def clear(self) -> None:
        n = len(self._tasks)
        self._tasks.clear()
        logger.debug("InMemoryTaskRepo cleared %d tasks", n)

    def count(self) -> int:
        return len(self._tasks)
