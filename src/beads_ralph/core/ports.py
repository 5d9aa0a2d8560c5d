# src/beads_ralph/core/ports.py

"""
Ports (interfaces) used by the core.

The task store and the orchestrator depend on Protocols instead of concrete
implementations. This keeps the storage backend and the LLM provider swappable
and makes testing easier.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import Task

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI/OpenRouter-compatible)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


class TaskRepo(Protocol):
    """
    Storage for Task records keyed by id.

    Iteration order of list_all() is insertion order; the task store relies on
    it as the tie-break between tasks of equal priority.
    A durable backend can implement the same methods without changing TaskStore.
    """

    def add(self, task: Task) -> None: ...
    def get(self, task_id: str) -> Task | None: ...
    def update(self, task: Task) -> None: ...
    def list_all(self) -> list[Task]: ...
    def clear(self) -> None: ...
    def count(self) -> int: ...
