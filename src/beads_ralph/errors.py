# src/beads_ralph/errors.py

"""
Exception taxonomy.

- Advisory failures (rule/skill documents) never raise; they degrade to empty results.
- ValidationError covers caller mistakes and maps to 4xx at the HTTP boundary.
- LLMError covers the model collaborator; the orchestrator converts it into a failed result.
"""

from __future__ import annotations


class BeadsError(Exception):
    """Base class for errors raised by the task subsystem."""


class ValidationError(BeadsError, ValueError):
    """Invalid input: missing required fields, unknown enum values, empty plans."""


class InvalidTransitionError(ValidationError):
    """A status change the task graph refuses to make."""

    def __init__(self, task_id: str, current: str, target: str, reason: str) -> None:
        super().__init__(f"Cannot move task {task_id} from {current} to {target}: {reason}")
        self.task_id = task_id
        self.current = current
        self.target = target
        self.reason = reason


class LLMError(RuntimeError):
    """The chat-completion collaborator could not produce an answer."""
