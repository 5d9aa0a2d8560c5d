# src/beads_ralph/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from ..context.loader import RuleSkillLoader
from ..ralph.executor import ExecutionOrchestrator
from ..tasks.task_store import TaskStore
from .ports import LLMClient


@dataclass
class AppState:
    """
    The explicit instances shared by the HTTP layer and the CLI.

    Built once by cli.bootstrap.create_initial_state(); tests build their own.
    """

    settings: Any
    llm: LLMClient
    loader: RuleSkillLoader
    task_store: TaskStore
    orchestrator: ExecutionOrchestrator

    # Handle of the background backlog run started over HTTP (if any).
    backlog_run: asyncio.Task[Any] | None = None
