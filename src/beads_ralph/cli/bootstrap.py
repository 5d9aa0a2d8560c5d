# src/beads_ralph/cli/bootstrap.py

"""
Composition root.

- loads settings once (or takes them from the caller),
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (LLM, loader, task store, orchestrator).

There are no module-level singletons; every entrypoint builds its own AppState.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import get_settings
from ..context.loader import RuleSkillLoader
from ..core.ports import LLMClient
from ..core.state import AppState
from ..errors import LLMError
from ..llm.client import OpenRouterLLMClient
from ..llm.offline import OfflineLLMClient
from ..ralph.executor import ExecutionOrchestrator
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)


def build_llm_client(settings) -> LLMClient:
    try:
        return OpenRouterLLMClient(settings)
    except LLMError as e:
        # Fallback for demos / local runs without external services.
        logger.warning("%s Falling back to the offline LLM client.", e)
        return OfflineLLMClient()


def create_initial_state(*, settings=None, llm: LLMClient | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    loader = RuleSkillLoader(
        settings.cursor_dir,
        rules_dirname=settings.rules_dirname,
        skills_dirname=settings.skills_dirname,
        trigger_keywords=settings.trigger_keywords,
        project_skill_hints=settings.project_skill_hints,
    )
    task_store = TaskStore(loader)
    llm_client = llm if llm is not None else build_llm_client(settings)

    orchestrator = ExecutionOrchestrator(
        task_store,
        llm_client,
        model_timeout_seconds=settings.model_timeout_seconds,
        inter_task_delay_seconds=settings.inter_task_delay_seconds,
        max_retained_cycles=settings.max_retained_cycles,
        max_attempts_per_run=settings.max_attempts_per_run,
    )

    logger.info(
        "State ready cursor_dir=%s llm=%s", settings.cursor_dir, llm_client.__class__.__name__
    )
    return AppState(
        settings=settings,
        llm=llm_client,
        loader=loader,
        task_store=task_store,
        orchestrator=orchestrator,
    )
