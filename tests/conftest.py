# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from beads_ralph.context.loader import RuleSkillLoader
from beads_ralph.core.state import AppState
from beads_ralph.ralph.executor import ExecutionOrchestrator
from beads_ralph.tasks.task_store import TaskStore

from .fakes import FakeLLMClient

API_STYLE_RULE = """---
description: "API conventions for server routes"
globs: ["server/**/*.ts", 'shared/*.ts']
alwaysApply: false
---

# API Style

## Errors
- MUST return JSON errors
- Use zod validation
"""

GENERAL_RULE = """---
description:
alwaysApply: true
---
# General
- NEVER commit secrets
"""

AUTH_SKILL = """---
name: auth-flow
description: Use when implementing login or signup. Covers Supabase auth.
---

# Auth flow

Follow `.cursor/rules/api-style.mdc` for every endpoint.
"""

PROJECT_SKILL = """---
name: project-overview
description: Project overview and module map.
---

| Module | Stack |
|---|---|
| **Chat** | React |
| **Orders** | Node |
"""


def write_cursor_tree(root: Path) -> Path:
    """Create a small rules/skills tree under `root` and return it."""
    rules = root / "rules"
    skills = root / "skills"
    rules.mkdir(parents=True)
    (rules / "api-style.mdc").write_text(API_STYLE_RULE, encoding="utf-8")
    (rules / "general.mdc").write_text(GENERAL_RULE, encoding="utf-8")
    (rules / "notes.txt").write_text("not a rule", encoding="utf-8")

    (skills / "auth-flow").mkdir(parents=True)
    (skills / "auth-flow" / "SKILL.md").write_text(AUTH_SKILL, encoding="utf-8")
    (skills / "auth-flow" / "reference.md").write_text("Token refresh details.", encoding="utf-8")

    (skills / "project-overview").mkdir()
    (skills / "project-overview" / "SKILL.md").write_text(PROJECT_SKILL, encoding="utf-8")

    # No SKILL.md: must be skipped.
    (skills / "empty").mkdir()
    return root


@pytest.fixture()
def cursor_dir(tmp_path: Path) -> Path:
    return write_cursor_tree(tmp_path / ".cursor")


@pytest.fixture()
def settings(tmp_path: Path, cursor_dir: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and AppState.

    A SimpleNamespace keeps tests independent of the process environment.
    """
    return SimpleNamespace(
        app_name="beads-ralph-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        cursor_dir=cursor_dir,
        rules_dirname="rules",
        skills_dirname="skills",
        trigger_keywords=["auth", "Supabase", "chat"],
        project_skill_hints=["project"],
        openrouter_api_key=None,
        openrouter_base_url="https://openrouter.ai/api/v1",
        llm_models=["openai/gpt-4o"],
        model_timeout_seconds=5.0,
        inter_task_delay_seconds=0.0,
        max_attempts_per_run=1,
        max_retained_cycles=500,
        http_host="127.0.0.1",
        http_port=8000,
    )


@pytest.fixture()
def loader(cursor_dir: Path) -> RuleSkillLoader:
    return RuleSkillLoader(cursor_dir, trigger_keywords=["auth", "Supabase", "chat"])


@pytest.fixture()
def store(loader: RuleSkillLoader) -> TaskStore:
    s = TaskStore(loader)
    s.initialize()
    return s


@pytest.fixture()
def llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture()
def orchestrator(store: TaskStore, llm: FakeLLMClient) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(store, llm, model_timeout_seconds=5.0, inter_task_delay_seconds=0.0)


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    llm: FakeLLMClient,
    loader: RuleSkillLoader,
    store: TaskStore,
    orchestrator: ExecutionOrchestrator,
) -> AppState:
    """AppState wired with the deterministic fake LLM."""
    return AppState(
        settings=settings,
        llm=llm,
        loader=loader,
        task_store=store,
        orchestrator=orchestrator,
    )
