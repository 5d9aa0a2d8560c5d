# tests/test_config_bootstrap.py

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from beads_ralph.cli import main as cli_main
from beads_ralph.cli.bootstrap import create_initial_state
from beads_ralph.config import DEFAULT_TRIGGER_KEYWORDS, Settings
from beads_ralph.errors import LLMError
from beads_ralph.llm.client import OpenRouterLLMClient
from beads_ralph.llm.offline import OfflineLLMClient

from .fakes import FakeLLMClient


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "BEADS_LLM_MODELS",
        "BEADS_MODEL_TIMEOUT_SECONDS",
        "BEADS_TRIGGER_KEYWORDS",
        "BEADS_MAX_ATTEMPTS_PER_RUN",
        "BEADS_HTTP_PORT",
    ):
        monkeypatch.delenv(name, raising=False)

    s = Settings.from_env()

    assert s.llm_models == ["openai/gpt-4o"]
    assert s.model_timeout_seconds == 120.0
    assert s.trigger_keywords == list(DEFAULT_TRIGGER_KEYWORDS)
    assert s.max_attempts_per_run == 1
    assert s.http_port == 8000


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BEADS_LLM_MODELS", "a/model, b/model,,")
    monkeypatch.setenv("BEADS_CURSOR_DIR", str(tmp_path / "cur"))
    monkeypatch.setenv("BEADS_MODEL_TIMEOUT_SECONDS", "7.5")
    monkeypatch.setenv("BEADS_MAX_ATTEMPTS_PER_RUN", "0")
    monkeypatch.setenv("BEADS_HTTP_PORT", "not-a-number")
    monkeypatch.setenv("BEADS_LLM_FIRST_TOKEN_TIMEOUT_SECONDS", "90")
    monkeypatch.setenv("BEADS_LLM_READ_TIMEOUT_SECONDS", "30")

    s = Settings.from_env()

    assert s.llm_models == ["a/model", "b/model"]
    assert s.cursor_dir == tmp_path / "cur"
    assert s.model_timeout_seconds == 7.5
    assert s.max_attempts_per_run == 1
    assert s.http_port == 8000
    assert s.llm_read_timeout_seconds == 90.0


@pytest.mark.parametrize("raw", ["0", "-5", "0.0"])
def test_non_positive_model_timeout_uses_default(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("BEADS_MODEL_TIMEOUT_SECONDS", raw)

    assert Settings.from_env().model_timeout_seconds == 120.0


def test_openrouter_client_requires_key() -> None:
    with pytest.raises(LLMError):
        OpenRouterLLMClient(SimpleNamespace(openrouter_api_key=None, openrouter_base_url="http://x", llm_models=["m"]))
    with pytest.raises(LLMError):
        OpenRouterLLMClient(SimpleNamespace(openrouter_api_key="k", openrouter_base_url="http://x", llm_models=[" "]))


def test_openrouter_client_configured() -> None:
    client = OpenRouterLLMClient(
        SimpleNamespace(
            openrouter_api_key="sk-test",
            openrouter_base_url="https://openrouter.ai/api/v1",
            llm_models=["a/model", " b/model "],
        )
    )
    assert client.models == ["a/model", "b/model"]


def test_bootstrap_falls_back_to_offline_llm(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings)

    assert isinstance(state.llm, OfflineLLMClient)
    assert Path(settings.data_dir).is_dir()
    assert state.task_store.loader is state.loader
    assert state.orchestrator.is_running is False
    assert state.backlog_run is None


def test_bootstrap_uses_injected_llm(settings: SimpleNamespace) -> None:
    fake = FakeLLMClient()
    state = create_initial_state(settings=settings, llm=fake)
    assert state.llm is fake


def _patch_cli(monkeypatch: pytest.MonkeyPatch, settings: SimpleNamespace) -> None:
    monkeypatch.setattr(cli_main, "get_settings", lambda: settings)
    monkeypatch.setattr(cli_main, "setup_logging", lambda **kwargs: None)
    monkeypatch.setattr(
        cli_main, "create_initial_state", lambda *, settings: create_initial_state(settings=settings, llm=FakeLLMClient())
    )


def test_cli_run_executes_plan(
    monkeypatch: pytest.MonkeyPatch, settings: SimpleNamespace, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch_cli(monkeypatch, settings)
    plan = tmp_path / "plan.json"
    plan.write_text(
        json.dumps(
            {
                "plan": [
                    {"title": "A", "description": "first"},
                    {"title": "B", "description": "second", "dependsOn": ["A"]},
                ]
            }
        ),
        encoding="utf-8",
    )

    assert cli_main.main(["run", str(plan)]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["summary"]["byStatus"]["completed"] == 2
    assert [t["title"] for t in report["tasks"]] == ["A", "B"]
    assert all(t["result"]["success"] for t in report["tasks"])


def test_cli_run_rejects_empty_plan(
    monkeypatch: pytest.MonkeyPatch, settings: SimpleNamespace, tmp_path: Path
) -> None:
    _patch_cli(monkeypatch, settings)
    plan = tmp_path / "plan.json"
    plan.write_text("[]", encoding="utf-8")

    assert cli_main.main(["run", str(plan)]) == 2


def test_cli_context(
    monkeypatch: pytest.MonkeyPatch, settings: SimpleNamespace, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch_cli(monkeypatch, settings)

    assert cli_main.main(["context"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert [r["name"] for r in out["rules"]] == ["api-style", "general"]
    assert out["skills"][0]["triggers"] == ["Use when implementing login or signup.", "auth", "Supabase"]
    assert out["projectConfig"]["name"] == "project-overview"
