# src/beads_ralph/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole process, built once at startup.
- No secrets required at import time.
- Everything tunable via BEADS_* variables; tests pass their own settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "BEADS"

DEFAULT_TRIGGER_KEYWORDS: tuple[str, ...] = (
    "1C",
    "1С",
    "ERP",
    "voice",
    "vision",
    "RAG",
    "auth",
    "Supabase",
    "Qdrant",
    "Tamagui",
    "chat",
    "MCP",
)

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Rule / skill documents ----
    cursor_dir: Path
    rules_dirname: str
    skills_dirname: str
    trigger_keywords: list[str]
    project_skill_hints: list[str]

    # ---- LLM / OpenRouter ----
    openrouter_api_key: str | None
    openrouter_base_url: str
    llm_models: list[str]
    extra_headers: dict[str, str]
    llm_max_tokens: int
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float
    llm_first_token_timeout_seconds: float

    # ---- Execution loop ----
    model_timeout_seconds: float
    inter_task_delay_seconds: float
    max_attempts_per_run: int
    max_retained_cycles: int

    # ---- HTTP ----
    http_host: str
    http_port: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "beads-ralph")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/beads"))

        cursor_dir = _env_path(_k("CURSOR_DIR"), Path(".cursor"))
        rules_dirname = _env(_k("RULES_DIRNAME"), "rules")
        skills_dirname = _env(_k("SKILLS_DIRNAME"), "skills")
        trigger_keywords = _env_list(_k("TRIGGER_KEYWORDS"), list(DEFAULT_TRIGGER_KEYWORDS))
        project_skill_hints = _env_list(_k("PROJECT_SKILL_HINTS"), ["project"])

        openrouter_api_key = _first_env(
            _k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", "OPENAI_API_KEY", default=None
        )
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")
        llm_models = _env_list(_k("LLM_MODELS"), ["openai/gpt-4o"])

        extra_headers = {
            "HTTP-Referer": _env(_k("HTTP_REFERER"), "https://example.com"),
            "X-Title": _env(_k("APP_TITLE"), app_name),
        }

        first_token = _env_float(_k("LLM_FIRST_TOKEN_TIMEOUT_SECONDS"), 45.0)
        read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 60.0)
        # a zero or negative timeout would fail every model call; use the default
        model_timeout = _env_float(_k("MODEL_TIMEOUT_SECONDS"), 120.0)
        if model_timeout <= 0:
            model_timeout = 120.0

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            cursor_dir=cursor_dir,
            rules_dirname=rules_dirname,
            skills_dirname=skills_dirname,
            trigger_keywords=trigger_keywords,
            project_skill_hints=project_skill_hints,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            llm_max_tokens=_env_int(_k("LLM_MAX_TOKENS"), 2048),
            llm_connect_timeout_seconds=_env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0),
            # keep read >= first_token as a sane baseline
            llm_read_timeout_seconds=max(read_timeout, first_token),
            llm_first_token_timeout_seconds=first_token,
            model_timeout_seconds=model_timeout,
            inter_task_delay_seconds=_env_float(_k("INTER_TASK_DELAY_SECONDS"), 0.1),
            max_attempts_per_run=max(1, _env_int(_k("MAX_ATTEMPTS_PER_RUN"), 1)),
            max_retained_cycles=max(1, _env_int(_k("MAX_RETAINED_CYCLES"), 500)),
            http_host=_env(_k("HTTP_HOST"), "127.0.0.1"),
            http_port=_env_int(_k("HTTP_PORT"), 8000),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Process settings, read from the environment on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
