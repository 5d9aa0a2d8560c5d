# src/beads_ralph/cli/main.py

"""
CLI entrypoint (`beads-ralph`).

Initializes logging, builds AppState, then runs one of:
- serve: the HTTP API under uvicorn,
- run PLAN.json: create the plan's tasks and execute the backlog once,
- context: dump the loaded rules/skills.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..core.state import AppState
from ..errors import BeadsError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _load_plan(path: Path) -> list[dict[str, Any]]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("plan")
    if not isinstance(raw, list) or not raw:
        raise BeadsError(f"{path}: expected a non-empty JSON array (or an object with a 'plan' array)")
    return raw


def cmd_serve(state: AppState, args: argparse.Namespace) -> int:
    import uvicorn

    from ..api.server import create_app

    host = args.host or state.settings.http_host
    port = args.port or state.settings.http_port
    logger.info("Serving on http://%s:%d", host, port)
    # log_config=None keeps our handlers instead of uvicorn's defaults.
    uvicorn.run(create_app(state), host=host, port=port, log_config=None)
    return 0


async def _run_plan(state: AppState, plan: list[dict[str, Any]]) -> dict[str, Any]:
    state.task_store.initialize()
    tasks = state.task_store.create_tasks_from_plan(plan)
    results = await state.orchestrator.execute_all_pending()

    return {
        "summary": state.task_store.get_summary().to_dict(),
        "tasks": [
            {
                "id": t.id,
                "title": t.title,
                "status": state.task_store.get_task(t.id).status.value,
                "result": results[t.id].to_dict() if t.id in results else None,
            }
            for t in tasks
        ],
    }


def cmd_run(state: AppState, args: argparse.Namespace) -> int:
    plan = _load_plan(Path(args.plan))
    report = asyncio.run(_run_plan(state, plan))
    _print_json(report)
    return 0 if report["summary"]["byStatus"].get("completed") == len(report["tasks"]) else 1


def cmd_context(state: AppState, args: argparse.Namespace) -> int:
    context = state.task_store.initialize()
    _print_json(
        {
            "rules": [
                {"name": r.name, "alwaysApply": r.always_apply, "keyPoints": len(r.key_points)}
                for r in context.rules
            ],
            "skills": [{"name": s.name, "triggers": s.triggers} for s in context.skills],
            "projectConfig": context.project_config.to_dict() if context.project_config else None,
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="beads-ralph", description="Task store + execution loop")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="run the HTTP API")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.set_defaults(func=cmd_serve)

    p_run = sub.add_parser("run", help="create tasks from a JSON plan and execute them")
    p_run.add_argument("plan", help="path to PLAN.json")
    p_run.set_defaults(func=cmd_run)

    p_ctx = sub.add_parser("context", help="print the loaded rules and skills")
    p_ctx.set_defaults(func=cmd_context)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (%s)...", settings.app_name, args.command)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        return args.func(state, args)
    except (BeadsError, OSError, json.JSONDecodeError) as e:
        logger.error("%s", e)
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
