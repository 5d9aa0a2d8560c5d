# src/beads_ralph/api/server.py

"""
HTTP surface for the task store ("Beads") and the execution loop ("Ralph").

create_app(state) builds a FastAPI application bound to one AppState; there is
no module-level app or store. Every error leaves as a JSON object:

    {"success": false, "error": "<message>", "code": <http status>}
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.state import AppState
from ..errors import InvalidTransitionError, ValidationError

logger = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 5.0


# Request bodies. Required fields are optional here so a missing field is a 400
# with the usual error body instead of FastAPI's 422.
class CreateTaskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    description: str | None = None
    priority: str | None = None
    criteria: list[str] | None = None
    target_files: list[str] | None = Field(default=None, alias="targetFiles")
    blocked_by: list[str] | None = Field(default=None, alias="blockedBy")


class PlanRequest(BaseModel):
    plan: Any = None


class TaskStatusUpdate(BaseModel):
    status: str | None = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": status_code},
    )


async def _stop_backlog(state: AppState) -> None:
    run = state.backlog_run
    if run is None or run.done():
        return
    state.orchestrator.stop()
    try:
        await asyncio.wait_for(asyncio.shield(run), timeout=SHUTDOWN_GRACE_SECONDS)
    except TimeoutError:
        logger.warning("Backlog run still busy after %.1fs; cancelling", SHUTDOWN_GRACE_SECONDS)
        run.cancel()
    except Exception:
        logger.exception("Backlog run ended with an error during shutdown")


def create_app(state: AppState) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state.task_store.initialize()
        logger.info("API ready (cursor_dir=%s)", getattr(state.settings, "cursor_dir", "?"))
        yield
        await _stop_backlog(state)
        logger.info("API shut down")

    app = FastAPI(
        title="beads-ralph",
        description="Task store and execution loop API",
        version="0.1.0",
        lifespan=lifespan,
    )
    store = state.task_store
    orchestrator = state.orchestrator

    # ---- error handlers ----

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request")
        return _error(400, f"{field}: {message}" if field else message)

    @app.exception_handler(InvalidTransitionError)
    async def transition_error(request, exc: InvalidTransitionError):
        return _error(409, str(exc))

    @app.exception_handler(ValidationError)
    async def validation_error(request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error(request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")

    # ---- health ----

    @app.get("/healthz")
    async def health_check():
        return {
            "status": "healthy",
            "tasks": len(store.get_all_tasks()),
            "executing": orchestrator.is_running,
            "llm": state.llm.__class__.__name__,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    # ---- beads ----

    @app.get("/api/beads/context")
    async def get_context():
        context = store.get_project_context()
        if context is None:
            context = store.initialize()
        return context.to_dict()

    @app.get("/api/beads/tasks")
    async def list_tasks(status: str | None = None):
        tasks = store.get_tasks_by_status(status) if status else store.get_all_tasks()
        return [t.to_dict() for t in tasks]

    @app.get("/api/beads/tasks/{task_id}")
    async def get_task(task_id: str):
        task = store.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task.to_dict()

    @app.get("/api/beads/tasks/{task_id}/context")
    async def get_task_context(task_id: str):
        context = store.get_task_context(task_id)
        if context is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return context.to_dict()

    @app.post("/api/beads/tasks", status_code=201)
    async def create_task(body: CreateTaskRequest):
        if not (body.title or "").strip() or not (body.description or "").strip():
            raise HTTPException(status_code=400, detail="Title and description are required")
        task = store.create_task(
            title=body.title,
            description=body.description,
            priority=body.priority,
            criteria=body.criteria,
            target_files=body.target_files,
            blocked_by=body.blocked_by,
        )
        return task.to_dict()

    @app.post("/api/beads/tasks/plan", status_code=201)
    async def create_tasks_from_plan(body: PlanRequest):
        if not isinstance(body.plan, list) or not body.plan:
            raise HTTPException(status_code=400, detail="Plan must be a non-empty array")
        tasks = store.create_tasks_from_plan(body.plan)
        return [t.to_dict() for t in tasks]

    @app.patch("/api/beads/tasks/{task_id}/status")
    async def update_task_status(task_id: str, body: TaskStatusUpdate):
        if not body.status:
            raise HTTPException(status_code=400, detail="Status is required")
        task = store.update_task_status(task_id, body.status)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task.to_dict()

    @app.get("/api/beads/summary")
    async def get_summary():
        return store.get_summary().to_dict()

    @app.delete("/api/beads/tasks", status_code=204)
    async def clear_tasks():
        store.clear_tasks()
        return Response(status_code=204)

    # ---- ralph ----

    @app.post("/api/ralph/execute/{task_id}")
    async def execute_task(task_id: str):
        result = await orchestrator.execute_task(task_id)
        return result.to_dict()

    @app.post("/api/ralph/execute-all")
    async def execute_all():
        if orchestrator.is_running or (state.backlog_run is not None and not state.backlog_run.done()):
            return {"message": "Execution already running", "status": "running"}

        run = asyncio.create_task(orchestrator.execute_all_pending())
        run.add_done_callback(_log_backlog_outcome)
        state.backlog_run = run
        return {"message": "Execution started", "status": "running"}

    @app.post("/api/ralph/stop")
    async def stop_execution():
        stopped = orchestrator.stop()
        return {"message": "Execution stopped" if stopped else "No execution running"}

    @app.get("/api/ralph/cycles")
    async def get_cycles():
        return [c.to_dict() for c in orchestrator.get_active_cycles()]

    @app.get("/api/ralph/cycles/{cycle_id}/logs")
    async def get_cycle_logs(cycle_id: str):
        return [entry.to_dict() for entry in orchestrator.get_cycle_logs(cycle_id)]

    @app.get("/api/ralph/next-task")
    async def get_next_task():
        task = store.get_next_task()
        return task.to_dict() if task is not None else {"message": "No pending tasks"}

    return app


def _log_backlog_outcome(run: asyncio.Task) -> None:
    if run.cancelled():
        logger.info("Backlog run cancelled")
        return
    exc = run.exception()
    if exc is not None:
        logger.error("Backlog run failed", exc_info=exc)
        return
    results = run.result()
    logger.info("Backlog run executed %d task(s)", len(results))
