# src/beads_ralph/ralph/executor.py

"""
Execution orchestrator ("Ralph").

Drives tasks through a bounded cycle:
- fetch the task context (task + rules + skill + guidelines) from the task store,
- mark the task in_progress,
- build the execution prompt and ask the model collaborator,
- classify the answer and report the result back to the task store,
- keep a per-cycle log for inspection.

The backlog loop is strictly sequential and stops cooperatively: a StopToken is
checked between tasks only, an in-flight task always runs to completion.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections import OrderedDict
from typing import Any

from ..core.ports import ChatMessage, LLMClient
from ..errors import LLMError
from ..tasks.task_models import TaskResult, TaskStatus
from ..tasks.task_store import TaskStore
from .cycle_models import CycleLogEntry, CycleStatus, ExecutionCycle, LogLevel
from .prompts import SYSTEM_PROMPT, build_execution_prompt
from .response_parser import ISSUES_MESSAGE, extract_modified_files, has_reported_issues

logger = logging.getLogger(__name__)

_PY_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)


class StopToken:
    """Cooperative cancellation flag for the backlog loop (non-preemptive)."""

    def __init__(self) -> None:
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped


class ExecutionOrchestrator:
    def __init__(
        self,
        task_store: TaskStore,
        llm: LLMClient,
        *,
        model_timeout_seconds: float = 120.0,
        inter_task_delay_seconds: float = 0.1,
        max_retained_cycles: int = 500,
        max_attempts_per_run: int = 1,
    ) -> None:
        self._store = task_store
        self._llm = llm
        self._model_timeout = float(model_timeout_seconds) if model_timeout_seconds > 0 else 120.0
        self._delay = max(0.0, float(inter_task_delay_seconds))
        self._max_cycles = max(1, int(max_retained_cycles))
        self._max_attempts = max(1, int(max_attempts_per_run))

        self._cycles: OrderedDict[str, ExecutionCycle] = OrderedDict()
        self._lock = threading.RLock()
        self._token: StopToken | None = None

    # ---- single task ----

    async def execute_task(self, task_id: str) -> TaskResult:
        """
        Run one execution cycle. Never raises: every failure becomes a
        TaskResult(success=False) recorded on the cycle and, when the task
        exists, on the task itself.
        """
        t0 = time.monotonic()
        cycle = self._start_cycle(task_id)

        try:
            context = self._store.get_task_context(task_id)
            if context is None:
                raise LookupError(f"Task {task_id} not found")

            task = context.task
            self._log(cycle, LogLevel.INFO, f"Starting execution: {task.title}")
            self._log(
                cycle,
                LogLevel.INFO,
                f"Guidelines: {len(context.guidelines)} loaded from {len(context.rules)} rules",
            )

            self._store.update_task_status(task_id, TaskStatus.IN_PROGRESS)

            prompt = build_execution_prompt(context)
            self._log(cycle, LogLevel.DEBUG, "Execution prompt built", {"chars": len(prompt)})

            self._log(cycle, LogLevel.INFO, "Sending to model for analysis...")
            response = await self._ask_model(prompt)
            self._log(cycle, LogLevel.INFO, "Model analysis complete", {"chars": len(response)})

            issues = has_reported_issues(response)
            result = TaskResult(
                success=not issues,
                output=response,
                files_modified=extract_modified_files(response),
                errors=[ISSUES_MESSAGE] if issues else None,
                duration_ms=_elapsed_ms(t0),
            )

            self._store.set_task_result(task_id, result)
            self._finish_cycle(cycle, CycleStatus.COMPLETED)
            self._log(
                cycle,
                LogLevel.INFO,
                f"Completed: {task.title} ({'success' if result.success else 'failed'})",
                {"filesModified": result.files_modified},
            )
            return result

        except asyncio.CancelledError:
            self._log(cycle, LogLevel.ERROR, "Execution cancelled")
            self._finish_cycle(cycle, CycleStatus.FAILED)
            self._record_failure(task_id, "Execution cancelled", t0)
            raise

        except Exception as e:
            message = str(e) or e.__class__.__name__
            self._log(cycle, LogLevel.ERROR, f"Execution failed: {message}")
            self._finish_cycle(cycle, CycleStatus.FAILED)
            return self._record_failure(task_id, message, t0)

    def _record_failure(self, task_id: str, message: str, t0: float) -> TaskResult:
        result = TaskResult(
            success=False,
            output="",
            files_modified=[],
            errors=[message],
            duration_ms=_elapsed_ms(t0),
        )
        try:
            self._store.set_task_result(task_id, result)
        except Exception:
            logger.exception("Failed to record failure result for task %s", task_id)
        return result

    async def _ask_model(self, prompt: str) -> str:
        messages: list[ChatMessage] = [{"role": "user", "content": prompt}]
        try:
            # The worker thread cannot be interrupted; on timeout its answer is discarded.
            response = await asyncio.wait_for(
                asyncio.to_thread(self._collect_answer, messages),
                timeout=self._model_timeout,
            )
        except TimeoutError as e:
            raise LLMError(f"Model call timed out after {self._model_timeout:.1f}s") from e

        if not response.strip():
            raise LLMError("Model returned an empty response")
        return response

    def _collect_answer(self, messages: list[ChatMessage]) -> str:
        return "".join(self._llm.stream_chat(messages, SYSTEM_PROMPT))

    # ---- backlog ----

    @property
    def is_running(self) -> bool:
        return self._token is not None

    async def execute_all_pending(self, token: StopToken | None = None) -> dict[str, TaskResult]:
        """
        Execute pending tasks one at a time, highest priority first, until none is
        left or stop() is called.

        A task that fails max_attempts_per_run times is skipped for the rest of the
        run (it stays pending for a later run). Only one run can be active; a second
        call returns an empty dict immediately.
        """
        with self._lock:
            if self._token is not None:
                logger.warning("Backlog run already active; ignoring new request")
                return {}
            token = token or StopToken()
            self._token = token

        results: dict[str, TaskResult] = {}
        failures: dict[str, int] = {}
        exhausted: set[str] = set()
        logger.info("Backlog run started")

        try:
            while not token.stopped:
                task = self._store.get_next_task(exclude=exhausted)
                if task is None:
                    break

                result = await self.execute_task(task.id)
                results[task.id] = result

                if not result.success:
                    failures[task.id] = failures.get(task.id, 0) + 1
                    if failures[task.id] >= self._max_attempts:
                        exhausted.add(task.id)
                        logger.warning(
                            "Task %s failed %d time(s); skipping it for the rest of this run",
                            task.id,
                            failures[task.id],
                        )

                await asyncio.sleep(self._delay)
        finally:
            with self._lock:
                self._token = None

        logger.info(
            "Backlog run finished executed=%d failed=%d stopped=%s",
            len(results),
            sum(1 for r in results.values() if not r.success),
            token.stopped,
        )
        return results

    def stop(self) -> bool:
        """Ask the backlog loop to stop before its next task. Returns False if none is running."""
        with self._lock:
            if self._token is None:
                return False
            self._token.stop()
        logger.info("Backlog run stop requested")
        return True

    # ---- cycles ----

    def get_active_cycles(self) -> list[ExecutionCycle]:
        with self._lock:
            return list(self._cycles.values())

    def get_cycle(self, cycle_id: str) -> ExecutionCycle | None:
        with self._lock:
            return self._cycles.get(cycle_id)

    def get_cycle_logs(self, cycle_id: str) -> list[CycleLogEntry]:
        with self._lock:
            cycle = self._cycles.get(cycle_id)
            return list(cycle.logs) if cycle is not None else []

    def _start_cycle(self, task_id: str) -> ExecutionCycle:
        cycle = ExecutionCycle(
            id=f"cycle-{uuid.uuid4().hex[:12]}",
            task_id=task_id,
            started_at=time.time(),
        )
        with self._lock:
            self._cycles[cycle.id] = cycle
            self._evict_cycles()
        return cycle

    def _finish_cycle(self, cycle: ExecutionCycle, status: CycleStatus) -> None:
        with self._lock:
            cycle.status = status
            cycle.completed_at = time.time()

    def _evict_cycles(self) -> None:
        # Oldest finished cycles go first; running cycles are never evicted.
        while len(self._cycles) > self._max_cycles:
            victim = next((cid for cid, c in self._cycles.items() if c.finished), None)
            if victim is None:
                break
            del self._cycles[victim]

    def _log(self, cycle: ExecutionCycle, level: LogLevel, message: str, data: Any = None) -> None:
        entry = CycleLogEntry(timestamp=time.time(), level=level, message=message, data=data)
        with self._lock:
            cycle.logs.append(entry)
        logger.log(_PY_LEVELS[level], "[%s task=%s] %s", cycle.id, cycle.task_id, message)
