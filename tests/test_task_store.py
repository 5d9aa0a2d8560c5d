# tests/test_task_store.py

from __future__ import annotations

import pytest

from beads_ralph.errors import InvalidTransitionError, ValidationError
from beads_ralph.tasks.task_models import PlanItem, TaskPriority, TaskResult, TaskStatus
from beads_ralph.tasks.task_store import TaskStore


def _ok(output: str = "done") -> TaskResult:
    return TaskResult(success=True, output=output, files_modified=[], duration_ms=5)


def _fail(message: str = "nope") -> TaskResult:
    return TaskResult(success=False, output="", files_modified=[], errors=[message], duration_ms=5)


def test_create_task_tags_rules_and_skill(store: TaskStore) -> None:
    task = store.create_task(
        title="Add login endpoint",
        description="Create POST /login for auth with JSON errors",
        priority="high",
        criteria=["returns 200", "returns 401"],
        target_files=["server/routes/login.ts"],
    )

    assert task.status == TaskStatus.PENDING
    assert task.priority == TaskPriority.HIGH
    assert task.related_rules == ["api-style", "general"]
    assert task.related_skill == "auth-flow"
    assert task.criteria == ["returns 200", "returns 401"]
    assert task.target_files == ["server/routes/login.ts"]
    assert task.created_at == task.updated_at
    assert task.completed_at is None and task.result is None


def test_create_task_defaults_and_validation(store: TaskStore) -> None:
    task = store.create_task(title="Write docs", description="Update the README")
    assert task.priority == TaskPriority.MEDIUM
    assert task.related_rules == ["general"]
    assert task.related_skill is None
    assert task.target_files is None

    with pytest.raises(ValidationError):
        store.create_task(title="  ", description="x")
    with pytest.raises(ValidationError):
        store.create_task(title="x", description="")
    with pytest.raises(ValidationError):
        store.create_task(title="x", description="y", priority="urgent")


def test_create_task_initializes_context_lazily(loader) -> None:
    store = TaskStore(loader)
    assert store.project_context is None

    store.create_task(title="Write docs", description="Update the README")
    assert store.project_context is not None
    assert len(store.project_context.rules) == 2


def test_blocked_by_unknown_and_completed_ids_are_dropped(store: TaskStore) -> None:
    done = store.create_task(title="Schema", description="Create tables")
    store.update_task_status(done.id, TaskStatus.COMPLETED)

    task = store.create_task(title="Seed", description="Seed data", blocked_by=[done.id, "ghost"])
    assert task.blocked_by == []
    assert task.status == TaskStatus.PENDING


def test_blocked_by_open_task_starts_blocked_and_indexes_blocks(store: TaskStore) -> None:
    a = store.create_task(title="Schema", description="Create tables")
    b = store.create_task(title="Seed", description="Seed data", blocked_by=[a.id])

    assert b.status == TaskStatus.BLOCKED
    assert b.blocked_by == [a.id]
    assert store.get_task(a.id).blocks == [b.id]


def test_plan_dependencies_by_title(store: TaskStore) -> None:
    tasks = store.create_tasks_from_plan(
        [
            {"title": "A", "description": "first", "priority": "low"},
            {"title": "B", "description": "second", "dependsOn": ["A"]},
            {"title": "C", "description": "third", "dependsOn": ["A", "B", "Missing", "C"]},
        ]
    )
    a, b, c = tasks

    assert [t.title for t in tasks] == ["A", "B", "C"]
    assert a.status == TaskStatus.PENDING and a.priority == TaskPriority.LOW
    assert b.status == TaskStatus.BLOCKED and b.blocked_by == [a.id]
    # Unknown titles and self references are dropped.
    assert c.status == TaskStatus.BLOCKED and c.blocked_by == [a.id, b.id]
    assert store.get_task(a.id).blocks == [b.id, c.id]
    assert store.get_task(b.id).blocks == [c.id]


def test_plan_with_only_unknown_dependency_stays_pending(store: TaskStore) -> None:
    (task,) = store.create_tasks_from_plan([PlanItem(title="Solo", description="x", depends_on=["Ghost"])])
    assert task.status == TaskStatus.PENDING
    assert task.blocked_by == []


def test_plan_validation(store: TaskStore) -> None:
    with pytest.raises(ValidationError):
        store.create_tasks_from_plan([])
    with pytest.raises(ValidationError):
        store.create_tasks_from_plan([{"title": "A", "description": "x"}, {"title": "B"}])
    # Nothing is created when an item is invalid.
    assert store.get_all_tasks() == []


def test_completion_unblocks_dependents_in_chain(store: TaskStore) -> None:
    a, b, c = store.create_tasks_from_plan(
        [
            {"title": "A", "description": "x"},
            {"title": "B", "description": "x", "dependsOn": ["A"]},
            {"title": "C", "description": "x", "dependsOn": ["A", "B"]},
        ]
    )

    store.set_task_result(a.id, _ok())
    assert store.get_task(a.id).status == TaskStatus.COMPLETED
    assert store.get_task(b.id).status == TaskStatus.PENDING
    # C still waits for B.
    assert store.get_task(c.id).status == TaskStatus.BLOCKED

    store.update_task_status(b.id, TaskStatus.COMPLETED)
    assert store.get_task(c.id).status == TaskStatus.PENDING


def test_next_task_priority_then_insertion_order(store: TaskStore) -> None:
    low = store.create_task(title="Low", description="x", priority="low")
    high_1 = store.create_task(title="High 1", description="x", priority="high")
    high_2 = store.create_task(title="High 2", description="x", priority="high")
    crit = store.create_task(title="Crit", description="x", priority="critical", blocked_by=[low.id])

    # The critical task is blocked and cannot be selected.
    assert store.get_next_task().id == high_1.id
    assert store.get_next_task(exclude=[high_1.id]).id == high_2.id

    store.update_task_status(low.id, TaskStatus.COMPLETED)
    assert store.get_next_task().id == crit.id


def test_next_task_none_when_nothing_pending(store: TaskStore) -> None:
    assert store.get_next_task() is None
    t = store.create_task(title="x", description="y")
    store.update_task_status(t.id, TaskStatus.IN_PROGRESS)
    assert store.get_next_task() is None


def test_update_status_unknown_and_invalid(store: TaskStore) -> None:
    assert store.update_task_status("missing", TaskStatus.COMPLETED) is None

    t = store.create_task(title="x", description="y")
    with pytest.raises(ValidationError):
        store.update_task_status(t.id, "finished")


def test_blocking_without_blockers_is_refused(store: TaskStore) -> None:
    t = store.create_task(title="x", description="y")

    with pytest.raises(InvalidTransitionError) as err:
        store.update_task_status(t.id, TaskStatus.BLOCKED)
    assert err.value.task_id == t.id
    assert store.get_task(t.id).status == TaskStatus.PENDING


def test_completion_timestamp_stamped_once(store: TaskStore) -> None:
    t = store.create_task(title="x", description="y")

    store.update_task_status(t.id, TaskStatus.COMPLETED)
    first = store.get_task(t.id).completed_at
    assert first is not None

    store.update_task_status(t.id, TaskStatus.IN_PROGRESS)
    store.update_task_status(t.id, TaskStatus.COMPLETED)
    assert store.get_task(t.id).completed_at == first


def test_failed_result_requeues_task(store: TaskStore) -> None:
    t = store.create_task(title="x", description="y")
    store.update_task_status(t.id, TaskStatus.IN_PROGRESS)

    updated = store.set_task_result(t.id, _fail("boom"))
    assert updated.status == TaskStatus.PENDING
    assert updated.result.errors == ["boom"]
    assert updated.completed_at is None

    assert store.set_task_result("missing", _ok()) is None


def test_get_task_context_collects_guidelines(store: TaskStore) -> None:
    t = store.create_task(title="Add login endpoint", description="Create POST /login for auth with JSON errors")

    ctx = store.get_task_context(t.id)
    assert ctx is not None
    assert [r.name for r in ctx.rules] == ["api-style", "general"]
    assert ctx.skill is not None and ctx.skill.name == "auth-flow"
    assert ctx.guidelines == [
        "API Style",
        "Errors",
        "MUST return JSON errors",
        "Use zod validation",
        "General",
        "NEVER commit secrets",
    ]
    assert store.get_task_context("missing") is None


def test_summary_and_clear(store: TaskStore) -> None:
    empty = store.get_summary()
    assert empty.total == 0 and empty.completion_rate == 0

    a = store.create_task(title="a", description="x", priority="high")
    store.create_task(title="b", description="x")
    store.update_task_status(a.id, TaskStatus.COMPLETED)

    summary = store.get_summary().to_dict()
    assert summary["total"] == 2
    assert summary["byStatus"]["completed"] == 1
    assert summary["byStatus"]["pending"] == 1
    assert summary["byStatus"]["blocked"] == 0
    assert summary["byPriority"] == {"critical": 0, "high": 1, "medium": 1, "low": 0}
    assert summary["completionRate"] == 50.0

    store.clear_tasks()
    assert store.get_all_tasks() == []
    assert store.get_summary().total == 0
    # Rule context survives a clear.
    assert store.project_context is not None


def test_summary_counts_pending_completed_and_blocked(store: TaskStore) -> None:
    a = store.create_task(title="a", description="x")
    store.create_task(title="b", description="x", blocked_by=[a.id])
    c = store.create_task(title="c", description="x")
    store.update_task_status(c.id, TaskStatus.COMPLETED)

    summary = store.get_summary().to_dict()

    assert summary["total"] == 3
    assert summary["byStatus"]["pending"] == 1
    assert summary["byStatus"]["completed"] == 1
    assert summary["byStatus"]["blocked"] == 1
    assert summary["byStatus"]["in_progress"] == 0
    assert summary["completionRate"] == pytest.approx(33.33, abs=0.01)


def test_get_tasks_by_status(store: TaskStore) -> None:
    a = store.create_task(title="a", description="x")
    store.create_task(title="b", description="x", blocked_by=[a.id])

    assert [t.title for t in store.get_tasks_by_status("blocked")] == ["b"]
    assert [t.title for t in store.get_tasks_by_status(TaskStatus.PENDING)] == ["a"]


def test_task_to_dict_shape(store: TaskStore) -> None:
    t = store.create_task(title="x", description="y", target_files=["a.ts"])
    store.set_task_result(t.id, _ok("fine"))

    data = store.get_task(t.id).to_dict()
    assert data["status"] == "completed"
    assert data["targetFiles"] == ["a.ts"]
    assert data["completedAt"].endswith("+00:00")
    assert data["result"] == {
        "success": True,
        "output": "fine",
        "filesModified": [],
        "errors": None,
        "duration": 5,
    }
