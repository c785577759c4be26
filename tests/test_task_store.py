from __future__ import annotations

from datetime import UTC, datetime

import allure
import pytest

from swarm_manager.knowledge.models import Priority
from swarm_manager.orchestrator.errors import TaskIdCollisionError, TaskNotFoundError
from swarm_manager.orchestrator.models import Task, TaskPhase, TaskType
from swarm_manager.orchestrator.task_store import TaskStore

pytestmark = [
    allure.epic("Task Scheduling"),
    allure.feature("Task Store"),
]


def _task(task_id: str, *, note_id: str = "note-1", project_id: str = "general") -> Task:
    return Task(
        task_id=task_id,
        task_type=TaskType.EXECUTION,
        phase=TaskPhase.EXECUTE,
        note_id=note_id,
        project_id=project_id,
        title=task_id,
        description="",
        agent_type="executor",
        priority=Priority.MEDIUM,
        estimated_duration=1,
        checklist=(),
        created_at=datetime(2026, 10, 16, tzinfo=UTC),
        sequence=0,
    )


def test_add_batch_preserves_insertion_order() -> None:
    store = TaskStore()
    store.add_batch([_task("b"), _task("a")])
    store.add_batch([_task("c", note_id="note-2", project_id="infra")])

    assert [task.task_id for task in store] == ["b", "a", "c"]
    assert len(store) == 3
    assert "a" in store
    assert store.require("c").note_id == "note-2"
    assert [task.task_id for task in store.by_note("note-1")] == ["b", "a"]
    assert [task.task_id for task in store.by_project("infra")] == ["c"]


def test_collision_with_existing_task_is_all_or_nothing() -> None:
    store = TaskStore()
    store.add_batch([_task("a")])

    with pytest.raises(TaskIdCollisionError):
        store.add_batch([_task("x"), _task("a")])

    assert [task.task_id for task in store] == ["a"]
    assert "x" not in store


def test_duplicate_inside_batch_is_rejected() -> None:
    store = TaskStore()

    with pytest.raises(TaskIdCollisionError):
        store.add_batch([_task("a"), _task("a")])
    assert len(store) == 0


def test_require_missing_task() -> None:
    store = TaskStore()

    assert store.get("missing") is None
    with pytest.raises(TaskNotFoundError):
        store.require("missing")
