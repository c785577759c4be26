"""Owned in-memory task storage: arena, id index and insertion order."""

from __future__ import annotations

from collections.abc import Iterator

from swarm_manager.orchestrator.errors import TaskIdCollisionError, TaskNotFoundError
from swarm_manager.orchestrator.models import Task


class TaskStore:
    """Tasks in registration order with O(1) lookup by id.

    The store is not synchronized; the engine guards it with its own lock.
    """

    def __init__(self) -> None:
        self._arena: list[Task] = []
        self._index: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._arena)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._arena)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._index

    def add_batch(self, tasks: list[Task]) -> None:
        """Register every task or none of them."""

        seen: set[str] = set()
        for task in tasks:
            if task.task_id in self._index or task.task_id in seen:
                raise TaskIdCollisionError(f"Task id already registered: {task.task_id}")
            seen.add(task.task_id)
        for task in tasks:
            self._index[task.task_id] = len(self._arena)
            self._arena.append(task)

    def get(self, task_id: str) -> Task | None:
        position = self._index.get(task_id)
        if position is None:
            return None
        return self._arena[position]

    def require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    def by_note(self, note_id: str) -> list[Task]:
        return [task for task in self._arena if task.note_id == note_id]

    def by_project(self, project_id: str) -> list[Task]:
        return [task for task in self._arena if task.project_id == project_id]
