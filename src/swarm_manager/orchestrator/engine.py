"""Task registration, readiness and lifecycle transitions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

from swarm_manager.knowledge.models import Note
from swarm_manager.knowledge.storage.common import as_utc, utc_now
from swarm_manager.orchestrator.decomposer import PhaseClassifier, decompose_note
from swarm_manager.orchestrator.errors import DecompositionError, InvalidTaskTransitionError
from swarm_manager.orchestrator.ids import TaskIdGenerator
from swarm_manager.orchestrator.models import QueueStatus, Task, TaskStatus
from swarm_manager.orchestrator.task_store import TaskStore

logger = logging.getLogger(__name__)


class TaskEngine:
    """Owns every task created in this process.

    Public operations run under one re-entrant lock so several orchestrator
    threads can share an engine.
    """

    def __init__(
        self,
        *,
        classifier: PhaseClassifier | None = None,
        id_generator: TaskIdGenerator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._classifier = classifier
        self._ids = id_generator or TaskIdGenerator()
        self._clock = clock
        self._store = TaskStore()
        self._active_task_id: str | None = None
        self._lock = threading.RLock()

    def decompose(self, note: Note) -> list[Task]:
        """Create and register the task chain for a note, all or nothing."""

        if not note.body or not note.body.strip():
            raise DecompositionError(f"Note {note.note_id} has no body to decompose.")

        specs = decompose_note(note, self._classifier)
        with self._lock:
            now = self._clock()
            tasks: list[Task] = []
            previous_id: str | None = None
            for spec in specs:
                task_id, sequence = self._ids.next_id(note_id=note.note_id, spec=spec)
                task = Task(
                    task_id=task_id,
                    task_type=spec.task_type,
                    phase=spec.phase,
                    note_id=note.note_id,
                    project_id=note.project_id,
                    title=spec.title,
                    description=spec.description,
                    agent_type=spec.agent_type,
                    priority=spec.priority,
                    estimated_duration=spec.estimated_duration,
                    checklist=spec.checklist,
                    created_at=now,
                    sequence=sequence,
                    depends_on=previous_id,
                )
                tasks.append(task)
                previous_id = task_id
            self._store.add_batch(tasks)

        logger.info("Decomposed note %s into %d tasks", note.note_id, len(tasks))
        return list(tasks)

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            return self._store.get(task_id)

    def require(self, task_id: str) -> Task:
        with self._lock:
            return self._store.require(task_id)

    def dependencies_satisfied(self, task: Task) -> bool:
        with self._lock:
            if task.depends_on is None:
                return True
            dependency = self._store.get(task.depends_on)
            return dependency is not None and dependency.status == TaskStatus.COMPLETED

    def next_ready(self) -> Task | None:
        """First pending task, in insertion order, whose dependency completed."""

        with self._lock:
            for task in self._store:
                if task.status == TaskStatus.PENDING and self.dependencies_satisfied(task):
                    return task
            return None

    def ready_tasks(self) -> list[Task]:
        with self._lock:
            return [
                task
                for task in self._store
                if task.status == TaskStatus.PENDING and self.dependencies_satisfied(task)
            ]

    def blocked_tasks(self) -> list[Task]:
        """Pending tasks whose dependency chain reaches a failed task."""

        with self._lock:
            blocked: list[Task] = []
            for task in self._store:
                if task.status == TaskStatus.PENDING and self._chain_failed(task):
                    blocked.append(task)
            return blocked

    def start(self, task_id: str, agent_id: str) -> Task:
        with self._lock:
            task = self._store.require(task_id)
            if task.status != TaskStatus.PENDING:
                raise InvalidTaskTransitionError(
                    f"Task {task_id} cannot start from status {task.status.value}.",
                )
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = self._clock()
            task.assigned_agent = agent_id
            self._active_task_id = task_id
        logger.info("Task %s started by agent %s", task_id, agent_id)
        return task

    def complete(self, task_id: str, output: dict[str, Any] | None = None) -> Task:
        with self._lock:
            task = self._finish(task_id, TaskStatus.COMPLETED)
            task.output = dict(output) if output is not None else {}
        logger.info("Task %s completed in %.2f min", task_id, task.actual_duration or 0.0)
        return task

    def fail(self, task_id: str, error: str | dict[str, Any]) -> Task:
        with self._lock:
            task = self._finish(task_id, TaskStatus.FAILED)
            task.output = dict(error) if isinstance(error, dict) else {"error": error}
        logger.warning("Task %s failed: %s", task_id, task.output.get("error", task.output))
        return task

    def tasks_for_note(self, note_id: str) -> list[Task]:
        with self._lock:
            return self._store.by_note(note_id)

    def tasks_for_project(self, project_id: str) -> list[Task]:
        with self._lock:
            return self._store.by_project(project_id)

    def all_tasks(self) -> list[Task]:
        with self._lock:
            return list(self._store)

    @property
    def active_task(self) -> Task | None:
        with self._lock:
            if self._active_task_id is None:
                return None
            return self._store.get(self._active_task_id)

    def queue_status(self) -> QueueStatus:
        with self._lock:
            counts = dict.fromkeys(TaskStatus, 0)
            for task in self._store:
                counts[task.status] += 1
            return QueueStatus(
                total=len(self._store),
                pending=counts[TaskStatus.PENDING],
                in_progress=counts[TaskStatus.IN_PROGRESS],
                completed=counts[TaskStatus.COMPLETED],
                failed=counts[TaskStatus.FAILED],
                active_task=self.active_task,
            )

    def _finish(self, task_id: str, status: TaskStatus) -> Task:
        task = self._store.require(task_id)
        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTaskTransitionError(
                f"Task {task_id} cannot move to {status.value} from {task.status.value}.",
            )
        completed_at = self._clock()
        task.status = status
        task.completed_at = completed_at
        if task.started_at is not None:
            elapsed = as_utc(completed_at) - as_utc(task.started_at)
            task.actual_duration = elapsed.total_seconds() / 60
        if self._active_task_id == task_id:
            self._active_task_id = None
        return task

    def _chain_failed(self, task: Task) -> bool:
        current = task
        while current.depends_on is not None:
            dependency = self._store.get(current.depends_on)
            if dependency is None:
                return False
            if dependency.status == TaskStatus.FAILED:
                return True
            current = dependency
        return False
