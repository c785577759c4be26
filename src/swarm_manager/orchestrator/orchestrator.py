"""Manager loop: pick the next ready task, run it in a sandbox, record the result."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from swarm_manager.knowledge.models import AgentProfile, NoteStatus
from swarm_manager.knowledge.repository import KnowledgeStore, KnowledgeStoreError
from swarm_manager.orchestrator.engine import TaskEngine
from swarm_manager.orchestrator.errors import (
    AgentSelectionError,
    ExecutionFailure,
    InvalidTaskTransitionError,
    SandboxInitError,
)
from swarm_manager.orchestrator.models import ExecutionResult, Task, TaskStatus
from swarm_manager.orchestrator.routing import AgentChooser, AgentRoster, select_agent
from swarm_manager.orchestrator.sandbox import Sandbox, SandboxManager

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    """Result of one orchestration step."""

    NOTHING_READY = "nothing_ready"
    BUSY = "busy"
    NOT_STARTED = "not_started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class OrchestrationOutcome:
    """What one `orchestrate_next` call did."""

    kind: OutcomeKind
    task: Task | None = None
    agent_id: str | None = None
    sandbox_id: str | None = None
    result: ExecutionResult | None = None
    error: str | None = None
    note_completed: bool = False
    blocked: list[Task] = field(default_factory=list)

    def describe(self) -> str:
        if self.kind == OutcomeKind.NOTHING_READY:
            if self.blocked:
                return f"Nothing ready; {len(self.blocked)} task(s) blocked by failed dependencies."
            return "Nothing ready."
        if self.kind == OutcomeKind.BUSY:
            return "Busy: concurrency limit reached."
        title = self.task.title if self.task is not None else "?"
        if self.kind == OutcomeKind.NOT_STARTED:
            return f"Not started: {title} ({self.error})"
        if self.kind == OutcomeKind.FAILED:
            return f"Failed: {title} ({self.error})"
        suffix = " Note completed." if self.note_completed else ""
        return f"Completed: {title} by {self.agent_id} in {self.sandbox_id}.{suffix}"


@dataclass(slots=True)
class RunSummary:
    """Aggregate of a `run_until_idle` pass."""

    processed: int = 0
    completed: int = 0
    failed: int = 0
    not_started: int = 0
    blocked: list[Task] = field(default_factory=list)
    outcomes: list[OrchestrationOutcome] = field(default_factory=list)


class Orchestrator:
    """Drives tasks from the engine through sandboxes.

    Dispatch (pick, select agent, scaffold, start) is serialized; execution
    runs outside that lock and is bounded by `max_concurrent`.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        engine: TaskEngine,
        sandboxes: SandboxManager,
        knowledge: KnowledgeStore,
        roster: AgentRoster,
        max_concurrent: int = 1,
        poll_interval_seconds: float = 30.0,
        chooser: AgentChooser | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.engine = engine
        self.sandboxes = sandboxes
        self.knowledge = knowledge
        self.roster = roster
        self.chooser = chooser
        self.max_concurrent = max_concurrent
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._dispatch_lock = threading.Lock()
        self.auto = AutoOrchestrator(self, interval_seconds=poll_interval_seconds)

    def orchestrate_next(self, *, unattended: bool = False) -> OrchestrationOutcome:
        if not self._slots.acquire(blocking=False):
            return OrchestrationOutcome(kind=OutcomeKind.BUSY)
        try:
            return self._orchestrate(unattended=unattended)
        finally:
            self._slots.release()

    def run_until_idle(self, *, max_tasks: int | None = None) -> RunSummary:
        """Run ready tasks unattended until nothing more can start."""

        summary = RunSummary()
        while max_tasks is None or summary.processed < max_tasks:
            outcome = self.orchestrate_next(unattended=True)
            summary.outcomes.append(outcome)
            if outcome.kind == OutcomeKind.COMPLETED:
                summary.processed += 1
                summary.completed += 1
                continue
            if outcome.kind == OutcomeKind.FAILED:
                summary.processed += 1
                summary.failed += 1
                continue
            if outcome.kind == OutcomeKind.NOT_STARTED:
                summary.not_started += 1
            break
        summary.blocked = self.engine.blocked_tasks()
        return summary

    def check_note_completion(self, note_id: str) -> bool:
        """Mark the note completed once every task derived from it completed."""

        tasks = self.engine.tasks_for_note(note_id)
        if not tasks or any(task.status != TaskStatus.COMPLETED for task in tasks):
            return False
        note = self.knowledge.get_note(note_id)
        if note is None:
            logger.warning("Tasks for note %s completed but the note no longer exists", note_id)
            return False
        if note.status != NoteStatus.COMPLETED:
            self.knowledge.update_note(note_id, status=NoteStatus.COMPLETED)
            logger.info("Note %s completed", note_id)
        return True

    def shutdown(self) -> int:
        """Stop auto-mode and release finished sandboxes; returns how many."""

        self.auto.disable()
        return self.sandboxes.cleanup_all()

    def _orchestrate(self, *, unattended: bool) -> OrchestrationOutcome:
        with self._dispatch_lock:
            task = self.engine.next_ready()
            if task is None:
                return OrchestrationOutcome(
                    kind=OutcomeKind.NOTHING_READY,
                    blocked=self.engine.blocked_tasks(),
                )

            try:
                selection = select_agent(
                    task,
                    self.roster,
                    chooser=self.chooser,
                    unattended=unattended,
                )
            except AgentSelectionError as error:
                logger.error("Task %s not started: %s", task.task_id, error)
                return OrchestrationOutcome(
                    kind=OutcomeKind.NOT_STARTED,
                    task=task,
                    error=str(error),
                )
            agent = selection.agent

            try:
                sandbox = self.sandboxes.create_sandbox(task)
            except SandboxInitError as error:
                logger.error("Task %s not started: %s", task.task_id, error)
                return OrchestrationOutcome(
                    kind=OutcomeKind.NOT_STARTED,
                    task=task,
                    agent_id=agent.agent_id,
                    error=str(error),
                )
            try:
                self.engine.start(task.task_id, agent.agent_id)
            except InvalidTaskTransitionError as error:
                # Another dispatcher sharing the engine got there first.
                self.sandboxes.cleanup_sandbox(sandbox.sandbox_id, remove_files=True)
                logger.warning("Task %s not started: %s", task.task_id, error)
                return OrchestrationOutcome(
                    kind=OutcomeKind.NOT_STARTED,
                    task=task,
                    agent_id=agent.agent_id,
                    error=str(error),
                )

        logger.info(
            "Running task %s (%s) with agent %s [%s]",
            task.task_id,
            task.task_type.value,
            agent.agent_id,
            selection.reason,
        )
        try:
            return self._run_in_sandbox(task, agent, sandbox)
        finally:
            # Finished sandboxes leave the registry; retained files stay readable from disk.
            self.sandboxes.cleanup_sandbox(sandbox.sandbox_id)

    def _run_in_sandbox(
        self,
        task: Task,
        agent: AgentProfile,
        sandbox: Sandbox,
    ) -> OrchestrationOutcome:
        result: ExecutionResult | None = None
        try:
            result = self.sandboxes.execute(sandbox, task, agent)
            result.raise_for_status()
        except ExecutionFailure as error:
            payload = result.to_payload() if result is not None else {}
            payload["error"] = str(error)
            self.engine.fail(task.task_id, payload)
            return OrchestrationOutcome(
                kind=OutcomeKind.FAILED,
                task=task,
                agent_id=agent.agent_id,
                sandbox_id=sandbox.sandbox_id,
                result=result,
                error=str(error),
            )
        except Exception as error:
            logger.exception("Unexpected error while executing task %s", task.task_id)
            self.engine.fail(
                task.task_id,
                {"error": f"Unexpected error: {error}", "sandbox_id": sandbox.sandbox_id},
            )
            return OrchestrationOutcome(
                kind=OutcomeKind.FAILED,
                task=task,
                agent_id=agent.agent_id,
                sandbox_id=sandbox.sandbox_id,
                error=str(error),
            )

        self.engine.complete(task.task_id, result.to_payload())
        outcome = OrchestrationOutcome(
            kind=OutcomeKind.COMPLETED,
            task=task,
            agent_id=agent.agent_id,
            sandbox_id=sandbox.sandbox_id,
            result=result,
        )
        try:
            outcome.note_completed = self.check_note_completion(task.note_id)
        except (KnowledgeStoreError, SQLAlchemyError) as error:
            logger.error("Failed to propagate completion to note %s: %s", task.note_id, error)
            outcome.error = f"Note update failed: {error}"
        return outcome


class AutoOrchestrator:
    """Periodic `orchestrate_next(unattended=True)` on a daemon thread.

    Disabling only stops future ticks; a sandbox already running finishes on
    its own deadline.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        interval_seconds: float,
        on_outcome: Callable[[OrchestrationOutcome], None] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.on_outcome = on_outcome
        self._lock = threading.Lock()
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._stop_event is not None

    def enable(self) -> bool:
        """Start ticking; returns False when already enabled."""

        with self._lock:
            if self._stop_event is not None:
                return False
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._loop,
                args=(stop_event,),
                name="swarm-auto-orchestrator",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()
        logger.info("Auto-mode enabled (every %.1fs)", self.interval_seconds)
        return True

    def disable(self) -> bool:
        """Stop ticking; returns False when already disabled."""

        with self._lock:
            if self._stop_event is None:
                return False
            self._stop_event.set()
            self._stop_event = None
            self._thread = None
        logger.info("Auto-mode disabled")
        return True

    def toggle(self) -> bool:
        """Flip auto-mode and return the new state."""

        if self.enabled:
            self.disable()
            return False
        self.enable()
        return True

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval_seconds):
            try:
                outcome = self.orchestrator.orchestrate_next(unattended=True)
            except Exception:
                logger.exception("Auto-mode tick failed")
                continue
            if outcome.kind not in (OutcomeKind.NOTHING_READY, OutcomeKind.BUSY):
                logger.info("Auto-mode: %s", outcome.describe())
            if self.on_outcome is not None:
                self.on_outcome(outcome)
