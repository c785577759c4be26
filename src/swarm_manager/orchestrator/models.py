"""Domain models for task scheduling and sandboxed execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from swarm_manager.knowledge.models import Priority
from swarm_manager.orchestrator.errors import ExecutionFailure, ExecutionTimeout


class TaskType(str, Enum):
    """Kind of work a task represents."""

    RESEARCH = "research"
    PLANNING = "planning"
    EXECUTION = "execution"
    REVIEW = "review"


class TaskPhase(str, Enum):
    """Capability key agents advertise for a phase of work."""

    RESEARCH = "research"
    PLAN = "plan"
    EXECUTE = "execute"
    REVIEW = "review"


class TaskStatus(str, Enum):
    """Task lifecycle; completed and failed are terminal."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class SandboxStatus(str, Enum):
    """Sandbox lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(slots=True)
class TaskSpec:
    """One decomposer output item; position in the list defines the chain."""

    task_type: TaskType
    phase: TaskPhase
    title: str
    description: str
    agent_type: str
    priority: Priority
    estimated_duration: float
    checklist: tuple[str, ...]


@dataclass(slots=True)
class Task:
    """Scheduled unit of work derived from a note."""

    task_id: str
    task_type: TaskType
    phase: TaskPhase
    note_id: str
    project_id: str
    title: str
    description: str
    agent_type: str
    priority: Priority
    estimated_duration: float
    checklist: tuple[str, ...]
    created_at: datetime
    sequence: int
    depends_on: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    actual_duration: float | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    assigned_agent: str | None = None
    output: dict[str, Any] | None = None


@dataclass(slots=True)
class QueueStatus:
    """Task counts by status plus the active task."""

    total: int
    pending: int
    in_progress: int
    completed: int
    failed: int
    active_task: Task | None = None


@dataclass(slots=True)
class CompletionOutput:
    """Completion artifact lookup result."""

    success: bool
    report: str | None = None
    report_path: Path | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "report": self.report,
            "report_path": str(self.report_path) if self.report_path is not None else None,
            "error": self.error,
        }


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of one sandboxed agent run."""

    success: bool
    output: CompletionOutput
    logs: str
    status: SandboxStatus
    sandbox_id: str
    exit_code: int | None = None
    timed_out: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the task output field."""

        return {
            "success": self.success,
            "status": self.status.value,
            "sandbox_id": self.sandbox_id,
            "exit_code": self.exit_code,
            "timed_out": self.timed_out,
            "output": self.output.to_payload(),
        }

    def raise_for_status(self) -> None:
        """Raise `ExecutionFailure` (or `ExecutionTimeout`) for unsuccessful runs."""

        if self.success:
            return
        if self.timed_out:
            raise ExecutionTimeout(self.error_summary, sandbox_id=self.sandbox_id)
        raise ExecutionFailure(self.error_summary, sandbox_id=self.sandbox_id)

    @property
    def error_summary(self) -> str:
        if self.timed_out:
            return f"Agent timed out in sandbox {self.sandbox_id}"
        if self.output.error:
            return self.output.error
        if self.exit_code not in (None, 0):
            return f"Agent exited with code {self.exit_code}"
        return "Execution failed"


@dataclass(slots=True)
class SandboxInfo:
    """Status snapshot of a sandbox, live or found on disk."""

    sandbox_id: str
    status: SandboxStatus | None
    root: Path
    task_id: str | None = None
    started_at: datetime | None = None
    pid: int | None = None
    uptime_seconds: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)
