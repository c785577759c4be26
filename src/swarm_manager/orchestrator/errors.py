"""Error taxonomy for decomposition, scheduling and sandbox execution."""

from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for orchestration errors."""


class DecompositionError(OrchestratorError):
    """Note cannot be decomposed (missing or empty body)."""


class TaskNotFoundError(OrchestratorError):
    """Task id is not registered in the engine."""


class InvalidTaskTransitionError(OrchestratorError):
    """Requested status change is not allowed from the current status."""


class TaskIdCollisionError(OrchestratorError):
    """Generated task id is already registered."""


class SandboxInitError(OrchestratorError):
    """Sandbox scaffolding failed; the task was never started."""


class ExecutionFailure(OrchestratorError):
    """Agent exited non-zero or produced no completion artifact."""

    def __init__(self, message: str, *, sandbox_id: str | None = None) -> None:
        super().__init__(message)
        self.sandbox_id = sandbox_id


class ExecutionTimeout(ExecutionFailure):
    """Agent ran past its deadline and was terminated."""


class AgentSelectionError(OrchestratorError):
    """No capable agent and no default agent are available."""
