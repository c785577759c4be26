"""Backend interface for running an agent process inside a sandbox."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class AgentRunRequest:
    """Inputs required to run one agent process."""

    command_template: str
    prompt: str
    prompt_file: Path
    task_context_path: Path
    workspace: Path
    output_dir: Path
    timeout_seconds: float
    env: dict[str, str] = field(default_factory=dict)
    on_stdout: Callable[[str], None] | None = None
    on_stderr: Callable[[str], None] | None = None
    on_start: Callable[[int], None] | None = None


@dataclass(slots=True)
class AgentRunResult:
    """Process outcome reported by a backend."""

    exit_code: int | None
    timed_out: bool
    pid: int | None = None
    duration_seconds: float = 0.0


class AgentBackend(Protocol):
    """Protocol implemented by backend runners."""

    def run(self, request: AgentRunRequest) -> AgentRunResult:
        """Run the agent until it exits or its deadline passes."""
