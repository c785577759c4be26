"""File-based contracts shared between a sandbox and its agent process."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from swarm_manager.orchestrator.models import CompletionOutput, Task

TASK_CONTEXT_FILE = "task-context.json"
README_FILE = "README.md"
EXECUTION_LOG_FILE = "execution.log"
PROMPT_FILE = "agent-prompt.txt"
COMPLETION_REPORT_NAMES = (
    "completion-report.md",
    "completion-report.json",
    "completion-report.txt",
)
SANDBOX_SUBDIRS = ("workspace", "output", "logs", "tmp")


@dataclass(slots=True)
class SandboxPaths:
    """Fixed directory layout under one sandbox root."""

    root: Path

    @property
    def workspace(self) -> Path:
        return self.root / "workspace"

    @property
    def output(self) -> Path:
        return self.root / "output"

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    @property
    def tmp(self) -> Path:
        return self.root / "tmp"

    @property
    def task_context(self) -> Path:
        return self.root / TASK_CONTEXT_FILE

    @property
    def readme(self) -> Path:
        return self.workspace / README_FILE

    @property
    def execution_log(self) -> Path:
        return self.logs / EXECUTION_LOG_FILE

    @property
    def prompt_file(self) -> Path:
        return self.tmp / PROMPT_FILE


@dataclass(slots=True)
class TaskContext:
    """Machine-readable task brief written next to the workspace."""

    sandbox_id: str
    task_id: str
    task_type: str
    phase: str
    title: str
    description: str
    note_id: str
    project_id: str
    priority: str
    estimated_duration: float
    checklist: list[str]
    workspace: str
    output: str
    tmp: str
    created_at: str
    rules: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "task": {
                "id": self.task_id,
                "type": self.task_type,
                "phase": self.phase,
                "title": self.title,
                "description": self.description,
                "note_id": self.note_id,
                "project_id": self.project_id,
                "priority": self.priority,
                "estimated_duration": self.estimated_duration,
            },
            "sandbox": {
                "id": self.sandbox_id,
                "workspace": self.workspace,
                "output": self.output,
                "tmp": self.tmp,
            },
            "verification": {"checklist": list(self.checklist)},
            "rules": dict(self.rules),
            "created_at": self.created_at,
        }


def build_task_context(
    *,
    task: Task,
    sandbox_id: str,
    paths: SandboxPaths,
    created_at: str,
) -> TaskContext:
    return TaskContext(
        sandbox_id=sandbox_id,
        task_id=task.task_id,
        task_type=task.task_type.value,
        phase=task.phase.value,
        title=task.title,
        description=task.description,
        note_id=task.note_id,
        project_id=task.project_id,
        priority=task.priority.value,
        estimated_duration=task.estimated_duration,
        checklist=list(task.checklist),
        workspace=str(paths.workspace),
        output=str(paths.output),
        tmp=str(paths.tmp),
        created_at=created_at,
        rules={
            "workspace": "Working directory for this task",
            "output": "Save all outputs here",
            "logs": "All logs go here",
            "max-duration": f"{task.estimated_duration:g} minutes",
        },
    )


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_task_context(path: Path, context: TaskContext) -> None:
    write_json(path, context.to_payload())


def read_task_context(path: Path) -> TaskContext:
    """Deserialize and validate a task context document."""

    raw = load_json(path)
    task = raw.get("task")
    sandbox = raw.get("sandbox")
    verification = raw.get("verification", {})
    if not isinstance(task, dict) or not isinstance(sandbox, dict):
        raise TypeError("task-context must contain task and sandbox objects")
    task_id = task.get("id")
    if not isinstance(task_id, str) or not task_id.strip():
        raise ValueError("task-context.task.id must be a non-empty string")
    checklist = verification.get("checklist", []) if isinstance(verification, dict) else []
    if not isinstance(checklist, list):
        raise TypeError("task-context.verification.checklist must be an array")
    return TaskContext(
        sandbox_id=str(sandbox.get("id", "")),
        task_id=task_id,
        task_type=str(task.get("type", "")),
        phase=str(task.get("phase", "")),
        title=str(task.get("title", "")),
        description=str(task.get("description", "")),
        note_id=str(task.get("note_id", "")),
        project_id=str(task.get("project_id", "")),
        priority=str(task.get("priority", "")),
        estimated_duration=float(task.get("estimated_duration", 0)),
        checklist=[str(item) for item in checklist],
        workspace=str(sandbox.get("workspace", "")),
        output=str(sandbox.get("output", "")),
        tmp=str(sandbox.get("tmp", "")),
        created_at=str(raw.get("created_at", "")),
        rules={str(key): str(value) for key, value in dict(raw.get("rules", {})).items()},
    )


def render_readme(context: TaskContext) -> str:
    """Human-readable brief placed in the agent's working directory."""

    checklist = (
        "\n".join(f"- [ ] {item}" for item in context.checklist)
        if context.checklist
        else "No checklist"
    )
    return f"""# Task: {context.title}

{context.description}

## Sandbox Directory Structure
- `workspace/`: Your working directory
- `output/`: Save your outputs here
- `logs/`: Execution logs (automated)
- `tmp/`: Temporary files

## Task Details
- ID: {context.task_id}
- Type: {context.task_type}
- Phase: {context.phase}
- Project: {context.project_id}
- Priority: {context.priority}
- Estimated Duration: {context.estimated_duration:g} minutes

## Verification Checklist
{checklist}

## Completion
When complete, create a `completion-report.md` in `output/` directory with:
1. Summary of what was done
2. Results/outcomes
3. Any issues encountered
4. Verification of checklist items
"""


def read_completion_report(output_dir: Path) -> CompletionOutput:
    """Find the first completion artifact; empty content does not count."""

    for name in COMPLETION_REPORT_NAMES:
        path = output_dir / name
        if not path.is_file():
            continue
        report = path.read_text("utf-8", errors="replace")
        if not report.strip():
            return CompletionOutput(
                success=False,
                report_path=path,
                error=f"Completion report is empty: {name}",
            )
        return CompletionOutput(success=True, report=report, report_path=path)
    return CompletionOutput(success=False, error="No completion report found")

