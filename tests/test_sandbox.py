from __future__ import annotations

import os
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from support import echo_agent_command, make_note
from swarm_manager.knowledge.models import AgentProfile
from swarm_manager.orchestrator.contracts import load_json, read_completion_report
from swarm_manager.orchestrator.engine import TaskEngine
from swarm_manager.orchestrator.errors import ExecutionFailure, ExecutionTimeout, SandboxInitError
from swarm_manager.orchestrator.models import SandboxStatus, Task
from swarm_manager.orchestrator.sandbox import NO_LOGS, SandboxManager

pytestmark = [
    allure.epic("Sandbox Execution"),
    allure.feature("Sandbox Lifecycle"),
]

_FIXED_NOW = datetime(2026, 10, 16, 12, 0, tzinfo=UTC)


def _task() -> Task:
    return TaskEngine().decompose(make_note("1. Add login page\n2. Add logout button"))[1]


def _agent(*extra_args: str) -> AgentProfile:
    return AgentProfile(
        agent_id="echo",
        capabilities=("execute",),
        command_template=echo_agent_command(*extra_args),
    )


def test_create_sandbox_scaffolds_layout(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path / "sandboxes")
    task = _task()

    sandbox = manager.create_sandbox(task)

    for name in ("workspace", "output", "logs", "tmp"):
        assert (sandbox.root / name).is_dir()
    assert sandbox.status == SandboxStatus.IDLE
    assert sandbox.sandbox_id.startswith(f"{task.agent_type}-{task.task_id.rsplit('-', 1)[1]}-")

    context = load_json(sandbox.paths.task_context)
    assert context["task"]["id"] == task.task_id
    assert context["task"]["title"] == "Add login page"
    assert context["sandbox"]["id"] == sandbox.sandbox_id
    assert context["verification"]["checklist"] == ["Task completed", "Verified", "No errors"]
    assert context["rules"]["max-duration"] == "15 minutes"

    readme = sandbox.paths.readme.read_text("utf-8")
    assert readme.startswith("# Task: Add login page")
    assert "- [ ] Verified" in readme


def test_sandbox_ids_are_unique_per_manager(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path, clock=lambda: _FIXED_NOW)
    task = _task()

    first = manager.create_sandbox(task)
    second = manager.create_sandbox(task)

    assert second.sandbox_id == f"{first.sandbox_id}-2"


def test_create_sandbox_failure_leaves_nothing(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", "utf-8")
    manager = SandboxManager(blocker)

    with pytest.raises(SandboxInitError):
        manager.create_sandbox(_task())
    assert manager.list_sandboxes() == []


def test_execute_echo_agent_success(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path)
    task = _task()
    sandbox = manager.create_sandbox(task, agent_type="echo")

    result = manager.execute(sandbox, task, _agent())

    assert result.success is True
    assert result.status == SandboxStatus.COMPLETED
    assert result.exit_code == 0
    assert result.output.report_path == sandbox.paths.output / "completion-report.md"
    assert "Add login page" in (result.output.report or "")
    assert f"echo agent started for {task.task_id}" in result.logs
    assert "STDOUT: echo agent started" in manager.read_logs(sandbox.sandbox_id)
    assert "SYSTEM: Agent process exited with code 0" in result.logs
    assert sandbox.paths.prompt_file.is_file()
    assert sandbox.pid is not None
    result.raise_for_status()


def test_missing_report_is_unsuccessful_but_completed(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path)
    task = _task()

    result = manager.launch_and_execute(task, _agent("--no-report"))

    assert result.status == SandboxStatus.COMPLETED
    assert result.success is False
    assert result.output.error == "No completion report found"
    with pytest.raises(ExecutionFailure, match="No completion report"):
        result.raise_for_status()


def test_nonzero_exit_fails(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path)

    result = manager.launch_and_execute(_task(), _agent("--exit-code", "3"))

    assert result.status == SandboxStatus.FAILED
    assert result.success is False
    assert result.exit_code == 3
    assert result.output.error == "Agent exited with code 3"
    assert "STDERR: echo agent exiting with 3" in result.logs


def test_missing_command_fails_without_raising(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path)
    agent = AgentProfile(
        agent_id="ghost",
        capabilities=("execute",),
        command_template="definitely-not-a-real-agent-binary {prompt}",
    )

    result = manager.launch_and_execute(_task(), agent)

    assert result.status == SandboxStatus.FAILED
    assert "not found" in (result.output.error or "")
    assert "SYSTEM: Agent failed to start" in result.logs


@pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
def test_deadline_terminates_agent(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path, timeout_grace_seconds=1)
    task = _task()
    task.estimated_duration = 0
    sandbox = manager.create_sandbox(task)

    started = time.monotonic()
    result = manager.execute(sandbox, task, _agent("--sleep", "30"))
    elapsed = time.monotonic() - started

    assert result.status == SandboxStatus.TIMEOUT
    assert result.timed_out is True
    assert elapsed < 15
    assert sandbox.pid is not None
    with pytest.raises(ProcessLookupError):
        os.kill(sandbox.pid, 0)
    with pytest.raises(ExecutionTimeout):
        result.raise_for_status()


def test_logs_listing_and_cleanup(tmp_path: Path) -> None:
    manager = SandboxManager(tmp_path, retain_files=False)
    task = _task()
    idle = manager.create_sandbox(task)
    manager.launch_and_execute(task, _agent())

    listed = manager.list_sandboxes()
    assert len(listed) == 2
    assert manager.read_logs(idle.sandbox_id) == NO_LOGS
    assert manager.read_logs("unknown") == NO_LOGS
    assert manager.get_status(idle.sandbox_id).status == SandboxStatus.IDLE
    assert manager.active_sandboxes() == []

    assert manager.cleanup_sandbox(idle.sandbox_id) is True
    assert not idle.root.exists()
    assert manager.cleanup_sandbox(idle.sandbox_id) is False
    assert manager.cleanup_all() == 1
    assert manager.list_sandboxes() == []


def test_retained_sandboxes_are_found_on_disk(tmp_path: Path) -> None:
    first = SandboxManager(tmp_path)
    task = _task()
    result = first.launch_and_execute(task, _agent())
    first.cleanup_all()

    second = SandboxManager(tmp_path)
    info = second.get_status(result.sandbox_id)

    assert info is not None
    assert info.status is None
    assert info.task_id == task.task_id
    assert [item.sandbox_id for item in second.list_sandboxes()] == [result.sandbox_id]
    assert "echo agent started" in second.read_logs(result.sandbox_id)


def test_completion_report_lookup(tmp_path: Path) -> None:
    assert read_completion_report(tmp_path).error == "No completion report found"

    (tmp_path / "completion-report.txt").write_text("done", "utf-8")
    (tmp_path / "completion-report.json").write_text("   ", "utf-8")

    output = read_completion_report(tmp_path)
    assert output.success is False
    assert output.error == "Completion report is empty: completion-report.json"

    (tmp_path / "completion-report.md").write_text("# Done", "utf-8")
    output = read_completion_report(tmp_path)
    assert output.success is True
    assert output.report == "# Done"
