"""Disposable per-task sandboxes and the manager that runs agents in them."""

from __future__ import annotations

import logging
import shutil
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO

from swarm_manager.knowledge.models import AgentProfile
from swarm_manager.knowledge.storage.common import as_utc, utc_now
from swarm_manager.orchestrator.backend import (
    AgentBackend,
    AgentRunRequest,
    BackendRunError,
    CliAgentBackend,
)
from swarm_manager.orchestrator.contracts import (
    SANDBOX_SUBDIRS,
    SandboxPaths,
    build_task_context,
    read_completion_report,
    read_task_context,
    render_readme,
    write_task_context,
)
from swarm_manager.orchestrator.errors import SandboxInitError
from swarm_manager.orchestrator.ids import build_sandbox_id
from swarm_manager.orchestrator.models import (
    CompletionOutput,
    ExecutionResult,
    SandboxInfo,
    SandboxStatus,
    Task,
)
from swarm_manager.orchestrator.prompts import build_agent_prompt

logger = logging.getLogger(__name__)

NO_LOGS = "No logs available"


class ExecutionLog:
    """Append-only, timestamped log sink backed by `logs/execution.log`.

    Pump threads for stdout and stderr append concurrently; each line is
    written and flushed under a lock so lines never interleave mid-line.
    """

    def __init__(self, path: Path, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.path = path
        self._clock = clock
        self._lock = threading.Lock()
        self._lines: list[str] = []
        path.parent.mkdir(parents=True, exist_ok=True)
        self._handle: IO[str] | None = path.open("a", encoding="utf-8")

    def append(self, stream: str, line: str) -> None:
        entry = f"[{self._clock().isoformat()}] {stream}: {line}"
        with self._lock:
            self._lines.append(entry)
            if self._handle is not None:
                self._handle.write(entry + "\n")
                self._handle.flush()

    def stdout(self, line: str) -> None:
        self.append("STDOUT", line)

    def stderr(self, line: str) -> None:
        self.append("STDERR", line)

    def system(self, line: str) -> None:
        self.append("SYSTEM", line)

    def lines(self) -> list[str]:
        with self._lock:
            return list(self._lines)

    def text(self) -> str:
        return "\n".join(self.lines())

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None


@dataclass(slots=True)
class Sandbox:
    """One scaffolded sandbox root owned by the manager."""

    sandbox_id: str
    task_id: str
    agent_type: str
    paths: SandboxPaths
    created_at: datetime
    status: SandboxStatus = SandboxStatus.IDLE
    agent_id: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    pid: int | None = None
    exit_code: int | None = None

    @property
    def root(self) -> Path:
        return self.paths.root

    @property
    def is_running(self) -> bool:
        return self.status == SandboxStatus.RUNNING

    def info(self, now: datetime) -> SandboxInfo:
        uptime = 0.0
        if self.started_at is not None:
            end = self.finished_at or now
            uptime = (as_utc(end) - as_utc(self.started_at)).total_seconds()
        return SandboxInfo(
            sandbox_id=self.sandbox_id,
            status=self.status,
            root=self.root,
            task_id=self.task_id,
            started_at=self.started_at,
            pid=self.pid,
            uptime_seconds=uptime,
            extra={"agent_id": self.agent_id, "exit_code": self.exit_code},
        )


class SandboxManager:
    """Creates sandboxes, runs agents in them and keeps the live registry."""

    def __init__(
        self,
        root_dir: Path,
        *,
        backend: AgentBackend | None = None,
        timeout_grace_seconds: float = 300.0,
        retain_files: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.root_dir = root_dir
        self.timeout_grace_seconds = timeout_grace_seconds
        self.retain_files = retain_files
        self._backend = backend or CliAgentBackend()
        self._clock = clock
        self._sandboxes: dict[str, Sandbox] = {}
        self._lock = threading.Lock()

    def create_sandbox(self, task: Task, *, agent_type: str | None = None) -> Sandbox:
        """Scaffold a fresh sandbox root for a task.

        Either the sandbox is complete and registered, or `SandboxInitError`
        is raised and nothing is left behind.
        """

        created_at = self._clock()
        hint = agent_type or task.agent_type
        with self._lock:
            sandbox_id = self._allocate_id(
                build_sandbox_id(agent_type=hint, task_id=task.task_id, created_at=created_at),
            )
            paths = SandboxPaths(self.root_dir / sandbox_id)
            try:
                self._scaffold(task, sandbox_id=sandbox_id, paths=paths, created_at=created_at)
            except OSError as error:
                shutil.rmtree(paths.root, ignore_errors=True)
                raise SandboxInitError(
                    f"Failed to initialize sandbox {sandbox_id} for task {task.task_id}: {error}",
                ) from error
            sandbox = Sandbox(
                sandbox_id=sandbox_id,
                task_id=task.task_id,
                agent_type=hint,
                paths=paths,
                created_at=created_at,
            )
            self._sandboxes[sandbox_id] = sandbox

        logger.info("Sandbox %s initialized for %s", sandbox_id, task.title)
        return sandbox

    def execute(self, sandbox: Sandbox, task: Task, agent: AgentProfile) -> ExecutionResult:
        """Run the agent in the sandbox until exit or deadline.

        Spawn failures, non-zero exits, timeouts and missing completion
        reports are all reported as an unsuccessful result, not raised.
        """

        paths = sandbox.paths
        log = ExecutionLog(paths.execution_log, clock=self._clock)
        timeout_seconds = task.estimated_duration * 60 + self.timeout_grace_seconds
        sandbox.agent_id = agent.agent_id
        sandbox.status = SandboxStatus.RUNNING
        sandbox.started_at = self._clock()
        log.system(f"Launching agent {agent.agent_id} (deadline {timeout_seconds:.0f}s)")
        logger.info("Sandbox %s launching agent %s", sandbox.sandbox_id, agent.agent_id)

        try:
            prompt = build_agent_prompt(
                task_id=task.task_id,
                title=task.title,
                task_type=task.task_type.value,
                description=task.description,
                checklist=task.checklist,
                workspace=str(paths.workspace),
                output_dir=str(paths.output),
                task_context=str(paths.task_context),
            )
            paths.prompt_file.write_text(prompt, "utf-8")
            request = AgentRunRequest(
                command_template=agent.command_template,
                prompt=prompt,
                prompt_file=paths.prompt_file,
                task_context_path=paths.task_context,
                workspace=paths.workspace,
                output_dir=paths.output,
                timeout_seconds=timeout_seconds,
                env={
                    "SANDBOX_ID": sandbox.sandbox_id,
                    "TASK_ID": task.task_id,
                    "AGENT_TYPE": agent.agent_id,
                    "WORKSPACE_DIR": str(paths.workspace),
                    "OUTPUT_DIR": str(paths.output),
                },
                on_stdout=log.stdout,
                on_stderr=log.stderr,
                on_start=lambda pid: setattr(sandbox, "pid", pid),
            )
            result = self._run(sandbox, request, log)
        except Exception:
            sandbox.status = SandboxStatus.FAILED
            sandbox.finished_at = self._clock()
            log.system("Sandbox execution aborted")
            raise
        finally:
            log.close()

        logger.info(
            "Sandbox %s finished: status=%s success=%s",
            sandbox.sandbox_id,
            result.status.value,
            result.success,
        )
        return result

    def launch_and_execute(self, task: Task, agent: AgentProfile) -> ExecutionResult:
        sandbox = self.create_sandbox(task)
        return self.execute(sandbox, task, agent)

    def get(self, sandbox_id: str) -> Sandbox | None:
        with self._lock:
            return self._sandboxes.get(sandbox_id)

    def get_status(self, sandbox_id: str) -> SandboxInfo | None:
        sandbox = self.get(sandbox_id)
        if sandbox is not None:
            return sandbox.info(self._clock())
        return self._disk_info(self.root_dir / sandbox_id)

    def read_logs(self, sandbox_id: str) -> str:
        """Execution log text, read from disk for sandboxes of earlier runs."""

        sandbox = self.get(sandbox_id)
        log_path = (
            sandbox.paths.execution_log
            if sandbox is not None
            else SandboxPaths(self.root_dir / sandbox_id).execution_log
        )
        if not log_path.is_file():
            return NO_LOGS
        return log_path.read_text("utf-8", errors="replace")

    def list_sandboxes(self) -> list[SandboxInfo]:
        """Registered sandboxes plus ones left on disk, newest first."""

        now = self._clock()
        with self._lock:
            live = {sandbox_id: sandbox.info(now) for sandbox_id, sandbox in self._sandboxes.items()}
            created = {
                sandbox_id: as_utc(sandbox.created_at)
                for sandbox_id, sandbox in self._sandboxes.items()
            }
        infos = dict(live)
        if self.root_dir.is_dir():
            for child in self.root_dir.iterdir():
                if not child.is_dir() or child.name in infos:
                    continue
                info = self._disk_info(child)
                if info is not None:
                    infos[child.name] = info
                    created[child.name] = datetime.fromtimestamp(
                        child.stat().st_mtime,
                        tz=now.tzinfo,
                    )
        return sorted(infos.values(), key=lambda info: created[info.sandbox_id], reverse=True)

    def active_sandboxes(self) -> list[Sandbox]:
        with self._lock:
            return [sandbox for sandbox in self._sandboxes.values() if sandbox.is_running]

    def cleanup_sandbox(self, sandbox_id: str, *, remove_files: bool | None = None) -> bool:
        """Unregister a finished sandbox; running ones are left alone."""

        with self._lock:
            sandbox = self._sandboxes.get(sandbox_id)
            if sandbox is None or sandbox.is_running:
                return False
            del self._sandboxes[sandbox_id]
        remove = (not self.retain_files) if remove_files is None else remove_files
        if remove:
            shutil.rmtree(sandbox.root, ignore_errors=True)
        logger.debug("Sandbox %s cleaned up (files removed=%s)", sandbox_id, remove)
        return True

    def cleanup_all(self) -> int:
        with self._lock:
            sandbox_ids = list(self._sandboxes)
        return sum(1 for sandbox_id in sandbox_ids if self.cleanup_sandbox(sandbox_id))

    def _run(self, sandbox: Sandbox, request: AgentRunRequest, log: ExecutionLog) -> ExecutionResult:
        try:
            run_result = self._backend.run(request)
        except BackendRunError as error:
            log.system(f"Agent failed to start: {error}")
            logger.warning("Sandbox %s spawn failed: %s", sandbox.sandbox_id, error)
            return self._finish(
                sandbox,
                log,
                status=SandboxStatus.FAILED,
                output=CompletionOutput(success=False, error=str(error)),
                exit_code=None,
            )

        if run_result.timed_out:
            log.system(f"Agent terminated after {request.timeout_seconds:.0f}s deadline")
            return self._finish(
                sandbox,
                log,
                status=SandboxStatus.TIMEOUT,
                output=CompletionOutput(
                    success=False,
                    error=f"Agent timed out after {request.timeout_seconds:.0f}s",
                ),
                exit_code=run_result.exit_code,
                timed_out=True,
            )

        log.system(f"Agent process exited with code {run_result.exit_code}")
        report = read_completion_report(sandbox.paths.output)
        if run_result.exit_code != 0:
            return self._finish(
                sandbox,
                log,
                status=SandboxStatus.FAILED,
                output=CompletionOutput(
                    success=False,
                    report=report.report,
                    report_path=report.report_path,
                    error=f"Agent exited with code {run_result.exit_code}",
                ),
                exit_code=run_result.exit_code,
            )
        return self._finish(
            sandbox,
            log,
            status=SandboxStatus.COMPLETED,
            output=report,
            exit_code=run_result.exit_code,
        )

    def _finish(  # noqa: PLR0913
        self,
        sandbox: Sandbox,
        log: ExecutionLog,
        *,
        status: SandboxStatus,
        output: CompletionOutput,
        exit_code: int | None,
        timed_out: bool = False,
    ) -> ExecutionResult:
        sandbox.status = status
        sandbox.exit_code = exit_code
        sandbox.finished_at = self._clock()
        return ExecutionResult(
            success=status == SandboxStatus.COMPLETED and output.success,
            output=output,
            logs=log.text(),
            status=status,
            sandbox_id=sandbox.sandbox_id,
            exit_code=exit_code,
            timed_out=timed_out,
        )

    def _allocate_id(self, base_id: str) -> str:
        candidate = base_id
        suffix = 2
        while candidate in self._sandboxes or (self.root_dir / candidate).exists():
            candidate = f"{base_id}-{suffix}"
            suffix += 1
        return candidate

    def _scaffold(
        self,
        task: Task,
        *,
        sandbox_id: str,
        paths: SandboxPaths,
        created_at: datetime,
    ) -> None:
        paths.root.mkdir(parents=True, exist_ok=False)
        for name in SANDBOX_SUBDIRS:
            (paths.root / name).mkdir()
        context = build_task_context(
            task=task,
            sandbox_id=sandbox_id,
            paths=paths,
            created_at=created_at.isoformat(),
        )
        write_task_context(paths.task_context, context)
        paths.readme.write_text(render_readme(context), "utf-8")

    def _disk_info(self, root: Path) -> SandboxInfo | None:
        context_path = SandboxPaths(root).task_context
        if not context_path.is_file():
            return None
        try:
            context = read_task_context(context_path)
        except (OSError, TypeError, ValueError) as error:
            logger.warning("Unreadable task context in %s: %s", root, error)
            return None
        return SandboxInfo(
            sandbox_id=root.name,
            status=None,
            root=root,
            task_id=context.task_id,
            extra={"title": context.title},
        )
