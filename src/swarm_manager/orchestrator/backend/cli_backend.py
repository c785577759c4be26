"""Subprocess-based backend runner for CLI agents."""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from typing import IO

from swarm_manager.orchestrator.backend.base import AgentRunRequest, AgentRunResult

logger = logging.getLogger(__name__)

_PUMP_JOIN_SECONDS = 2.0


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class CliAgentBackend:
    """Launch an agent command template and stream its output line by line."""

    def run(self, request: AgentRunRequest) -> AgentRunResult:
        run_args, command_head = build_run_args(
            command_template=request.command_template,
            values={
                "prompt": request.prompt,
                "prompt_file": str(request.prompt_file),
                "task_context": str(request.task_context_path),
                "workspace": str(request.workspace),
                "output_dir": str(request.output_dir),
            },
        )
        env = os.environ.copy()
        env.update(request.env)

        try:
            process = subprocess.Popen(  # noqa: S603
                run_args,
                cwd=request.workspace,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=os.name != "nt",
            )
        except FileNotFoundError as error:
            raise BackendRunError(
                f"CLI backend command not found: {command_head}",
                transient=False,
            ) from error
        except OSError as error:
            raise BackendRunError(
                f"CLI backend failed to start: {error}",
                transient=True,
            ) from error

        logger.debug("Spawned %s (pid=%s) in %s", command_head, process.pid, request.workspace)
        if request.on_start is not None:
            request.on_start(process.pid)

        pumps = [
            _start_pump(process.stdout, request.on_stdout, name=f"stdout-{process.pid}"),
            _start_pump(process.stderr, request.on_stderr, name=f"stderr-{process.pid}"),
        ]
        result = _wait_with_deadline(process, timeout_seconds=request.timeout_seconds)
        for pump in pumps:
            pump.join(timeout=_PUMP_JOIN_SECONDS)
        return result


def build_run_args(
    *,
    command_template: str,
    values: dict[str, str],
    os_name: str | None = None,
) -> tuple[str | list[str], str]:
    """Render a command template into argv, quoting every substituted value."""

    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("CLI backend command template is empty.", transient=False)

    current_os_name = os_name or os.name
    quote: Callable[[str], str] = (
        (lambda value: subprocess.list2cmdline([value]))
        if current_os_name == "nt"
        else shlex.quote
    )
    try:
        rendered = stripped.format(**{key: quote(value) for key, value in values.items()})
    except (KeyError, IndexError) as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    if current_os_name == "nt":
        rendered = rendered.strip()
        if not rendered:
            raise BackendRunError(
                "CLI backend command template rendered empty command.",
                transient=False,
            )
        return rendered, rendered.split(maxsplit=1)[0]

    argv = shlex.split(rendered)
    if not argv:
        raise BackendRunError(
            "CLI backend command template rendered empty command.",
            transient=False,
        )
    return argv, argv[0]


def _start_pump(
    stream: IO[str] | None,
    sink: Callable[[str], None] | None,
    *,
    name: str,
) -> threading.Thread:
    thread = threading.Thread(target=_pump, args=(stream, sink), name=name, daemon=True)
    thread.start()
    return thread


def _pump(stream: IO[str] | None, sink: Callable[[str], None] | None) -> None:
    if stream is None:
        return
    with stream:
        for line in iter(stream.readline, ""):
            if sink is not None:
                sink(line.rstrip("\r\n"))


def _wait_with_deadline(
    process: subprocess.Popen[str],
    *,
    timeout_seconds: float,
) -> AgentRunResult:
    start_monotonic = time.monotonic()
    while True:
        returncode = process.poll()
        elapsed = time.monotonic() - start_monotonic
        if returncode is not None:
            return AgentRunResult(
                exit_code=returncode,
                timed_out=False,
                pid=process.pid,
                duration_seconds=elapsed,
            )
        if elapsed >= timeout_seconds:
            logger.warning(
                "Agent pid=%s exceeded %.1fs deadline, terminating",
                process.pid,
                timeout_seconds,
            )
            _terminate_process(process)
            return AgentRunResult(
                exit_code=process.returncode,
                timed_out=True,
                pid=process.pid,
                duration_seconds=time.monotonic() - start_monotonic,
            )
        time.sleep(0.1)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        _signal_process(process, signal.SIGTERM)
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            _signal_process(process, getattr(signal, "SIGKILL", signal.SIGTERM))
        except OSError:
            return
        process.wait(timeout=2)


def _signal_process(process: subprocess.Popen[str], signum: int) -> None:
    # Agents run in their own session on POSIX, so the whole group is signalled.
    if os.name != "nt":
        try:
            os.killpg(process.pid, signum)
        except ProcessLookupError:
            return
        return
    if signum == signal.SIGTERM:
        process.terminate()
    else:
        process.kill()
