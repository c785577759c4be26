"""Deterministic identifier schemes for tasks and sandboxes."""

from __future__ import annotations

import hashlib
import threading
from datetime import datetime

from swarm_manager.orchestrator.models import TaskSpec, TaskType

TASK_ID_PREFIXES = {
    TaskType.RESEARCH: "RES",
    TaskType.PLANNING: "PLN",
    TaskType.EXECUTION: "EXEC",
    TaskType.REVIEW: "REV",
}

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


class TaskIdGenerator:
    """Monotonic counter plus a content hash of the task spec.

    The counter is shared by every decomposition of one engine, so ids are
    reproducible for a given sequence of notes.
    """

    def __init__(self, start: int = 0) -> None:
        self._counter = start
        self._lock = threading.Lock()

    @property
    def last_sequence(self) -> int:
        return self._counter

    def next_id(self, *, note_id: str, spec: TaskSpec) -> tuple[str, int]:
        with self._lock:
            self._counter += 1
            sequence = self._counter
        digest = hashlib.sha1(  # noqa: S324
            "\n".join(
                (note_id, spec.task_type.value, spec.title, spec.description),
            ).encode(),
        ).hexdigest()[:8]
        return f"{TASK_ID_PREFIXES[spec.task_type]}-{sequence:04d}-{digest}", sequence


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 value must be non-negative")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def build_sandbox_id(*, agent_type: str, task_id: str, created_at: datetime) -> str:
    """Agent hint, the hash tail of the task id and a base36 millisecond stamp."""

    short_task = task_id.rsplit("-", 1)[-1].lower()
    stamp = to_base36(int(created_at.timestamp() * 1000))
    return f"{agent_type}-{short_task}-{stamp}"
