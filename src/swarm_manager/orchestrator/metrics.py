"""Operator-facing status and statistics rendering."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass

from swarm_manager.knowledge.models import AgentProfile, KnowledgeStats
from swarm_manager.orchestrator.models import QueueStatus, SandboxInfo, Task, TaskStatus

_STATUS_ICONS = {
    TaskStatus.PENDING: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.COMPLETED: "[x]",
    TaskStatus.FAILED: "[!]",
}


@dataclass(slots=True)
class TaskStatsSnapshot:
    """Aggregates over every task known to the engine."""

    total: int
    status_counts: dict[str, int]
    type_status_counts: dict[str, dict[str, int]]
    avg_actual_minutes_by_type: dict[str, float]
    estimated_minutes_finished: float
    actual_minutes_finished: float

    @property
    def success_ratio(self) -> float | None:
        finished = self.status_counts.get("completed", 0) + self.status_counts.get("failed", 0)
        if finished == 0:
            return None
        return self.status_counts.get("completed", 0) / finished


def build_task_stats(tasks: list[Task]) -> TaskStatsSnapshot:
    status_counts: Counter[str] = Counter()
    type_status: Counter[tuple[str, str]] = Counter()
    durations: defaultdict[str, list[float]] = defaultdict(list)
    estimated = 0.0
    actual = 0.0
    for task in tasks:
        status_counts[task.status.value] += 1
        type_status[(task.task_type.value, task.status.value)] += 1
        if task.status.is_terminal and task.actual_duration is not None:
            durations[task.task_type.value].append(task.actual_duration)
            estimated += task.estimated_duration
            actual += task.actual_duration

    nested: dict[str, dict[str, int]] = {}
    for (task_type, status), count in sorted(type_status.items()):
        nested.setdefault(task_type, {})[status] = count
    return TaskStatsSnapshot(
        total=len(tasks),
        status_counts=dict(sorted(status_counts.items())),
        type_status_counts=nested,
        avg_actual_minutes_by_type={
            task_type: sum(values) / len(values) for task_type, values in sorted(durations.items())
        },
        estimated_minutes_finished=estimated,
        actual_minutes_finished=actual,
    )


def render_task_line(task: Task) -> str:
    dependency = f" <- {task.depends_on}" if task.depends_on else ""
    agent = f" @{task.assigned_agent}" if task.assigned_agent else ""
    return (
        f"{_STATUS_ICONS[task.status]} {task.task_id} {task.task_type.value:<9} "
        f"{task.title}{agent}{dependency}"
    )


def render_task_lines(tasks: list[Task]) -> list[str]:
    if not tasks:
        return ["No tasks."]
    return [render_task_line(task) for task in tasks]


def render_queue_lines(
    *,
    status: QueueStatus,
    ready: list[Task],
    blocked: list[Task],
) -> list[str]:
    lines = [
        (
            f"Queue: total={status.total} pending={status.pending} "
            f"in_progress={status.in_progress} completed={status.completed} "
            f"failed={status.failed}"
        ),
        (
            "Active task: "
            + (
                f"{status.active_task.task_id} {status.active_task.title}"
                if status.active_task is not None
                else "none"
            )
        ),
    ]
    lines.append(f"Ready ({len(ready)}):")
    lines.extend(f"  {render_task_line(task)}" for task in ready)
    if blocked:
        lines.append(f"Blocked by failed dependencies ({len(blocked)}):")
        lines.extend(f"  {render_task_line(task)}" for task in blocked)
    return lines


def render_status_lines(
    *,
    knowledge: KnowledgeStats,
    queue: QueueStatus | None,
    active_sandboxes: int,
    auto_enabled: bool | None = None,
) -> list[str]:
    lines = [
        (
            f"Knowledge store: notes={knowledge.notes} (pending={knowledge.pending} "
            f"completed={knowledge.completed}) projects={knowledge.projects} "
            f"agents={knowledge.agents}"
        ),
        f"Active sandboxes: {active_sandboxes}",
    ]
    if queue is not None:
        lines.append(
            f"Tasks: total={queue.total} pending={queue.pending} "
            f"in_progress={queue.in_progress} completed={queue.completed} failed={queue.failed}",
        )
    if auto_enabled is not None:
        lines.append(f"Auto-mode: {'on' if auto_enabled else 'off'}")
    return lines


def render_stats_lines(*, snapshot: TaskStatsSnapshot) -> list[str]:
    """Render task statistics for CLI output."""

    lines = [
        f"Tasks: {snapshot.total}",
        "Status: " + (_fmt_key_value(snapshot.status_counts) or "none"),
        "Type/status: " + (_fmt_type_status(snapshot.type_status_counts) or "none"),
        f"Success ratio: {_fmt_ratio(snapshot.success_ratio)}",
        (
            f"Finished minutes: estimated={snapshot.estimated_minutes_finished:.1f} "
            f"actual={snapshot.actual_minutes_finished:.2f}"
        ),
    ]
    if snapshot.avg_actual_minutes_by_type:
        lines.append(
            "Avg actual minutes: "
            + " ".join(
                f"{task_type}={value:.2f}"
                for task_type, value in snapshot.avg_actual_minutes_by_type.items()
            ),
        )
    return lines


def render_agent_lines(agents: list[AgentProfile], *, default_agent: str) -> list[str]:
    if not agents:
        return ["No agents configured."]
    lines: list[str] = []
    for agent in agents:
        marker = "*" if agent.agent_id == default_agent else " "
        lines.append(f"{marker} {agent.agent_id:<10} {', '.join(agent.capabilities)}")
    return lines


def render_sandbox_lines(sandboxes: list[SandboxInfo]) -> list[str]:
    if not sandboxes:
        return ["No sandboxes."]
    lines: list[str] = []
    for info in sandboxes:
        status = info.status.value if info.status is not None else "on-disk"
        lines.append(f"{info.sandbox_id}  {status:<9} task={info.task_id or '-'}")
    return lines


def _fmt_ratio(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.2%}"


def _fmt_key_value(values: dict[str, int]) -> str:
    return " ".join(f"{key}={value}" for key, value in values.items())


def _fmt_type_status(values: dict[str, dict[str, int]]) -> str:
    return "; ".join(
        f"{task_type}: {_fmt_key_value(statuses)}" for task_type, statuses in values.items()
    )
