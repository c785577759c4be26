"""Helpers shared by test modules."""

from __future__ import annotations

import sys
from datetime import UTC, datetime

from swarm_manager.knowledge.models import Note, NoteStatus, Priority

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{sys.executable} -m swarm_manager.orchestrator.backend.echo_agent "
    "--task-context {task_context}"
)


def echo_agent_command(*extra_args: str) -> str:
    """Echo agent template with extra CLI flags (e.g. --exit-code 3)."""

    return " ".join((ECHO_AGENT_COMMAND_TEMPLATE, *extra_args))


def make_note(
    body: str,
    *,
    note_id: str = "note-1",
    title: str | None = None,
    project_id: str = "general",
    priority: Priority = Priority.MEDIUM,
) -> Note:
    now = datetime(2026, 10, 16, 9, 0, tzinfo=UTC)
    first_line = body.strip().splitlines()[0] if body.strip() else "Untitled"
    return Note(
        note_id=note_id,
        title=title or first_line[:60],
        body=body,
        project_id=project_id,
        tags=(),
        priority=priority,
        status=NoteStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
