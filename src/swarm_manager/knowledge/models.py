"""Domain models exposed by the knowledge store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class NoteStatus(str, Enum):
    """Note lifecycle; only pending -> completed is allowed."""

    PENDING = "pending"
    COMPLETED = "completed"


class Priority(str, Enum):
    """Priority shared by notes and the tasks derived from them."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str | None) -> Priority:
        """Normalize free-form input, falling back to medium."""

        if value is None:
            return cls.MEDIUM
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.MEDIUM


@dataclass(slots=True)
class Note:
    """User-authored unit of intent, the root of one decomposition."""

    note_id: str
    title: str
    body: str
    project_id: str
    tags: tuple[str, ...]
    priority: Priority
    status: NoteStatus
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Project:
    """Group of notes."""

    project_id: str
    name: str
    description: str
    status: str
    created_at: datetime
    updated_at: datetime
    note_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class AgentProfile:
    """External agent definition used for capability matching and launch."""

    agent_id: str
    capabilities: tuple[str, ...]
    command_template: str = ""
    agent_type: str = "llm"
    instructions: str = ""
    updated_at: datetime | None = None

    def can_handle(self, *keys: str) -> bool:
        """Return True when any of the given capability keys is supported."""

        return any(key in self.capabilities for key in keys)


@dataclass(slots=True)
class KnowledgeStats:
    """Aggregate counters for status output."""

    notes: int
    projects: int
    agents: int
    pending: int
    completed: int


@dataclass(slots=True)
class NoteSearchHit:
    """One search result with the fields that matched."""

    note: Note
    matched_fields: tuple[str, ...] = field(default_factory=tuple)
