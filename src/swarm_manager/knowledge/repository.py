"""Knowledge store facade backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from swarm_manager.knowledge.models import (
    AgentProfile,
    KnowledgeStats,
    Note,
    NoteSearchHit,
    NoteStatus,
    Priority,
    Project,
)
from swarm_manager.knowledge.parsing import (
    DEFAULT_PROJECT_ID,
    build_note_id,
    derive_title,
    normalize_tags,
    slugify,
)
from swarm_manager.knowledge.storage.alembic_runner import upgrade_head
from swarm_manager.knowledge.storage.common import as_utc, build_sqlite_engine, utc_now
from swarm_manager.knowledge.storage.sqlmodel_models import AgentProfileRow, NoteRow, ProjectRow

logger = logging.getLogger(__name__)

DEFAULT_AGENT_CAPABILITIES = ("execute", "research", "plan", "review")

_DEFAULT_AGENT_INSTRUCTIONS = """\
You are {agent_id}, a specialized agent in the swarm.

CAPABILITIES:
- Execute assigned tasks with precision
- Communicate clearly about progress and issues
- Work within your defined scope
- Verify your work before reporting completion

BEHAVIOR PRINCIPLES:
1. Be transparent about what you're doing
2. Ask questions when uncertain
3. Report mistakes immediately
4. Mark tasks complete only when done

WORKFLOW:
- Accept task from manager
- Plan your approach
- Execute systematically
- Verify results
- Report back with status"""

_NOTE_UPDATABLE_FIELDS = frozenset({"title", "body", "tags", "priority", "status", "project_id"})


class KnowledgeStoreError(RuntimeError):
    """Store operation could not be completed."""


class NoteNotFoundError(KnowledgeStoreError):
    """Requested note does not exist."""


class KnowledgeStore:
    """Notes, projects and agent profiles persisted in one SQLite database."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Release engine resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    # -- notes -----------------------------------------------------------------

    def add_note(
        self,
        content: str,
        *,
        title: str | None = None,
        project_id: str | None = None,
        tags: tuple[str, ...] | list[str] = (),
        priority: Priority | str | None = None,
    ) -> Note:
        """Persist a new pending note and file it under its project."""

        body = content.strip()
        now = utc_now()
        resolved_title = (title or "").strip() or derive_title(body)
        resolved_project = (project_id or "").strip() or DEFAULT_PROJECT_ID
        resolved_priority = priority if isinstance(priority, Priority) else Priority.parse(priority)
        note_id = build_note_id(title=resolved_title, body=body, created_at=now)

        self.ensure_project(resolved_project)
        with Session(self.engine) as session:
            if session.get(NoteRow, note_id) is not None:
                raise KnowledgeStoreError(f"Note id collision: {note_id}")
            row = NoteRow(
                note_id=note_id,
                title=resolved_title,
                body=body,
                project_id=resolved_project,
                tags_json=json.dumps(list(normalize_tags(tags))),
                priority=resolved_priority.value,
                status=NoteStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            _touch_project(session, resolved_project)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise KnowledgeStoreError(f"Failed to store note {note_id}: {error}") from error
            session.refresh(row)
            logger.info("Added note %s to project %s", note_id, resolved_project)
            return _to_note(row)

    def get_note(self, note_id: str) -> Note | None:
        with Session(self.engine) as session:
            row = session.get(NoteRow, note_id)
            return _to_note(row) if row is not None else None

    def require_note(self, note_id: str) -> Note:
        """Return the note or raise NoteNotFoundError."""

        note = self.get_note(note_id)
        if note is None:
            raise NoteNotFoundError(f"Note not found: {note_id}")
        return note

    def update_note(self, note_id: str, **changes: object) -> Note:
        """Apply a partial update; status can only move forward to completed."""

        unknown = set(changes) - _NOTE_UPDATABLE_FIELDS
        if unknown:
            raise KnowledgeStoreError(f"Unsupported note fields: {', '.join(sorted(unknown))}")

        with Session(self.engine) as session:
            row = session.get(NoteRow, note_id)
            if row is None:
                raise NoteNotFoundError(f"Note not found: {note_id}")

            if "status" in changes:
                status = NoteStatus(_enum_value(changes["status"]))
                if row.status == NoteStatus.COMPLETED.value and status != NoteStatus.COMPLETED:
                    raise KnowledgeStoreError(f"Note {note_id} is already completed")
                row.status = status.value
            if "title" in changes:
                row.title = str(changes["title"]).strip() or row.title
            if "body" in changes:
                row.body = str(changes["body"]).strip()
            if "tags" in changes:
                row.tags_json = json.dumps(list(normalize_tags(changes["tags"])))  # type: ignore[arg-type]
            if "priority" in changes:
                row.priority = Priority.parse(_enum_value(changes["priority"])).value
            if "project_id" in changes:
                project_id = str(changes["project_id"]).strip() or DEFAULT_PROJECT_ID
                _ensure_project_row(session, project_id)
                row.project_id = project_id

            row.updated_at = utc_now()
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_note(row)

    def list_notes(self, *, status: NoteStatus | None = None) -> list[Note]:
        """Notes ordered newest first."""

        with Session(self.engine) as session:
            statement = select(NoteRow)
            if status is not None:
                statement = statement.where(NoteRow.status == status.value)
            rows = session.exec(
                statement.order_by(col(NoteRow.created_at).desc(), col(NoteRow.note_id).asc()),
            ).all()
            return [_to_note(row) for row in rows]

    def search_notes(self, query: str) -> list[NoteSearchHit]:
        """Case-insensitive search over title, body and tags; title hits first."""

        needle = query.strip().lower()
        if not needle:
            return []
        hits: list[NoteSearchHit] = []
        for note in self.list_notes():
            matched: list[str] = []
            if needle in note.title.lower():
                matched.append("title")
            if needle in note.body.lower():
                matched.append("body")
            if any(needle in tag.lower() for tag in note.tags):
                matched.append("tags")
            if matched:
                hits.append(NoteSearchHit(note=note, matched_fields=tuple(matched)))
        hits.sort(key=lambda hit: 0 if "title" in hit.matched_fields else 1)
        return hits

    # -- projects --------------------------------------------------------------

    def get_project(self, project_id: str) -> Project | None:
        with Session(self.engine) as session:
            row = session.get(ProjectRow, project_id)
            if row is None:
                return None
            return _to_project(row, note_ids=_project_note_ids(session, project_id))

    def ensure_project(self, project_id: str) -> Project:
        """Return the project, creating it on first use."""

        with Session(self.engine) as session:
            row = _ensure_project_row(session, project_id)
            session.commit()
            session.refresh(row)
            return _to_project(row, note_ids=_project_note_ids(session, project_id))

    def create_project(self, name: str, description: str = "") -> Project:
        """Create a project whose id is derived from its name."""

        project_id = slugify(name)
        if not project_id:
            raise KnowledgeStoreError(f"Invalid project name: {name!r}")
        now = utc_now()
        with Session(self.engine) as session:
            if session.get(ProjectRow, project_id) is not None:
                raise KnowledgeStoreError(f"Project already exists: {project_id}")
            row = ProjectRow(
                project_id=project_id,
                name=name.strip(),
                description=description.strip(),
                status="active",
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_project(row)

    def list_projects(self) -> list[Project]:
        with Session(self.engine) as session:
            rows = session.exec(select(ProjectRow).order_by(col(ProjectRow.project_id))).all()
            return [
                _to_project(row, note_ids=_project_note_ids(session, row.project_id))
                for row in rows
            ]

    # -- agent profiles --------------------------------------------------------

    def get_agent_profile(self, agent_id: str) -> AgentProfile:
        """Return the stored profile or a default one for unknown agents."""

        with Session(self.engine) as session:
            row = session.get(AgentProfileRow, agent_id)
            if row is not None:
                return _to_agent_profile(row)
        return default_agent_profile(agent_id)

    def find_agent_profile(self, agent_id: str) -> AgentProfile | None:
        with Session(self.engine) as session:
            row = session.get(AgentProfileRow, agent_id)
            return _to_agent_profile(row) if row is not None else None

    def save_agent_profile(self, profile: AgentProfile) -> AgentProfile:
        """Insert or replace an agent profile."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(AgentProfileRow, profile.agent_id)
            if row is None:
                row = AgentProfileRow(agent_id=profile.agent_id, updated_at=now)
            row.agent_type = profile.agent_type
            row.capabilities_json = json.dumps(list(profile.capabilities))
            row.command_template = profile.command_template
            row.instructions = profile.instructions
            row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_agent_profile(row)

    def list_agent_profiles(self) -> list[AgentProfile]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(AgentProfileRow).order_by(col(AgentProfileRow.agent_id)),
            ).all()
            return [_to_agent_profile(row) for row in rows]

    # -- stats -----------------------------------------------------------------

    def stats(self) -> KnowledgeStats:
        with Session(self.engine) as session:
            status_counts = dict(
                session.exec(
                    select(NoteRow.status, func.count()).group_by(NoteRow.status),
                ).all(),
            )
            projects = session.exec(select(func.count()).select_from(ProjectRow)).one()
            agents = session.exec(select(func.count()).select_from(AgentProfileRow)).one()
        return KnowledgeStats(
            notes=sum(status_counts.values()),
            projects=int(projects),
            agents=int(agents),
            pending=int(status_counts.get(NoteStatus.PENDING.value, 0)),
            completed=int(status_counts.get(NoteStatus.COMPLETED.value, 0)),
        )


def default_agent_profile(agent_id: str) -> AgentProfile:
    """Profile used for agents without a stored definition."""

    return AgentProfile(
        agent_id=agent_id,
        capabilities=DEFAULT_AGENT_CAPABILITIES,
        agent_type="llm",
        instructions=_DEFAULT_AGENT_INSTRUCTIONS.format(agent_id=agent_id),
    )


def _enum_value(value: object) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _ensure_project_row(session: Session, project_id: str) -> ProjectRow:
    row = session.get(ProjectRow, project_id)
    if row is not None:
        return row
    now = utc_now()
    row = ProjectRow(
        project_id=project_id,
        name=project_id,
        description="",
        status="active",
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    # Notes reference projects by foreign key; insert before the note update.
    session.flush()
    logger.info("Auto-created project %s", project_id)
    return row


def _touch_project(session: Session, project_id: str) -> None:
    row = session.get(ProjectRow, project_id)
    if row is not None:
        row.updated_at = utc_now()
        session.add(row)


def _project_note_ids(session: Session, project_id: str) -> tuple[str, ...]:
    rows = session.exec(
        select(NoteRow.note_id)
        .where(NoteRow.project_id == project_id)
        .order_by(col(NoteRow.created_at).asc(), col(NoteRow.note_id).asc()),
    ).all()
    return tuple(rows)


def _to_note(row: NoteRow) -> Note:
    return Note(
        note_id=row.note_id,
        title=row.title,
        body=row.body,
        project_id=row.project_id,
        tags=tuple(json.loads(row.tags_json or "[]")),
        priority=Priority.parse(row.priority),
        status=NoteStatus(row.status),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _to_project(row: ProjectRow, *, note_ids: tuple[str, ...] = ()) -> Project:
    return Project(
        project_id=row.project_id,
        name=row.name,
        description=row.description,
        status=row.status,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        note_ids=note_ids,
    )


def _to_agent_profile(row: AgentProfileRow) -> AgentProfile:
    return AgentProfile(
        agent_id=row.agent_id,
        capabilities=tuple(json.loads(row.capabilities_json or "[]")),
        command_template=row.command_template,
        agent_type=row.agent_type,
        instructions=row.instructions,
        updated_at=as_utc(row.updated_at),
    )
