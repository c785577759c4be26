from __future__ import annotations

import allure
import pytest

from swarm_manager.knowledge.models import AgentProfile, NoteStatus, Priority
from swarm_manager.knowledge.repository import (
    DEFAULT_AGENT_CAPABILITIES,
    KnowledgeStore,
    KnowledgeStoreError,
    NoteNotFoundError,
)

pytestmark = [
    allure.epic("Knowledge Store"),
    allure.feature("Notes, Projects & Agents"),
]


def test_add_note_derives_title_and_creates_project(knowledge: KnowledgeStore) -> None:
    note = knowledge.add_note(
        "Investigate caching strategy\nfor the public API",
        project_id="infra",
        tags=("research", "research", "perf"),
        priority="high",
    )

    assert note.title == "Investigate caching strategy"
    assert note.project_id == "infra"
    assert note.tags == ("research", "perf")
    assert note.priority == Priority.HIGH
    assert note.status == NoteStatus.PENDING
    assert note.created_at.tzinfo is not None

    project = knowledge.get_project("infra")
    assert project is not None
    assert project.note_ids == (note.note_id,)
    assert knowledge.require_note(note.note_id) == note


def test_add_note_defaults(knowledge: KnowledgeStore) -> None:
    note = knowledge.add_note("  hello  ", title="Greeting")

    assert note.body == "hello"
    assert note.title == "Greeting"
    assert note.project_id == "general"
    assert note.priority == Priority.MEDIUM


def test_missing_note(knowledge: KnowledgeStore) -> None:
    assert knowledge.get_note("nope") is None
    with pytest.raises(NoteNotFoundError):
        knowledge.require_note("nope")
    with pytest.raises(NoteNotFoundError):
        knowledge.update_note("nope", status=NoteStatus.COMPLETED)


def test_update_note_fields(knowledge: KnowledgeStore) -> None:
    note = knowledge.add_note("draft")

    updated = knowledge.update_note(
        note.note_id,
        title="Final",
        tags=["x"],
        priority=Priority.LOW,
        project_id="web",
    )

    assert updated.title == "Final"
    assert updated.tags == ("x",)
    assert updated.priority == Priority.LOW
    assert updated.project_id == "web"
    assert updated.updated_at >= note.updated_at
    assert knowledge.get_project("web") is not None


def test_completed_note_cannot_reopen(knowledge: KnowledgeStore) -> None:
    note = knowledge.add_note("ship it")
    knowledge.update_note(note.note_id, status=NoteStatus.COMPLETED)

    # Completing again is a no-op transition.
    again = knowledge.update_note(note.note_id, status="completed")
    assert again.status == NoteStatus.COMPLETED

    with pytest.raises(KnowledgeStoreError, match="already completed"):
        knowledge.update_note(note.note_id, status=NoteStatus.PENDING)


def test_update_rejects_unknown_fields(knowledge: KnowledgeStore) -> None:
    note = knowledge.add_note("ship it")

    with pytest.raises(KnowledgeStoreError, match="Unsupported note fields"):
        knowledge.update_note(note.note_id, color="red")


def test_list_and_search_notes(knowledge: KnowledgeStore) -> None:
    first = knowledge.add_note("Body mentions cache invalidation", title="Invalidation")
    second = knowledge.add_note("Unrelated body", title="Cache warmup")
    knowledge.add_note("Nothing here", tags=("misc",))

    assert {note.note_id for note in knowledge.list_notes()} >= {first.note_id, second.note_id}
    assert len(knowledge.list_notes(status=NoteStatus.COMPLETED)) == 0

    hits = knowledge.search_notes("CACHE")
    assert [hit.note.note_id for hit in hits] == [second.note_id, first.note_id]
    assert hits[0].matched_fields == ("title",)
    assert hits[1].matched_fields == ("body",)
    assert [hit.matched_fields for hit in knowledge.search_notes("misc")] == [("tags",)]
    assert knowledge.search_notes("   ") == []


def test_projects(knowledge: KnowledgeStore) -> None:
    project = knowledge.create_project("Mobile App", "iOS and Android")

    assert project.project_id == "mobile-app"
    assert project.status == "active"
    with pytest.raises(KnowledgeStoreError, match="already exists"):
        knowledge.create_project("Mobile App")
    with pytest.raises(KnowledgeStoreError, match="Invalid project name"):
        knowledge.create_project("???")

    knowledge.ensure_project("general")
    assert [item.project_id for item in knowledge.list_projects()] == ["general", "mobile-app"]


def test_agent_profiles(knowledge: KnowledgeStore) -> None:
    fallback = knowledge.get_agent_profile("ghost")
    assert fallback.capabilities == DEFAULT_AGENT_CAPABILITIES
    assert "You are ghost" in fallback.instructions
    assert knowledge.find_agent_profile("ghost") is None

    saved = knowledge.save_agent_profile(
        AgentProfile(
            agent_id="local",
            capabilities=("execute",),
            command_template="local-agent {prompt}",
        ),
    )
    assert saved.updated_at is not None

    knowledge.save_agent_profile(
        AgentProfile(agent_id="local", capabilities=("execute", "review")),
    )
    stored = knowledge.get_agent_profile("local")
    assert stored.capabilities == ("execute", "review")
    assert stored.can_handle("review", "fix")
    assert [profile.agent_id for profile in knowledge.list_agent_profiles()] == ["local"]


def test_stats(knowledge: KnowledgeStore) -> None:
    note = knowledge.add_note("one #a")
    knowledge.add_note("two", project_id="b")
    knowledge.update_note(note.note_id, status=NoteStatus.COMPLETED)
    knowledge.save_agent_profile(AgentProfile(agent_id="x", capabilities=("execute",)))

    stats = knowledge.stats()

    assert stats.notes == 2
    assert stats.pending == 1
    assert stats.completed == 1
    assert stats.projects == 2
    assert stats.agents == 1
