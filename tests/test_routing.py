from __future__ import annotations

import allure
import pytest

from support import make_note
from swarm_manager.config import OrchestratorSettings
from swarm_manager.knowledge.models import AgentProfile
from swarm_manager.orchestrator.engine import TaskEngine
from swarm_manager.orchestrator.errors import AgentSelectionError
from swarm_manager.orchestrator.models import Task, TaskType
from swarm_manager.orchestrator.routing import AgentRoster, select_agent

pytestmark = [
    allure.epic("Task Scheduling"),
    allure.feature("Agent Routing"),
]


def _tasks() -> dict[TaskType, Task]:
    tasks = TaskEngine().decompose(make_note("Investigate and design a caching layer, then build it"))
    return {task.task_type: task for task in tasks}


def _roster(**overrides: object) -> AgentRoster:
    stored = overrides.pop("stored_profiles", ())
    return AgentRoster.from_settings(OrchestratorSettings(**overrides), stored_profiles=stored)


def test_builtin_roster_uses_configured_templates() -> None:
    roster = _roster(agent_command_templates={"codex": "my-codex {prompt}"})

    assert [profile.agent_id for profile in roster.profiles()] == [
        "claude",
        "codex",
        "gemini",
        "jules",
    ]
    assert roster.get("CODEX").command_template == "my-codex {prompt}"
    assert roster.get("claude").command_template == ""


def test_capability_matching_by_phase() -> None:
    roster = _roster()
    tasks = _tasks()

    assert [agent.agent_id for agent in roster.capable(tasks[TaskType.RESEARCH])] == [
        "claude",
        "gemini",
    ]
    assert [agent.agent_id for agent in roster.capable(tasks[TaskType.EXECUTION])] == [
        "claude",
        "codex",
        "gemini",
        "jules",
    ]
    assert [agent.agent_id for agent in roster.capable(tasks[TaskType.REVIEW])] == ["claude"]


def test_single_match_is_used_directly() -> None:
    selection = select_agent(_tasks()[TaskType.REVIEW], _roster(), chooser=lambda *_: "gemini")

    assert selection.agent.agent_id == "claude"
    assert selection.reason == "single_match"


def test_chooser_decides_between_several_agents() -> None:
    offered: list[list[str]] = []

    def chooser(task: Task, candidates: list[AgentProfile]) -> str:
        offered.append([candidate.agent_id for candidate in candidates])
        return "Gemini"

    selection = select_agent(_tasks()[TaskType.RESEARCH], _roster(), chooser=chooser)

    assert selection.agent.agent_id == "gemini"
    assert selection.reason == "chooser"
    assert offered == [["claude", "gemini"]]


def test_unattended_and_invalid_choices_take_first_by_id() -> None:
    task = _tasks()[TaskType.EXECUTION]

    unattended = select_agent(task, _roster(), chooser=lambda *_: "jules", unattended=True)
    invalid = select_agent(task, _roster(), chooser=lambda *_: "nobody")

    assert (unattended.agent.agent_id, unattended.reason) == ("claude", "first_by_id")
    assert (invalid.agent.agent_id, invalid.reason) == ("claude", "first_by_id")


def test_stored_profiles_override_builtins() -> None:
    stored = AgentProfile(agent_id="Claude", capabilities=("research",), instructions="custom")
    local = AgentProfile(
        agent_id="local",
        capabilities=("review",),
        command_template="local-agent {prompt_file}",
    )
    roster = _roster(
        agent_command_templates={"claude": "claude -p {prompt}"},
        stored_profiles=(stored, local),
    )

    claude = roster.get("claude")
    assert claude.capabilities == ("research",)
    assert claude.command_template == "claude -p {prompt}"
    assert claude.instructions == "custom"

    selection = select_agent(_tasks()[TaskType.REVIEW], roster)
    assert (selection.agent.agent_id, selection.reason) == ("local", "single_match")


def test_default_fallback_when_nobody_is_capable() -> None:
    stored = AgentProfile(agent_id="claude", capabilities=("research",))
    roster = _roster(default_agent="claude", stored_profiles=(stored,))

    selection = select_agent(_tasks()[TaskType.REVIEW], roster)

    assert selection.agent.agent_id == "claude"
    assert selection.reason == "default_fallback"


def test_unknown_default_agent_gets_default_profile() -> None:
    stored = AgentProfile(agent_id="claude", capabilities=("research",))
    roster = _roster(
        default_agent="house",
        agent_command_templates={"house": "house-agent {prompt}"},
        stored_profiles=(stored,),
    )

    profile = select_agent(_tasks()[TaskType.REVIEW], roster).agent

    assert profile.agent_id == "house"
    assert profile.command_template == "house-agent {prompt}"
    assert "review" in profile.capabilities


def test_empty_default_agent_raises() -> None:
    stored = AgentProfile(agent_id="claude", capabilities=("research",))
    roster = _roster(default_agent="", stored_profiles=(stored,))

    with pytest.raises(AgentSelectionError):
        select_agent(_tasks()[TaskType.REVIEW], roster)
