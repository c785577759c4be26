"""Agent roster and capability-based agent selection for tasks."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from swarm_manager.config import OrchestratorSettings
from swarm_manager.knowledge.models import AgentProfile
from swarm_manager.knowledge.repository import default_agent_profile
from swarm_manager.orchestrator.errors import AgentSelectionError
from swarm_manager.orchestrator.models import Task

logger = logging.getLogger(__name__)

BUILTIN_AGENTS: dict[str, tuple[str, ...]] = {
    "claude": ("research", "plan", "execute", "review"),
    "gemini": ("research", "plan", "execute"),
    "codex": ("execute", "code"),
    "jules": ("execute", "fix"),
}

AgentChooser = Callable[[Task, list[AgentProfile]], "AgentProfile | str | None"]


@dataclass(slots=True)
class AgentSelection:
    """Chosen agent and the rule that picked it."""

    agent: AgentProfile
    reason: str


@dataclass(slots=True)
class AgentRoster:
    """Built-in agents merged with profiles saved in the knowledge store."""

    agents: dict[str, AgentProfile]
    default_agent: str
    command_templates: dict[str, str]

    @classmethod
    def from_settings(
        cls,
        settings: OrchestratorSettings,
        *,
        stored_profiles: Iterable[AgentProfile] = (),
    ) -> AgentRoster:
        """Build the roster; stored profiles override built-ins with the same id."""

        templates = dict(settings.agent_command_templates)
        agents = {
            agent_id: AgentProfile(
                agent_id=agent_id,
                capabilities=capabilities,
                command_template=templates.get(agent_id, ""),
            )
            for agent_id, capabilities in BUILTIN_AGENTS.items()
        }
        for profile in stored_profiles:
            agent_id = profile.agent_id.strip().lower()
            template = profile.command_template.strip() or templates.get(agent_id, "")
            agents[agent_id] = AgentProfile(
                agent_id=agent_id,
                capabilities=profile.capabilities,
                command_template=template,
                agent_type=profile.agent_type,
                instructions=profile.instructions,
                updated_at=profile.updated_at,
            )
        return cls(
            agents=agents,
            default_agent=settings.default_agent.strip().lower(),
            command_templates=templates,
        )

    def get(self, agent_id: str) -> AgentProfile | None:
        return self.agents.get(agent_id.strip().lower())

    def profiles(self) -> list[AgentProfile]:
        return [self.agents[agent_id] for agent_id in sorted(self.agents)]

    def capable(self, task: Task) -> list[AgentProfile]:
        """Agents advertising the task's phase or type, ordered by id."""

        keys = (task.phase.value, task.task_type.value)
        return [profile for profile in self.profiles() if profile.can_handle(*keys)]

    def default_profile(self) -> AgentProfile:
        if not self.default_agent:
            raise AgentSelectionError("No capable agent found and no default agent configured.")
        profile = self.get(self.default_agent)
        if profile is not None:
            return profile
        fallback = default_agent_profile(self.default_agent)
        fallback.command_template = self.command_templates.get(self.default_agent, "")
        return fallback


def select_agent(
    task: Task,
    roster: AgentRoster,
    *,
    chooser: AgentChooser | None = None,
    unattended: bool = False,
) -> AgentSelection:
    """Pick an agent for a task.

    One capable agent is used directly. Several go to the chooser unless the
    run is unattended, in which case the first by id wins. With no capable
    agent the configured default is used and the fallback is logged.
    """

    candidates = roster.capable(task)
    if len(candidates) == 1:
        return AgentSelection(agent=candidates[0], reason="single_match")

    if candidates:
        if chooser is not None and not unattended:
            choice = chooser(task, candidates)
            chosen = _resolve_choice(choice, candidates)
            if chosen is not None:
                return AgentSelection(agent=chosen, reason="chooser")
            logger.info("Chooser returned no valid agent for task %s", task.task_id)
        return AgentSelection(agent=candidates[0], reason="first_by_id")

    profile = roster.default_profile()
    logger.warning(
        "No agent advertises %s/%s for task %s, falling back to default agent %s",
        task.phase.value,
        task.task_type.value,
        task.task_id,
        profile.agent_id,
    )
    return AgentSelection(agent=profile, reason="default_fallback")


def _resolve_choice(
    choice: AgentProfile | str | None,
    candidates: list[AgentProfile],
) -> AgentProfile | None:
    if choice is None:
        return None
    wanted = choice.agent_id if isinstance(choice, AgentProfile) else choice.strip().lower()
    for candidate in candidates:
        if candidate.agent_id == wanted:
            return candidate
    return None
