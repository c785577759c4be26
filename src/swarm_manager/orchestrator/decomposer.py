"""Rule-based decomposition of a note into a linear chain of task specs."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from swarm_manager.knowledge.models import Note, Priority
from swarm_manager.orchestrator.models import TaskPhase, TaskSpec, TaskType
from swarm_manager.orchestrator.prompts import (
    DEFAULT_EXECUTION_CHECKLIST,
    ENUMERATED_STEP_CHECKLIST,
    PLANNING_CHECKLIST,
    RESEARCH_CHECKLIST,
    REVIEW_CHECKLIST,
    build_planning_prompt,
    build_research_prompt,
    build_review_prompt,
)

RESEARCH_KEYWORDS = (
    "investigate",
    "explore",
    "research",
    "analyze",
    "find",
    "evaluate",
    "assess",
    "study",
    "understand",
)
ACTION_VERBS = ("create", "build", "implement", "fix")
PLANNING_KEYWORDS = (
    "plan",
    "design",
    "architecture",
    "structure",
    "organize",
    "how to",
    "best approach",
)
DESIGN_KEYWORDS = ("ui", "interface", "visual", "layout", "component", "schema", "api", "system")
EXECUTION_KEYWORDS = ("create", "build", "implement", "fix", "add", "write", "develop", "code")
FEATURE_KEYWORDS = ("feature", "add")
BUG_KEYWORDS = ("fix", "bug")

RESEARCH_MINUTES = 5
PLANNING_MINUTES = 10
ENUMERATED_STEP_MINUTES = 15
REVIEW_MINUTES = 5
MAX_STEP_TITLE_CHARS = 50

_ENUMERATED_LINE = re.compile(r"^\s*(\d+\.|[-*])\s+(.+)")


@dataclass(slots=True, frozen=True)
class PhaseSet:
    """Phases a note needs; review is always on."""

    needs_research: bool = False
    needs_planning: bool = False
    needs_design: bool = False
    needs_execution: bool = False
    needs_review: bool = True


class PhaseClassifier(Protocol):
    """Pluggable text classifier used by the decomposer."""

    def classify(self, text: str) -> PhaseSet:
        """Return the phases the text calls for."""


def keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Whole-word pattern for a keyword and its common inflections.

    `add` matches adds/added/adding, `study` matches studies and
    `ui` never matches inside `build`.
    """

    words = keyword.lower().split()
    *head, last = words
    if last.endswith("y") and len(last) > 2:
        tail = re.escape(last[:-1]) + r"(?:y|ies|ied|ying)"
    elif last.endswith("e") and len(last) > 2:
        tail = re.escape(last[:-1]) + r"(?:e|es|ed|ing|er|ers)"
    else:
        tail = re.escape(last) + r"(?:s|es|ed|ing|d|er|ers|ning|ned|ner|ners)?"
    parts = [re.escape(word) for word in head] + [tail]
    return re.compile(r"\b" + r"\s+".join(parts) + r"\b", re.IGNORECASE)


class KeywordMatcher:
    """Precompiled alternation over a keyword set."""

    def __init__(self, keywords: Iterable[str]) -> None:
        self.keywords = tuple(keywords)
        self._patterns = tuple(keyword_pattern(keyword) for keyword in self.keywords)

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self._patterns)


class KeywordPhaseClassifier:
    """Default classifier driven by fixed keyword sets."""

    def __init__(self) -> None:
        self._research = KeywordMatcher(RESEARCH_KEYWORDS)
        self._action = KeywordMatcher(ACTION_VERBS)
        self._planning = KeywordMatcher(PLANNING_KEYWORDS)
        self._design = KeywordMatcher(DESIGN_KEYWORDS)
        self._execution = KeywordMatcher(EXECUTION_KEYWORDS)

    def classify(self, text: str) -> PhaseSet:
        # Research also applies when the text carries no clear action verb.
        needs_research = self._research.matches(text) or not self._action.matches(text)
        return PhaseSet(
            needs_research=needs_research,
            needs_planning=self._planning.matches(text),
            needs_design=self._design.matches(text),
            needs_execution=self._execution.matches(text),
        )


_DEFAULT_CLASSIFIER = KeywordPhaseClassifier()
_FEATURE_MATCHER = KeywordMatcher(FEATURE_KEYWORDS)
_BUG_MATCHER = KeywordMatcher(BUG_KEYWORDS)


def decompose_note(note: Note, classifier: PhaseClassifier | None = None) -> list[TaskSpec]:
    """Turn a note into an ordered task chain.

    Task k depends on task k-1; the caller wires dependencies when it
    registers the returned specs. The result always ends with a review task.
    """

    phases = (classifier or _DEFAULT_CLASSIFIER).classify(note.body)
    gated_priority = Priority.HIGH if note.priority == Priority.HIGH else Priority.MEDIUM
    specs: list[TaskSpec] = []

    if phases.needs_research:
        specs.append(
            TaskSpec(
                task_type=TaskType.RESEARCH,
                phase=TaskPhase.RESEARCH,
                title=f"Research: {note.title}",
                description=build_research_prompt(title=note.title, body=note.body),
                agent_type="researcher",
                priority=gated_priority,
                estimated_duration=RESEARCH_MINUTES,
                checklist=RESEARCH_CHECKLIST,
            ),
        )

    if phases.needs_planning or phases.needs_design:
        specs.append(
            TaskSpec(
                task_type=TaskType.PLANNING,
                phase=TaskPhase.PLAN,
                title=f"Plan: {note.title}",
                description=build_planning_prompt(
                    title=note.title,
                    body=note.body,
                    after_research=phases.needs_research,
                ),
                agent_type="planner",
                priority=note.priority,
                estimated_duration=PLANNING_MINUTES,
                checklist=PLANNING_CHECKLIST,
            ),
        )

    if phases.needs_execution:
        specs.extend(_execution_specs(note))

    specs.append(
        TaskSpec(
            task_type=TaskType.REVIEW,
            phase=TaskPhase.REVIEW,
            title=f"Review: {note.title}",
            description=build_review_prompt(title=note.title),
            agent_type="reviewer",
            priority=gated_priority,
            estimated_duration=REVIEW_MINUTES,
            checklist=REVIEW_CHECKLIST,
        ),
    )
    return specs


def enumerated_steps(body: str) -> list[str]:
    """Text of every numbered (`1.`) or bulleted (`-`, `*`) line."""

    steps: list[str] = []
    for line in body.splitlines():
        match = _ENUMERATED_LINE.match(line)
        if match is not None:
            steps.append(match.group(2).strip())
    return steps


def _execution_specs(note: Note) -> list[TaskSpec]:
    steps = enumerated_steps(note.body)
    if steps:
        return [
            _execution_spec(
                note,
                title=step[:MAX_STEP_TITLE_CHARS],
                description=f"Execute: {step}",
                minutes=ENUMERATED_STEP_MINUTES,
                checklist=ENUMERATED_STEP_CHECKLIST,
            )
            for step in steps
        ]

    specs: list[TaskSpec] = []
    if _FEATURE_MATCHER.matches(note.body):
        specs.append(
            _execution_spec(
                note,
                title="Implement core functionality",
                description=f'Implement the main feature described in "{note.title}"',
                minutes=20,
                checklist=("Core feature works", "Tests pass", "Code quality acceptable"),
            ),
        )
        specs.append(
            _execution_spec(
                note,
                title="Add tests",
                description="Write tests for the implemented functionality",
                minutes=10,
                checklist=("Test coverage adequate", "All tests pass"),
            ),
        )
    if _BUG_MATCHER.matches(note.body):
        specs.append(
            _execution_spec(
                note,
                title="Diagnose issue",
                description="Identify root cause of the bug",
                minutes=10,
                checklist=("Root cause identified",),
                agent_type="debugger",
            ),
        )
        specs.append(
            _execution_spec(
                note,
                title="Implement fix",
                description="Fix the identified issue",
                minutes=15,
                checklist=("Fix verified", "No regressions"),
            ),
        )
    if not specs:
        specs.append(
            _execution_spec(
                note,
                title="Implementation",
                description=note.body,
                minutes=20,
                checklist=("Implementation complete", "Tested", "Verified"),
            ),
        )
    return specs


def _execution_spec(  # noqa: PLR0913
    note: Note,
    *,
    title: str,
    description: str,
    minutes: float,
    checklist: tuple[str, ...] = DEFAULT_EXECUTION_CHECKLIST,
    agent_type: str = "executor",
) -> TaskSpec:
    return TaskSpec(
        task_type=TaskType.EXECUTION,
        phase=TaskPhase.EXECUTE,
        title=title,
        description=description,
        agent_type=agent_type,
        priority=note.priority,
        estimated_duration=minutes,
        checklist=checklist,
    )
