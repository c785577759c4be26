from __future__ import annotations

import allure
import pytest

from support import make_note
from swarm_manager.knowledge.models import Priority
from swarm_manager.orchestrator.decomposer import (
    KeywordPhaseClassifier,
    PhaseSet,
    decompose_note,
    enumerated_steps,
    keyword_pattern,
)
from swarm_manager.orchestrator.models import TaskPhase, TaskType

pytestmark = [
    allure.epic("Task Scheduling"),
    allure.feature("Note Decomposition"),
]


def _types(specs) -> list[TaskType]:
    return [spec.task_type for spec in specs]


def test_research_keyword_puts_research_task_first() -> None:
    note = make_note("Investigate caching strategy for the API #infra @research")

    specs = decompose_note(note)

    assert specs[0].task_type == TaskType.RESEARCH
    assert specs[0].phase == TaskPhase.RESEARCH
    assert _types(specs) == [TaskType.RESEARCH, TaskType.PLANNING, TaskType.REVIEW]
    assert specs[0].title == f"Research: {note.title}"
    assert "USER NOTE:" in specs[0].description


def test_enumerated_lines_become_one_execution_task_each() -> None:
    note = make_note("1. Add login page\n2. Add logout button")

    specs = decompose_note(note)
    execution = [spec for spec in specs if spec.task_type == TaskType.EXECUTION]

    assert [spec.title for spec in execution] == ["Add login page", "Add logout button"]
    assert [spec.description for spec in execution] == [
        "Execute: Add login page",
        "Execute: Add logout button",
    ]
    assert all(spec.estimated_duration == 15 for spec in execution)
    assert execution[0].checklist == ("Task completed", "Verified", "No errors")
    assert specs[-1].task_type == TaskType.REVIEW


def test_bullets_and_long_lines_are_truncated_to_fifty_chars() -> None:
    long_step = "Write a migration that backfills every historic invoice row"
    note = make_note(f"Please do this:\n- {long_step}\n* Add an index")

    steps = enumerated_steps(note.body)
    specs = decompose_note(note)
    titles = [spec.title for spec in specs if spec.task_type == TaskType.EXECUTION]

    assert steps == [long_step, "Add an index"]
    assert titles == [long_step[:50], "Add an index"]


def test_bug_vocabulary_selects_diagnose_and_fix_subtasks() -> None:
    specs = decompose_note(make_note("Fix login bug in the checkout flow"))

    assert _types(specs) == [TaskType.EXECUTION, TaskType.EXECUTION, TaskType.REVIEW]
    assert [spec.title for spec in specs[:2]] == ["Diagnose issue", "Implement fix"]
    assert specs[0].agent_type == "debugger"
    assert specs[1].agent_type == "executor"


def test_feature_vocabulary_selects_implementation_and_tests() -> None:
    specs = decompose_note(make_note("Add a dark mode feature to the settings page"))

    execution = [spec for spec in specs if spec.task_type == TaskType.EXECUTION]
    assert [spec.title for spec in execution] == ["Implement core functionality", "Add tests"]
    assert [spec.estimated_duration for spec in execution] == [20, 10]
    # "add" is not one of the clear action verbs, so research stays on.
    assert specs[0].task_type == TaskType.RESEARCH


def test_generic_execution_falls_back_to_whole_body() -> None:
    body = "Build the release pipeline for nightly artifacts"
    specs = decompose_note(make_note(body))

    assert _types(specs) == [TaskType.EXECUTION, TaskType.REVIEW]
    assert specs[0].title == "Implementation"
    assert specs[0].description == body


def test_review_is_always_last() -> None:
    for body in ("Research options", "Create a widget", "Plan the quarter", "hello"):
        specs = decompose_note(make_note(body))
        assert specs[-1].task_type == TaskType.REVIEW
        assert specs[-1].phase == TaskPhase.REVIEW


def test_priority_gating_for_research_and_review() -> None:
    high = decompose_note(make_note("Investigate and fix slow query", priority=Priority.HIGH))
    low = decompose_note(make_note("Investigate and fix slow query", priority=Priority.LOW))

    assert high[0].priority == Priority.HIGH
    assert high[-1].priority == Priority.HIGH
    assert low[0].priority == Priority.MEDIUM
    assert low[-1].priority == Priority.MEDIUM
    assert {spec.priority for spec in low if spec.task_type == TaskType.EXECUTION} == {
        Priority.LOW,
    }


def test_planning_prompt_mentions_research_context() -> None:
    with_research = decompose_note(make_note("Explore and design the plugin system"))
    without_research = decompose_note(make_note("Design and implement the plugin system"))

    plan_with = next(spec for spec in with_research if spec.task_type == TaskType.PLANNING)
    plan_without = next(spec for spec in without_research if spec.task_type == TaskType.PLANNING)
    assert "Research phase completed" in plan_with.description
    assert "plan from scratch" in plan_without.description


@pytest.mark.parametrize(
    ("keyword", "text", "expected"),
    [
        ("add", "adds a flag", True),
        ("add", "added a flag", True),
        ("add", "address the backlog", False),
        ("investigate", "investigating a leak", True),
        ("study", "two studies", True),
        ("plan", "planning session", True),
        ("ui", "build the thing", False),
        ("ui", "new UI theme", True),
        ("how to", "how  to deploy", True),
        ("code", "coding standards", True),
    ],
)
def test_keyword_pattern_matches_whole_words_with_inflections(
    keyword: str,
    text: str,
    expected: bool,
) -> None:
    assert bool(keyword_pattern(keyword).search(text)) is expected


def test_classifier_defaults_to_research_without_action_verb() -> None:
    phases = KeywordPhaseClassifier().classify("thoughts about onboarding")

    assert phases == PhaseSet(needs_research=True)


def test_custom_classifier_is_pluggable() -> None:
    class ExecuteOnly:
        def classify(self, text: str) -> PhaseSet:
            return PhaseSet(needs_execution=True)

    specs = decompose_note(make_note("Investigate everything"), ExecuteOnly())

    assert _types(specs) == [TaskType.EXECUTION, TaskType.REVIEW]
