"""Prompt templates for generated research, planning and review tasks."""

from __future__ import annotations

RESEARCH_CHECKLIST = (
    "Identified key requirements",
    "Documented technical constraints",
    "Found relevant examples/patterns",
    "Assessed feasibility",
)

PLANNING_CHECKLIST = (
    "Created detailed implementation plan",
    "Breakdown into subtasks",
    "Identified dependencies",
    "Estimated resources needed",
)

REVIEW_CHECKLIST = (
    "Verified against original requirements",
    "Tested edge cases",
    "Documentation complete",
    "Ready for deployment",
)

DEFAULT_EXECUTION_CHECKLIST = (
    "Implementation complete",
    "Tested functionality",
    "No obvious errors",
)

ENUMERATED_STEP_CHECKLIST = ("Task completed", "Verified", "No errors")

_RESEARCH_TEMPLATE = """\
Research Task: {title}

USER NOTE:
{body}

OBJECTIVES:
1. Understand the full scope and requirements
2. Identify technical constraints and dependencies
3. Find relevant patterns, examples, or best practices
4. Assess feasibility and potential risks

DELIVERABLES:
- Summary of requirements
- Technical constraints document
- Relevant patterns/references
- Feasibility assessment
- Recommendations for next steps"""

_PLANNING_TEMPLATE = """\
Planning Task: {title}

USER NOTE:
{body}

CONTEXT:
{context}

OBJECTIVES:
1. Create a detailed implementation plan
2. Break down into clear subtasks
3. Identify dependencies and risks
4. Estimate resources and timeline
5. Design the architecture/approach

DELIVERABLES:
- Detailed implementation plan
- Subtask breakdown
- Dependency graph
- Risk assessment
- Resource estimates"""

_REVIEW_TEMPLATE = """\
Review Task: {title}

OBJECTIVES:
1. Verify implementation matches original requirements
2. Test functionality and edge cases
3. Check code quality and documentation
4. Identify any issues or improvements
5. Approve or request changes

CHECKLIST:
- Requirements met?
- Tests pass?
- Documentation complete?
- No obvious bugs?
- Production ready?

DECISION:
APPROVE or REQUEST CHANGES (with specific feedback)"""

_AGENT_PROMPT_TEMPLATE = """\
You are operating in an isolated sandbox for a specific task.

Task: {title}
Task ID: {task_id}
Type: {task_type}

{description}

Your working directory is: {workspace}
Save outputs to: {output_dir}
Task context: {task_context}

When complete, create a completion-report.md in the output directory with:
1. Summary of what was done
2. Results/outcomes
3. Any issues encountered
4. Verification of checklist items
{checklist}"""


def build_research_prompt(*, title: str, body: str) -> str:
    return _RESEARCH_TEMPLATE.format(title=title, body=body.strip())


def build_planning_prompt(*, title: str, body: str, after_research: bool) -> str:
    context = (
        "Research phase completed. Use research findings."
        if after_research
        else "No research phase - plan from scratch."
    )
    return _PLANNING_TEMPLATE.format(title=title, body=body.strip(), context=context)


def build_review_prompt(*, title: str) -> str:
    return _REVIEW_TEMPLATE.format(title=title)


def build_agent_prompt(  # noqa: PLR0913
    *,
    task_id: str,
    title: str,
    task_type: str,
    description: str,
    checklist: tuple[str, ...],
    workspace: str,
    output_dir: str,
    task_context: str,
) -> str:
    """Instructions handed to the agent process for one sandboxed task."""

    checklist_text = ""
    if checklist:
        checklist_text = "\nVerification checklist:\n" + "\n".join(
            f"- {item}" for item in checklist
        )
    return _AGENT_PROMPT_TEMPLATE.format(
        title=title,
        task_id=task_id,
        task_type=task_type,
        description=description.strip(),
        workspace=workspace,
        output_dir=output_dir,
        task_context=task_context,
        checklist=checklist_text,
    )
