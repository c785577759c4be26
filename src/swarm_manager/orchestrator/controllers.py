"""Controllers for swarm-manager CLI commands and the interactive shell."""

from __future__ import annotations

import shlex
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from swarm_manager.config import Settings
from swarm_manager.knowledge.models import AgentProfile, Note, Priority
from swarm_manager.knowledge.parsing import parse_note_input
from swarm_manager.knowledge.repository import (
    KnowledgeStore,
    KnowledgeStoreError,
    NoteNotFoundError,
)
from swarm_manager.orchestrator.backend import CliAgentBackend
from swarm_manager.orchestrator.decomposer import decompose_note
from swarm_manager.orchestrator.engine import TaskEngine
from swarm_manager.orchestrator.errors import DecompositionError
from swarm_manager.orchestrator.metrics import (
    build_task_stats,
    render_agent_lines,
    render_queue_lines,
    render_sandbox_lines,
    render_stats_lines,
    render_status_lines,
    render_task_lines,
)
from swarm_manager.orchestrator.models import Task
from swarm_manager.orchestrator.orchestrator import (
    OrchestrationOutcome,
    Orchestrator,
    RunSummary,
)
from swarm_manager.orchestrator.routing import AgentChooser, AgentRoster
from swarm_manager.orchestrator.sandbox import SandboxManager

RECENT_SANDBOXES = 10
NOTE_PREVIEW_CHARS = 100


class CommandError(RuntimeError):
    """User-facing command failure; the CLI turns it into a click error."""


@dataclass(slots=True)
class NoteAddCommand:
    """CLI input for adding a note."""

    db_path: Path | None
    text: str
    title: str | None = None
    priority: str | None = None


@dataclass(slots=True)
class NotesListCommand:
    """CLI input for note listing and search."""

    db_path: Path | None
    query: str | None = None


@dataclass(slots=True)
class StoreCommand:
    """CLI input for commands that only need the database."""

    db_path: Path | None


@dataclass(slots=True)
class AgentInspectCommand:
    """CLI input for one agent profile."""

    db_path: Path | None
    agent_id: str


@dataclass(slots=True)
class DecomposeCommand:
    """CLI input for previewing a note decomposition."""

    db_path: Path | None
    note_id: str


@dataclass(slots=True)
class RunNoteCommand:
    """CLI input for decomposing a note and running its chain."""

    db_path: Path | None
    note_id: str
    max_tasks: int | None = None


@dataclass(slots=True)
class LogsCommand:
    """CLI input for sandbox listing or log output."""

    db_path: Path | None
    sandbox_id: str | None = None


@dataclass(slots=True)
class ManagerRuntime:
    """Everything one manager process owns."""

    settings: Settings
    knowledge: KnowledgeStore
    engine: TaskEngine
    sandboxes: SandboxManager
    roster: AgentRoster
    orchestrator: Orchestrator


class SwarmCliController:
    """Coordinates one-shot CLI operations."""

    def add_note(self, command: NoteAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _knowledge_store(settings) as knowledge:
            note = add_note_from_text(
                knowledge,
                command.text,
                title=command.title,
                priority=command.priority,
            )
        return render_note_added(note)

    def list_notes(self, command: NotesListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _knowledge_store(settings) as knowledge:
            if command.query:
                hits = knowledge.search_notes(command.query)
                if not hits:
                    return [f"No notes match {command.query!r}."]
                return [
                    line
                    for hit in hits
                    for line in render_note_lines(hit.note, matched=hit.matched_fields)
                ]
            return render_notes(knowledge.list_notes())

    def list_projects(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _knowledge_store(settings) as knowledge:
            return render_projects(knowledge)

    def list_agents(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _knowledge_store(settings) as knowledge:
            roster = build_roster(settings, knowledge)
        return render_agent_lines(roster.profiles(), default_agent=roster.default_agent)

    def inspect_agent(self, command: AgentInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _knowledge_store(settings) as knowledge:
            roster = build_roster(settings, knowledge)
            return render_agent_info(knowledge, roster, command.agent_id)

    def decompose(self, command: DecomposeCommand) -> list[str]:
        """Preview the task chain a note would produce, without scheduling it."""

        settings = Settings.from_env(db_path=command.db_path)
        with _knowledge_store(settings) as knowledge:
            note = _require_note(knowledge, command.note_id)
        if not note.body.strip():
            raise CommandError(f"Note {note.note_id} has no body to decompose.")
        specs = decompose_note(note)
        lines = [f"Decomposition of {note.note_id}: {len(specs)} tasks"]
        for index, spec in enumerate(specs, start=1):
            lines.append(
                f"{index}. {spec.task_type.value}: {spec.title} "
                f"(phase={spec.phase.value} agent={spec.agent_type} "
                f"~{spec.estimated_duration:g}min)",
            )
        return lines

    def run_note(self, command: RunNoteCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with manager_runtime(settings) as runtime:
            note = _require_note(runtime.knowledge, command.note_id)
            tasks = decompose_into_engine(runtime.engine, note)
            summary = runtime.orchestrator.run_until_idle(max_tasks=command.max_tasks)
            refreshed = runtime.knowledge.get_note(note.note_id) or note
            lines = [f"Created {len(tasks)} tasks for {note.note_id}"]
            lines.extend(outcome.describe() for outcome in summary.outcomes)
            lines.extend(render_run_summary(summary))
            lines.append(f"Note status: {refreshed.status.value}")
        return lines

    def logs(self, command: LogsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        manager = _sandbox_manager(settings)
        return render_logs(manager, command.sandbox_id)

    def status(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _knowledge_store(settings) as knowledge:
            stats = knowledge.stats()
        manager = _sandbox_manager(settings)
        lines = render_status_lines(
            knowledge=stats,
            queue=None,
            active_sandboxes=len(manager.active_sandboxes()),
        )
        lines.append(f"Sandboxes on disk: {len(manager.list_sandboxes())}")
        return lines


class ManagerShell:
    """Interactive manager session over one long-lived runtime."""

    COMMANDS = (
        ("help", "Show this help"),
        ("note <text>", "Add a note (#project, @tag markers)"),
        ("notes [query]", "List or search notes"),
        ("tasks", "List all tasks"),
        ("queue", "Show queue status and ready tasks"),
        ("decompose <note-id>", "Decompose a note into tasks"),
        ("orchestrate", "Run the next ready task"),
        ("auto", "Toggle auto-orchestration"),
        ("agents", "List agents"),
        ("agent <id>", "Show agent details"),
        ("projects", "List projects"),
        ("status", "System status"),
        ("stats", "Task statistics"),
        ("logs [sandbox-id]", "List sandboxes or show a log"),
        ("exit", "Quit"),
    )

    def __init__(
        self,
        runtime: ManagerRuntime,
        *,
        prompt: Callable[[str], str],
        confirm: Callable[[str], bool],
        echo: Callable[[str], None],
    ) -> None:
        self.runtime = runtime
        self._prompt = prompt
        self._confirm = confirm
        self._echo = echo
        self.finished = False
        runtime.orchestrator.chooser = self.choose_agent
        runtime.orchestrator.auto.on_outcome = self._report_auto_outcome

    def run(self) -> None:
        self._echo("swarm-manager shell. Type 'help' for commands.")
        while not self.finished:
            line = self._prompt("swarm")
            for output in self.handle(line):
                self._echo(output)

    def handle(self, line: str) -> list[str]:  # noqa: C901, PLR0911, PLR0912
        """Execute one shell line and return output lines."""

        command, _, argument = line.strip().partition(" ")
        command = command.lower()
        argument = argument.strip()
        try:
            if command in ("", "#"):
                return []
            if command in ("help", "?"):
                return [f"  {usage:<22} {text}" for usage, text in self.COMMANDS]
            if command in ("note", "add-note"):
                return self._add_note(argument)
            if command in ("notes", "list-notes"):
                return self._notes(argument)
            if command == "tasks":
                return render_task_lines(self.runtime.engine.all_tasks())
            if command == "queue":
                engine = self.runtime.engine
                return render_queue_lines(
                    status=engine.queue_status(),
                    ready=engine.ready_tasks(),
                    blocked=engine.blocked_tasks(),
                )
            if command == "decompose":
                return self._decompose(argument)
            if command == "orchestrate":
                return [self.runtime.orchestrator.orchestrate_next().describe()]
            if command == "auto":
                enabled = self.runtime.orchestrator.auto.toggle()
                return [f"Auto-orchestration {'enabled' if enabled else 'disabled'}."]
            if command == "agents":
                roster = self.runtime.roster
                return render_agent_lines(roster.profiles(), default_agent=roster.default_agent)
            if command == "agent":
                if not argument:
                    return ["Usage: agent <id>"]
                return render_agent_info(self.runtime.knowledge, self.runtime.roster, argument)
            if command == "projects":
                return render_projects(self.runtime.knowledge)
            if command == "status":
                return render_status_lines(
                    knowledge=self.runtime.knowledge.stats(),
                    queue=self.runtime.engine.queue_status(),
                    active_sandboxes=len(self.runtime.sandboxes.active_sandboxes()),
                    auto_enabled=self.runtime.orchestrator.auto.enabled,
                )
            if command == "stats":
                return render_stats_lines(
                    snapshot=build_task_stats(self.runtime.engine.all_tasks()),
                )
            if command == "logs":
                return render_logs(self.runtime.sandboxes, argument or None)
            if command in ("exit", "quit", "q"):
                self.finished = True
                return ["Bye."]
        except (CommandError, KnowledgeStoreError) as error:
            return [f"Error: {error}"]
        return [f"Unknown command: {command}. Type 'help' for commands."]

    def choose_agent(self, task: Task, candidates: list[AgentProfile]) -> str | None:
        self._echo(f"Multiple agents available for {task.task_type.value} task {task.title!r}:")
        for index, profile in enumerate(candidates, start=1):
            self._echo(f"{index}. {profile.agent_id} ({', '.join(profile.capabilities)})")
        answer = self._prompt("Select agent [1]").strip()
        if not answer:
            return candidates[0].agent_id
        if answer.isdigit() and 1 <= int(answer) <= len(candidates):
            return candidates[int(answer) - 1].agent_id
        return answer

    def _add_note(self, argument: str) -> list[str]:
        if not argument:
            return [
                "Usage: note <content>",
                "  note Add authentication feature #backend @feature",
                "  note Fix login bug #frontend @bug",
            ]
        note = add_note_from_text(self.runtime.knowledge, argument)
        lines = render_note_added(note)
        for line in lines:
            self._echo(line)
        if self._confirm("Decompose into tasks now?"):
            return self._decompose(note.note_id)
        return []

    def _notes(self, query: str) -> list[str]:
        knowledge = self.runtime.knowledge
        if query:
            hits = knowledge.search_notes(query)
            if not hits:
                return [f"No notes match {query!r}."]
            return [line for hit in hits for line in render_note_lines(hit.note)]
        return render_notes(knowledge.list_notes())

    def _decompose(self, note_id: str) -> list[str]:
        if not note_id:
            return ["Usage: decompose <note-id>"]
        note = _require_note(self.runtime.knowledge, shlex.split(note_id)[0])
        tasks = decompose_into_engine(self.runtime.engine, note)
        lines = [f"Created {len(tasks)} tasks for {note.title}"]
        lines.extend(
            f"{index}. {task.task_type.value}: {task.title} (agent={task.agent_type})"
            for index, task in enumerate(tasks, start=1)
        )
        lines.append("Type 'orchestrate' to execute the next task.")
        return lines

    def _report_auto_outcome(self, outcome: OrchestrationOutcome) -> None:
        if outcome.task is not None:
            self._echo(f"[auto] {outcome.describe()}")


@contextmanager
def manager_runtime(
    settings: Settings,
    *,
    chooser: AgentChooser | None = None,
) -> Iterator[ManagerRuntime]:
    """Build the manager stack from settings and tear it down afterwards."""

    settings.validate()
    with _knowledge_store(settings) as knowledge:
        engine = TaskEngine()
        sandboxes = _sandbox_manager(settings)
        roster = build_roster(settings, knowledge)
        orchestrator = Orchestrator(
            engine=engine,
            sandboxes=sandboxes,
            knowledge=knowledge,
            roster=roster,
            max_concurrent=settings.orchestrator.max_concurrent,
            poll_interval_seconds=settings.orchestrator.poll_interval_seconds,
            chooser=chooser,
        )
        try:
            yield ManagerRuntime(
                settings=settings,
                knowledge=knowledge,
                engine=engine,
                sandboxes=sandboxes,
                roster=roster,
                orchestrator=orchestrator,
            )
        finally:
            orchestrator.shutdown()


def build_roster(settings: Settings, knowledge: KnowledgeStore) -> AgentRoster:
    return AgentRoster.from_settings(
        settings.orchestrator,
        stored_profiles=knowledge.list_agent_profiles(),
    )


def add_note_from_text(
    knowledge: KnowledgeStore,
    text: str,
    *,
    title: str | None = None,
    priority: str | None = None,
) -> Note:
    parsed = parse_note_input(text)
    if not parsed.content:
        raise CommandError("Note content is empty.")
    return knowledge.add_note(
        parsed.content,
        title=title,
        project_id=parsed.project_id,
        tags=parsed.tags,
        priority=Priority.parse(priority),
    )


def decompose_into_engine(engine: TaskEngine, note: Note) -> list[Task]:
    try:
        return engine.decompose(note)
    except DecompositionError as error:
        raise CommandError(str(error)) from error


def render_note_added(note: Note) -> list[str]:
    return [
        f"Note added: {note.title}",
        (
            f"  ID: {note.note_id} | Project: {note.project_id} | "
            f"Tags: {', '.join(note.tags) or 'none'} | Priority: {note.priority.value}"
        ),
    ]


def render_note_lines(note: Note, *, matched: tuple[str, ...] = ()) -> list[str]:
    preview = note.body[:NOTE_PREVIEW_CHARS]
    if len(note.body) > NOTE_PREVIEW_CHARS:
        preview += "..."
    lines = [
        f"[{note.status.value.upper()}] {note.title}",
        f"  ID: {note.note_id}",
        f"  Project: {note.project_id} | Tags: {', '.join(note.tags) or 'none'}",
        f"  {preview.replace(chr(10), ' ')}",
    ]
    if matched:
        lines.append(f"  Matched: {', '.join(matched)}")
    return lines


def render_notes(notes: list[Note]) -> list[str]:
    if not notes:
        return ["No notes found."]
    lines = [f"Notes ({len(notes)})"]
    for note in notes:
        lines.extend(render_note_lines(note))
    return lines


def render_projects(knowledge: KnowledgeStore) -> list[str]:
    projects = knowledge.list_projects()
    if not projects:
        return ["No projects found."]
    lines: list[str] = []
    for project in projects:
        lines.append(
            f"{project.name} (id={project.project_id} status={project.status} "
            f"notes={len(project.note_ids)})",
        )
        if project.description:
            lines.append(f"  {project.description}")
    return lines


def render_agent_info(knowledge: KnowledgeStore, roster: AgentRoster, agent_id: str) -> list[str]:
    profile = roster.get(agent_id)
    if profile is None:
        raise CommandError(f"Agent not found: {agent_id}")
    instructions = profile.instructions or knowledge.get_agent_profile(profile.agent_id).instructions
    return [
        f"Agent: {profile.agent_id}",
        f"Type: {profile.agent_type}",
        f"Capabilities: {', '.join(profile.capabilities) or 'general'}",
        f"Command: {profile.command_template or 'none'}",
        "",
        "Instructions:",
        *instructions.splitlines(),
    ]


def render_logs(manager: SandboxManager, sandbox_id: str | None) -> list[str]:
    if sandbox_id is None:
        return render_sandbox_lines(manager.list_sandboxes()[:RECENT_SANDBOXES])
    if manager.get_status(sandbox_id) is None:
        raise CommandError(f"Sandbox not found: {sandbox_id}")
    return [f"Logs: {sandbox_id}", *manager.read_logs(sandbox_id).splitlines()]


def render_run_summary(summary: RunSummary) -> list[str]:
    lines = [
        f"Run summary: processed={summary.processed} completed={summary.completed} "
        f"failed={summary.failed} not_started={summary.not_started} "
        f"blocked={len(summary.blocked)}",
    ]
    lines.extend(f"  blocked: {task.task_id} {task.title}" for task in summary.blocked)
    return lines


def _require_note(knowledge: KnowledgeStore, note_id: str) -> Note:
    try:
        return knowledge.require_note(note_id)
    except NoteNotFoundError as error:
        raise CommandError(str(error)) from error


def _sandbox_manager(settings: Settings) -> SandboxManager:
    return SandboxManager(
        settings.sandbox_root,
        backend=CliAgentBackend(),
        timeout_grace_seconds=settings.orchestrator.timeout_grace_seconds,
        retain_files=settings.orchestrator.retain_sandboxes,
    )


@contextmanager
def _knowledge_store(settings: Settings) -> Iterator[KnowledgeStore]:
    knowledge = KnowledgeStore(settings.db_path)
    knowledge.init_schema()
    try:
        yield knowledge
    finally:
        knowledge.close()
