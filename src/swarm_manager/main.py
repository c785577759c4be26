"""CLI entrypoint for swarm-manager."""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from swarm_manager import __version__
from swarm_manager.config import Settings
from swarm_manager.knowledge.repository import KnowledgeStoreError
from swarm_manager.orchestrator.controllers import (
    AgentInspectCommand,
    CommandError,
    DecomposeCommand,
    LogsCommand,
    ManagerShell,
    NoteAddCommand,
    NotesListCommand,
    RunNoteCommand,
    StoreCommand,
    SwarmCliController,
    manager_runtime,
)
from swarm_manager.orchestrator.errors import OrchestratorError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SwarmCliController()

_db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite knowledge store path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="swarm-manager")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (defaults to SWARM_MANAGER_LOG_LEVEL or WARNING).",
)
def swarm_manager(log_level: str | None) -> None:
    """Decompose notes into task chains and run them in agent sandboxes."""

    level = (log_level or os.getenv("SWARM_MANAGER_LOG_LEVEL", "WARNING")).strip().upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@swarm_manager.group()
def note() -> None:
    """Note commands."""


@note.command("add")
@_db_path_option
@click.argument("text", nargs=-1, required=True)
@click.option("--title", default=None, help="Explicit title (default: first line).")
@click.option(
    "--priority",
    type=click.Choice(["low", "medium", "high"], case_sensitive=False),
    default=None,
    help="Note priority.",
)
def note_add(
    db_path: Path | None,
    text: tuple[str, ...],
    title: str | None,
    priority: str | None,
) -> None:
    """Add a note. `#project` and `@tag` markers are parsed out of the text."""

    _emit_lines(
        _run(
            lambda: CONTROLLER.add_note(
                NoteAddCommand(
                    db_path=db_path,
                    text=" ".join(text),
                    title=title,
                    priority=priority,
                ),
            ),
        ),
    )


@swarm_manager.command("notes")
@_db_path_option
@click.option("--query", default=None, help="Search title, body and tags.")
def notes(db_path: Path | None, query: str | None) -> None:
    """List notes, newest first, or search them."""

    _emit_lines(_run(lambda: CONTROLLER.list_notes(NotesListCommand(db_path=db_path, query=query))))


@swarm_manager.command("projects")
@_db_path_option
def projects(db_path: Path | None) -> None:
    """List projects."""

    _emit_lines(_run(lambda: CONTROLLER.list_projects(StoreCommand(db_path=db_path))))


@swarm_manager.command("agents")
@_db_path_option
def agents(db_path: Path | None) -> None:
    """List agents and their capabilities (`*` marks the default)."""

    _emit_lines(_run(lambda: CONTROLLER.list_agents(StoreCommand(db_path=db_path))))


@swarm_manager.command("agent")
@_db_path_option
@click.argument("agent_id")
def agent(db_path: Path | None, agent_id: str) -> None:
    """Show one agent profile with its instructions."""

    _emit_lines(
        _run(
            lambda: CONTROLLER.inspect_agent(
                AgentInspectCommand(db_path=db_path, agent_id=agent_id),
            ),
        ),
    )


@swarm_manager.command("decompose")
@_db_path_option
@click.argument("note_id")
def decompose(db_path: Path | None, note_id: str) -> None:
    """Preview the task chain for a note."""

    _emit_lines(
        _run(lambda: CONTROLLER.decompose(DecomposeCommand(db_path=db_path, note_id=note_id))),
    )


@swarm_manager.command("run")
@_db_path_option
@click.argument("note_id")
@click.option(
    "--max-tasks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many executed tasks.",
)
def run(db_path: Path | None, note_id: str, max_tasks: int | None) -> None:
    """Decompose a note and run its chain until nothing more is ready."""

    _emit_lines(
        _run(
            lambda: CONTROLLER.run_note(
                RunNoteCommand(db_path=db_path, note_id=note_id, max_tasks=max_tasks),
            ),
        ),
    )


@swarm_manager.command("logs")
@_db_path_option
@click.argument("sandbox_id", required=False)
def logs(db_path: Path | None, sandbox_id: str | None) -> None:
    """List recent sandboxes or print one execution log."""

    _emit_lines(_run(lambda: CONTROLLER.logs(LogsCommand(db_path=db_path, sandbox_id=sandbox_id))))


@swarm_manager.command("status")
@_db_path_option
def status(db_path: Path | None) -> None:
    """Knowledge store and sandbox counts."""

    _emit_lines(_run(lambda: CONTROLLER.status(StoreCommand(db_path=db_path))))


@swarm_manager.command("shell")
@_db_path_option
def shell(db_path: Path | None) -> None:
    """Interactive manager session (tasks live as long as the session)."""

    settings = Settings.from_env(db_path=db_path)
    try:
        with manager_runtime(settings) as runtime:
            ManagerShell(
                runtime,
                prompt=lambda text: click.prompt(text, default="", show_default=False),
                confirm=lambda text: click.confirm(text, default=False),
                echo=click.echo,
            ).run()
    except (click.Abort, EOFError):
        click.echo("")
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _run(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except (CommandError, KnowledgeStoreError, OrchestratorError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    swarm_manager()
