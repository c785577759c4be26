"""Runtime configuration for the knowledge store, sandboxes and orchestrator."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DATA_DIR = Path(".swarm_manager")

DEFAULT_AGENT_COMMAND_TEMPLATES = {
    "claude": "claude -p --permission-mode acceptEdits -- {prompt}",
    "gemini": "gemini --approval-mode auto_edit --prompt {prompt}",
    "codex": "codex exec --sandbox workspace-write {prompt}",
    "jules": "jules new {prompt}",
}


@dataclass(slots=True)
class OrchestratorSettings:
    """Scheduling, agent and sandbox settings."""

    poll_interval_seconds: float = 30.0
    max_concurrent: int = 1
    default_agent: str = "claude"
    timeout_grace_seconds: float = 300.0
    retain_sandboxes: bool = True
    agent_command_templates: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_AGENT_COMMAND_TEMPLATES),
    )


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    data_dir: Path = DEFAULT_DATA_DIR
    db_path: Path = DEFAULT_DATA_DIR / "knowledge.db"
    sandbox_root: Path = DEFAULT_DATA_DIR / "sandboxes"
    log_level: str = "WARNING"
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with local-development defaults."""

        data_dir = Path(os.getenv("SWARM_MANAGER_DATA_DIR", str(DEFAULT_DATA_DIR)))
        return cls(
            data_dir=data_dir,
            db_path=db_path
            or Path(os.getenv("SWARM_MANAGER_DB_PATH", str(data_dir / "knowledge.db"))),
            sandbox_root=Path(
                os.getenv("SWARM_MANAGER_SANDBOX_ROOT", str(data_dir / "sandboxes")),
            ),
            log_level=os.getenv("SWARM_MANAGER_LOG_LEVEL", "WARNING").strip().upper(),
            orchestrator=OrchestratorSettings(
                poll_interval_seconds=float(
                    os.getenv("SWARM_MANAGER_POLL_INTERVAL_SECONDS", "30"),
                ),
                max_concurrent=int(os.getenv("SWARM_MANAGER_MAX_CONCURRENT", "1")),
                default_agent=os.getenv("SWARM_MANAGER_DEFAULT_AGENT", "claude").strip().lower(),
                timeout_grace_seconds=float(
                    os.getenv("SWARM_MANAGER_TIMEOUT_GRACE_SECONDS", "300"),
                ),
                retain_sandboxes=_env_bool("SWARM_MANAGER_RETAIN_SANDBOXES", default=True),
                agent_command_templates=_collect_command_templates(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the orchestrator cannot run with."""

        orchestrator = self.orchestrator
        if orchestrator.poll_interval_seconds <= 0:
            raise ValueError("SWARM_MANAGER_POLL_INTERVAL_SECONDS must be > 0.")
        if orchestrator.max_concurrent < 1:
            raise ValueError("SWARM_MANAGER_MAX_CONCURRENT must be >= 1.")
        if orchestrator.timeout_grace_seconds < 0:
            raise ValueError("SWARM_MANAGER_TIMEOUT_GRACE_SECONDS must be >= 0.")
        if not orchestrator.default_agent:
            raise ValueError("SWARM_MANAGER_DEFAULT_AGENT must not be empty.")
        for agent, template in orchestrator.agent_command_templates.items():
            if not template.strip():
                raise ValueError(f"Empty command template for agent={agent!r}")


def _collect_command_templates() -> dict[str, str]:
    templates = dict(DEFAULT_AGENT_COMMAND_TEMPLATES)
    for agent in DEFAULT_AGENT_COMMAND_TEMPLATES:
        override = os.getenv(f"SWARM_MANAGER_{agent.upper()}_COMMAND")
        if override is not None:
            templates[agent] = override.strip()
    return templates


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
