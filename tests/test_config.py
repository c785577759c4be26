from __future__ import annotations

from pathlib import Path

import allure
import pytest

from swarm_manager.config import (
    DEFAULT_AGENT_COMMAND_TEMPLATES,
    OrchestratorSettings,
    Settings,
)

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]

_ENV_KEYS = (
    "SWARM_MANAGER_DATA_DIR",
    "SWARM_MANAGER_DB_PATH",
    "SWARM_MANAGER_SANDBOX_ROOT",
    "SWARM_MANAGER_LOG_LEVEL",
    "SWARM_MANAGER_POLL_INTERVAL_SECONDS",
    "SWARM_MANAGER_MAX_CONCURRENT",
    "SWARM_MANAGER_DEFAULT_AGENT",
    "SWARM_MANAGER_TIMEOUT_GRACE_SECONDS",
    "SWARM_MANAGER_RETAIN_SANDBOXES",
    "SWARM_MANAGER_CLAUDE_COMMAND",
    "SWARM_MANAGER_GEMINI_COMMAND",
    "SWARM_MANAGER_CODEX_COMMAND",
    "SWARM_MANAGER_JULES_COMMAND",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.data_dir == Path(".swarm_manager")
    assert settings.db_path == Path(".swarm_manager/knowledge.db")
    assert settings.sandbox_root == Path(".swarm_manager/sandboxes")
    assert settings.log_level == "WARNING"
    assert settings.orchestrator.poll_interval_seconds == 30.0
    assert settings.orchestrator.max_concurrent == 1
    assert settings.orchestrator.default_agent == "claude"
    assert settings.orchestrator.timeout_grace_seconds == 300.0
    assert settings.orchestrator.retain_sandboxes is True
    assert settings.orchestrator.agent_command_templates == DEFAULT_AGENT_COMMAND_TEMPLATES
    settings.validate()


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SWARM_MANAGER_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SWARM_MANAGER_POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("SWARM_MANAGER_MAX_CONCURRENT", "3")
    monkeypatch.setenv("SWARM_MANAGER_DEFAULT_AGENT", " Gemini ")
    monkeypatch.setenv("SWARM_MANAGER_RETAIN_SANDBOXES", "off")
    monkeypatch.setenv("SWARM_MANAGER_LOG_LEVEL", "debug")
    monkeypatch.setenv("SWARM_MANAGER_CODEX_COMMAND", "  my-codex {prompt_file}  ")

    settings = Settings.from_env()

    assert settings.db_path == tmp_path / "knowledge.db"
    assert settings.sandbox_root == tmp_path / "sandboxes"
    assert settings.log_level == "DEBUG"
    assert settings.orchestrator.poll_interval_seconds == 2.5
    assert settings.orchestrator.max_concurrent == 3
    assert settings.orchestrator.default_agent == "gemini"
    assert settings.orchestrator.retain_sandboxes is False
    assert settings.orchestrator.agent_command_templates["codex"] == "my-codex {prompt_file}"
    assert (
        settings.orchestrator.agent_command_templates["claude"]
        == DEFAULT_AGENT_COMMAND_TEMPLATES["claude"]
    )


def test_explicit_db_path_wins(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SWARM_MANAGER_DB_PATH", str(tmp_path / "env.db"))

    assert Settings.from_env(db_path=tmp_path / "cli.db").db_path == tmp_path / "cli.db"
    assert Settings.from_env().db_path == tmp_path / "env.db"


def test_from_env_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWARM_MANAGER_RETAIN_SANDBOXES", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for SWARM_MANAGER_RETAIN_SANDBOXES"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("orchestrator", "message"),
    [
        (OrchestratorSettings(poll_interval_seconds=0), "POLL_INTERVAL_SECONDS"),
        (OrchestratorSettings(max_concurrent=0), "MAX_CONCURRENT"),
        (OrchestratorSettings(timeout_grace_seconds=-1), "TIMEOUT_GRACE_SECONDS"),
        (OrchestratorSettings(default_agent=""), "DEFAULT_AGENT"),
        (
            OrchestratorSettings(agent_command_templates={"claude": "   "}),
            "Empty command template",
        ),
    ],
)
def test_validate_rejects_bad_values(orchestrator: OrchestratorSettings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        Settings(orchestrator=orchestrator).validate()
