"""Agent process backends."""

from swarm_manager.orchestrator.backend.base import AgentBackend, AgentRunRequest, AgentRunResult
from swarm_manager.orchestrator.backend.cli_backend import BackendRunError, CliAgentBackend

__all__ = [
    "AgentBackend",
    "AgentRunRequest",
    "AgentRunResult",
    "BackendRunError",
    "CliAgentBackend",
]
