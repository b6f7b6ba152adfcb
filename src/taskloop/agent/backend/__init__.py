"""Agent process backends."""

from taskloop.agent.backend.base import AgentBackend, AgentOutput, AgentProcess, AgentRunRequest
from taskloop.agent.backend.cli_backend import BackendRunError, CliAgentBackend, CliAgentProcess

__all__ = [
    "AgentBackend",
    "AgentOutput",
    "AgentProcess",
    "AgentRunRequest",
    "BackendRunError",
    "CliAgentBackend",
    "CliAgentProcess",
]
