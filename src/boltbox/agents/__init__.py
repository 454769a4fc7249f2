"""Agent invocation clients."""

from boltbox.agents.base import AgentClient
from boltbox.agents.factory import create_agent_client
from boltbox.agents.http import HTTPAgentClient
from boltbox.agents.llm import LLMAgentClient
from boltbox.agents.mock import MockAgentClient

__all__ = [
    "AgentClient",
    "HTTPAgentClient",
    "LLMAgentClient",
    "MockAgentClient",
    "create_agent_client",
]
