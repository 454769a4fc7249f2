"""Factory function for creating agent clients."""

from typing import Any

from boltbox.agents.base import AgentClient
from boltbox.sessions.orchestrator import SessionOrchestrator


def create_agent_client(
    provider: str = "http",
    orchestrator: SessionOrchestrator | None = None,
    **kwargs: Any,
) -> AgentClient:
    """Create an agent client based on provider.

    Args:
        provider: Provider name ("http", "claude" or "mock")
        orchestrator: Session orchestrator (required by "claude")
        **kwargs: Provider-specific options

    Returns:
        Configured agent client

    Raises:
        ValueError: If provider is unknown or misconfigured
    """
    if provider == "http":
        from boltbox.agents.http import HTTPAgentClient

        return HTTPAgentClient(**kwargs)

    elif provider == "claude":
        from boltbox.agents.claude import ClaudeAgentClient

        if orchestrator is None:
            raise ValueError("The claude agent provider requires an orchestrator")
        return ClaudeAgentClient(orchestrator, **kwargs)

    elif provider == "mock":
        from boltbox.agents.mock import MockAgentClient

        return MockAgentClient(**kwargs)

    else:
        raise ValueError(
            f"Unknown agent provider: {provider}. Use 'http', 'claude' or 'mock'."
        )
