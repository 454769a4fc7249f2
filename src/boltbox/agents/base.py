"""Agent invocation client protocol."""

from typing import Protocol, runtime_checkable

from boltbox.sessions.models import SandboxSession
from boltbox.streaming.source import EventSource


@runtime_checkable
class AgentClient(Protocol):
    """Sends a user turn to the agent serving a session.

    ``invoke`` returns as soon as the agent has accepted the turn and the
    stream handle is available; it does not wait for the turn to finish.
    Network failures are raised, never retried here.

    Raises:
        SessionNotReadyError: The session is not Active or Idle
        InvocationRejectedError: The agent refused the turn
        BackendUnreachableError: The agent could not be reached
    """

    async def invoke(self, session: SandboxSession, turn: str) -> EventSource:
        """Start a turn and return its raw event stream."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        ...
