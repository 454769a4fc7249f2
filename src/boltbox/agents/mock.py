"""Mock agent client for testing."""

import asyncio
from collections.abc import AsyncIterator, Iterable
from typing import Any

from boltbox.sessions.models import SandboxSession
from boltbox.streaming.source import EventSource, RawEvent


class MockAgentClient:
    """Agent that echoes the turn back word by word in the ai-sdk dialect.

    Used for development and tests without a real agent. A fixed ``script``
    of raw records replaces the echo when given.
    """

    dialect = "ai-sdk"

    def __init__(
        self,
        delay: float = 0.0,
        script: Iterable[RawEvent] | None = None,
        **kwargs: Any,
    ) -> None:
        self.delay = delay
        self.script = list(script) if script is not None else None
        self.turns: list[tuple[str, str]] = []

    async def invoke(self, session: SandboxSession, turn: str) -> EventSource:
        session.require_ready("invoke")
        self.turns.append((session.session_id, turn))
        return EventSource(self._records(turn), self.dialect)

    async def _records(self, turn: str) -> AsyncIterator[RawEvent]:
        if self.script is not None:
            records = self.script
        else:
            words = f"Echo: {turn}".split()
            records = [{"type": "text-delta", "textDelta": word + " "} for word in words]
            records.append({
                "type": "finish",
                "finishReason": "stop",
                "usage": {"promptTokens": 10, "completionTokens": len(words)},
            })

        for record in records:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield record

    async def close(self) -> None:
        """No-op for mock client."""
        pass
