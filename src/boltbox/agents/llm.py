"""Adapter turning a bare LLM event producer into an agent client."""

from collections.abc import AsyncIterator, Callable
from typing import Any

from boltbox.sessions.models import SandboxSession
from boltbox.streaming.source import EventSource, RawEvent

LLMProducer = Callable[[str], AsyncIterator[RawEvent]]


class LLMAgentClient:
    """Agent client over an opaque asynchronous LLM producer.

    The producer is called with the turn text and returns an async iterator
    of raw chat-completion records (AI SDK ``fullStream`` parts by default).

    Example:
        async def complete(prompt):
            async for part in model.stream(prompt):
                yield part

        client = LLMAgentClient(complete)
    """

    def __init__(self, producer: LLMProducer, dialect: str = "ai-sdk", **kwargs: Any) -> None:
        self.producer = producer
        self.dialect = dialect

    async def invoke(self, session: SandboxSession, turn: str) -> EventSource:
        session.require_ready("invoke")
        return EventSource(self.producer(turn), self.dialect)

    async def close(self) -> None:
        pass
