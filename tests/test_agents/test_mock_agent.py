"""Tests for the mock and LLM-backed agent clients."""

import pytest

from boltbox.agents import AgentClient, LLMAgentClient, MockAgentClient, create_agent_client
from boltbox.agents.http import HTTPAgentClient
from boltbox.exceptions import SessionNotReadyError
from boltbox.streaming import EventKind, normalize_events


async def collect(iterator) -> list:
    return [item async for item in iterator]


class TestMockAgentClient:
    """Tests for MockAgentClient."""

    @pytest.mark.asyncio
    async def test_echoes_turn(self, orchestrator, owner_key) -> None:
        session = await orchestrator.get_or_create(owner_key)
        client = MockAgentClient()

        events = await collect(normalize_events(await client.invoke(session, "hello there")))

        text = "".join(e.payload["text"] for e in events if e.kind == EventKind.TEXT_DELTA)
        assert text == "Echo: hello there "
        assert events[-1].kind == EventKind.DONE
        assert events[-1].payload["usage"]["completionTokens"] == 3
        assert client.turns == [(session.session_id, "hello there")]

    @pytest.mark.asyncio
    async def test_script_replaces_echo(self, orchestrator, owner_key) -> None:
        session = await orchestrator.get_or_create(owner_key)
        client = MockAgentClient(script=[{"type": "error", "error": "scripted"}])

        events = await collect(normalize_events(await client.invoke(session, "hi")))

        assert [e.to_dict() for e in events] == [
            {"type": "error", "message": "scripted", "code": "agent_error"}
        ]

    @pytest.mark.asyncio
    async def test_requires_ready_session(self, orchestrator, owner_key) -> None:
        session = await orchestrator.get_or_create(owner_key)
        await orchestrator.destroy(session.session_id)

        with pytest.raises(SessionNotReadyError):
            await MockAgentClient().invoke(session, "hi")


class TestLLMAgentClient:
    """Tests for LLMAgentClient."""

    @pytest.mark.asyncio
    async def test_wraps_producer(self, orchestrator, owner_key) -> None:
        prompts = []

        async def producer(prompt):
            prompts.append(prompt)
            yield {"type": "text", "text": "42"}
            yield {"type": "result", "subtype": "success"}

        session = await orchestrator.get_or_create(owner_key)
        client = LLMAgentClient(producer, dialect="claude")

        events = await collect(normalize_events(await client.invoke(session, "meaning?")))

        assert prompts == ["meaning?"]
        assert [e.kind for e in events] == [EventKind.TEXT_DELTA, EventKind.DONE]


class TestFactory:
    """Tests for create_agent_client."""

    def test_http(self) -> None:
        client = create_agent_client("http", path="/run", dialect="opencode")
        assert isinstance(client, HTTPAgentClient)
        assert client.path == "/run"
        assert isinstance(client, AgentClient)

    def test_mock(self) -> None:
        assert isinstance(create_agent_client("mock"), MockAgentClient)

    def test_claude_requires_orchestrator(self) -> None:
        with pytest.raises(ValueError, match="orchestrator"):
            create_agent_client("claude")

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown agent provider"):
            create_agent_client("telepathy")
