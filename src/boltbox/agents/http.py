"""HTTP client for agents served from inside a sandbox."""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from boltbox.backends.sandbox.http import error_message
from boltbox.exceptions import BackendUnreachableError, InvocationRejectedError
from boltbox.observability import get_logger
from boltbox.sessions.models import SandboxSession
from boltbox.streaming.dialects import DONE_SENTINEL
from boltbox.streaming.source import EventSource, RawEvent

logger = get_logger(__name__)


def parse_record(line: str) -> RawEvent:
    """Parse one JSON record; anything else is passed on as unparseable."""
    if line == DONE_SENTINEL:
        return {"type": DONE_SENTINEL}
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return {"type": "unparseable", "raw": line}
    if not isinstance(data, dict):
        return {"type": "unparseable", "raw": line}
    return data


async def iter_ndjson(lines: AsyncIterator[str]) -> AsyncIterator[RawEvent]:
    """One JSON object per line; blank lines are skipped."""
    async for line in lines:
        line = line.strip()
        if line:
            yield parse_record(line)


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[RawEvent]:
    """Server-sent events; the ``data:`` lines of one event are joined."""
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data:
                yield parse_record("\n".join(data))
                data = []
            continue
        if line.startswith(":"):
            continue  # comment / heartbeat
        field, _, value = line.partition(":")
        if field == "data":
            data.append(value[1:] if value.startswith(" ") else value)
    if data:
        yield parse_record("\n".join(data))


class HTTPAgentClient:
    """Invokes an agent over HTTP and streams its NDJSON or SSE response.

    The agent URL is built from the session's backend reference with
    ``url_template`` (``{ref}`` and ``{port}`` are substituted), so a backend
    whose reference already is a URL uses the default ``"{ref}"`` while a
    workspace backend can use e.g. ``"https://{port}-{ref}.proxy.example"``.

    Example:
        client = HTTPAgentClient(path="/agent/stream", dialect="opencode")
        source = await client.invoke(session, "List the files")
    """

    def __init__(
        self,
        path: str = "/agent/stream",
        url_template: str = "{ref}",
        agent_port: int = 8080,
        dialect: str = "ai-sdk",
        timeout_seconds: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the client.

        Args:
            path: Path of the streaming endpoint on the agent
            url_template: Agent base URL template
            agent_port: Port substituted for ``{port}``
            dialect: Dialect of the agent's records
            timeout_seconds: Connect/write timeout and the wait for response
                headers; body reads wait for the agent
            headers: Extra request headers
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)
            **kwargs: Ignored (for compatibility with other clients)
        """
        self.path = path
        self.url_template = url_template
        self.agent_port = agent_port
        self.dialect = dialect
        self.timeout_seconds = timeout_seconds
        self.timeout = httpx.Timeout(timeout_seconds, read=None)
        self.headers = headers or {}
        self._transport = transport

    def agent_url(self, ref: str) -> str:
        base = self.url_template.format(ref=ref, port=self.agent_port)
        return base.rstrip("/") + self.path

    async def invoke(self, session: SandboxSession, turn: str) -> EventSource:
        """Post the turn and return once the agent has answered with headers."""
        ref = session.require_ready("invoke")
        url = self.agent_url(ref)
        context: dict[str, Any] = {
            "operation": "invoke",
            "owner_key": session.owner_key,
            "session_id": session.session_id,
        }

        client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        request = client.build_request(
            "POST",
            url,
            json={"message": turn, "session_id": session.session_id},
            headers={"Accept": "application/x-ndjson, text/event-stream", **self.headers},
        )
        try:
            response = await asyncio.wait_for(
                client.send(request, stream=True), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            await client.aclose()
            raise BackendUnreachableError(
                f"Agent at {url} did not answer within {self.timeout_seconds}s", **context
            ) from e
        except httpx.HTTPError as e:
            await client.aclose()
            raise BackendUnreachableError(f"Agent unreachable at {url}: {e}", **context) from e

        if response.status_code >= 400:
            try:
                await response.aread()
                message = f"Agent returned {response.status_code}: {error_message(response)}"
            finally:
                await response.aclose()
                await client.aclose()
            if response.status_code >= 500:
                raise BackendUnreachableError(message, **context)
            raise InvocationRejectedError(message, **context)

        async def close() -> None:
            await response.aclose()
            await client.aclose()

        logger.debug("Agent stream opened", context={"session_id": session.session_id, "url": url})
        return EventSource(self._records(response, context), self.dialect, on_close=close)

    async def _records(
        self,
        response: httpx.Response,
        context: dict[str, Any],
    ) -> AsyncIterator[RawEvent]:
        content_type = response.headers.get("content-type", "")
        parse = iter_sse if content_type.startswith("text/event-stream") else iter_ndjson
        try:
            async for record in parse(response.aiter_lines()):
                yield record
        except httpx.HTTPError as e:
            raise BackendUnreachableError(f"Agent stream interrupted: {e}", **context) from e

    async def close(self) -> None:
        pass
