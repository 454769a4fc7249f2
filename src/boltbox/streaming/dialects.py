"""Per-backend event dialects.

Each dialect classifies one raw record into a ``NormalizedEvent`` or returns
None for records the caller-facing protocol does not carry (heartbeats, log
lines, intermediate step markers, malformed payloads).
"""

from typing import Any

from boltbox.streaming.events import NormalizedEvent
from boltbox.streaming.source import RawEvent

# Completion sentinel of server-sent event streams, in every dialect
DONE_SENTINEL = "[DONE]"


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _mapping(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def _error_message(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        data = _mapping(value.get("data")) or {}
        return _text(value.get("message")) or _text(data.get("message")) or _text(value.get("name"))
    return None


class Dialect:
    """Base class for raw event dialects."""

    name = ""

    def classify(self, raw: RawEvent) -> NormalizedEvent | None:
        """Classify a raw record, or return None to drop it."""
        if not isinstance(raw, dict):
            return None
        kind = raw.get("type")
        if kind == DONE_SENTINEL:
            return NormalizedEvent.done()
        if not isinstance(kind, str):
            return None
        return self._classify(kind, raw)

    def _classify(self, kind: str, raw: RawEvent) -> NormalizedEvent | None:
        raise NotImplementedError


class AISDKDialect(Dialect):
    """Vercel AI SDK ``fullStream`` parts.

    ``text-delta``, ``tool-call``, ``tool-result``, ``finish`` and ``error``.
    """

    name = "ai-sdk"

    def _classify(self, kind: str, raw: RawEvent) -> NormalizedEvent | None:
        if kind == "text-delta":
            text = _text(raw.get("textDelta", raw.get("text")))
            return NormalizedEvent.text_delta(text) if text is not None else None

        if kind == "tool-call":
            name = _text(raw.get("toolName"))
            if not name:
                return None
            return NormalizedEvent.tool_started(
                name, _mapping(raw.get("args")), _text(raw.get("toolCallId"))
            )

        if kind == "tool-result":
            name = _text(raw.get("toolName"))
            if not name:
                return None
            return NormalizedEvent.tool_completed(
                name, raw.get("result"), _text(raw.get("toolCallId"))
            )

        if kind == "finish":
            return NormalizedEvent.done(_text(raw.get("finishReason")), _mapping(raw.get("usage")))

        if kind == "error":
            return NormalizedEvent.error(_error_message(raw.get("error")) or "Agent error")

        return None


class OpenCodeDialect(Dialect):
    """opencode server events: ``{"type": ..., "part": {...}}``."""

    name = "opencode"

    def _classify(self, kind: str, raw: RawEvent) -> NormalizedEvent | None:
        part = _mapping(raw.get("part")) or {}

        if kind == "text":
            text = _text(part.get("text"))
            return NormalizedEvent.text_delta(text) if text is not None else None

        if kind == "tool_use":
            name = _text(part.get("tool"))
            state = _mapping(part.get("state"))
            if not name or state is None:
                return None
            call_id = _text(part.get("callID"))
            status = state.get("status")
            if status in ("pending", "running"):
                return NormalizedEvent.tool_started(name, _mapping(state.get("input")), call_id)
            if status == "completed":
                return NormalizedEvent.tool_completed(name, state.get("output"), call_id)
            if status == "error":
                return NormalizedEvent.tool_completed(
                    name, state.get("error"), call_id, is_error=True
                )
            return None

        if kind == "step_finish":
            # Intermediate steps finish with "tool-calls"; only "stop" ends the turn
            if part.get("reason") == "stop":
                return NormalizedEvent.done("stop", _mapping(part.get("tokens")))
            return None

        if kind == "error":
            return NormalizedEvent.error(_error_message(raw.get("error")) or "Agent error")

        return None


class ClaudeDialect(Dialect):
    """Records produced by ``ClaudeAgentClient`` from Claude Agent SDK messages."""

    name = "claude"

    def _classify(self, kind: str, raw: RawEvent) -> NormalizedEvent | None:
        if kind == "text":
            text = _text(raw.get("text"))
            return NormalizedEvent.text_delta(text) if text is not None else None

        if kind == "tool_use":
            name = _text(raw.get("name"))
            if not name:
                return None
            return NormalizedEvent.tool_started(name, _mapping(raw.get("input")), _text(raw.get("id")))

        if kind == "tool_result":
            call_id = _text(raw.get("tool_use_id"))
            name = _text(raw.get("name")) or call_id
            if not name:
                return None
            return NormalizedEvent.tool_completed(
                name, raw.get("content"), call_id, is_error=bool(raw.get("is_error"))
            )

        if kind == "result":
            if raw.get("is_error"):
                return NormalizedEvent.error(_text(raw.get("result")) or "Agent run failed")
            return NormalizedEvent.done(_text(raw.get("subtype")), _mapping(raw.get("usage")))

        if kind == "error":
            return NormalizedEvent.error(_error_message(raw.get("message")) or "Agent error")

        return None


DIALECTS: dict[str, Dialect] = {
    dialect.name: dialect
    for dialect in (AISDKDialect(), OpenCodeDialect(), ClaudeDialect())
}


def get_dialect(name: str) -> Dialect:
    """Look up a dialect by name.

    Raises:
        ValueError: If the dialect is unknown
    """
    try:
        return DIALECTS[name]
    except KeyError:
        available = ", ".join(sorted(DIALECTS))
        raise ValueError(f"Unknown stream dialect '{name}'. Available: {available}") from None
