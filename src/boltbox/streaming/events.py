"""Normalized stream events."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """The five kinds every agent stream is normalized into."""

    TEXT_DELTA = "text_delta"
    TOOL_STARTED = "tool_started"
    TOOL_COMPLETED = "tool_completed"
    ERROR = "error"
    DONE = "done"


TERMINAL_KINDS = frozenset({EventKind.ERROR, EventKind.DONE})


@dataclass(frozen=True)
class NormalizedEvent:
    """One event of the caller-facing stream.

    Payload by kind:
        text_delta: ``text``
        tool_started: ``name``, ``arguments``, optional ``call_id``
        tool_completed: ``name``, ``result``, optional ``call_id``, ``is_error``
        error: ``message``, ``code`` and any diagnostic context
        done: optional ``reason``, ``usage``
    """

    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def to_dict(self) -> dict[str, Any]:
        """Wire form: ``{"type": kind, **payload}``."""
        return {"type": self.kind.value, **self.payload}

    @classmethod
    def text_delta(cls, text: str) -> "NormalizedEvent":
        return cls(EventKind.TEXT_DELTA, {"text": text})

    @classmethod
    def tool_started(
        cls,
        name: str,
        arguments: dict[str, Any] | None = None,
        call_id: str | None = None,
    ) -> "NormalizedEvent":
        payload: dict[str, Any] = {"name": name, "arguments": arguments or {}}
        if call_id:
            payload["call_id"] = call_id
        return cls(EventKind.TOOL_STARTED, payload)

    @classmethod
    def tool_completed(
        cls,
        name: str,
        result: Any = None,
        call_id: str | None = None,
        is_error: bool = False,
    ) -> "NormalizedEvent":
        payload: dict[str, Any] = {"name": name, "result": result}
        if call_id:
            payload["call_id"] = call_id
        if is_error:
            payload["is_error"] = True
        return cls(EventKind.TOOL_COMPLETED, payload)

    @classmethod
    def error(cls, message: str, code: str = "agent_error", **context: Any) -> "NormalizedEvent":
        payload = {"message": message, "code": code}
        payload.update({k: v for k, v in context.items() if v is not None})
        return cls(EventKind.ERROR, payload)

    @classmethod
    def done(cls, reason: str | None = None, usage: dict[str, Any] | None = None) -> "NormalizedEvent":
        payload: dict[str, Any] = {}
        if reason:
            payload["reason"] = reason
        if usage:
            payload["usage"] = usage
        return cls(EventKind.DONE, payload)
