"""Agent event streaming: raw sources, dialects and the normalizer."""

from boltbox.streaming.dialects import (
    DIALECTS,
    AISDKDialect,
    ClaudeDialect,
    Dialect,
    OpenCodeDialect,
    get_dialect,
)
from boltbox.streaming.events import EventKind, NormalizedEvent
from boltbox.streaming.normalizer import StreamNormalizer, normalize_events
from boltbox.streaming.source import EventSource, RawEvent

__all__ = [
    "AISDKDialect",
    "ClaudeDialect",
    "DIALECTS",
    "Dialect",
    "EventKind",
    "EventSource",
    "NormalizedEvent",
    "OpenCodeDialect",
    "RawEvent",
    "StreamNormalizer",
    "get_dialect",
    "normalize_events",
]
