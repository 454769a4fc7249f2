"""Boltbox - sandbox session orchestration and agent stream normalization."""

from boltbox.config import Config
from boltbox.gateway import Gateway
from boltbox.observability import (
    LogLevel,
    RequestContext,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from boltbox.sessions import (
    IdleReaper,
    OwnerKey,
    ReapReport,
    SandboxSession,
    SessionOrchestrator,
    SessionRegistry,
    SessionSnapshot,
    SessionStatus,
)
from boltbox.streaming import EventKind, EventSource, NormalizedEvent, StreamNormalizer

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "Gateway",
    # Sessions
    "IdleReaper",
    "OwnerKey",
    "ReapReport",
    "SandboxSession",
    "SessionOrchestrator",
    "SessionRegistry",
    "SessionSnapshot",
    "SessionStatus",
    # Streaming
    "EventKind",
    "EventSource",
    "NormalizedEvent",
    "StreamNormalizer",
    # Observability
    "LogLevel",
    "RequestContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
