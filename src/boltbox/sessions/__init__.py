"""Sandbox session management module."""

from boltbox.sessions.models import (
    OwnerKey,
    SandboxSession,
    SessionSnapshot,
    SessionStatus,
)
from boltbox.sessions.orchestrator import SessionOrchestrator
from boltbox.sessions.reaper import IdleReaper, ReapReport
from boltbox.sessions.registry import SessionRegistry

__all__ = [
    "IdleReaper",
    "OwnerKey",
    "ReapReport",
    "SandboxSession",
    "SessionOrchestrator",
    "SessionRegistry",
    "SessionSnapshot",
    "SessionStatus",
]
