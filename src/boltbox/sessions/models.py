"""Sandbox session records."""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

from boltbox.exceptions import SessionNotReadyError


class SessionStatus(str, Enum):
    """Lifecycle states of a sandbox session.

    Creating -> Active -> Idle -> Paused -> Destroyed, plus
    Active -> Destroyed, Paused -> Active and Creating -> Destroyed.
    """

    CREATING = "creating"
    ACTIVE = "active"
    IDLE = "idle"
    PAUSED = "paused"
    DESTROYED = "destroyed"


# Statuses under which the sandbox accepts commands and agent turns
USABLE_STATUSES = frozenset({SessionStatus.ACTIVE, SessionStatus.IDLE})


@dataclass(frozen=True)
class OwnerKey:
    """Identifies the conversation a session serves."""

    user_id: str
    project_id: str

    def __str__(self) -> str:
        return f"{self.user_id}/{self.project_id}"


def new_session_id() -> str:
    """Generate an opaque session id."""
    return f"sess-{uuid4().hex[:12]}"


@dataclass
class SandboxSession:
    """A registry record for one remote sandbox.

    The record only references the remote resource through ``backend_ref``;
    the backend owns the resource itself.
    """

    session_id: str
    owner_key: OwnerKey
    status: SessionStatus
    created_at: float
    last_activity_at: float
    backend_ref: str | None = None
    error: str | None = None
    in_flight: int = 0  # turns currently streaming

    def require_ready(self, operation: str = "invoke") -> str:
        """Return the backend reference if the sandbox can take work.

        Raises:
            SessionNotReadyError: If the session is not Active or Idle
        """
        if self.status not in USABLE_STATUSES or self.backend_ref is None:
            raise SessionNotReadyError(
                f"Session is {self.status.value}",
                operation=operation,
                owner_key=self.owner_key,
                session_id=self.session_id,
            )
        return self.backend_ref

    def idle_for(self, now: float) -> float:
        """Seconds since the last recorded activity."""
        return max(0.0, now - self.last_activity_at)

    def snapshot(self) -> "SessionSnapshot":
        """Point-in-time copy for monitoring."""
        return SessionSnapshot(
            session_id=self.session_id,
            owner_key=self.owner_key,
            status=self.status,
            created_at=self.created_at,
            last_activity_at=self.last_activity_at,
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable monitoring view of a session."""

    session_id: str
    owner_key: OwnerKey
    status: SessionStatus
    created_at: float
    last_activity_at: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "session_id": self.session_id,
            "user_id": self.owner_key.user_id,
            "project_id": self.owner_key.project_id,
            "status": self.status.value,
            "created_at": self.created_at,
            "last_activity_at": self.last_activity_at,
        }
