"""Process-wide session registry with per-key transition locks."""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from boltbox.sessions.models import (
    OwnerKey,
    SandboxSession,
    SessionSnapshot,
    SessionStatus,
)


@dataclass
class _KeyLock:
    """A transition lock plus the number of tasks holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionRegistry:
    """In-memory map from owner key to its sandbox session.

    Lookups, snapshots and activity bumps are synchronous and never wait.
    Structural mutations (insert, status change, removal) must happen inside
    ``transition(owner_key)``, which serializes transitions per owner key
    while unrelated keys proceed in parallel.

    Example:
        async with registry.transition(key):
            session = registry.get(key)
            registry.set_status(session, SessionStatus.PAUSED)
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the registry.

        Args:
            clock: Source of timestamps in seconds (injectable for tests)
        """
        self.clock = clock
        self._by_owner: dict[OwnerKey, SandboxSession] = {}
        self._by_id: dict[str, SandboxSession] = {}
        self._locks: dict[OwnerKey, _KeyLock] = {}

    # ==================== Transitions ====================

    @asynccontextmanager
    async def transition(self, owner_key: OwnerKey) -> AsyncIterator[None]:
        """Hold the mutation right for ``owner_key``."""
        entry = self._locks.get(owner_key)
        if entry is None:
            entry = self._locks[owner_key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[owner_key]

    def is_transitioning(self, owner_key: OwnerKey) -> bool:
        """Whether some task currently holds the mutation right for the key."""
        entry = self._locks.get(owner_key)
        return entry is not None and entry.lock.locked()

    def _require_transition(self, owner_key: OwnerKey) -> None:
        if not self.is_transitioning(owner_key):
            raise RuntimeError(f"Registry mutation for {owner_key} outside a transition")

    # ==================== Lookups ====================

    def get(self, owner_key: OwnerKey) -> SandboxSession | None:
        """Get the session record for an owner key."""
        return self._by_owner.get(owner_key)

    def get_by_id(self, session_id: str) -> SandboxSession | None:
        """Get a session record by its id."""
        return self._by_id.get(session_id)

    def sessions(self) -> list[SandboxSession]:
        """All known session records."""
        return list(self._by_owner.values())

    def snapshot(self) -> list[SessionSnapshot]:
        """Point-in-time monitoring view of every known session."""
        return [session.snapshot() for session in self._by_owner.values()]

    def __len__(self) -> int:
        return len(self._by_owner)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._by_id

    # ==================== Mutations ====================

    def insert(self, session: SandboxSession) -> None:
        """Register a session, replacing any record held by its owner key."""
        self._require_transition(session.owner_key)
        previous = self._by_owner.get(session.owner_key)
        if previous is not None:
            self._by_id.pop(previous.session_id, None)
        self._by_owner[session.owner_key] = session
        self._by_id[session.session_id] = session

    def set_status(
        self,
        session: SandboxSession,
        status: SessionStatus,
        *,
        error: str | None = None,
        touch: bool = False,
    ) -> None:
        """Transition a session to a new status."""
        self._require_transition(session.owner_key)
        session.status = status
        session.error = error
        if touch:
            session.last_activity_at = self.clock()

    def remove(self, session: SandboxSession) -> bool:
        """Drop a session record. Returns True if it was registered."""
        self._require_transition(session.owner_key)
        current = self._by_owner.get(session.owner_key)
        self._by_id.pop(session.session_id, None)
        if current is session:
            del self._by_owner[session.owner_key]
            return True
        return False

    def touch(self, session_id: str) -> bool:
        """Record activity on a session. Returns False if it is unknown."""
        session = self._by_id.get(session_id)
        if session is None or session.status == SessionStatus.DESTROYED:
            return False
        session.last_activity_at = self.clock()
        return True
