"""Session orchestrator: reuse, resume or create sandbox sessions."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
from typing import TypeVar

from boltbox.exceptions import (
    BackendUnreachableError,
    BoltboxError,
    ConcurrentCreationInProgressError,
    SessionNotFoundError,
    SessionNotReadyError,
)
from boltbox.observability import Timer, emit_counter, emit_timer, get_logger
from boltbox.protocols import CommandResult, FileEntry, SandboxBackend, SandboxSpec
from boltbox.sessions.models import (
    USABLE_STATUSES,
    OwnerKey,
    SandboxSession,
    SessionStatus,
    new_session_id,
)
from boltbox.sessions.registry import SessionRegistry

T = TypeVar("T")

logger = get_logger(__name__)


class SessionOrchestrator:
    """State machine over the session registry and a sandbox backend.

    Decides for each lookup whether to reuse, resume or create a session and
    performs the backend calls that realize the decision. All transitions for
    one owner key are serialized through ``SessionRegistry.transition``, so
    concurrent first turns for the same conversation provision exactly one
    sandbox.

    Example:
        orchestrator = SessionOrchestrator(MemorySandbox())
        session = await orchestrator.get_or_create(OwnerKey("u-1", "p-1"))
        ...
        await orchestrator.release(session)
    """

    def __init__(
        self,
        backend: SandboxBackend,
        registry: SessionRegistry | None = None,
        spec: SandboxSpec | None = None,
        request_timeout: float = 30.0,
        command_timeout: float | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            backend: Sandbox backend used for every remote call
            registry: Session registry (a fresh in-memory one by default)
            spec: Base provisioning parameters for new sandboxes
            request_timeout: Seconds before a backend call is abandoned
            command_timeout: Deadline handed to the backend for commands
                (defaults to 80% of ``request_timeout``, so the backend's own
                timeout result arrives before the call is abandoned)
        """
        self.backend = backend
        self.registry = registry or SessionRegistry()
        self.spec = spec or SandboxSpec()
        self.request_timeout = request_timeout
        self.command_timeout = command_timeout or request_timeout * 0.8

    @property
    def clock(self) -> Callable[[], float]:
        return self.registry.clock

    # ==================== Backend calls ====================

    async def _call(
        self,
        operation: str,
        session: SandboxSession,
        awaitable: Awaitable[T],
    ) -> T:
        """Run a backend call with the request timeout and error context."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise BackendUnreachableError(
                f"Backend {operation} timed out after {self.request_timeout}s",
                operation=operation,
                owner_key=session.owner_key,
                session_id=session.session_id,
            ) from e
        except BoltboxError as e:
            e.operation = e.operation or operation
            if e.owner_key is None:
                e.owner_key = session.owner_key
            e.session_id = e.session_id or session.session_id
            raise

    def _spec_for(self, session: SandboxSession) -> SandboxSpec:
        metadata = {
            **self.spec.metadata,
            "session_id": session.session_id,
            "user_id": session.owner_key.user_id,
            "project_id": session.owner_key.project_id,
        }
        return replace(self.spec, metadata=metadata)

    @staticmethod
    def _log_context(session: SandboxSession, **extra: object) -> dict[str, object]:
        return {
            "session_id": session.session_id,
            "owner_key": str(session.owner_key),
            "status": session.status.value,
            **extra,
        }

    # ==================== Resolution ====================

    async def get_or_create(self, owner_key: OwnerKey, *, wait: bool = True) -> SandboxSession:
        """Resolve the session for an owner key, creating or resuming as needed.

        Args:
            owner_key: Conversation identity
            wait: Wait for an in-flight creation instead of failing fast

        Returns:
            An active session

        Raises:
            ConcurrentCreationInProgressError: If ``wait`` is False and another
                creation for the key is in flight
            BackendUnreachableError: Backend unreachable or timed out
            BackendRejectedError: Backend refused the request
        """
        if not wait and self.registry.is_transitioning(owner_key):
            current = self.registry.get(owner_key)
            if current is not None and current.status == SessionStatus.CREATING:
                raise ConcurrentCreationInProgressError(
                    "Sandbox creation already in progress",
                    operation="get_or_create",
                    owner_key=owner_key,
                    session_id=current.session_id,
                )

        async with self.registry.transition(owner_key):
            session = self.registry.get(owner_key)

            if session is None or session.status == SessionStatus.DESTROYED:
                return await self._create(owner_key)

            if session.status in USABLE_STATUSES:
                self.registry.set_status(session, SessionStatus.ACTIVE, touch=True)
                logger.debug("Reusing sandbox session", context=self._log_context(session))
                emit_counter("sessions.reused")
                return session

            if session.status == SessionStatus.PAUSED:
                await self._resume(session)
                return session

            # A Creating record under the lock means another process owns the
            # creation (externalized registry)
            raise ConcurrentCreationInProgressError(
                "Sandbox creation already in progress",
                operation="get_or_create",
                owner_key=owner_key,
                session_id=session.session_id,
            )

    async def acquire(self, owner_key: OwnerKey, *, wait: bool = True) -> SandboxSession:
        """Resolve a session for a turn and mark the turn in flight.

        Pair every call with ``release``.
        """
        session = await self.get_or_create(owner_key, wait=wait)
        session.in_flight += 1
        return session

    async def _create(self, owner_key: OwnerKey) -> SandboxSession:
        """Insert a Creating record and provision its sandbox (lock held)."""
        now = self.clock()
        session = SandboxSession(
            session_id=new_session_id(),
            owner_key=owner_key,
            status=SessionStatus.CREATING,
            created_at=now,
            last_activity_at=now,
        )
        self.registry.insert(session)
        logger.info("Creating sandbox session", context=self._log_context(session))

        try:
            with Timer() as timer:
                ref = await self._call(
                    "create",
                    session,
                    self.backend.create(owner_key, self._spec_for(session)),
                )
        except BaseException as e:
            self.registry.set_status(
                session,
                SessionStatus.DESTROYED,
                error=str(e) or type(e).__name__,
            )
            logger.error(
                "Sandbox creation failed",
                context=self._log_context(session, operation="create"),
                error=e,
            )
            emit_counter("sessions.create_failed")
            raise

        session.backend_ref = ref
        self.registry.set_status(session, SessionStatus.ACTIVE, touch=True)
        logger.info(
            "Sandbox session created",
            context=self._log_context(session, backend_ref=ref),
            duration_ms=timer.duration_ms,
        )
        emit_counter("sessions.created")
        emit_timer("sessions.create.duration", timer.duration_ms)
        return session

    async def _resume(self, session: SandboxSession) -> None:
        """Resume a paused session (lock held). Stays Paused on failure."""
        try:
            await self._call("resume", session, self.backend.resume(self._ref(session)))
        except BaseException as e:
            self.registry.set_status(session, SessionStatus.PAUSED, error=str(e) or type(e).__name__)
            logger.error(
                "Sandbox resume failed",
                context=self._log_context(session, operation="resume"),
                error=e,
            )
            raise

        self.registry.set_status(session, SessionStatus.ACTIVE, touch=True)
        logger.info("Sandbox session resumed", context=self._log_context(session))
        emit_counter("sessions.resumed")

    @staticmethod
    def _ref(session: SandboxSession) -> str:
        if session.backend_ref is None:
            raise SessionNotReadyError(
                "Session has no backend reference",
                owner_key=session.owner_key,
                session_id=session.session_id,
            )
        return session.backend_ref

    # ==================== Activity ====================

    def touch(self, session_id: str) -> bool:
        """Record activity on a session (message sent, event consumed)."""
        return self.registry.touch(session_id)

    def keep_alive(self, owner_key: OwnerKey) -> bool:
        """Explicit keep-alive for a conversation's session."""
        session = self.registry.get(owner_key)
        if session is None:
            return False
        return self.registry.touch(session.session_id)

    async def release(self, session: SandboxSession) -> None:
        """Mark a turn finished; the session goes Idle when no turn is in flight."""
        session.in_flight = max(0, session.in_flight - 1)
        async with self.registry.transition(session.owner_key):
            current = self.registry.get_by_id(session.session_id)
            if current is not session:
                return
            if session.in_flight == 0 and session.status == SessionStatus.ACTIVE:
                self.registry.set_status(session, SessionStatus.IDLE, touch=True)
            else:
                self.registry.touch(session.session_id)

    def require_ready(self, session: SandboxSession, operation: str = "invoke") -> str:
        """Return the backend reference of a usable session.

        Raises:
            SessionNotReadyError: If the session is not Active or Idle
        """
        return session.require_ready(operation)

    # ==================== Lifecycle control ====================

    async def pause(self, session_id: str, *, min_idle: float | None = None) -> bool:
        """Pause an Active or Idle session.

        Args:
            session_id: Session to pause
            min_idle: Only pause if idle at least this long (re-checked under the lock)

        Returns:
            True if the backend was paused
        """
        session = self.registry.get_by_id(session_id)
        if session is None:
            return False

        async with self.registry.transition(session.owner_key):
            if self.registry.get_by_id(session_id) is not session:
                return False
            if session.status not in USABLE_STATUSES or session.in_flight:
                return False
            if min_idle is not None and session.idle_for(self.clock()) < min_idle:
                return False

            try:
                await self._call("pause", session, self.backend.pause(self._ref(session)))
            except BaseException as e:
                logger.error(
                    "Sandbox pause failed",
                    context=self._log_context(session, operation="pause"),
                    error=e,
                )
                raise

            self.registry.set_status(session, SessionStatus.PAUSED)
            logger.info("Sandbox session paused", context=self._log_context(session))
            emit_counter("sessions.paused")
            return True

    async def destroy(
        self,
        session_id: str,
        *,
        min_idle: float | None = None,
        statuses: Iterable[SessionStatus] | None = None,
    ) -> bool:
        """Destroy a session and drop its registry entry. Idempotent.

        Args:
            session_id: Session to destroy
            min_idle: Only destroy if idle at least this long
            statuses: Only destroy if the session is in one of these statuses

        Returns:
            True if a registry entry was removed
        """
        session = self.registry.get_by_id(session_id)
        if session is None:
            return False

        async with self.registry.transition(session.owner_key):
            if self.registry.get_by_id(session_id) is not session:
                return False
            if statuses is not None and session.status not in set(statuses):
                return False
            if min_idle is not None and session.idle_for(self.clock()) < min_idle:
                return False

            if session.backend_ref is not None:
                try:
                    await self._call("destroy", session, self.backend.destroy(session.backend_ref))
                except BaseException as e:
                    session.error = str(e) or type(e).__name__
                    logger.error(
                        "Sandbox destroy failed",
                        context=self._log_context(session, operation="destroy"),
                        error=e,
                    )
                    raise

            self.registry.set_status(session, SessionStatus.DESTROYED, error=session.error)
            self.registry.remove(session)
            logger.info("Sandbox session destroyed", context=self._log_context(session))
            emit_counter("sessions.destroyed")
            return True

    async def shutdown(self, destroy_sessions: bool = False) -> None:
        """Release every known session when the process stops.

        Args:
            destroy_sessions: Destroy remote sandboxes instead of leaving them
                for a later process to reap
        """
        if not destroy_sessions:
            return
        for session in self.registry.sessions():
            try:
                await self.destroy(session.session_id)
            except BoltboxError as e:
                logger.warning(
                    "Failed to destroy session during shutdown",
                    context=self._log_context(session),
                    error=e,
                )

    # ==================== Sandbox proxies ====================

    def _usable(self, session_id: str, operation: str) -> tuple[SandboxSession, str]:
        session = self.registry.get_by_id(session_id)
        if session is None:
            raise SessionNotFoundError(
                "Unknown session", operation=operation, session_id=session_id
            )
        return session, self.require_ready(session, operation)

    async def run_command(
        self,
        session_id: str,
        command: str,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run a command in a session's sandbox."""
        session, ref = self._usable(session_id, "run_command")
        result = await self._call(
            "run_command",
            session,
            self.backend.run_command(ref, command, cwd=cwd, timeout=self.command_timeout),
        )
        self.registry.touch(session_id)
        return result

    async def read_file(self, session_id: str, path: str) -> bytes:
        """Read a file from a session's sandbox."""
        session, ref = self._usable(session_id, "read_file")
        content = await self._call("read_file", session, self.backend.read_file(ref, path))
        self.registry.touch(session_id)
        return content

    async def write_file(self, session_id: str, path: str, content: bytes) -> None:
        """Write a file into a session's sandbox."""
        session, ref = self._usable(session_id, "write_file")
        await self._call("write_file", session, self.backend.write_file(ref, path, content))
        self.registry.touch(session_id)

    async def list_files(self, session_id: str, path: str) -> list[FileEntry]:
        """List a directory in a session's sandbox."""
        session, ref = self._usable(session_id, "list_files")
        entries = await self._call("list_files", session, self.backend.list_files(ref, path))
        self.registry.touch(session_id)
        return entries
