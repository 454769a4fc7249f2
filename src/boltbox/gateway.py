"""Gateway: the turn-serving entry point wiring sessions, agents and streams."""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from pathlib import Path
from typing import Any

from boltbox.agents import AgentClient, create_agent_client
from boltbox.config import Config
from boltbox.exceptions import (
    BackendUnreachableError,
    BoltboxError,
    ConcurrentCreationInProgressError,
    ConfigError,
)
from boltbox.observability import (
    RequestContext,
    Timer,
    emit_counter,
    emit_timer,
    get_logger,
)
from boltbox.plugins import create_sandbox_backend
from boltbox.protocols import SandboxBackend, SandboxSpec
from boltbox.sessions import (
    IdleReaper,
    OwnerKey,
    ReapReport,
    SandboxSession,
    SessionOrchestrator,
    SessionRegistry,
    SessionSnapshot,
)
from boltbox.streaming import NormalizedEvent, StreamNormalizer
from boltbox.streaming.dialects import get_dialect
from boltbox.utils import validate_identifier

logger = get_logger(__name__)

# Session resolution failures worth another attempt
RETRYABLE_ERRORS = (BackendUnreachableError, ConcurrentCreationInProgressError)


class Gateway:
    """Serves chat turns against sandbox-hosted agents.

    Example usage:
        # Load from config file
        gateway = Gateway.from_config("config.yaml")

        # Start HTTP server
        gateway.serve(port=8080)

        # Or use directly
        async with gateway:
            async for event in gateway.stream_turn("user-1", "proj-1", "Hello"):
                print(event.to_dict())
    """

    def __init__(
        self,
        config: Config,
        backend: SandboxBackend | None = None,
        agent: AgentClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Wire the gateway from configuration.

        Use `Gateway.from_config()` for convenience.

        Args:
            config: Gateway configuration
            backend: Sandbox backend (built from ``config.sandbox`` when omitted)
            agent: Agent client (built from ``config.agent`` when omitted)
            clock: Timestamp source for session activity
        """
        self.config = config
        sandbox = config.sandbox

        self.backend = backend or self._create_backend()
        self.registry = SessionRegistry(clock=clock)
        self.orchestrator = SessionOrchestrator(
            self.backend,
            self.registry,
            spec=SandboxSpec(
                template=sandbox.template,
                image=sandbox.image,
                env=dict(sandbox.env),
                ports=[sandbox.agent_port],
            ),
            request_timeout=sandbox.request_timeout_seconds,
        )
        self.reaper = IdleReaper(
            self.orchestrator,
            interval_seconds=config.reaper.interval_seconds,
            idle_seconds=config.reaper.idle_seconds,
            destroy_seconds=config.reaper.destroy_seconds,
            failed_retention_seconds=config.reaper.failed_retention_seconds,
        )
        self.agent = agent or self._create_agent()
        self.normalizer = StreamNormalizer(self.registry)

    @classmethod
    def from_config(cls, path: str | Path, **kwargs: Any) -> "Gateway":
        """Create a Gateway from a YAML or JSON configuration file."""
        return cls(Config.from_file(path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> "Gateway":
        """Create a Gateway from a configuration dictionary."""
        return cls(Config.from_dict(config_dict), **kwargs)

    def _create_backend(self) -> SandboxBackend:
        sandbox = self.config.sandbox
        try:
            return create_sandbox_backend(
                sandbox.backend,
                api_key=sandbox.api_key,
                api_url=sandbox.api_url,
                template=sandbox.template,
                image=sandbox.image,
                agent_port=sandbox.agent_port,
                timeout_seconds=sandbox.request_timeout_seconds,
            )
        except ValueError as e:
            raise ConfigError(str(e), operation="create_backend") from e

    def _create_agent(self) -> AgentClient:
        agent = self.config.agent
        try:
            get_dialect(agent.dialect)
            return create_agent_client(
                agent.provider,
                orchestrator=self.orchestrator,
                path=agent.path,
                url_template=agent.url_template,
                agent_port=self.config.sandbox.agent_port,
                dialect=agent.dialect,
                timeout_seconds=self.config.sandbox.request_timeout_seconds,
                model=agent.model,
                system_prompt=agent.system_prompt,
                allowed_tools=agent.allowed_tools,
                max_turns=agent.max_turns,
            )
        except ValueError as e:
            raise ConfigError(str(e), operation="create_agent") from e

    # ==================== Turns ====================

    async def _acquire(self, owner_key: OwnerKey) -> SandboxSession:
        """Resolve the session for a turn, retrying transient failures."""
        attempts = max(1, self.config.retry.attempts)
        attempt = 1
        while True:
            try:
                return await self.orchestrator.acquire(owner_key)
            except RETRYABLE_ERRORS as e:
                if attempt >= attempts:
                    raise
                delay = self.config.retry.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "Session resolution failed, retrying",
                    context={"attempt": attempt, "delay_seconds": delay, **e.context()},
                    error=e,
                )
                emit_counter("gateway.acquire.retried", {"code": e.code})
                await asyncio.sleep(delay)
                attempt += 1

    async def stream_turn(
        self,
        user_id: str,
        project_id: str,
        message: str,
        request_id: str | None = None,
    ) -> AsyncIterator[NormalizedEvent]:
        """Send a turn to the conversation's agent and stream normalized events.

        The stream always ends with exactly one ``done`` or ``error`` event;
        failures before the agent stream opens are reported the same way.

        Args:
            user_id: User identifier
            project_id: Project identifier
            message: The user's message
            request_id: Correlation id for logs (generated when omitted)

        Raises:
            ValueError: If an identifier or the message is invalid
        """
        validate_identifier(user_id, "user_id")
        validate_identifier(project_id, "project_id")
        if not message:
            raise ValueError("message cannot be empty")

        owner_key = OwnerKey(user_id, project_id)

        async with RequestContext(request_id=request_id, user_id=user_id, project_id=project_id) as ctx:
            with Timer() as timer:
                logger.info("Turn started", context={"message_length": len(message)})
                emit_counter("gateway.turn.started")

                try:
                    session = await self._acquire(owner_key)
                except BoltboxError as e:
                    logger.error("Session resolution failed", context=e.context(), error=e)
                    emit_counter("gateway.turn.failed", {"code": e.code})
                    yield NormalizedEvent.error(e.message or str(e), **e.context())
                    return

                ctx.bind_session(session.session_id)
                last: NormalizedEvent | None = None
                try:
                    try:
                        source = await self.agent.invoke(session, message)
                    except BoltboxError as e:
                        logger.error("Agent invocation failed", context=e.context(), error=e)
                        emit_counter("gateway.turn.failed", {"code": e.code})
                        yield NormalizedEvent.error(e.message or str(e), **e.context())
                        return

                    async with aclosing(self.normalizer.normalize(source, session)) as events:
                        async for event in events:
                            last = event
                            yield event
                finally:
                    await self.orchestrator.release(session)

            outcome = last.kind.value if last else "cancelled"
            logger.info("Turn finished", context={"outcome": outcome}, duration_ms=timer.duration_ms)
            emit_timer("gateway.turn.duration", timer.duration_ms)
            emit_counter("gateway.turn.finished", {"outcome": outcome})

    # ==================== Sessions ====================

    def sessions(self) -> list[SessionSnapshot]:
        """Monitoring snapshot of every known session."""
        return self.registry.snapshot()

    def keep_alive(self, user_id: str, project_id: str) -> bool:
        """Refresh a conversation's session so the reaper leaves it alone."""
        return self.orchestrator.keep_alive(OwnerKey(user_id, project_id))

    async def destroy_session(self, session_id: str) -> bool:
        """Destroy a session explicitly. Idempotent."""
        return await self.orchestrator.destroy(session_id)

    async def reap(self) -> ReapReport:
        """Run one reaper pass now."""
        return await self.reaper.run_once()

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Start the background reaper."""
        self.reaper.start()

    async def stop(self) -> None:
        """Stop the reaper and release sessions and clients."""
        await self.reaper.stop()
        await self.orchestrator.shutdown(destroy_sessions=self.config.sandbox.destroy_on_shutdown)
        await self.agent.close()

    def serve(
        self,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """Start the HTTP server.

        Args:
            host: Host to bind to (defaults to config value)
            port: Port to bind to (defaults to config value)
        """
        import uvicorn

        from boltbox.observability import configure_logging
        from boltbox.server.app import create_app

        configure_logging(self.config.logging.level, self.config.logging.format)
        uvicorn.run(
            create_app(self),
            host=host or self.config.server.host,
            port=port or self.config.server.port,
        )

    async def __aenter__(self) -> "Gateway":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
