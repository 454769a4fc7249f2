"""Idle reaper: pauses idle sessions and destroys abandoned ones."""

import asyncio
from dataclasses import dataclass, field

from boltbox.exceptions import BoltboxError
from boltbox.observability import Timer, emit_counter, emit_timer, get_logger
from boltbox.sessions.models import SessionStatus
from boltbox.sessions.orchestrator import SessionOrchestrator

logger = get_logger(__name__)


@dataclass
class ReapReport:
    """Outcome of one reaper pass."""

    paused: list[str] = field(default_factory=list)
    destroyed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary."""
        return {
            "paused": self.paused,
            "destroyed": self.destroyed,
            "removed": self.removed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class IdleReaper:
    """Periodic scan over the session registry.

    - Active/Idle sessions idle longer than ``idle_seconds`` are paused
    - Paused/Idle sessions idle longer than ``destroy_seconds`` are destroyed
    - Destroyed records (failed creations) older than
      ``failed_retention_seconds`` are dropped

    The reaper is just another transition initiator: every change goes
    through the orchestrator and so through the per-key lock. Sessions whose
    key is mid-transition are skipped until the next pass.

    Tests call ``run_once()`` directly instead of ``start()``.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        interval_seconds: float = 60.0,
        idle_seconds: float = 1800.0,
        destroy_seconds: float = 7200.0,
        failed_retention_seconds: float = 300.0,
    ) -> None:
        if destroy_seconds <= idle_seconds:
            raise ValueError("destroy_seconds must exceed idle_seconds")
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.idle_seconds = idle_seconds
        self.destroy_seconds = destroy_seconds
        self.failed_retention_seconds = failed_retention_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> ReapReport:
        """Perform one deterministic scan-and-transition pass."""
        registry = self.orchestrator.registry
        report = ReapReport()
        now = registry.clock()

        with Timer() as timer:
            for session in registry.sessions():
                if registry.is_transitioning(session.owner_key):
                    report.skipped.append(session.session_id)
                    continue

                idle = session.idle_for(now)
                try:
                    if session.status == SessionStatus.DESTROYED:
                        if idle >= self.failed_retention_seconds and await self.orchestrator.destroy(
                            session.session_id,
                            min_idle=self.failed_retention_seconds,
                            statuses=[SessionStatus.DESTROYED],
                        ):
                            report.removed.append(session.session_id)

                    elif session.status in (SessionStatus.PAUSED, SessionStatus.IDLE) and (
                        idle >= self.destroy_seconds
                    ):
                        if await self.orchestrator.destroy(
                            session.session_id,
                            min_idle=self.destroy_seconds,
                            statuses=[SessionStatus.PAUSED, SessionStatus.IDLE],
                        ):
                            report.destroyed.append(session.session_id)

                    elif session.status in (SessionStatus.ACTIVE, SessionStatus.IDLE) and (
                        idle >= self.idle_seconds
                    ):
                        if await self.orchestrator.pause(
                            session.session_id,
                            min_idle=self.idle_seconds,
                        ):
                            report.paused.append(session.session_id)

                except BoltboxError as e:
                    report.errors[session.session_id] = str(e)
                    logger.warning(
                        "Reaper transition failed",
                        context={
                            "session_id": session.session_id,
                            "owner_key": str(session.owner_key),
                            "status": session.status.value,
                        },
                        error=e,
                    )

        if report.paused or report.destroyed or report.removed or report.errors:
            logger.info(
                "Reaper pass complete",
                context={
                    "paused": len(report.paused),
                    "destroyed": len(report.destroyed),
                    "removed": len(report.removed),
                    "errors": len(report.errors),
                },
                duration_ms=timer.duration_ms,
            )
        emit_timer("reaper.pass.duration", timer.duration_ms)
        emit_counter("reaper.passes")
        return report

    async def _loop(self) -> None:
        logger.info("Reaper started", context={"interval_seconds": self.interval_seconds})
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Reaper pass crashed", error=e)

    def start(self) -> None:
        """Launch the background loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="boltbox-idle-reaper")

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Reaper stopped")
