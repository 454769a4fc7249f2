"""Stream normalizer: heterogeneous agent events in, one ordered protocol out."""

from collections.abc import AsyncIterator, Mapping
from contextlib import aclosing

from boltbox.exceptions import BoltboxError
from boltbox.observability import emit_counter, get_logger
from boltbox.sessions.models import SandboxSession
from boltbox.sessions.registry import SessionRegistry
from boltbox.streaming.dialects import DIALECTS, Dialect
from boltbox.streaming.events import NormalizedEvent
from boltbox.streaming.source import EventSource

logger = get_logger(__name__)


class StreamNormalizer:
    """Relays an ``EventSource`` as normalized events.

    - Each recognized raw record becomes exactly one event, in source order.
    - Unrecognized records are dropped.
    - The stream ends after the first ``done`` or ``error`` event, and always
      ends with one of them: a source failure becomes an ``error`` event with
      the failure's code, and a source that runs dry without completing
      becomes ``error`` with code ``stream_truncated``. A source in an
      unknown dialect ends at once with code ``unknown_dialect``.
    - Every emitted event refreshes the session's last activity.
    - The source is closed however the stream ends, including when the
      consumer stops early or is cancelled.
    """

    def __init__(
        self,
        registry: SessionRegistry | None = None,
        dialects: Mapping[str, Dialect] | None = None,
    ) -> None:
        self.registry = registry
        self.dialects = dict(dialects or DIALECTS)

    def _touch(self, session: SandboxSession | None) -> None:
        if session is not None and self.registry is not None:
            self.registry.touch(session.session_id)

    async def normalize(
        self,
        source: EventSource,
        session: SandboxSession | None = None,
    ) -> AsyncIterator[NormalizedEvent]:
        """Normalize a source.

        Args:
            source: Raw agent events
            session: Session whose activity the stream keeps fresh

        Yields:
            Normalized events, the last of which is ``done`` or ``error``
        """
        session_id = session.session_id if session else None
        try:
            dialect = self.dialects.get(source.dialect)
            if dialect is None:
                logger.error(
                    "Unknown stream dialect",
                    context={"session_id": session_id, "dialect": source.dialect},
                )
                emit_counter("stream.failed", {"code": "unknown_dialect"})
                yield NormalizedEvent.error(
                    f"Unknown stream dialect '{source.dialect}'",
                    "unknown_dialect",
                    session_id=session_id,
                )
                return

            iterator = aiter(source)
            dropped = 0

            while True:
                try:
                    raw = await anext(iterator)
                except StopAsyncIteration:
                    break
                except BoltboxError as e:
                    context = {"session_id": session_id, **e.context()}
                    logger.warning("Agent stream failed", context=context, error=e)
                    emit_counter("stream.failed", {"code": e.code})
                    yield NormalizedEvent.error(e.message or str(e), **context)
                    return
                except Exception as e:
                    logger.error(
                        "Agent stream raised unexpectedly",
                        context={"session_id": session_id},
                        error=e,
                    )
                    emit_counter("stream.failed", {"code": "stream_error"})
                    yield NormalizedEvent.error(
                        str(e) or type(e).__name__, "stream_error", session_id=session_id
                    )
                    return

                event = dialect.classify(raw)
                if event is None:
                    dropped += 1
                    continue

                self._touch(session)
                yield event
                if event.is_terminal:
                    emit_counter("stream.completed", {"kind": event.kind.value})
                    return

            logger.warning(
                "Agent stream ended without completion",
                context={"session_id": session_id, "dropped": dropped},
            )
            emit_counter("stream.truncated")
            yield NormalizedEvent.error(
                "Agent stream ended without completing",
                "stream_truncated",
                session_id=session_id,
            )
        finally:
            await source.aclose()


async def normalize_events(
    source: EventSource,
    session: SandboxSession | None = None,
    registry: SessionRegistry | None = None,
) -> AsyncIterator[NormalizedEvent]:
    """Normalize a source with the default dialects."""
    async with aclosing(StreamNormalizer(registry).normalize(source, session)) as events:
        async for event in events:
            yield event
