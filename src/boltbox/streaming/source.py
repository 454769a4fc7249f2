"""Raw agent event sources."""

from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable
from typing import Any

RawEvent = dict[str, Any]


class EventSource:
    """A finite, non-restartable stream of raw agent events.

    Wraps an async iterator of backend-specific records tagged with the
    dialect that knows how to read them. One reader at a time; a second
    iteration raises ``RuntimeError``. ``aclose()`` releases the underlying
    connection and is safe to call more than once.

    Example:
        async with await client.invoke(session, "hello") as source:
            async for raw in source:
                ...
    """

    def __init__(
        self,
        events: AsyncIterable[RawEvent],
        dialect: str,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            events: Raw records in backend emission order
            dialect: Name of the dialect the records are written in
            on_close: Called once on close (e.g. to close an HTTP response)
        """
        self.dialect = dialect
        self._events = events
        self._iterator: AsyncIterator[RawEvent] | None = None
        self._on_close = on_close
        self._started = False
        self._closed = False

    @classmethod
    def from_records(cls, records: Iterable[RawEvent], dialect: str) -> "EventSource":
        """Build a source over already-materialized records."""

        async def generate() -> AsyncIterator[RawEvent]:
            for record in records:
                yield record

        return cls(generate(), dialect)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "EventSource":
        if self._started:
            raise RuntimeError("EventSource can only be iterated once")
        self._started = True
        self._iterator = self._events.__aiter__()
        return self

    async def __anext__(self) -> RawEvent:
        if self._closed or self._iterator is None:
            raise StopAsyncIteration
        return await self._iterator.__anext__()

    async def aclose(self) -> None:
        """Stop the stream and release its connection."""
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._events, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._on_close is not None:
                await self._on_close()

    async def __aenter__(self) -> "EventSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
