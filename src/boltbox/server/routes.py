"""HTTP route handlers.

Turns stream back as NDJSON (newline-delimited JSON) over chunked HTTP: one
normalized event per line, the last line always a ``done`` or ``error``.
"""

import json
import time
from collections import Counter
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from boltbox.exceptions import BoltboxError
from boltbox.observability import get_logger
from boltbox.streaming import NormalizedEvent
from boltbox.utils import validate_identifier

if TYPE_CHECKING:
    from boltbox.gateway import Gateway

logger = get_logger(__name__)


class NDJSONResponse(StreamingResponse):
    """Newline-delimited JSON streaming response.

    Each chunk is a JSON object followed by a newline. Proxy buffering is
    disabled so events reach the client as they are produced.
    """

    media_type = "application/x-ndjson"

    def __init__(
        self,
        content: AsyncIterator[str],
        status_code: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        ndjson_headers = {
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        }
        if headers:
            ndjson_headers.update(headers)

        super().__init__(
            content=content,
            status_code=status_code,
            headers=ndjson_headers,
            media_type=self.media_type,
        )


def format_ndjson(data: dict[str, Any]) -> str:
    """Format data as one NDJSON line."""
    return json.dumps(data, default=str) + "\n"


def error_response(error: BoltboxError, status_code: int = 502) -> JSONResponse:
    return JSONResponse({"error": str(error), **error.context()}, status_code=status_code)


def create_routes(gateway: "Gateway") -> list[Route]:
    """Create HTTP routes for the gateway.

    Args:
        gateway: The configured Gateway instance

    Returns:
        List of Starlette routes
    """

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse(
            {
                "status": "ok",
                "timestamp": time.time(),
                "sessions": len(gateway.registry),
                "reaper_running": gateway.reaper.running,
            }
        )

    async def ping(request: Request) -> Response:
        return JSONResponse({"status": "ok"})

    async def chat_stream(request: Request) -> Response:
        """Stream one turn.

        Body:
        - message: The user's message
        - user_id: User identifier
        - project_id: Project identifier (default "default")

        Returns NDJSON lines such as:
            {"type": "text_delta", "text": "..."}
            {"type": "tool_started", "name": "...", "arguments": {...}}
            {"type": "done"}
        """
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Body must be a JSON object"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)

        user_id = body.get("user_id") or ""
        project_id = body.get("project_id") or "default"
        try:
            validate_identifier(user_id, "user_id")
            validate_identifier(project_id, "project_id")
        except (TypeError, ValueError) as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        request_id = request.headers.get("X-Request-ID")

        async def generate() -> AsyncIterator[str]:
            try:
                async for event in gateway.stream_turn(
                    user_id, project_id, message, request_id=request_id
                ):
                    yield format_ndjson(event.to_dict())
            except Exception as e:
                logger.error("Turn stream crashed", error=e)
                yield format_ndjson(NormalizedEvent.error(str(e), "internal_error").to_dict())

        return NDJSONResponse(generate())

    async def sessions(request: Request) -> Response:
        """Monitoring snapshot of every known session.

        Query params:
        - user_id: Only sessions of this user
        - status: Only sessions in this status
        """
        snapshot = [s.to_dict() for s in gateway.sessions()]
        user_id = request.query_params.get("user_id")
        status = request.query_params.get("status")
        if user_id:
            snapshot = [s for s in snapshot if s["user_id"] == user_id]
        if status:
            snapshot = [s for s in snapshot if s["status"] == status]

        return JSONResponse(
            {
                "sessions": snapshot,
                "total": len(snapshot),
                "counts": dict(Counter(s["status"] for s in snapshot)),
            }
        )

    async def destroy_session(request: Request) -> Response:
        """Destroy a session. Destroying an unknown session succeeds."""
        session_id = request.path_params["session_id"]
        try:
            destroyed = await gateway.destroy_session(session_id)
        except BoltboxError as e:
            return error_response(e)
        return JSONResponse({"session_id": session_id, "destroyed": destroyed})

    async def cleanup(request: Request) -> Response:
        """Run one reaper pass now (for cron-triggered cleanup)."""
        report = await gateway.reap()
        return JSONResponse(
            {
                "success": not report.errors,
                "stats": {
                    "paused": len(report.paused),
                    "destroyed": len(report.destroyed),
                    "removed": len(report.removed),
                    "skipped": len(report.skipped),
                    "errors": len(report.errors),
                },
                **report.to_dict(),
            }
        )

    return [
        Route("/health", health, methods=["GET"]),
        Route("/ping", ping, methods=["GET"]),
        Route("/chat/stream", chat_stream, methods=["POST"]),
        Route("/sessions", sessions, methods=["GET"]),
        Route("/sessions/cleanup", cleanup, methods=["POST"]),
        Route("/sessions/{session_id}", destroy_session, methods=["DELETE"]),
    ]
