"""ASGI application for standalone deployment."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from boltbox.server.routes import create_routes

if TYPE_CHECKING:
    from boltbox.gateway import Gateway


def create_app(gateway: "Gateway") -> Starlette:
    """Create the ASGI application.

    The app's lifespan starts the gateway's idle reaper and stops it (and
    optionally destroys live sessions) on shutdown.

    Args:
        gateway: The configured Gateway instance

    Returns:
        Starlette application
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await gateway.start()
        try:
            yield
        finally:
            await gateway.stop()

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=gateway.config.server.cors_origins or ["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        ),
    ]

    return Starlette(
        routes=create_routes(gateway),
        middleware=middleware,
        lifespan=lifespan,
    )
