"""ASGI application for standalone deployment."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from repocdn.server.middleware import RequestContextMiddleware

if TYPE_CHECKING:
    from repocdn.service import RepoCDN


def create_app(cdn: "RepoCDN") -> Starlette:
    """Create the ASGI application.

    The periodic index resync is started on application startup and
    stopped on shutdown.

    Args:
        cdn: The configured RepoCDN instance

    Returns:
        Starlette application
    """
    from repocdn.server.routes import create_routes

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await cdn.start()
        try:
            yield
        finally:
            await cdn.stop()

    # Middleware stack (order matters - executed in reverse order)
    # So: CORS -> RequestContext -> Route handler
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=cdn.config.server.cors_origins or ["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        ),
        Middleware(RequestContextMiddleware),
    ]

    app = Starlette(
        routes=create_routes(cdn),
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.cdn = cdn
    return app
