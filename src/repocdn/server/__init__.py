"""HTTP Server module."""

from repocdn.server.app import create_app
from repocdn.server.middleware import RequestContextMiddleware
from repocdn.server.routes import create_routes

__all__ = [
    "RequestContextMiddleware",
    "create_app",
    "create_routes",
]
