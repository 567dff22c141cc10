"""HTTP middleware."""

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from repocdn.observability import RequestContext, Timer, get_logger

logger = get_logger(__name__)


class RequestContextMiddleware:
    """Binds a request ID, method and path to the logging context.

    Reuses the caller's request ID header when present and echoes it on
    the response. The context stays bound until the last body chunk is
    sent, so logs written while a file streams carry the request fields.
    Logs one line per completed request.
    """

    def __init__(
        self,
        app: ASGIApp,
        header_name: str = "X-Request-ID",
        quiet_paths: list[str] | None = None,
    ) -> None:
        """Initialize request context middleware.

        Args:
            app: The ASGI application
            header_name: Header carrying the request ID
            quiet_paths: Paths whose completion is not logged (e.g. /health)
        """
        self.app = app
        self.header_name = header_name
        self.quiet_paths = set(quiet_paths or ["/health"])

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        context = RequestContext(
            request_id=Headers(scope=scope).get(self.header_name),
            method=scope["method"],
            path=scope["path"],
        )
        status_code = 500

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[self.header_name] = context.request_id
            await send(message)

        with context:
            with Timer("http.request") as timer:
                await self.app(scope, receive, send_with_request_id)

            if scope["path"] not in self.quiet_paths:
                logger.info(
                    "Request completed",
                    context={"status": status_code},
                    duration_ms=timer.duration_ms,
                )
