"""Structured logging, request context and in-process metrics.

Log records are rendered as one JSON object per line. Records written while
a request is being handled carry its request ID, method and path.
"""

import json
import logging
import sys
import time
import uuid
from collections import defaultdict
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, MutableMapping

from repocdn.exceptions import ConfigError

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class RequestInfo:
    """The HTTP request currently being handled."""

    request_id: str
    method: str
    path: str


_current_request: ContextVar[RequestInfo | None] = ContextVar("current_request", default=None)


def current_request() -> RequestInfo | None:
    """Request bound to the running task, if any."""
    return _current_request.get()


class RequestContext:
    """Binds one request to the logging context for the duration of a block.

    Example:
        with RequestContext(headers.get("X-Request-ID"), "GET", "/media/logo.png") as ctx:
            logger.info("Serving file")  # includes request_id, method, path
        response_headers["X-Request-ID"] = ctx.request_id
    """

    def __init__(self, request_id: str | None, method: str, path: str) -> None:
        self.info = RequestInfo(
            request_id=request_id or uuid.uuid4().hex,
            method=method,
            path=path,
        )
        self._token: Token[RequestInfo | None] | None = None

    @property
    def request_id(self) -> str:
        return self.info.request_id

    def __enter__(self) -> "RequestContext":
        self._token = _current_request.set(self.info)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _current_request.reset(self._token)
            self._token = None


class StructuredFormatter(logging.Formatter):
    """Formats log records as JSON.

    Output fields: level, message, timestamp, logger, and when present
    context (request fields plus the caller's context), error and
    duration_ms.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "logger": record.name,
        }

        context: dict[str, Any] = {}
        request = current_request()
        if request is not None:
            context.update(
                request_id=request.request_id,
                method=request.method,
                path=request.path,
            )
        record_context = getattr(record, "context", None)
        if isinstance(record_context, dict):
            context.update(record_context)
        if context:
            data["context"] = context

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            data["error"] = {"type": type(exc).__name__, "message": str(exc)}

        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            data["duration_ms"] = round(duration_ms, 3)

        return json.dumps(data, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Logger taking structured keyword arguments.

    Example:
        logger = get_logger(__name__)
        logger.info("Loaded files into memory", context={"files": 12}, duration_ms=84.2)
        logger.error("Upload error", context={"file": path}, error=e)
    """

    def __init__(self, name: str) -> None:
        # Level and handlers come from the "repocdn" logger (see configure_logging)
        super().__init__(logging.getLogger(name), {})

    def process(
        self,
        msg: Any,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.pop("extra", None) or {})
        context = kwargs.pop("context", None)
        if context:
            extra["context"] = context
        duration_ms = kwargs.pop("duration_ms", None)
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        error = kwargs.pop("error", None)
        if error is not None:
            kwargs["exc_info"] = (type(error), error, error.__traceback__)
        kwargs["extra"] = extra
        return msg, kwargs


@dataclass
class TimerStats:
    """Running summary of one timed operation."""

    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    def observe(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "avg_ms": round(self.total_ms / self.count, 3) if self.count else 0.0,
            "max_ms": round(self.max_ms, 3),
        }


class Metrics:
    """Process-wide counters and timings, served at GET /api/metrics.

    Counters in use: serve.hit, serve.miss, upload.revision_conflict,
    delete.revision_conflict, index.resync.failed. Timers: http.request,
    upload, index.resync, github.<method>.
    """

    def __init__(self) -> None:
        self._counters: defaultdict[str, int] = defaultdict(int)
        self._timers: defaultdict[str, TimerStats] = defaultdict(TimerStats)

    def increment(self, name: str) -> None:
        self._counters[name] += 1

    def observe(self, name: str, duration_ms: float) -> None:
        self._timers[name].observe(duration_ms)

    def counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def timer(self, name: str) -> TimerStats:
        return self._timers.get(name, TimerStats())

    def snapshot(self) -> dict[str, Any]:
        return {
            "counters": dict(self._counters),
            "timers": {name: stats.to_dict() for name, stats in self._timers.items()},
        }

    def reset(self) -> None:
        self._counters.clear()
        self._timers.clear()


metrics = Metrics()


class Timer:
    """Times a block, recording the duration under `metric` when given.

    Example:
        with Timer("index.resync") as t:
            files = await store.list_files()
        logger.info("Listing fetched", duration_ms=t.duration_ms)
    """

    def __init__(self, metric: str | None = None) -> None:
        self.metric = metric
        self.start_time: float = 0
        self.end_time: float = 0

    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time) * 1000

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.end_time = time.perf_counter()
        if self.metric:
            metrics.observe(self.metric, self.duration_ms)


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Attach a stdout handler to the "repocdn" logger.

    Args:
        level: Level name, case-insensitive
        format: "json" or "text"

    Raises:
        ConfigError: If the level name is unknown
    """
    level_name = level.upper()
    if level_name not in logging.getLevelNamesMapping():
        raise ConfigError(f"Unknown log level: {level}")

    package_logger = logging.getLogger("repocdn")
    package_logger.setLevel(level_name)
    package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    package_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module (typically __name__)."""
    return StructuredLogger(name)
