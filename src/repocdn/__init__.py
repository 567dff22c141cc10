"""repocdn - A CDN proxy serving files stored in a GitHub repository."""

from repocdn.caching import CacheEntry, FileIndex, SingleFlight
from repocdn.config import Config
from repocdn.exceptions import (
    ConfigError,
    NotFoundError,
    RemoteStoreError,
    RemoteUnavailableError,
    RepoCDNError,
    RevisionConflictError,
    ValidationError,
)
from repocdn.observability import (
    Metrics,
    RequestContext,
    StructuredLogger,
    Timer,
    configure_logging,
    get_logger,
    metrics,
)
from repocdn.scheduling import PeriodicTask
from repocdn.service import RepoCDN, ServedFile, UploadResult

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "RepoCDN",
    "ServedFile",
    "UploadResult",
    # Index
    "CacheEntry",
    "FileIndex",
    "PeriodicTask",
    "SingleFlight",
    # Errors
    "ConfigError",
    "NotFoundError",
    "RemoteStoreError",
    "RemoteUnavailableError",
    "RepoCDNError",
    "RevisionConflictError",
    "ValidationError",
    # Observability
    "Metrics",
    "RequestContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "get_logger",
    "metrics",
]
