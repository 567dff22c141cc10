"""repocdn exceptions."""


class RepoCDNError(Exception):
    """Base exception for repocdn."""

    pass


class ConfigError(RepoCDNError):
    """Configuration error."""

    pass


class ValidationError(RepoCDNError):
    """Invalid request input (e.g. upload without a file)."""

    pass


class RemoteStoreError(RepoCDNError):
    """Error talking to the remote store."""

    pass


class RemoteUnavailableError(RemoteStoreError):
    """Remote store unreachable, unauthorized, or failing."""

    pass


class NotFoundError(RemoteStoreError):
    """Path not found in the remote store."""

    pass


class RevisionConflictError(RemoteStoreError):
    """Revision supplied for a write or delete is stale or missing."""

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"Revision conflict for {path}")
