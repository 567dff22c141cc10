"""RemoteStore protocol for versioned remote storage backends."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class FileDescriptor:
    """A file as reported by the remote store."""

    path: str
    name: str
    locator: str
    size: int
    revision: str


class RemoteStore(Protocol):
    """Protocol for remote versioned stores (GitHub repository, in-memory)."""

    async def list_files(self, prefix: str = "") -> list[FileDescriptor]:
        """List files directly under a directory. Sub-directories are skipped."""
        ...

    async def stat(self, path: str) -> FileDescriptor:
        """Describe a single file. Raises NotFoundError if absent or a directory."""
        ...

    async def fetch_content(self, locator: str) -> AsyncIterator[bytes]:
        """Open a file for streaming.

        Errors are raised before the iterator is returned so callers can
        choose a response status before sending any bytes.
        """
        ...

    async def write_file(
        self,
        path: str,
        content: bytes,
        message: str,
        revision: str | None = None,
    ) -> FileDescriptor:
        """Create or overwrite a file.

        Overwriting requires the current revision; raises RevisionConflictError
        when it is stale or missing.
        """
        ...

    async def delete_file(self, path: str, revision: str, message: str) -> None:
        """Delete a file at the given revision."""
        ...

    async def last_modified(self, path: str) -> datetime | None:
        """Date of the most recent change to path, None if it has no history."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
