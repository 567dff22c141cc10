"""In-memory remote store."""

import asyncio
import hashlib
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from repocdn.exceptions import NotFoundError, RevisionConflictError
from repocdn.protocols.remote_store import FileDescriptor

LOCATOR_SCHEME = "memory://"


def blob_sha(content: bytes) -> str:
    """Git blob SHA-1 of content, the revision format GitHub uses."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


@dataclass
class StoredFile:
    """A file held by the memory store."""

    content: bytes
    revision: str
    committed_at: datetime


class MemoryRemoteStore:
    """In-memory remote store with GitHub-like revision checks.

    Suitable for development and testing. Data is lost on restart.
    """

    def __init__(self, chunk_size: int = 64 * 1024, **kwargs: Any) -> None:
        """Initialize memory store.

        Args:
            chunk_size: Size of chunks yielded by fetch_content
            **kwargs: Ignored (for compatibility with other backends)
        """
        self.chunk_size = chunk_size
        self._files: dict[str, StoredFile] = {}
        self._lock = asyncio.Lock()
        self.commits: list[str] = []

    def _descriptor(self, path: str, stored: StoredFile) -> FileDescriptor:
        return FileDescriptor(
            path=path,
            name=path.rsplit("/", 1)[-1],
            locator=f"{LOCATOR_SCHEME}{path}",
            size=len(stored.content),
            revision=stored.revision,
        )

    async def list_files(self, prefix: str = "") -> list[FileDescriptor]:
        """List files directly under a directory."""
        prefix = prefix.strip("/")
        base = f"{prefix}/" if prefix else ""
        async with self._lock:
            return [
                self._descriptor(path, stored)
                for path, stored in sorted(self._files.items())
                if path.startswith(base) and "/" not in path[len(base):]
            ]

    async def stat(self, path: str) -> FileDescriptor:
        """Describe a single file."""
        async with self._lock:
            stored = self._files.get(path)
            if stored is None:
                raise NotFoundError(f"Not found: {path}")
            return self._descriptor(path, stored)

    async def fetch_content(self, locator: str) -> AsyncIterator[bytes]:
        """Open a stored file for streaming."""
        if not locator.startswith(LOCATOR_SCHEME):
            raise NotFoundError(f"Unknown locator: {locator}")
        path = locator[len(LOCATOR_SCHEME):]
        async with self._lock:
            stored = self._files.get(path)
        if stored is None:
            raise NotFoundError(f"Not found: {path}")
        return self._iter_chunks(stored.content)

    async def _iter_chunks(self, content: bytes) -> AsyncIterator[bytes]:
        for start in range(0, len(content), self.chunk_size):
            yield content[start:start + self.chunk_size]

    async def write_file(
        self,
        path: str,
        content: bytes,
        message: str,
        revision: str | None = None,
    ) -> FileDescriptor:
        """Create or overwrite a file; overwrites need the current revision."""
        async with self._lock:
            existing = self._files.get(path)
            if existing is not None and revision != existing.revision:
                raise RevisionConflictError(path)
            stored = StoredFile(
                content=content,
                revision=blob_sha(content),
                committed_at=datetime.now(timezone.utc),
            )
            self._files[path] = stored
            self.commits.append(message)
            return self._descriptor(path, stored)

    async def delete_file(self, path: str, revision: str, message: str) -> None:
        """Delete a file at its current revision."""
        async with self._lock:
            existing = self._files.get(path)
            if existing is None:
                raise NotFoundError(f"Not found: {path}")
            if revision != existing.revision:
                raise RevisionConflictError(path)
            del self._files[path]
            self.commits.append(message)

    async def last_modified(self, path: str) -> datetime | None:
        """Time of the last write to path."""
        async with self._lock:
            stored = self._files.get(path)
            return stored.committed_at if stored else None

    async def aclose(self) -> None:
        """Nothing to release."""
        pass
