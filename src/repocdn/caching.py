"""In-memory file index with atomic resync and single-flight deduplication.

The index maps logical paths to the metadata needed to serve, overwrite and
delete a file. It is a rebuildable projection of the remote store: entries
may be stale between refreshes, the remote store stays authoritative.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from repocdn.observability import Timer, get_logger, metrics
from repocdn.protocols.remote_store import FileDescriptor, RemoteStore

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Cached metadata for one file."""

    path: str
    remote_location: str
    public_url: str
    size: int
    revision: str


def public_url_for(domain: str, path: str) -> str:
    """Build the public CDN URL for a path."""
    return f"{domain.rstrip('/')}/{path}"


class FileIndex:
    """Process-wide path -> CacheEntry map.

    Reads (get, list, size) never await and never touch the network. All
    mutations go through a single lock. A resync builds the new map off to
    the side and swaps it in, so readers see either the old map or the new
    one. Puts and removes that land while a resync is fetching are replayed
    onto the fetched map before the swap.

    Example:
        index = FileIndex(cdn_domain="https://cdn.example.com")
        await index.resync(store)
        entry = index.get("media/logo.png")
    """

    def __init__(self, cdn_domain: str) -> None:
        """Initialize an empty index.

        Args:
            cdn_domain: Base URL used to derive public URLs
        """
        self.cdn_domain = cdn_domain
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._resync_lock = asyncio.Lock()
        # Mutations made during an in-flight resync (None = tombstone)
        self._pending: dict[str, CacheEntry | None] | None = None

    def entry_for(self, descriptor: FileDescriptor) -> CacheEntry:
        """Build a cache entry from a remote file descriptor."""
        return CacheEntry(
            path=descriptor.path,
            remote_location=descriptor.locator,
            public_url=public_url_for(self.cdn_domain, descriptor.path),
            size=descriptor.size,
            revision=descriptor.revision,
        )

    def get(self, path: str) -> CacheEntry | None:
        """Look up a path. Never touches the network."""
        return self._entries.get(path)

    def list(self) -> list[tuple[str, CacheEntry]]:
        """Snapshot of all entries."""
        return list(self._entries.items())

    @property
    def size(self) -> int:
        """Number of indexed files."""
        return len(self._entries)

    async def put(self, path: str, entry: CacheEntry) -> None:
        """Insert or replace the entry for a path."""
        async with self._lock:
            self._entries[path] = entry
            if self._pending is not None:
                self._pending[path] = entry

    async def remove(self, path: str) -> bool:
        """Remove the entry for a path.

        Returns True if the path was indexed.
        """
        async with self._lock:
            existed = self._entries.pop(path, None) is not None
            if self._pending is not None:
                self._pending[path] = None
            return existed

    async def resync(self, store: RemoteStore, prefix: str = "") -> bool:
        """Replace the index with the remote listing of one directory.

        Only files directly under prefix are indexed. On failure the current
        map is kept and the error is logged, never raised.

        Args:
            store: Remote store to list
            prefix: Directory to list ("" for the repository root)

        Returns:
            True if the index was replaced
        """
        async with self._resync_lock:
            async with self._lock:
                self._pending = {}
            try:
                try:
                    with Timer("index.resync") as timer:
                        files = await store.list_files(prefix)
                except Exception as e:
                    logger.error(
                        "Resync failed, keeping previous index",
                        context={"files_in_memory": self.size},
                        error=e,
                    )
                    metrics.increment("index.resync.failed")
                    return False

                fresh = {f.path: self.entry_for(f) for f in files}

                async with self._lock:
                    replayed = self._pending or {}
                    for path, entry in replayed.items():
                        if entry is None:
                            fresh.pop(path, None)
                        else:
                            fresh[path] = entry
                    self._entries = fresh
                    self._pending = None
            finally:
                self._pending = None

        logger.info(
            "Loaded files into memory",
            context={"files": len(fresh), "replayed": len(replayed)},
            duration_ms=timer.duration_ms,
        )
        return True


class SingleFlight:
    """Deduplicates concurrent calls to the same function with the same key.

    Concurrent cache misses for one path share a single remote lookup.

    Example:
        sf = SingleFlight()
        descriptor = await sf.do(path, lambda: store.stat(path))
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._lock = asyncio.Lock()

    async def do(
        self,
        key: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute function, deduplicating concurrent calls.

        If another call with the same key is in progress, waits for
        that result instead of executing again.

        Args:
            key: Unique key for this operation
            func: Async function to execute

        Returns:
            Result from func (may be from another caller)
        """
        async with self._lock:
            if key in self._in_flight:
                future = self._in_flight[key]
            else:
                future = asyncio.get_running_loop().create_future()
                self._in_flight[key] = future
                asyncio.create_task(self._execute(key, func, future))

        # shield: one cancelled waiter must not cancel the shared result
        return await asyncio.shield(future)

    async def _execute(
        self,
        key: str,
        func: Callable[[], Awaitable[T]],
        future: asyncio.Future[T],
    ) -> None:
        """Execute function and set result on future."""
        try:
            result = await func()
            future.set_result(result)
        except Exception as e:
            future.set_exception(e)
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)

    @property
    def in_flight(self) -> int:
        """Number of keys currently being computed."""
        return len(self._in_flight)
