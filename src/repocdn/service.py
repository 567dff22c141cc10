"""RepoCDN service: uploads, serving and admin operations over the file index."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

from repocdn.caching import CacheEntry, FileIndex, SingleFlight
from repocdn.config import Config
from repocdn.content_types import content_type_for, file_type
from repocdn.exceptions import (
    NotFoundError,
    RemoteStoreError,
    RevisionConflictError,
    ValidationError,
)
from repocdn.observability import Timer, get_logger, metrics
from repocdn.plugins import create_remote_store
from repocdn.protocols import RemoteStore
from repocdn.scheduling import PeriodicTask

logger = get_logger(__name__)


@dataclass
class UploadResult:
    """Result of a successful upload."""

    cdn_url: str
    filename: str
    path: str


@dataclass
class ServedFile:
    """An open file ready to be streamed to a client."""

    entry: CacheEntry
    content_type: str
    chunks: AsyncIterator[bytes]


class RepoCDN:
    """Content delivery proxy backed by a remote versioned store.

    Example usage:
        cdn = RepoCDN.from_env()

        # Start HTTP server (resync runs at startup, then hourly)
        cdn.serve(port=3000)

        # Or use directly
        async with cdn:
            result = await cdn.upload(b"...", "logo.png", directory="media/")
            served = await cdn.open(result.path)
    """

    # Concurrent commit lookups while building the admin listing
    LISTING_CONCURRENCY = 8

    def __init__(self, config: Config, store: RemoteStore | None = None) -> None:
        """Initialize the service.

        Args:
            config: Service configuration
            store: Remote store to use instead of the configured backend
        """
        self.config = config
        self._store = store
        self.index = FileIndex(cdn_domain=config.cdn.domain or "")
        self.refresher = PeriodicTask(
            self.resync,
            config.cdn.refresh_interval_seconds,
            name="index-resync",
        )
        self._lookups = SingleFlight()

    @classmethod
    def from_config(cls, path: str | Path) -> "RepoCDN":
        """Create a service from a YAML or JSON configuration file."""
        return cls(Config.from_file(path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "RepoCDN":
        """Create a service from a configuration dictionary."""
        return cls(Config.from_dict(config_dict))

    @classmethod
    def from_env(cls) -> "RepoCDN":
        """Create a service from environment variables."""
        return cls(Config.from_env())

    @property
    def store(self) -> RemoteStore:
        """The remote store, created from configuration on first use."""
        if self._store is None:
            store_config = self.config.store
            self._store = create_remote_store(
                store_config.backend,
                owner=store_config.owner,
                repo=store_config.repo,
                branch=store_config.branch,
                token=store_config.token,
                api_url=store_config.api_url,
                timeout_seconds=store_config.timeout_seconds,
            )
        return self._store

    async def resync(self) -> bool:
        """Rebuild the index from the remote listing. Never raises."""
        try:
            store = self.store
        except Exception as e:
            logger.error("Cannot create remote store, index not refreshed", error=e)
            metrics.increment("index.resync.failed")
            return False
        return await self.index.resync(store, self.config.store.root)

    async def start(self) -> None:
        """Start the periodic resync (first run happens immediately)."""
        self.refresher.start()

    async def stop(self) -> None:
        """Stop the periodic resync and release the remote store."""
        await self.refresher.stop()
        if self._store is not None:
            await self._store.aclose()

    async def __aenter__(self) -> "RepoCDN":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    # Uploads

    def storage_path(
        self,
        filename: str,
        custom_name: str | None = None,
        directory: str | None = None,
    ) -> tuple[str, str]:
        """Work out where an upload is stored.

        The final filename is the custom name (or the original stem) plus
        the original extension. The directory defaults to the configured
        catch-all directory; "/" means the repository root.

        Returns:
            (path, filename)

        Raises:
            ValidationError: If the name or directory is unusable
        """
        original = PurePosixPath(filename.replace("\\", "/")).name
        if not original:
            raise ValidationError("Uploaded file has no name")

        name = f"{custom_name or PurePosixPath(original).stem}{PurePosixPath(original).suffix}"
        if "/" in name or "\\" in name or name in (".", ".."):
            raise ValidationError(f"Invalid file name: {name}")

        if directory is None or directory == "":
            directory = self.config.cdn.default_directory
        segments = [s for s in directory.strip().split("/") if s]
        if any(s in (".", "..") for s in segments):
            raise ValidationError(f"Invalid path: {directory}")

        return "/".join([*segments, name]), name

    async def upload(
        self,
        content: bytes | None,
        filename: str | None,
        custom_name: str | None = None,
        directory: str | None = None,
    ) -> UploadResult:
        """Store a file remotely and index it.

        Args:
            content: File bytes
            filename: Original filename (its extension is kept)
            custom_name: Optional base name replacing the original stem
            directory: Destination directory (defaults to the catch-all)

        Returns:
            UploadResult with the public URL

        Raises:
            ValidationError: If no file was provided
            RemoteStoreError: If the remote write fails
        """
        if content is None or not filename:
            raise ValidationError("No file uploaded")

        path, name = self.storage_path(filename, custom_name, directory)
        message = f"Upload {name}"
        cached = self.index.get(path)

        with Timer("upload") as timer:
            try:
                descriptor = await self.store.write_file(
                    path, content, message, cached.revision if cached else None
                )
            except RevisionConflictError:
                # Overwrite intent is explicit: re-read this path's revision and retry once
                logger.warning("Stale revision on upload, retrying", context={"file": path})
                metrics.increment("upload.revision_conflict")
                revision = await self._current_revision(path)
                descriptor = await self.store.write_file(path, content, message, revision)

        entry = self.index.entry_for(descriptor)
        await self.index.put(path, entry)

        logger.info(
            "File uploaded",
            context={"file": path, "bytes": len(content)},
            duration_ms=timer.duration_ms,
        )
        return UploadResult(cdn_url=entry.public_url, filename=name, path=path)

    async def _current_revision(self, path: str) -> str | None:
        try:
            return (await self.store.stat(path)).revision
        except NotFoundError:
            return None

    # Serving

    async def open(self, path: str) -> ServedFile:
        """Open a file for streaming, populating the index on a miss.

        Raises:
            NotFoundError: If the path exists neither in the index nor remotely
            RemoteUnavailableError: If the remote store cannot be reached
        """
        path = path.lstrip("/")
        if not path:
            raise NotFoundError("Empty path")

        entry = self.index.get(path)
        if entry is not None:
            try:
                chunks = await self.store.fetch_content(entry.remote_location)
                metrics.increment("serve.hit")
                return ServedFile(entry, content_type_for(path), chunks)
            except NotFoundError:
                logger.warning("Indexed file missing remotely, dropping entry", context={"file": path})
                await self.index.remove(path)

        metrics.increment("serve.miss")
        entry = await self._lookups.do(path, lambda: self._populate(path))
        try:
            chunks = await self.store.fetch_content(entry.remote_location)
        except NotFoundError:
            # Deleted between stat and download
            await self.index.remove(path)
            raise
        return ServedFile(entry, content_type_for(path), chunks)

    async def _populate(self, path: str) -> CacheEntry:
        """Read-through: look the path up remotely and index it."""
        descriptor = await self.store.stat(path)
        entry = self.index.entry_for(descriptor)
        await self.index.put(path, entry)
        logger.info("Added file to index from remote", context={"file": path})
        return entry

    # Admin

    async def list_files(self) -> list[dict[str, Any]]:
        """Describe every indexed file, with its last commit date.

        A failed commit lookup only affects that file's uploaded_at.
        """
        semaphore = asyncio.Semaphore(self.LISTING_CONCURRENCY)

        async def describe(path: str, entry: CacheEntry) -> dict[str, Any]:
            uploaded_at: str | None
            async with semaphore:
                try:
                    modified = await self.store.last_modified(path)
                    uploaded_at = (modified or datetime.now(timezone.utc)).isoformat()
                except Exception as e:
                    logger.error("Error getting commit data", context={"file": path}, error=e)
                    uploaded_at = None
            return {
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "size": entry.size,
                "url": entry.public_url,
                "download_url": entry.remote_location,
                "uploaded_at": uploaded_at,
                "type": file_type(path),
                "sha": entry.revision,
            }

        entries = sorted(self.index.list(), key=lambda item: item[0])
        return list(await asyncio.gather(*(describe(p, e) for p, e in entries)))

    async def delete(self, path: str) -> None:
        """Delete an indexed file remotely, then drop it from the index.

        Raises:
            NotFoundError: If the path is not indexed or already gone remotely
            RevisionConflictError: If the cached revision is stale; the entry
                is refreshed so a retry uses the current revision
        """
        entry = self.index.get(path)
        if entry is None:
            raise NotFoundError(f"File not found in store: {path}")

        try:
            await self.store.delete_file(path, entry.revision, f"Deleted {path}")
        except RevisionConflictError:
            metrics.increment("delete.revision_conflict")
            await self._refresh_entry(path)
            raise
        except NotFoundError:
            await self.index.remove(path)
            raise

        await self.index.remove(path)
        logger.info("File deleted", context={"file": path})

    async def _refresh_entry(self, path: str) -> None:
        """Reload one path's metadata from the remote store."""
        try:
            descriptor = await self.store.stat(path)
        except NotFoundError:
            await self.index.remove(path)
        except RemoteStoreError as e:
            logger.warning("Could not refresh index entry", context={"file": path}, error=e)
        else:
            await self.index.put(path, self.index.entry_for(descriptor))

    def status(self) -> dict[str, Any]:
        """Service status summary."""
        return {
            "status": "active",
            "repo": self.config.store.repo,
            "owner": self.config.store.owner,
            "filesInMemory": self.index.size,
            "cdnDomain": self.config.cdn.domain,
        }

    def serve(
        self,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """Start the HTTP server.

        Args:
            host: Host to bind to (defaults to config value)
            port: Port to bind to (defaults to config value)
        """
        import uvicorn

        from repocdn.server.app import create_app

        app = create_app(self)
        uvicorn.run(
            app,
            host=host or self.config.server.host,
            port=port or self.config.server.port,
        )
