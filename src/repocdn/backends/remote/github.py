"""GitHub repository remote store backend.

Uses the GitHub contents API, with one repository branch acting as the
storage bucket. File revisions are git blob SHAs.
"""

import base64
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from repocdn.exceptions import (
    NotFoundError,
    RemoteUnavailableError,
    RevisionConflictError,
)
from repocdn.observability import Timer, get_logger
from repocdn.protocols.remote_store import FileDescriptor

logger = get_logger(__name__)

GITHUB_API_VERSION = "2022-11-28"


class GitHubRemoteStore:
    """Remote store backed by a GitHub repository."""

    def __init__(
        self,
        owner: str | None = None,
        repo: str | None = None,
        branch: str = "main",
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the GitHub store.

        Args:
            owner: Repository owner (user or organization)
            repo: Repository name
            branch: Branch that holds the files
            token: Personal access token with contents read/write scope
            api_url: GitHub API base URL
            timeout_seconds: Timeout applied to every request
            transport: Optional httpx transport (used by tests)
            **kwargs: Ignored (for compatibility with other backends)
        """
        if not owner or not repo or not token:
            raise ValueError(
                "GitHubRemoteStore requires owner, repo, and token. "
                "Use the 'memory' backend for development."
            )

        self.owner = owner
        self.repo = repo
        self.branch = branch
        self._client = httpx.AsyncClient(
            base_url=api_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
            timeout=timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{quote(path, safe='/')}"

    @staticmethod
    def _descriptor(item: dict[str, Any]) -> FileDescriptor:
        return FileDescriptor(
            path=item["path"],
            name=item["name"],
            locator=item["download_url"],
            size=item.get("size", 0),
            revision=item["sha"],
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return str(response.json().get("message", response.text))
        except ValueError:
            return response.text

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        """Map GitHub error statuses onto remote store errors."""
        if response.is_success:
            return

        message = self._error_message(response)
        if response.status_code == 404:
            raise NotFoundError(f"Not found: {path}")
        if response.status_code == 409 or (
            response.status_code == 422 and "sha" in message.lower()
        ):
            raise RevisionConflictError(path, f"Revision conflict for {path}: {message}")
        raise RemoteUnavailableError(
            f"GitHub API error {response.status_code} for {path}: {message}"
        )

    async def _request(
        self,
        method: str,
        url: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        """Send an API request and return the decoded JSON body."""
        with Timer(f"github.{method.lower()}"):
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                raise RemoteUnavailableError(f"GitHub request failed for {path}: {e}") from e

        self._raise_for_status(response, path)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"Invalid JSON from GitHub for {path}") from e

    async def list_files(self, prefix: str = "") -> list[FileDescriptor]:
        """List files directly under a directory (sub-directories are skipped)."""
        prefix = prefix.strip("/")
        data = await self._request(
            "GET",
            self._contents_url(prefix),
            prefix or "/",
            params={"ref": self.branch},
        )
        if not isinstance(data, list):
            raise NotFoundError(f"Not a directory: {prefix}")
        return [self._descriptor(item) for item in data if item.get("type") == "file"]

    async def stat(self, path: str) -> FileDescriptor:
        """Describe a single file."""
        data = await self._request(
            "GET",
            self._contents_url(path),
            path,
            params={"ref": self.branch},
        )
        if not isinstance(data, dict) or data.get("type") != "file":
            raise NotFoundError(f"Not a file: {path}")
        return self._descriptor(data)

    async def fetch_content(self, locator: str) -> AsyncIterator[bytes]:
        """Open a download URL for streaming."""
        request = self._client.build_request("GET", locator)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"Download failed for {locator}: {e}") from e

        if response.status_code == 404:
            await response.aclose()
            raise NotFoundError(f"Not found: {locator}")
        if response.is_error:
            await response.aclose()
            raise RemoteUnavailableError(
                f"Download failed for {locator}: HTTP {response.status_code}"
            )
        return self._iter_response(response)

    @staticmethod
    async def _iter_response(response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        finally:
            await response.aclose()

    async def write_file(
        self,
        path: str,
        content: bytes,
        message: str,
        revision: str | None = None,
    ) -> FileDescriptor:
        """Create or update a file with a single commit."""
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if revision:
            body["sha"] = revision

        data = await self._request("PUT", self._contents_url(path), path, json=body)
        logger.info(
            "Committed file to GitHub",
            context={"file": path, "bytes": len(content), "repo": self.repo},
        )
        return self._descriptor(data["content"])

    async def delete_file(self, path: str, revision: str, message: str) -> None:
        """Delete a file with a single commit."""
        await self._request(
            "DELETE",
            self._contents_url(path),
            path,
            json={"message": message, "sha": revision, "branch": self.branch},
        )
        logger.info("Deleted file from GitHub", context={"file": path, "repo": self.repo})

    async def last_modified(self, path: str) -> datetime | None:
        """Author date of the latest commit touching path."""
        data = await self._request(
            "GET",
            f"/repos/{self.owner}/{self.repo}/commits",
            path,
            params={"path": path, "per_page": 1, "sha": self.branch},
        )
        if not data:
            return None
        date = data[0].get("commit", {}).get("author", {}).get("date")
        if not date:
            return None
        return datetime.fromisoformat(date.replace("Z", "+00:00"))

    async def aclose(self) -> None:
        """Close the HTTP connection pool."""
        await self._client.aclose()
