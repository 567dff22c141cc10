"""HTTP route handlers.

Routes:
    POST   /upload              multipart upload (file, customName, path)
    GET    /admin/files         list indexed files with commit dates
    DELETE /admin/files/{path}  delete a file
    GET    /api/status          service status
    GET    /api/metrics         in-process counters and timings
    GET    /health              liveness check
    GET    /{path}              stream a file
"""

import time
from typing import TYPE_CHECKING

from starlette.datastructures import FormData, UploadFile
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.routing import Route

from repocdn.exceptions import (
    NotFoundError,
    RemoteStoreError,
    RevisionConflictError,
    ValidationError,
)
from repocdn.observability import get_logger, metrics

if TYPE_CHECKING:
    from repocdn.service import RepoCDN

logger = get_logger(__name__)


def form_text(form: FormData, key: str) -> str | None:
    """Get a non-empty text field from a form."""
    value = form.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def create_routes(cdn: "RepoCDN") -> list[Route]:
    """Create HTTP routes for the CDN.

    Args:
        cdn: The configured RepoCDN instance

    Returns:
        List of Starlette routes (the file catch-all last)
    """

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse(
            {
                "status": "ok",
                "timestamp": time.time(),
            }
        )

    async def status(request: Request) -> Response:
        """Service status: repository, owner and index size."""
        return JSONResponse(cdn.status())

    async def metrics_snapshot(request: Request) -> Response:
        """Request, upload, serve and resync counters and timings."""
        return JSONResponse(metrics.snapshot())

    async def upload(request: Request) -> Response:
        """Upload a file.

        Form fields:
        - file: The file (required)
        - customName: Base name replacing the original (extension is kept)
        - path: Destination directory (defaults to the catch-all directory)
        """
        try:
            async with request.form() as form:
                file = form.get("file")
                if not isinstance(file, UploadFile):
                    raise ValidationError("No file uploaded")
                content = await file.read()
                result = await cdn.upload(
                    content,
                    file.filename,
                    custom_name=form_text(form, "customName"),
                    directory=form_text(form, "path"),
                )
        except ValidationError as e:
            logger.warning("Upload rejected", context={"reason": str(e)})
            return JSONResponse({"success": False, "error": str(e)}, status_code=500)
        except Exception as e:
            logger.error("Upload error", error=e)
            return JSONResponse({"success": False, "error": str(e)}, status_code=500)

        return JSONResponse(
            {
                "success": True,
                "cdnUrl": result.cdn_url,
                "filename": result.filename,
                "path": result.path,
            }
        )

    async def admin_files(request: Request) -> Response:
        """List all indexed files."""
        try:
            files = await cdn.list_files()
        except Exception as e:
            logger.error("Admin files error", error=e)
            return JSONResponse({"error": "Failed to fetch files"}, status_code=500)
        return JSONResponse({"files": files})

    async def admin_delete(request: Request) -> Response:
        """Delete a file.

        Path params:
        - path: URL-encoded file path
        """
        path = request.path_params["path"]
        try:
            await cdn.delete(path)
        except NotFoundError:
            return JSONResponse({"error": "File not found in store"}, status_code=404)
        except RevisionConflictError as e:
            logger.warning("Delete conflict", context={"file": path}, error=e)
            return JSONResponse(
                {"error": "File changed remotely, retry the delete"}, status_code=500
            )
        except Exception as e:
            logger.error("Delete error", context={"file": path}, error=e)
            return JSONResponse({"error": "Failed to delete file"}, status_code=500)
        return JSONResponse({"success": True})

    async def serve_file(request: Request) -> Response:
        """Stream a file from the remote store."""
        path = request.path_params["path"]
        try:
            served = await cdn.open(path)
        except NotFoundError:
            return PlainTextResponse("File not found", status_code=404)
        except RemoteStoreError as e:
            logger.error("File serving error", context={"file": path}, error=e)
            return PlainTextResponse("Error retrieving file", status_code=500)

        return StreamingResponse(served.chunks, media_type=served.content_type)

    return [
        Route("/health", health, methods=["GET"]),
        Route("/api/status", status, methods=["GET"]),
        Route("/api/metrics", metrics_snapshot, methods=["GET"]),
        Route("/upload", upload, methods=["POST"]),
        Route("/admin/files", admin_files, methods=["GET"]),
        Route("/admin/files/{path:path}", admin_delete, methods=["DELETE"]),
        Route("/{path:path}", serve_file, methods=["GET"]),
    ]
