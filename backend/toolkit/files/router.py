"""Mountable FastAPI router exposing the upload pipeline."""
import logging
import os
from pathlib import Path
from typing import Optional, Union

from fastapi import APIRouter, Request
from fastapi.responses import Response

from ..config import ToolsConfig
from ..errors import IOFailure, ToolkitError
from ..fs import download_static_file
from ..jsonio.response import JSONEnvelope, error_json, write_json
from .schemas import UploadResponse
from .service import UploadPipeline, safe_basename

logger = logging.getLogger(__name__)


def build_upload_router(
    upload_dir: Union[str, os.PathLike],
    config: Optional[ToolsConfig] = None,
    prefix: str = "/files",
) -> APIRouter:
    """Create an ``APIRouter`` that stores uploads in ``upload_dir``.

    Routes:
        POST {prefix}/upload        every file part, returns the manifest
        POST {prefix}/upload-one    first file part only
        GET  {prefix}/download/{name}

    Every response, success or failure, uses the JSON envelope.
    """
    pipeline = UploadPipeline(config)
    directory = Path(upload_dir)
    router = APIRouter(prefix=prefix, tags=["files"])

    @router.post("/upload")
    async def upload_files(request: Request, rename: bool = True) -> Response:
        """Store every file part of a multipart/form-data body."""
        try:
            files = await pipeline.upload_files(request, directory, rename=rename)
        except ToolkitError as exc:
            return error_json(exc, exc.status_code)

        logger.info("Uploaded %d file(s) to %s", len(files), directory)
        payload = UploadResponse(files=files, total_bytes=sum(f.file_size for f in files))
        return write_json(
            201,
            JSONEnvelope(message=f"{len(files)} file(s) uploaded", data=payload),
        )

    @router.post("/upload-one")
    async def upload_one_file(request: Request, rename: bool = True) -> Response:
        """Store only the first file part of a multipart/form-data body."""
        try:
            uploaded = await pipeline.upload_one_file(request, directory, rename=rename)
        except ToolkitError as exc:
            return error_json(exc, exc.status_code)

        return write_json(201, JSONEnvelope(message="file uploaded", data=uploaded))

    @router.get("/download/{name}")
    async def download_file(name: str, display_name: Optional[str] = None) -> Response:
        """Send a stored file as an attachment.

        Args:
            name: Stored filename as returned in ``new_file_name``.
            display_name: Filename offered to the client, defaults to ``name``.
        """
        stored_name = safe_basename(name)
        if stored_name is None or stored_name != name:
            return error_json(IOFailure("file not found"), 404)
        return download_static_file(directory / stored_name, display_name or stored_name)

    return router
