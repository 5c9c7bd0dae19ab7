"""Filesystem helpers: directory creation and attachment downloads."""
import logging
import os
import re
from pathlib import Path
from typing import Union

from fastapi.responses import FileResponse, Response

from .errors import DirectoryCreateFailed, IOFailure
from .jsonio.response import error_json

logger = logging.getLogger(__name__)

DIR_MODE = 0o755

_UNSAFE_HEADER_CHARS = re.compile(r'[\x00-\x1f\x7f"\\]')

PathLike = Union[str, os.PathLike]


def create_dir_if_not_exist(path: PathLike) -> Path:
    """Create ``path`` and any missing parents with mode 0o755.

    Idempotent: an existing directory is left untouched.

    Raises:
        DirectoryCreateFailed: path exists as a non-directory or cannot be made.
    """
    directory = Path(path)
    if directory.is_dir():
        return directory
    try:
        directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Unable to create directory %s: %s", directory, exc)
        raise DirectoryCreateFailed(details={"path": str(directory)}) from exc
    logger.info("Created directory: %s", directory)
    return directory


def content_disposition(display_name: str) -> str:
    safe_name = _UNSAFE_HEADER_CHARS.sub("_", display_name)
    return f'attachment; filename="{safe_name}"'


def download_static_file(path: PathLike, display_name: str) -> Response:
    """Stream ``path`` to the client as an attachment named ``display_name``.

    ``display_name`` is caller controlled; only quotes, backslashes and control
    characters are neutralised here. A missing file yields a 404 envelope.
    """
    file_path = Path(path)
    if not file_path.is_file():
        logger.warning("Download requested for missing file: %s", file_path)
        return error_json(IOFailure("file not found"), 404)

    return FileResponse(
        path=file_path,
        headers={"Content-Disposition": content_disposition(display_name)},
    )
