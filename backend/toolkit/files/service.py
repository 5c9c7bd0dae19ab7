"""Multipart upload pipeline.

Stores every file part of a multipart/form-data request in a destination
directory, in the order the parts appear in the body:

  1. the body is bound to ``max_upload_bytes`` before parsing starts
  2. each part is sniffed from its first 512 bytes and checked against the
     allow-list (case-insensitive exact match; empty list allows everything)
  3. the part is copied to a hidden temporary file next to its destination
     and renamed into place only once the copy is complete

A batch is all-or-nothing: the first failing part aborts the call and any
file already stored by the same call is removed before the error propagates.
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import AsyncIterator, BinaryIO, List, Optional, Set, Tuple, Union

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser
from starlette.requests import ClientDisconnect, Request

from ..config import ToolsConfig
from ..errors import (
    BodyTooLarge,
    DisallowedFileType,
    InvalidFileName,
    IOFailure,
    NoFilesUploaded,
)
from ..fs import create_dir_if_not_exist
from ..text import random_string
from .limiter import UploadLimiter
from .schemas import UploadedFile, UploadManifest
from .sniffer import sniff

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 64 * 1024
FILE_MODE = 0o644
TEMP_PREFIX = ".upload-"


def safe_basename(filename: Optional[str]) -> Optional[str]:
    """Return the last path segment of a client filename, or None if unusable."""
    if not filename or "\x00" in filename:
        return None
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if name in ("", ".", ".."):
        return None
    return name


def file_extension(name: Optional[str]) -> str:
    """Suffix from the last dot of ``name``, dot included; a dotfile is all suffix."""
    if not name:
        return ""
    index = name.rfind(".")
    return name[index:] if index >= 0 else ""


class _SizeLimitAbort(MultiPartException):
    """Carries ``BodyTooLarge`` through the parser so it closes its spooled parts."""

    def __init__(self, error: BodyTooLarge) -> None:
        super().__init__(error.message)
        self.error = error


async def _abort_parse_on_limit(stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    try:
        async for chunk in stream:
            yield chunk
    except BodyTooLarge as exc:
        raise _SizeLimitAbort(exc) from exc


def _sniff_from_start(stream: BinaryIO) -> str:
    stream.seek(0)
    return sniff(stream)


def _write_atomically(source: BinaryIO, directory: Path, name: str) -> int:
    """Copy ``source`` to ``directory/name`` via a temporary file; return bytes copied."""
    fd, temp_path = tempfile.mkstemp(dir=directory, prefix=TEMP_PREFIX, suffix=".part")
    size = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = source.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                out.write(chunk)
                size += len(chunk)
        os.chmod(temp_path, FILE_MODE)
        os.replace(temp_path, directory / name)
    except BaseException:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise
    return size


class UploadPipeline:
    """Stores the file parts of a multipart request under one upload policy."""

    def __init__(self, config: Optional[ToolsConfig] = None) -> None:
        self.config = config or ToolsConfig()

    def is_allowed(self, content_type: str) -> bool:
        allowed = self.config.allowed_file_types
        if not allowed:
            return True
        return content_type.lower() in allowed

    def destination_name(self, original: Optional[str], rename: bool) -> str:
        basename = safe_basename(original)
        if rename:
            ext = file_extension(basename)
            return f"{random_string(self.config.random_name_length)}{ext}"
        if basename is None:
            logger.warning("Rejected upload with unusable filename %r", original)
            raise InvalidFileName(details={"filename": original or ""})
        return basename

    async def _parse_files(self, request: Request) -> Tuple[FormData, List[UploadFile]]:
        content_type = request.headers.get("content-type", "")
        if not content_type.lower().startswith("multipart/form-data"):
            raise IOFailure("request body is not multipart/form-data")

        limited = UploadLimiter(self.config.max_upload_bytes).bind(request)
        parser = MultiPartParser(
            limited.headers,
            _abort_parse_on_limit(limited.stream()),
            max_files=self.config.max_files,
            max_fields=self.config.max_fields,
        )
        try:
            form = await parser.parse()
        except _SizeLimitAbort as exc:
            raise exc.error from None
        except MultiPartException as exc:
            raise IOFailure("unable to parse multipart form") from exc
        except ClientDisconnect as exc:
            raise IOFailure("client disconnected during upload") from exc
        except OSError as exc:
            raise IOFailure() from exc

        parts = []
        for field, value in form.multi_items():
            if not isinstance(value, UploadFile):
                continue
            if not value.filename:
                logger.debug("Skipping empty file field %s", field)
                continue
            parts.append(value)
        return form, parts

    async def _store_part(
        self,
        part: UploadFile,
        directory: Path,
        rename: bool,
        taken: Set[str],
    ) -> UploadedFile:
        try:
            content_type = await run_in_threadpool(_sniff_from_start, part.file)
        except OSError as exc:
            raise IOFailure() from exc

        logger.debug("Part %r sniffed as %s", part.filename, content_type)
        if not self.is_allowed(content_type):
            logger.warning(
                "Rejected upload %r: type %s not in %s",
                part.filename,
                content_type,
                self.config.allowed_file_types,
            )
            raise DisallowedFileType(details={"content_type": content_type})

        new_name = self.destination_name(part.filename, rename)
        while rename and new_name in taken:
            new_name = self.destination_name(part.filename, rename)
        if new_name in taken:
            logger.warning("Rejected upload %r: name already used in this batch", part.filename)
            raise InvalidFileName(
                "uploaded file name is repeated in the same request",
                details={"filename": new_name},
            )
        taken.add(new_name)
        try:
            size = await run_in_threadpool(_write_atomically, part.file, directory, new_name)
        except OSError as exc:
            raise IOFailure() from exc

        logger.info("Saved file: %s (%d bytes)", directory / new_name, size)
        return UploadedFile(
            new_file_name=new_name,
            original_file_name=part.filename or "",
            file_size=size,
        )

    def _rollback(self, directory: Path, stored: UploadManifest) -> None:
        for uploaded in stored:
            path = directory / uploaded.new_file_name
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.error("Rollback could not remove %s: %s", path, exc)
                continue
            logger.warning("Rolled back %s", path)

    async def upload_files(
        self,
        request: Request,
        upload_dir: Union[str, os.PathLike],
        rename: bool = True,
    ) -> UploadManifest:
        """Store every file part of ``request`` in ``upload_dir``.

        Args:
            request: Incoming multipart/form-data request; its body must not
                have been read yet.
            upload_dir: Destination directory, created (with parents) if absent.
            rename: Give each file a random name that keeps the original
                extension. When False the client's base filename is used.

        Returns:
            UploadedFile records in multipart stream order.

        Raises:
            BodyTooLarge, DisallowedFileType, InvalidFileName,
            DirectoryCreateFailed, IOFailure
        """
        form, parts = await self._parse_files(request)
        stored: UploadManifest = []
        taken: Set[str] = set()
        try:
            directory = create_dir_if_not_exist(upload_dir)
            for part in parts:
                stored.append(await self._store_part(part, directory, rename, taken))
        except BaseException:
            if stored:
                self._rollback(Path(upload_dir), stored)
            raise
        finally:
            await form.close()
        return stored

    async def upload_one_file(
        self,
        request: Request,
        upload_dir: Union[str, os.PathLike],
        rename: bool = True,
    ) -> UploadedFile:
        """Like ``upload_files`` but return only the first stored file.

        Raises:
            NoFilesUploaded: the request carried no file parts.
        """
        files = await self.upload_files(request, upload_dir, rename=rename)
        if not files:
            raise NoFilesUploaded()
        return files[0]
