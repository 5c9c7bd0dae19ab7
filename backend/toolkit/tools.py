"""``Tools`` bundles every toolkit operation around one ``ToolsConfig``.

A ``Tools`` instance holds no state besides its frozen configuration, so one
instance can serve concurrent requests. Call sites that need a different
policy derive their own with ``with_options``:

    tools = Tools(ToolsConfig(allowed_file_types=["image/png"]))
    avatars = tools.with_options(max_upload_bytes=2 * 1024 * 1024)
"""
import os
from typing import Any, Mapping, Optional, Tuple, Type, TypeVar, Union

import httpx
from fastapi.responses import Response
from starlette.requests import Request

from . import fs, text
from .config import ToolsConfig
from .files.schemas import UploadedFile, UploadManifest
from .files.service import UploadPipeline
from .jsonio import decoder, remote, response

T = TypeVar("T")


class Tools:
    """Facade over the upload, JSON, text and filesystem helpers."""

    def __init__(self, config: Optional[ToolsConfig] = None) -> None:
        self.config = config or ToolsConfig()
        self._uploads = UploadPipeline(self.config)

    def with_options(self, **changes: Any) -> "Tools":
        return Tools(self.config.with_overrides(**changes))

    # -----------------------------------------------------------------------
    # Uploads
    # -----------------------------------------------------------------------

    async def upload_files(
        self,
        request: Request,
        upload_dir: Union[str, os.PathLike],
        rename: bool = True,
    ) -> UploadManifest:
        return await self._uploads.upload_files(request, upload_dir, rename=rename)

    async def upload_one_file(
        self,
        request: Request,
        upload_dir: Union[str, os.PathLike],
        rename: bool = True,
    ) -> UploadedFile:
        return await self._uploads.upload_one_file(request, upload_dir, rename=rename)

    # -----------------------------------------------------------------------
    # JSON
    # -----------------------------------------------------------------------

    async def read_json(self, request: Request, target: Type[T]) -> T:
        return await decoder.read_json(
            request,
            target,
            max_bytes=self.config.max_json_bytes,
            allow_unknown_fields=self.config.allow_unknown_fields,
        )

    def write_json(
        self,
        status: int,
        data: Any,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Response:
        return response.write_json(status, data, headers)

    def error_json(self, err: BaseException, status: int = 400) -> Response:
        return response.error_json(err, status)

    def push_json_to_remote(
        self,
        url: str,
        data: Any,
        client: Optional[httpx.Client] = None,
    ) -> Tuple[httpx.Response, int]:
        return remote.push_json_to_remote(url, data, client)

    async def apush_json_to_remote(
        self,
        url: str,
        data: Any,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Tuple[httpx.Response, int]:
        return await remote.apush_json_to_remote(url, data, client)

    # -----------------------------------------------------------------------
    # Text and filesystem
    # -----------------------------------------------------------------------

    def random_string(self, n: int) -> str:
        return text.random_string(n)

    def slugify(self, s: str) -> str:
        return text.slugify(s)

    def create_dir_if_not_exist(self, path: Union[str, os.PathLike]) -> None:
        fs.create_dir_if_not_exist(path)

    def download_static_file(self, path: Union[str, os.PathLike], display_name: str) -> Response:
        return fs.download_static_file(path, display_name)
