"""Shared test fixtures and helpers for toolkit tests."""
import struct
import zlib
from pathlib import Path
from typing import List, Optional

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from pydantic import BaseModel

from toolkit import Tools, ToolsConfig
from toolkit.jsonio.response import JSONEnvelope, register_exception_handlers, write_json


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return (
        struct.pack(">I", len(data))
        + kind
        + data
        + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)
    )


def make_png(width: int = 1, height: int = 1) -> bytes:
    """Build a small valid RGB PNG."""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    raw = b"".join(b"\x00" + b"\xff\x00\x00" * width for _ in range(height))
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(raw))
        + _png_chunk(b"IEND", b"")
    )


class Payload(BaseModel):
    foo: str = ""


def make_app(tools: Tools, upload_dir: Path) -> FastAPI:
    """FastAPI app whose endpoints call straight into ``tools``."""
    app = FastAPI()
    register_exception_handlers(app)

    @app.post("/upload")
    async def upload(request: Request, rename: bool = True):
        files = await tools.upload_files(request, upload_dir, rename=rename)
        return write_json(200, JSONEnvelope(data=files))

    @app.post("/upload-one")
    async def upload_one(request: Request, rename: bool = True):
        uploaded = await tools.upload_one_file(request, upload_dir, rename=rename)
        return write_json(200, JSONEnvelope(data=uploaded))

    @app.post("/json")
    async def read(request: Request):
        payload = await tools.read_json(request, Payload)
        return write_json(200, JSONEnvelope(message="ok", data=payload))

    return app


@pytest.fixture
def png_bytes() -> bytes:
    return make_png(4, 4)


@pytest.fixture
def upload_dir(tmp_path) -> Path:
    """Destination directory that does not exist yet."""
    return tmp_path / "uploads" / "nested"


@pytest.fixture
def make_client(upload_dir):
    """Return a factory building a TestClient for a given ToolsConfig."""

    def factory(config: Optional[ToolsConfig] = None) -> TestClient:
        return TestClient(make_app(Tools(config), upload_dir))

    return factory


def stored_files(directory: Path) -> List[str]:
    if not directory.exists():
        return []
    return sorted(p.name for p in directory.iterdir())


def asgi_request(chunks: List[bytes], headers: Optional[dict] = None) -> Request:
    """Starlette request whose body arrives as ``chunks`` over a fake receive."""
    messages = [
        {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
        for i, chunk in enumerate(chunks)
    ]

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    return Request(scope, receive)
