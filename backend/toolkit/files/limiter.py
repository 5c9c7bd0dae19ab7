"""Request body size enforcement applied before any body parsing."""
from __future__ import annotations

import logging
from typing import Optional

from starlette.requests import Request
from starlette.types import Message, Receive

from ..errors import BodyTooLarge

logger = logging.getLogger(__name__)


class UploadLimiter:
    """Bind a request body to a hard byte ceiling.

    ``bind`` returns a new ``Request`` over the same scope whose receive
    channel counts body bytes. A declared ``Content-Length`` above the cap is
    rejected immediately; otherwise the first read that crosses the cap raises
    ``BodyTooLarge``, so chunked bodies are stopped too.
    """

    def __init__(self, max_bytes: int, message: Optional[str] = None) -> None:
        if max_bytes < 1:
            raise ValueError("max_bytes must be positive")
        self.max_bytes = max_bytes
        self.message = message

    def _too_large(self, size: Optional[int] = None) -> BodyTooLarge:
        details = {"max_bytes": self.max_bytes}
        if size is not None:
            details["size"] = size
        return BodyTooLarge(self.message, details=details)

    def check_declared_length(self, request: Request) -> None:
        raw = request.headers.get("content-length")
        if not raw:
            return
        try:
            declared = int(raw)
        except ValueError:
            return
        if declared > self.max_bytes:
            logger.warning(
                "Rejected body: declared length %d exceeds %d bytes",
                declared,
                self.max_bytes,
            )
            raise self._too_large(declared)

    def wrap_receive(self, receive: Receive) -> Receive:
        received = 0
        limiter = self

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message.get("type") == "http.request":
                received += len(message.get("body", b""))
                if received > limiter.max_bytes:
                    logger.warning(
                        "Rejected body: read %d bytes, limit is %d",
                        received,
                        limiter.max_bytes,
                    )
                    raise limiter._too_large(received)
            return message

        return limited_receive

    def bind(self, request: Request) -> Request:
        self.check_declared_length(request)
        return Request(request.scope, self.wrap_receive(request.receive))
