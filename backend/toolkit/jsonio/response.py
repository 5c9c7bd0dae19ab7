"""JSON response envelope and writers.

Every response produced by the toolkit uses the wire shape

    {"error": bool, "message": str, "data": any}

Status and headers are fixed on the returned ``Response`` before Starlette
sends a single body byte; callers that stream must likewise settle them
first, since the status line cannot change once the body has started.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import Response
from pydantic import BaseModel

from ..errors import MarshalFailure, ToolkitError

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"


class JSONEnvelope(BaseModel):
    error: bool = False
    message: str = ""
    data: Any = None

    def to_dict(self) -> dict:
        body = {"error": self.error, "message": self.message}
        if not self.error:
            body["data"] = self.data
        return body


def encode_json(data: Any) -> bytes:
    """Serialise ``data`` to compact UTF-8 JSON.

    Raises:
        MarshalFailure: the value is not JSON serialisable.
    """
    if isinstance(data, JSONEnvelope):
        data = data.to_dict()
    try:
        return json.dumps(
            jsonable_encoder(data),
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as exc:
        logger.error("Unable to encode %s as JSON: %s", type(data).__name__, exc)
        raise MarshalFailure() from exc


def write_json(
    status: int,
    data: Any,
    headers: Optional[Mapping[str, str]] = None,
) -> Response:
    """Build a JSON response with ``status``, extra ``headers`` and ``data``."""
    body = encode_json(data)
    response = Response(content=body, status_code=status, headers=dict(headers or {}))
    response.headers["Content-Type"] = JSON_MEDIA_TYPE
    return response


def error_json(err: BaseException, status: Optional[int] = None) -> Response:
    """Wrap ``err`` in an error envelope; status defaults to 400.

    ``ToolkitError`` contributes its client-safe ``message``; any other
    exception is rendered with ``str(err)``, so only pass errors whose text
    is meant for clients.
    """
    message = err.message if isinstance(err, ToolkitError) else str(err)
    envelope = JSONEnvelope(error=True, message=message or "error")
    return write_json(status or 400, envelope)


async def toolkit_error_handler(request: Request, exc: ToolkitError) -> Response:
    """Render any ``ToolkitError`` as the standard error envelope."""
    logger.info(
        "toolkit_error kind=%s status=%s path=%s",
        exc.kind,
        exc.status_code,
        request.url.path,
    )
    return error_json(exc, exc.status_code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ToolkitError, toolkit_error_handler)
