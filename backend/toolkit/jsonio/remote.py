"""Outbound JSON push to remote services over httpx."""
import logging
from typing import Any, Optional, Tuple

import httpx

from ..errors import RemoteRequestFailure
from .response import JSON_MEDIA_TYPE, encode_json

logger = logging.getLogger(__name__)

_HEADERS = {"Content-Type": JSON_MEDIA_TYPE}


def push_json_to_remote(
    url: str,
    data: Any,
    client: Optional[httpx.Client] = None,
) -> Tuple[httpx.Response, int]:
    """POST ``data`` as JSON to ``url``.

    Pass ``client`` to control timeouts, TLS or transports; without one a
    throwaway ``httpx.Client`` with httpx's default timeout is used.

    Returns:
        The response and its status code. Non-2xx statuses are returned,
        not raised.

    Raises:
        MarshalFailure: ``data`` is not JSON serialisable.
        RemoteRequestFailure: the request could not be completed.
    """
    body = encode_json(data)
    try:
        if client is not None:
            response = client.post(url, content=body, headers=_HEADERS)
        else:
            with httpx.Client() as default_client:
                response = default_client.post(url, content=body, headers=_HEADERS)
    except httpx.HTTPError as exc:
        logger.warning("Push to %s failed: %s", url, exc)
        raise RemoteRequestFailure(details={"url": url}) from exc

    logger.info("Pushed %d bytes to %s (status=%s)", len(body), url, response.status_code)
    return response, response.status_code


async def apush_json_to_remote(
    url: str,
    data: Any,
    client: Optional[httpx.AsyncClient] = None,
) -> Tuple[httpx.Response, int]:
    """Async twin of ``push_json_to_remote`` built on ``httpx.AsyncClient``."""
    body = encode_json(data)
    try:
        if client is not None:
            response = await client.post(url, content=body, headers=_HEADERS)
        else:
            async with httpx.AsyncClient() as default_client:
                response = await default_client.post(url, content=body, headers=_HEADERS)
    except httpx.HTTPError as exc:
        logger.warning("Push to %s failed: %s", url, exc)
        raise RemoteRequestFailure(details={"url": url}) from exc

    logger.info("Pushed %d bytes to %s (status=%s)", len(body), url, response.status_code)
    return response, response.status_code
