"""Strict JSON request decoding.

``read_json`` accepts exactly one JSON document from a size-capped request
body and validates it into a target type (a pydantic model or anything a
``TypeAdapter`` understands) without type coercion. Every failure is
translated into a ``ToolkitError`` whose message is safe to return to API
clients; raw parser and validator text never leaks.
"""
from __future__ import annotations

import collections.abc
import json
import logging
import types
from typing import (
    Annotated,
    Any,
    Dict,
    Iterable,
    Optional,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel, TypeAdapter, ValidationError
from starlette.requests import ClientDisconnect, Request

from ..config import DEFAULT_MAX_JSON_BYTES
from ..errors import (
    BodyTooLarge,
    EmptyBody,
    IOFailure,
    JSONSyntaxError,
    MultipleJSONValues,
    TypeMismatch,
    UnknownField,
)
from ..files.limiter import UploadLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE = " \t\n\r"


class _InvalidConstant(ValueError):
    pass


def _reject_constant(name: str) -> Any:
    raise _InvalidConstant(name)


_DECODER = json.JSONDecoder(parse_constant=_reject_constant)


def _byte_offset(text: str, index: int) -> int:
    """Bytes consumed up to and including character ``index``."""
    return len(text[:index].encode("utf-8")) + 1


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in _WHITESPACE:
        index += 1
    return index


async def _read_limited(request: Request, max_bytes: int) -> bytes:
    message = f"body must not be larger than {max_bytes} bytes"
    limited = UploadLimiter(max_bytes, message=message).bind(request)
    chunks = []
    try:
        async for chunk in limited.stream():
            chunks.append(chunk)
    except ClientDisconnect as exc:
        raise IOFailure("client disconnected while sending body") from exc
    return b"".join(chunks)


def _model_fields(model: Type[BaseModel]) -> Dict[str, Any]:
    """Map accepted JSON keys to field annotations for ``model``."""
    keys: Dict[str, Any] = {}
    populate_by_name = bool(model.model_config.get("populate_by_name"))
    for name, field in model.model_fields.items():
        if field.alias:
            keys[field.alias] = field.annotation
            if populate_by_name:
                keys[name] = field.annotation
        else:
            keys[name] = field.annotation
    return keys


_UNION_ORIGINS = {Union}
if hasattr(types, "UnionType"):
    _UNION_ORIGINS.add(types.UnionType)

_SEQUENCE_ORIGINS = (list, set, frozenset, collections.abc.Sequence)


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _is_mapping(annotation: Any) -> bool:
    return annotation in (dict, Dict) or get_origin(annotation) in (dict, collections.abc.Mapping)


def _find_unknown_field(annotation: Any, value: Any, path: str = "") -> Optional[str]:
    """Return the dotted path of the first key ``annotation`` does not declare.

    Only positions whose declared type is unambiguous are checked; anything
    else is left to the validator.
    """
    origin = get_origin(annotation)
    if origin is Annotated:
        return _find_unknown_field(get_args(annotation)[0], value, path)

    if origin in _UNION_ORIGINS:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return _find_unknown_field(members[0], value, path)
        if not isinstance(value, dict) or any(_is_mapping(m) for m in members):
            return None
        models = [m for m in members if _is_model(m)]
        if len(models) != 1:
            return None
        return _find_unknown_field(models[0], value, path)

    if isinstance(value, list):
        if origin not in _SEQUENCE_ORIGINS:
            return None
        args = get_args(annotation)
        item_type = args[0] if args else Any
        for item in value:
            found = _find_unknown_field(item_type, item, path)
            if found:
                return found
        return None

    if not isinstance(value, dict):
        return None

    if _is_mapping(annotation):
        args = get_args(annotation)
        value_type = args[1] if len(args) == 2 else Any
        for key, item in value.items():
            found = _find_unknown_field(value_type, item, f"{path}.{key}" if path else key)
            if found:
                return found
        return None

    if not _is_model(annotation) or annotation.model_config.get("extra") == "allow":
        return None
    fields = _model_fields(annotation)
    for key, item in value.items():
        field_path = f"{path}.{key}" if path else key
        if key not in fields:
            return field_path
        found = _find_unknown_field(fields[key], item, field_path)
        if found:
            return found
    return None



def _field_path(loc: Iterable[Union[str, int]]) -> str:
    return ".".join(str(part) for part in loc)


def _classify_validation_error(exc: ValidationError, value_offset: int) -> Exception:
    error = exc.errors()[0]
    loc = error.get("loc", ())
    field = _field_path(loc)
    if error.get("type") == "extra_forbidden":
        return UnknownField(f'body contains unknown key "{field}"', details={"field": field})
    if error.get("type") == "missing":
        return TypeMismatch(
            f'body is missing required field "{field}"',
            details={"field": field},
        )
    if field:
        return TypeMismatch(
            f'body contains incorrect JSON type for field "{field}"',
            details={"field": field},
        )
    return TypeMismatch(
        f"body contains incorrect JSON type (at character {value_offset})",
        details={"offset": value_offset},
    )


def decode_json(
    body: bytes,
    target: Any,
    allow_unknown_fields: bool = False,
) -> Any:
    """Decode a complete body into ``target``; see ``read_json``."""
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise JSONSyntaxError(
            f"body contains badly formed JSON (at character {exc.start + 1})",
            details={"offset": exc.start + 1},
        ) from exc

    start = _skip_whitespace(text, 0)
    if start == len(text):
        raise EmptyBody()

    try:
        value, end = _DECODER.raw_decode(text, start)
    except json.JSONDecodeError as exc:
        if exc.pos >= len(text):
            raise JSONSyntaxError() from exc
        offset = _byte_offset(text, exc.pos)
        raise JSONSyntaxError(
            f"body contains badly formed JSON (at character {offset})",
            details={"offset": offset},
        ) from exc
    except _InvalidConstant as exc:
        raise JSONSyntaxError() from exc
    except RecursionError as exc:
        raise JSONSyntaxError("body contains JSON nested too deeply") from exc

    if not allow_unknown_fields:
        unknown = _find_unknown_field(target, value)
        if unknown:
            logger.debug("Rejected JSON body with unknown key %s", unknown)
            raise UnknownField(
                f'body contains unknown key "{unknown}"',
                details={"field": unknown},
            )

    try:
        if isinstance(target, type) and issubclass(target, BaseModel):
            result = target.model_validate_json(text[start:end], strict=True)
        else:
            result = TypeAdapter(target).validate_json(text[start:end], strict=True)
    except ValidationError as exc:
        raise _classify_validation_error(exc, _byte_offset(text, start)) from exc

    if _skip_whitespace(text, end) != len(text):
        raise MultipleJSONValues()

    return result


async def read_json(
    request: Request,
    target: Type[T],
    max_bytes: Optional[int] = None,
    allow_unknown_fields: bool = False,
) -> T:
    """Read one JSON document from ``request`` and validate it into ``target``.

    Args:
        request: Incoming request; the content type is not checked.
        target: Pydantic model class or any type accepted by ``TypeAdapter``.
        max_bytes: Body size cap, 1 MiB when omitted.
        allow_unknown_fields: Ignore object keys ``target`` does not declare
            instead of failing with ``UnknownField``.

    Raises:
        BodyTooLarge, EmptyBody, JSONSyntaxError, TypeMismatch, UnknownField,
        MultipleJSONValues, IOFailure
    """
    limit = max_bytes or DEFAULT_MAX_JSON_BYTES
    try:
        body = await _read_limited(request, limit)
    except BodyTooLarge:
        logger.warning("JSON body over %d bytes rejected", limit)
        raise
    return decode_json(body, target, allow_unknown_fields=allow_unknown_fields)
