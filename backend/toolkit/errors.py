"""Error taxonomy for the toolkit.

Every failure the toolkit reports to a caller is a ``ToolkitError`` subclass.
The ``message`` attribute is always safe to show to API clients; the
underlying cause (parser exception, OSError, transport error) is kept on
``__cause__`` and never copied into the message.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ToolkitError(Exception):
    """Base error with taxonomy kind, client-safe message and HTTP status."""

    kind: str = "ToolkitError"
    status_code: int = 400
    default_message: str = "request could not be processed"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class BodyTooLarge(ToolkitError):
    kind = "BodyTooLarge"
    status_code = 413
    default_message = "uploaded file is too big"


class DisallowedFileType(ToolkitError):
    kind = "DisallowedFileType"
    status_code = 415
    default_message = "uploaded file type is not permitted"


class InvalidFileName(ToolkitError):
    kind = "InvalidFileName"
    default_message = "uploaded file name is not permitted"


class DirectoryCreateFailed(ToolkitError):
    kind = "DirectoryCreateFailed"
    status_code = 500
    default_message = "unable to create upload directory"


class IOFailure(ToolkitError):
    kind = "IOFailure"
    status_code = 500
    default_message = "unable to read or write uploaded data"


class NoFilesUploaded(ToolkitError):
    kind = "NoFilesUploaded"
    default_message = "no files were uploaded"


class EmptyBody(ToolkitError):
    kind = "EmptyBody"
    default_message = "body must not be empty"


class JSONSyntaxError(ToolkitError):
    """Malformed JSON. Named to avoid shadowing the ``SyntaxError`` builtin."""

    kind = "SyntaxError"
    default_message = "body contains badly formed JSON"


class TypeMismatch(ToolkitError):
    kind = "TypeMismatch"
    default_message = "body contains incorrect JSON type"


class UnknownField(ToolkitError):
    kind = "UnknownField"
    default_message = "body contains unknown key"


class MultipleJSONValues(ToolkitError):
    kind = "MultipleJSONValues"
    default_message = "body must contain only one JSON value"


class MarshalFailure(ToolkitError):
    kind = "MarshalFailure"
    status_code = 500
    default_message = "unable to encode JSON payload"


class RemoteRequestFailure(ToolkitError):
    kind = "RemoteRequestFailure"
    status_code = 502
    default_message = "request to remote service failed"


class EmptyInput(ToolkitError):
    kind = "EmptyInput"
    default_message = "empty string is not permitted"

