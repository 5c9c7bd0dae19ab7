"""JSON request decoding, response envelopes and outbound pushes."""
from .decoder import decode_json, read_json
from .remote import apush_json_to_remote, push_json_to_remote
from .response import (
    JSONEnvelope,
    encode_json,
    error_json,
    register_exception_handlers,
    toolkit_error_handler,
    write_json,
)

__all__ = [
    "JSONEnvelope",
    "apush_json_to_remote",
    "decode_json",
    "encode_json",
    "error_json",
    "push_json_to_remote",
    "read_json",
    "register_exception_handlers",
    "toolkit_error_handler",
    "write_json",
]
