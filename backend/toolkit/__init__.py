"""Helpers for accepting untrusted HTTP input in FastAPI/Starlette backends.

Modules:
    - files: size-capped multipart uploads with content sniffing
    - jsonio: strict JSON request decoding, response envelopes, remote pushes
    - text: random strings and slugs
    - fs: directory creation and attachment downloads
    - config: per-call policy (ToolsConfig) and YAML settings loading
"""
from .config import ToolsConfig, load_config
from .errors import ToolkitError
from .tools import Tools

__all__ = ["Tools", "ToolsConfig", "ToolkitError", "load_config"]
