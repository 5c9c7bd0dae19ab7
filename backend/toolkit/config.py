"""Toolkit configuration.

Settings are plain pydantic models. ``ToolsConfig`` is the per-call policy
value handed to every upload/JSON operation; it is frozen so one instance can
be shared between concurrent requests, and ``with_overrides`` produces a
modified copy for call sites that need a different policy.

An optional YAML file (``toolkit.settings.yaml``) can supply the defaults:

    toolkit:
      max_upload_bytes: 10485760
      allowed_file_types: ["image/png", "image/jpeg"]
      max_json_bytes: 1048576
      allow_unknown_fields: false
    logging:
      level: debug
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("toolkit.settings.yaml")

DEFAULT_MAX_UPLOAD_BYTES = 1024 * 1024 * 1024
DEFAULT_MAX_JSON_BYTES = 1024 * 1024
DEFAULT_MAX_FILES = 1000
DEFAULT_MAX_FIELDS = 1000
DEFAULT_RANDOM_NAME_LENGTH = 25

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ToolsConfig(BaseModel):
    """Upload and JSON policy for a single call site."""

    model_config = ConfigDict(frozen=True)

    max_upload_bytes:     int       = Field(default=DEFAULT_MAX_UPLOAD_BYTES, ge=1)
    allowed_file_types:   List[str] = Field(default_factory=list)
    max_json_bytes:       int       = Field(default=DEFAULT_MAX_JSON_BYTES, ge=1)
    allow_unknown_fields: bool      = False
    max_files:            int       = Field(default=DEFAULT_MAX_FILES, ge=1)
    max_fields:           int       = Field(default=DEFAULT_MAX_FIELDS, ge=1)
    random_name_length:   int       = Field(default=DEFAULT_RANDOM_NAME_LENGTH, ge=1)

    @field_validator("allowed_file_types")
    @classmethod
    def _normalise_types(cls, value: List[str]) -> List[str]:
        return [t.strip().lower() for t in value if t and t.strip()]

    def with_overrides(self, **changes: Any) -> "ToolsConfig":
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return ToolsConfig(**data)


class LoggingSettings(BaseModel):
    level: str = "info"


class ToolkitSettings(BaseModel):
    toolkit: ToolsConfig     = Field(default_factory=ToolsConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Union[str, Path]] = None) -> ToolkitSettings:
    """Load settings from YAML, falling back to defaults when the file is absent."""
    path = Path(settings_path) if settings_path is not None else SETTINGS_FILE
    settings = ToolkitSettings(**_load_yaml(path))
    logger.info(
        "Settings loaded (max_upload_bytes=%s, max_json_bytes=%s, allowed_file_types=%s)",
        settings.toolkit.max_upload_bytes,
        settings.toolkit.max_json_bytes,
        settings.toolkit.allowed_file_types or "*",
    )
    return settings


def configure_logging(settings: ToolkitSettings) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    configured_level = getattr(logging, settings.logging.level.upper(), None)
    if configured_level is None:
        logger.warning("Unknown log level %r, keeping INFO", settings.logging.level)
        return
    logging.getLogger().setLevel(configured_level)
    logger.info("Root logger level set to %s", settings.logging.level.upper())
