"""Pydantic schemas for the upload pipeline.

- UploadedFile: one stored part, returned inside the upload manifest
- UploadManifest: ordered list of UploadedFile, in multipart stream order
- UploadResponse: envelope payload returned by the upload router
"""
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class UploadedFile(BaseModel):
    """A file part that was fully written to the destination directory.

    ``original_file_name`` is whatever the client sent and is only meant for
    display or extension lookup; the on-disk name is ``new_file_name``.
    """
    model_config = ConfigDict(frozen=True)

    new_file_name: str = Field(..., description="Filename on disk")
    original_file_name: str = Field(..., description="Client supplied filename")
    file_size: int = Field(..., ge=0, description="Bytes written to disk")


UploadManifest = List[UploadedFile]


class UploadResponse(BaseModel):
    files: List[UploadedFile] = Field(default_factory=list)
    total_bytes: int = 0
