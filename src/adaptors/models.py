# src/adaptors/models.py — v1
"""Adaptor result types: TextResult, ImageResult, VideoResult.

Media results carry either a URL or raw bytes; the executor uploads raw
bytes (and ``data:`` URLs) to the blob store before persisting.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from genstage.core.models import Usage


class ReferenceImage(BaseModel):
    """Image bytes passed to an adaptor to guide generation."""

    data: bytes
    mime_type: str = "image/png"


class TextResult(BaseModel):
    """Normalized text completion."""

    model_config = ConfigDict(protected_namespaces=())

    text: str
    model_id: str = ""
    usage: Usage = Field(default_factory=Usage)
    raw_response: Any = Field(default=None, exclude=True)


class ImageResult(BaseModel):
    """Generated image, as a URL or raw bytes."""

    model_config = ConfigDict(protected_namespaces=())

    image_url: str | None = None
    image_bytes: bytes | None = None
    mime_type: str = "image/png"
    revised_prompt: str | None = None
    model_id: str = ""
    usage: Usage = Field(default_factory=Usage)


class VideoResult(BaseModel):
    """Generated video, as a URL or raw bytes."""

    model_config = ConfigDict(protected_namespaces=())

    video_url: str | None = None
    video_bytes: bytes | None = None
    mime_type: str = "video/mp4"
    duration_seconds: int | None = None
    model_id: str = ""
    usage: Usage = Field(default_factory=Usage)
