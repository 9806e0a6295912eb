# src/storage/base_blob_store.py — v1
"""Abstract blob store interface for generated media.

The core never interprets media bytes: it uploads what adaptors return and
hands back the resulting URL.
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod


class BaseBlobStore(ABC):
    """Unified interface for media storage backends."""

    @abstractmethod
    async def upload(
        self, data: bytes, path: str, content_type: str | None = None
    ) -> str:
        """Store bytes at ``path`` and return a URL for them."""

    @abstractmethod
    async def download(self, url: str) -> bytes:
        """Fetch bytes previously returned by upload()."""


def decode_data_url(url: str) -> tuple[bytes, str]:
    """Split a ``data:<mime>;base64,<payload>`` URL into (bytes, mime type).

    Raises:
        ValueError: If the URL is not a base64 data URL.
    """
    if not url.startswith("data:") or "," not in url:
        raise ValueError("Not a data URL")
    header, payload = url.split(",", 1)
    if ";base64" not in header:
        raise ValueError("Only base64 data URLs are supported")
    mime = header[len("data:"):].split(";", 1)[0] or "application/octet-stream"
    try:
        return base64.b64decode(payload), mime
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "application/json": "json",
}


def extension_for(content_type: str | None, default: str = "bin") -> str:
    """File extension for a MIME type."""
    if not content_type:
        return default
    return _EXTENSIONS.get(content_type.lower(), default)
