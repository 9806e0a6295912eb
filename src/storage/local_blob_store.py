# src/storage/local_blob_store.py — v1
"""Local filesystem blob store (default BLOB_BACKEND=local)."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

from genstage.storage.base_blob_store import BaseBlobStore

logger = logging.getLogger(__name__)


class LocalBlobStore(BaseBlobStore):
    """Write media under a root directory.

    URLs are ``file://`` URIs unless a public base URL is configured (for a
    static file server in front of the root).
    """

    def __init__(self, root: str | Path, public_base_url: str = "") -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)
        self._public_base = public_base_url.rstrip("/")

    async def upload(
        self, data: bytes, path: str, content_type: str | None = None
    ) -> str:
        target = self._root / path.lstrip("/")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), target)
        if self._public_base:
            return f"{self._public_base}/{path.lstrip('/')}"
        return target.resolve().as_uri()

    async def download(self, url: str) -> bytes:
        if self._public_base and url.startswith(self._public_base + "/"):
            rel = url[len(self._public_base) + 1:]
            return (self._root / rel).read_bytes()
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise ValueError(f"LocalBlobStore cannot download {url!r}")
        return Path(url2pathname(parsed.path)).read_bytes()
