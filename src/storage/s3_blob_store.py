# src/storage/s3_blob_store.py — v1
"""S3-compatible blob store (BLOB_BACKEND=s3).

Supports AWS S3, MinIO, and other S3-compatible storage.
Requires 'boto3' package: pip install boto3.
"""

from __future__ import annotations

import logging

from genstage.storage.base_blob_store import BaseBlobStore

logger = logging.getLogger(__name__)


class S3BlobStore(BaseBlobStore):
    """Store generated media as S3 objects."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "genstage/",
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str = "",
    ) -> None:
        """Initialize S3 blob store.

        Args:
            bucket: S3 bucket name.
            prefix: Key prefix for all objects (e.g. "genstage/").
            region: AWS region (optional, uses boto3 default if not set).
            endpoint_url: Custom endpoint for MinIO/compatible storage.
            public_base_url: Base URL returned for uploads instead of s3:// URIs.
        """
        try:
            import boto3
        except ImportError as e:
            raise ImportError(
                "boto3 package required for S3 blob store: pip install boto3"
            ) from e

        kwargs: dict = {}
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url

        self._s3 = boto3.client("s3", **kwargs)
        self._bucket = bucket
        self._prefix = prefix.rstrip("/") + "/" if prefix else ""
        self._public_base = public_base_url.rstrip("/")

    def _full_key(self, path: str) -> str:
        return f"{self._prefix}{path.lstrip('/')}"

    async def upload(
        self, data: bytes, path: str, content_type: str | None = None
    ) -> str:
        key = self._full_key(path)
        extra = {"ContentType": content_type} if content_type else {}
        self._s3.put_object(Bucket=self._bucket, Key=key, Body=data, **extra)
        logger.debug("S3 upload: s3://%s/%s (%d bytes)", self._bucket, key, len(data))
        if self._public_base:
            return f"{self._public_base}/{key}"
        return f"s3://{self._bucket}/{key}"

    async def download(self, url: str) -> bytes:
        key = self._key_from_url(url)
        response = self._s3.get_object(Bucket=self._bucket, Key=key)
        return response["Body"].read()

    def _key_from_url(self, url: str) -> str:
        s3_prefix = f"s3://{self._bucket}/"
        if url.startswith(s3_prefix):
            return url[len(s3_prefix):]
        if self._public_base and url.startswith(self._public_base + "/"):
            return url[len(self._public_base) + 1:]
        raise ValueError(f"URL {url!r} does not belong to bucket {self._bucket!r}")
