# src/storage/blob_factory.py — v1
"""Factory: instantiate blob store from configuration."""

from __future__ import annotations

from genstage.config.settings import Settings
from genstage.storage.base_blob_store import BaseBlobStore
from genstage.storage.local_blob_store import LocalBlobStore


def create_blob_store(settings: Settings) -> BaseBlobStore:
    """Create the configured blob store.

    Raises:
        ValueError: If the backend is not supported or misconfigured.
    """
    if settings.blob_backend == "local":
        return LocalBlobStore(
            root=settings.blob_root,
            public_base_url=settings.blob_public_base_url,
        )

    if settings.blob_backend == "s3":
        from genstage.storage.s3_blob_store import S3BlobStore
        if not settings.blob_s3_bucket:
            raise ValueError(
                "BLOB_S3_BUCKET must be set when BLOB_BACKEND=s3"
            )
        return S3BlobStore(
            bucket=settings.blob_s3_bucket,
            prefix=settings.blob_s3_prefix,
            region=settings.blob_s3_region or None,
            public_base_url=settings.blob_public_base_url,
        )

    raise ValueError(f"Unsupported blob backend: {settings.blob_backend!r}")
