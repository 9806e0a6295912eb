# src/store/store_factory.py — v1
"""Factory for document store instantiation."""

from __future__ import annotations

from genstage.config.settings import Settings
from genstage.store.base_document_store import BaseDocumentStore


def create_document_store(settings: Settings | None = None) -> BaseDocumentStore:
    """Instantiate the configured document store backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.

    Returns:
        Configured BaseDocumentStore implementation.
    """
    backend = "memory" if settings is None else settings.store_backend

    if backend == "memory":
        from genstage.store.memory_store import MemoryDocumentStore
        return MemoryDocumentStore()

    if backend == "json":
        from genstage.store.json_store import JsonDocumentStore
        return JsonDocumentStore(root=settings.store_root)  # type: ignore[union-attr]

    if backend == "redis":
        from genstage.store.redis_store import RedisDocumentStore
        if settings is None or not settings.store_redis_url:
            raise ValueError(
                "STORE_REDIS_URL must be set when STORE_BACKEND=redis"
            )
        return RedisDocumentStore(redis_url=settings.store_redis_url)

    raise ValueError(f"Unsupported store backend: {backend!r}")
