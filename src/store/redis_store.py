# src/store/redis_store.py — v1
"""Redis-based document store (STORE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for multi-instance deployments sharing prompt templates and
project records.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from genstage.store.base_document_store import BaseDocumentStore, deep_merge

logger = logging.getLogger(__name__)

_KEY_PREFIX = "genstage:doc:"
_INDEX_PREFIX = "genstage:index:"


class RedisDocumentStore(BaseDocumentStore):
    """Redis-backed document store; one string key per document."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        data = self._client.get(_doc_key(collection, doc_id))
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("Failed to decode %s/%s: %s", collection, doc_id, e)
            return None

    async def set(
        self,
        collection: str,
        doc_id: str,
        doc: dict[str, Any],
        merge: bool = False,
    ) -> None:
        if merge:
            existing = await self.get(collection, doc_id)
            if existing is not None:
                doc = deep_merge(existing, doc)
        self._client.set(_doc_key(collection, doc_id), json.dumps(doc, default=str))
        # Maintain a per-collection id set for list()
        self._client.sadd(f"{_INDEX_PREFIX}{collection}", doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._client.delete(_doc_key(collection, doc_id))
        self._client.srem(f"{_INDEX_PREFIX}{collection}", doc_id)

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        docs: list[tuple[str, dict[str, Any]]] = []
        for doc_id in sorted(self._client.smembers(f"{_INDEX_PREFIX}{collection}")):
            doc = await self.get(collection, doc_id)
            if doc is not None:
                docs.append((doc_id, doc))
        return docs


def _doc_key(collection: str, doc_id: str) -> str:
    return f"{_KEY_PREFIX}{collection}:{doc_id}"
