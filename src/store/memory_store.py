# src/store/memory_store.py — v1
"""In-process document store (STORE_BACKEND=memory).

Used by tests and single-shot CLI runs. Documents are deep-copied on the
way in and out so callers never share mutable state with the store.
"""

from __future__ import annotations

import copy
from typing import Any

from genstage.store.base_document_store import BaseDocumentStore, deep_merge


class MemoryDocumentStore(BaseDocumentStore):
    """Dict-backed document store."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        doc: dict[str, Any],
        merge: bool = False,
    ) -> None:
        docs = self._collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id] = deep_merge(docs[doc_id], doc)
        else:
            docs[doc_id] = copy.deepcopy(doc)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collections.get(collection, {}).pop(doc_id, None)

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        return [
            (doc_id, copy.deepcopy(doc))
            for doc_id, doc in self._collections.get(collection, {}).items()
        ]
