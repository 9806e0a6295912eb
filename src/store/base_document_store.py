# src/store/base_document_store.py — v1
"""Abstract document store interface.

Documents are plain JSON-compatible dicts addressed by (collection, id).
Timestamps, ids and serialization are the backend's concern; callers pass
and receive dicts.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any

PROMPT_TEMPLATES = "prompt_templates"
PROMPT_VERSIONS = "prompt_versions"
PROJECT_AI_CONFIG = "project_ai_config"
PROJECTS = "projects"


def deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Merge ``updates`` into a copy of ``base``.

    Nested dicts are merged key by key; any other value (lists included)
    replaces the existing one.
    """
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class BaseDocumentStore(ABC):
    """Unified interface for document storage backends."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Retrieve a document, or None if absent."""

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        doc: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Write a document; with merge=True nested maps are merged."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document (no-op if absent)."""

    @abstractmethod
    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """List (id, document) pairs of a collection."""

    async def list_versions(self, stage_type: str, prompt_id: str) -> list[dict[str, Any]]:
        """Version documents of one prompt, newest first."""
        docs = await self.list(PROMPT_VERSIONS)
        versions = [
            doc for _, doc in docs
            if doc.get("stage_type") == stage_type and doc.get("prompt_id") == prompt_id
        ]
        versions.sort(key=lambda d: d.get("version", 0), reverse=True)
        return versions
