# src/store/json_store.py — v1
"""JSON file-based document store (default STORE_BACKEND=json).

One file per document under ``<root>/<collection>/<id>.json``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from genstage.store.base_document_store import BaseDocumentStore, deep_merge

logger = logging.getLogger(__name__)


class JsonDocumentStore(BaseDocumentStore):
    """File-based document store using JSON files."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        path = self._doc_path(collection, doc_id)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Corrupt document %s/%s: %s", collection, doc_id, e)
            return None

    async def set(
        self,
        collection: str,
        doc_id: str,
        doc: dict[str, Any],
        merge: bool = False,
    ) -> None:
        path = self._doc_path(collection, doc_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        if merge:
            existing = await self.get(collection, doc_id)
            if existing is not None:
                doc = deep_merge(existing, doc)
        # Write-then-rename so a crash never leaves a half-written document
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(doc, indent=2, default=str), encoding="utf-8")
        tmp.replace(path)

    async def delete(self, collection: str, doc_id: str) -> None:
        path = self._doc_path(collection, doc_id)
        if path.exists():
            path.unlink()

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        folder = self._root / _safe(collection)
        if not folder.is_dir():
            return []
        docs: list[tuple[str, dict[str, Any]]] = []
        for path in sorted(folder.glob("*.json")):
            try:
                docs.append((path.stem, json.loads(path.read_text(encoding="utf-8"))))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt document %s", path)
        return docs

    def _doc_path(self, collection: str, doc_id: str) -> Path:
        return self._root / _safe(collection) / f"{_safe(doc_id)}.json"


def _safe(name: str) -> str:
    return name.replace("/", "_").replace("\\", "_")
