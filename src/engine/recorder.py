# src/engine/recorder.py — v1
"""Persist item outcomes and batch summaries into the project record.

Writes use merge semantics so sibling items, other tasks and unrelated
project fields are never touched:
  projects/{project_id}.generations[task][item_id]  = ItemOutcome
  projects/{project_id}.batches[batch_id]           = summary counts
"""

from __future__ import annotations

import logging

from genstage.core.models import FinalSummary, ItemOutcome
from genstage.store.base_document_store import PROJECTS, BaseDocumentStore

logger = logging.getLogger(__name__)


class ResultRecorder:
    """Item-by-item persistence of batch results."""

    def __init__(self, store: BaseDocumentStore) -> None:
        self._store = store

    async def record_item(self, project_id: str, task: str, outcome: ItemOutcome) -> None:
        await self._store.set(
            PROJECTS,
            project_id,
            {"generations": {task: {outcome.item_id: outcome.model_dump(mode="json")}}},
            merge=True,
        )
        logger.debug("Persisted %s outcome for item %s", outcome.status, outcome.item_id)

    async def record_batch(self, summary: FinalSummary) -> None:
        await self._store.set(
            PROJECTS,
            summary.project_id,
            {
                "batches": {
                    summary.batch_id: {
                        "product": summary.product,
                        "task": summary.task,
                        "total_items": summary.total_items,
                        "succeeded": summary.succeeded,
                        "failed": summary.failed,
                        "cancelled": summary.cancelled,
                        "fatal_error": summary.fatal_error,
                        "duration_ms": summary.duration_ms,
                    }
                }
            },
            merge=True,
        )

    async def get_item(self, project_id: str, task: str, item_id: str) -> dict | None:
        doc = await self._store.get(PROJECTS, project_id) or {}
        return ((doc.get("generations") or {}).get(task) or {}).get(item_id)
