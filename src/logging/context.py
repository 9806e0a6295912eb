# src/logging/context.py — v2
"""Contextual logging support: attach batch, project, item and job ids to log records.

Context variables are per asyncio task, so each engine worker carries its
own item/job context while the batch-level ids are inherited from the
task that started the run.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_batch_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "batch_id", default=None
)
_project_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "project_id", default=None
)
_item_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "item_id", default=None
)
_job: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    batch_id: str | None = None
    project_id: str | None = None
    item_id: str | None = None
    job: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        batch_id=_batch_id.get(),
        project_id=_project_id.get(),
        item_id=_item_id.get(),
        job=_job.get(),
    )


def set_batch_context(batch_id: str, project_id: str) -> None:
    """Set batch-level context (called once per engine run)."""
    _batch_id.set(batch_id)
    _project_id.set(project_id)


def set_job_context(item_id: str, job: str | None = None) -> None:
    """Set job-level context (called by each worker before a job)."""
    _item_id.set(item_id)
    _job.set(job)


def clear_context() -> None:
    """Reset all context variables."""
    _batch_id.set(None)
    _project_id.set(None)
    _item_id.set(None)
    _job.set(None)
