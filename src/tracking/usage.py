# src/tracking/usage.py — v1
"""Per-job usage records and batch-level aggregation.

The engine records one UsageRecord per adaptor call that returned; the
aggregate goes into FinalSummary.usage.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from genstage.core.models import Usage

logger = logging.getLogger(__name__)


class UsageRecord(BaseModel):
    """Single adaptor call."""

    model_config = ConfigDict(protected_namespaces=())

    job_id: str
    item_id: str
    adaptor_id: str
    model_id: str
    capability: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0
    status: Literal["success", "failed"] = "success"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AdaptorUsage(BaseModel):
    """Aggregate for one adaptor:model key."""

    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    total_latency_ms: int = 0
    max_latency_ms: int = 0

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.calls if self.calls else 0.0


class UsageTotals(BaseModel):
    """Batch aggregate, keyed by 'adaptor:model'."""

    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    by_model: dict[str, AdaptorUsage] = Field(default_factory=dict)
    by_capability: dict[str, int] = Field(default_factory=dict)


class UsageTracker:
    """Collect UsageRecords during a batch run."""

    def __init__(self) -> None:
        self._records: list[UsageRecord] = []

    def record(
        self,
        job_id: str,
        item_id: str,
        adaptor_id: str,
        model_id: str,
        capability: str,
        usage: Usage | None,
    ) -> UsageRecord:
        usage = usage or Usage()
        total = usage.total_tokens or (usage.input_tokens + usage.output_tokens)
        rec = UsageRecord(
            job_id=job_id,
            item_id=item_id,
            adaptor_id=adaptor_id,
            model_id=model_id,
            capability=capability,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=total,
            latency_ms=usage.latency_ms,
        )
        self._records.append(rec)
        logger.debug(
            "Usage %s:%s %s in=%d out=%d %dms",
            adaptor_id, model_id, capability,
            rec.input_tokens, rec.output_tokens, rec.latency_ms,
        )
        return rec

    @property
    def records(self) -> list[UsageRecord]:
        return list(self._records)

    def totals(self) -> UsageTotals:
        return aggregate_usage(self._records)


def aggregate_usage(records: list[UsageRecord]) -> UsageTotals:
    """Aggregate call records into batch totals."""
    by_model: dict[str, AdaptorUsage] = defaultdict(AdaptorUsage)
    by_capability: dict[str, int] = defaultdict(int)
    totals = UsageTotals()

    for rec in records:
        key = f"{rec.adaptor_id}:{rec.model_id}"
        agg = by_model[key]
        agg.calls += 1
        agg.input_tokens += rec.input_tokens
        agg.output_tokens += rec.output_tokens
        agg.total_tokens += rec.total_tokens
        agg.total_latency_ms += rec.latency_ms
        agg.max_latency_ms = max(agg.max_latency_ms, rec.latency_ms)
        by_capability[rec.capability] += 1

        totals.calls += 1
        totals.input_tokens += rec.input_tokens
        totals.output_tokens += rec.output_tokens
        totals.total_tokens += rec.total_tokens

    totals.by_model = dict(by_model)
    totals.by_capability = dict(by_capability)
    return totals
