# tests/unit/tracking/test_usage.py — v1
"""Tests for tracking/usage.py — usage records and aggregation."""

from __future__ import annotations

from genstage.core.models import Usage
from genstage.tracking.usage import AdaptorUsage, UsageTracker, aggregate_usage


class TestUsageTracker:
    def test_record(self):
        tracker = UsageTracker()
        rec = tracker.record("j1", "a", "gemini", "flash", "text",
                             Usage(input_tokens=10, output_tokens=5, latency_ms=30))
        assert rec.total_tokens == 15
        assert rec.status == "success"
        assert tracker.records == [rec]

    def test_record_without_usage(self):
        rec = UsageTracker().record("j1", "a", "gemini", "veo", "video", None)
        assert rec.total_tokens == 0

    def test_totals(self):
        tracker = UsageTracker()
        tracker.record("j1", "a", "gemini", "flash", "text",
                       Usage(input_tokens=10, output_tokens=5, total_tokens=15, latency_ms=100))
        tracker.record("j2", "b", "gemini", "flash", "text",
                       Usage(input_tokens=20, output_tokens=5, total_tokens=25, latency_ms=300))
        tracker.record("j3", "a", "openai", "dall-e-3", "image", Usage(latency_ms=900))

        totals = tracker.totals()
        assert totals.calls == 3
        assert totals.input_tokens == 30
        assert totals.total_tokens == 40
        assert totals.by_capability == {"text": 2, "image": 1}

        flash = totals.by_model["gemini:flash"]
        assert flash.calls == 2
        assert flash.max_latency_ms == 300
        assert flash.avg_latency_ms == 200.0
        assert totals.by_model["openai:dall-e-3"].calls == 1


class TestAggregateUsage:
    def test_empty(self):
        totals = aggregate_usage([])
        assert totals.calls == 0
        assert totals.by_model == {}

    def test_avg_latency_zero_calls(self):
        assert AdaptorUsage().avg_latency_ms == 0.0
