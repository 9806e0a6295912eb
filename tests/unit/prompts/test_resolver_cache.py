# tests/unit/prompts/test_resolver_cache.py — v1
"""Tests for prompts/cache.py — ResolverCache."""

from __future__ import annotations

from genstage.prompts.cache import ResolverCache


class TestResolverCache:
    def test_miss_then_hit(self):
        cache = ResolverCache()
        assert cache.get(("prompt", "s", "", "text")) is None
        cache.put(("prompt", "s", "", "text"), "ref")
        assert cache.get(("prompt", "s", "", "text")) == "ref"
        assert cache.hits == 1
        assert cache.misses == 1

    def test_invalidate_all(self):
        cache = ResolverCache()
        cache.put("a", 1)
        cache.put("b", 2)
        cache.invalidate_all()
        assert len(cache) == 0
        assert "a" not in cache
        assert cache.invalidations == 1

    def test_hooks_run_on_invalidate(self):
        cache = ResolverCache()
        calls: list[str] = []
        cache.add_invalidation_hook(lambda: calls.append("adaptors"))
        cache.add_invalidation_hook(lambda: calls.append("other"))
        cache.invalidate_all()
        cache.invalidate_all()
        assert calls == ["adaptors", "other", "adaptors", "other"]

    def test_instances_are_independent(self):
        first, second = ResolverCache(), ResolverCache()
        first.put("k", 1)
        assert second.get("k") is None
