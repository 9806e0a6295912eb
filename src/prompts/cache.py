# src/prompts/cache.py — v1
"""Explicit resolver cache shared by the prompt and model resolvers.

One instance per process (or per test). Writers call invalidate_all();
every registered hook runs afterwards so dependent caches (adaptor
instances, for example) are dropped in the same step.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable

logger = logging.getLogger(__name__)


class ResolverCache:
    """Read-mostly key/value cache with whole-cache invalidation."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}
        self._hooks: list[Callable[[], None]] = []
        self.hits = 0
        self.misses = 0
        self.invalidations = 0

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value, or None on a miss."""
        if key in self._entries:
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        return None

    def put(self, key: Hashable, value: Any) -> None:
        self._entries[key] = value

    def invalidate_all(self) -> None:
        """Drop every entry, then run invalidation hooks.

        Clears the whole cache rather than the written key: a template or
        project-config write can change the answer for any project that
        falls back to the stage default.
        """
        dropped = len(self._entries)
        self._entries.clear()
        self.invalidations += 1
        for hook in self._hooks:
            hook()
        logger.debug("Resolver cache invalidated (%d entries dropped)", dropped)

    def add_invalidation_hook(self, hook: Callable[[], None]) -> None:
        """Register a callable run after every invalidate_all()."""
        self._hooks.append(hook)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries
