"""
In-memory decision cache with TTL.

Keyed by (user_id, organization_id, resource, action, resource_id). There is
no invalidation hook: a role or policy change becomes visible once the entry
expires, so staleness is bounded by the TTL. Only PERMIT and DENY are cached;
INDETERMINATE usually means a store failed and should be retried.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Hashable

from .types import AccessDecision, Decision

logger = logging.getLogger(__name__)

CACHEABLE = frozenset({Decision.PERMIT, Decision.DENY})


class DecisionCache:
    def __init__(
        self,
        ttl_seconds: int,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, AccessDecision]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> AccessDecision | None:
        if not self.enabled:
            return None
        hit = self._entries.get(key)
        if hit is None:
            return None
        stored_at, decision = hit
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return None
        return decision

    def put(self, key: Hashable, decision: AccessDecision) -> None:
        if not self.enabled or decision.decision not in CACHEABLE:
            return
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._evict()
        self._entries[key] = (self._clock(), decision)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self._ttl]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self._max_entries:
            # Still full: drop the oldest entry (dicts keep insertion order).
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Decision cache full; evicted oldest entry")
