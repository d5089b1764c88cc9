"""
Fixed-window rate limiting for API token lookups.

One `RateLimiter` is created per process and injected where it is needed.
Counters live in a plain dict keyed by caller-chosen strings (the token
hash). All access happens on the event loop thread, so increments from
concurrent requests interleave but never corrupt the map; the limit is
approximate under concurrency, never exact-once.

Expired windows are detected lazily on access. `prune()` (run every few
minutes by `run_pruning`) only reclaims memory.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    max_requests: int = 100
    window_seconds: float = 60.0
    prune_interval_seconds: float = 300.0


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


class RateLimiter:
    """Per-key request counter with a fixed window."""
    
    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
    
    def check(self, key: str) -> bool:
        """
        Count a request against `key`.
        
        Returns:
            True if the request is allowed, False if rate limited
        """
        now = self._clock()
        entry = self._entries.get(key)
        
        if entry is None or entry.reset_at < now:
            self._entries[key] = RateLimitEntry(count=1, reset_at=now + self.config.window_seconds)
            return True
        
        entry.count += 1
        return entry.count <= self.config.max_requests
    
    def prune(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.reset_at < now]
        for key in expired:
            del self._entries[key]
        return len(expired)
    
    def reset(self) -> None:
        self._entries.clear()
    
    def __len__(self) -> int:
        return len(self._entries)
    
    async def run_pruning(self) -> None:
        """Prune forever at the configured interval. Cancel to stop."""
        while True:
            await asyncio.sleep(self.config.prune_interval_seconds)
            removed = self.prune()
            if removed:
                logger.debug("Pruned %d expired rate limit windows", removed)
