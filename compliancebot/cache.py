"""
Seen-Today Cache

Caller-side idempotency for page reviews. Key = (ticket id,
SHA-256(url), UTC day): the same ticket + URL is reviewed at most once
per day. The review pipeline itself never consults this cache; re-reviewing
identical text is always allowed at the core level.

Usage:
    from compliancebot.cache import ReviewCache
    cache = ReviewCache()
    if await cache.check_and_mark(ticket_id, url):
        return skipped
    try:
        ...
    except Exception:
        await cache.forget(ticket_id, url)
        raise
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timezone
from typing import Callable, Optional


def _utc_day() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class ReviewCache:
    """In-memory (ticket, url, day) set with a max-entries bound."""

    def __init__(self, max_entries: int = 5000, today: Optional[Callable[[], str]] = None):
        self._seen: dict[tuple[str, str, str], None] = {}
        self._max_entries = max_entries
        self._today = today or _utc_day
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def url_hash(url: str) -> str:
        return hashlib.sha256(url.encode()).hexdigest()

    def _key(self, ticket_id: str, url: str) -> tuple[str, str, str]:
        return (str(ticket_id), self.url_hash(url), self._today())

    async def seen_today(self, ticket_id: str, url: str) -> bool:
        key = self._key(ticket_id, url)
        async with self._lock:
            if key in self._seen:
                self._hits += 1
                return True
            self._misses += 1
            return False

    def _insert(self, key: tuple[str, str, str]) -> None:
        # Caller holds self._lock
        today = key[2]
        # Entries from earlier days can never hit again
        stale = [k for k in self._seen if k[2] != today]
        for k in stale:
            del self._seen[k]
        # Evict oldest insertion if still at capacity
        if len(self._seen) >= self._max_entries:
            del self._seen[next(iter(self._seen))]
        self._seen[key] = None

    async def mark(self, ticket_id: str, url: str) -> None:
        key = self._key(ticket_id, url)
        async with self._lock:
            self._insert(key)

    async def check_and_mark(self, ticket_id: str, url: str) -> bool:
        """
        Claim (ticket, url) for today.

        Returns True if it was already claimed. Otherwise marks it and returns
        False, so of two concurrent callers exactly one gets False.
        """
        key = self._key(ticket_id, url)
        async with self._lock:
            if key in self._seen:
                self._hits += 1
                return True
            self._misses += 1
            self._insert(key)
            return False

    async def forget(self, ticket_id: str, url: str) -> None:
        """Release a claim, e.g. after the review it guarded failed."""
        key = self._key(ticket_id, url)
        async with self._lock:
            self._seen.pop(key, None)

    @property
    def stats(self) -> dict:
        """Cache hit/miss statistics."""
        total = self._hits + self._misses
        return {
            "entries": len(self._seen),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
        }
