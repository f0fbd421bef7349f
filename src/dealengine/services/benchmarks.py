# src/dealengine/services/benchmarks.py
from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from dealengine.adapters.config import config
from dealengine.adapters.logging_utils import get_logger
from dealengine.domain.listing import IndustryBenchmark
from dealengine.domain.ports import BenchmarkStore, Clock

logger = get_logger(__name__)


@dataclass(frozen=True)
class _CacheEntry:
    data: IndustryBenchmark | None
    cached_at: float


def cache_key(industry: str | None, category: str | None) -> str:
    return f"{(industry or '').lower().strip()}::{(category or '').lower().strip()}"


class BenchmarkCache:
    """
    Read-through cache in front of a BenchmarkStore.

    Lookup cascades:
      1. exact (industry, category) match, case-insensitive
      2. industry alone, any category
      3. the "Default" row

    Misses are cached too, so a listing in an unknown industry does not hit
    the store on every call. Entries older than `ttl_seconds` are ignored on
    read and removed by `prune()`.
    """

    def __init__(
        self,
        store: BenchmarkStore,
        *,
        ttl_seconds: float | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = float(ttl_seconds if ttl_seconds is not None else config.BENCHMARK_CACHE_TTL_SECONDS)
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def _resolve(self, industry: str | None, category: str | None) -> IndustryBenchmark | None:
        if industry and category:
            hit = self._store.find_exact_match(industry, category)
            if hit is not None:
                return hit

        if industry:
            hit = self._store.find_by_industry(industry)
            if hit is not None:
                return hit

        return self._store.find_default()

    def lookup(self, industry: str | None, category: str | None) -> IndustryBenchmark | None:
        key = cache_key(industry, category)
        now = self._clock()

        entry = self._entries.get(key)
        if entry is not None and now - entry.cached_at < self._ttl:
            return entry.data

        data = self._resolve(industry, category)
        if data is None:
            logger.warning(
                "benchmark_lookup_miss",
                extra={"context": {"industry": industry, "category": category}},
            )

        with self._lock:
            self._entries[key] = _CacheEntry(data=data, cached_at=self._clock())
        return data

    def prune(self) -> int:
        """Evict expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.cached_at >= self._ttl]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug("benchmark_cache_pruned", extra={"context": {"evicted": len(expired)}})
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
