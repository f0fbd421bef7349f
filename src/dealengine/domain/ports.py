# src/dealengine/domain/ports.py
from __future__ import annotations

from typing import Callable, Protocol

from dealengine.domain.listing import IndustryBenchmark


# ----------------------------
# Benchmark storage (read-only)
# ----------------------------

class BenchmarkStore(Protocol):
    def find_exact_match(self, industry: str, category: str) -> IndustryBenchmark | None:
        ...

    def find_by_industry(self, industry: str) -> IndustryBenchmark | None:
        ...

    def find_default(self) -> IndustryBenchmark | None:
        ...


# ----------------------------
# Benchmark lookup (what engines depend on)
# ----------------------------

class BenchmarkLookup(Protocol):
    def lookup(self, industry: str | None, category: str | None) -> IndustryBenchmark | None:
        ...


# Monotonic seconds; injected so TTL behaviour is testable.
Clock = Callable[[], float]
