# tests/conftest.py
import pytest

from dealengine.adapters.memory_repo import InMemoryBenchmarkStore
from dealengine.domain.listing import IndustryBenchmark
from dealengine.services.benchmarks import BenchmarkCache


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def benchmark_rows():
    return [
        IndustryBenchmark(industry="Default", sde_median=3.0, ebitda_margin_median=0.12),
        IndustryBenchmark(
            industry="Construction",
            category="Electrical",
            sde_low=2.0,
            sde_median=2.8,
            sde_high=3.6,
            ebitda_margin_median=0.15,
        ),
        IndustryBenchmark(
            industry="Construction",
            category="Plumbing",
            sde_median=2.5,
            ebitda_margin_median=0.10,
        ),
        IndustryBenchmark(industry="Retail", sde_median=2.0),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryBenchmarkStore(benchmark_rows())


@pytest.fixture
def benchmarks(store, clock):
    return BenchmarkCache(store, ttl_seconds=1800, clock=clock)


@pytest.fixture
def empty_benchmarks(clock):
    return BenchmarkCache(InMemoryBenchmarkStore(), ttl_seconds=1800, clock=clock)
