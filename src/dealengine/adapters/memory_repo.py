from typing import Iterable

from dealengine.domain.listing import IndustryBenchmark
from dealengine.domain.ports import BenchmarkStore

DEFAULT_INDUSTRY = "Default"


def _eq(a: str | None, b: str | None) -> bool:
    return (a or "").lower() == (b or "").lower()


class InMemoryBenchmarkStore(BenchmarkStore):
    def __init__(self, rows: Iterable[IndustryBenchmark] = ()) -> None:
        self._items: list[IndustryBenchmark] = list(rows)
        self.calls: list[tuple[str, ...]] = []

    def add(self, row: IndustryBenchmark) -> None:
        self._items.append(row)

    def find_exact_match(self, industry: str, category: str) -> IndustryBenchmark | None:
        self.calls.append(("exact", industry, category))
        for row in self._items:
            if _eq(row.industry, industry) and _eq(row.category, category):
                return row
        return None

    def find_by_industry(self, industry: str) -> IndustryBenchmark | None:
        self.calls.append(("industry", industry))
        for row in self._items:
            if _eq(row.industry, industry):
                return row
        return None

    def find_default(self) -> IndustryBenchmark | None:
        self.calls.append(("default",))
        for row in self._items:
            if _eq(row.industry, DEFAULT_INDUSTRY):
                return row
        return None

    def all(self) -> list[IndustryBenchmark]:
        return list(self._items)
