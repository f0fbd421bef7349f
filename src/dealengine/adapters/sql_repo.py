# src/dealengine/adapters/sql_repo.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlmodel import Field, Session, SQLModel, create_engine, func, select

from dealengine.adapters.config import config
from dealengine.domain.listing import IndustryBenchmark

DEFAULT_INDUSTRY = "Default"

_BENCHMARK_FIELDS = [
    "sde_low", "sde_median", "sde_high",
    "ebitda_low", "ebitda_median", "ebitda_high",
    "ebitda_margin_median", "revenue_multiple_median",
]


# ---------- Industry benchmarks ----------

class BenchmarkRow(SQLModel, table=True):
    __tablename__ = "industry_benchmarks"

    id: int | None = Field(default=None, primary_key=True)
    ts: datetime = Field(default_factory=datetime.utcnow, index=True)

    industry: str = Field(index=True)
    category: str | None = Field(default=None, index=True)

    sde_low: float | None = None
    sde_median: float | None = None
    sde_high: float | None = None

    ebitda_low: float | None = None
    ebitda_median: float | None = None
    ebitda_high: float | None = None

    ebitda_margin_median: float | None = None
    revenue_multiple_median: float | None = None


def _to_domain(row: BenchmarkRow | None) -> IndustryBenchmark | None:
    if row is None:
        return None
    return IndustryBenchmark(
        industry=row.industry,
        category=row.category,
        **{f: getattr(row, f) for f in _BENCHMARK_FIELDS},
    )


class SqlBenchmarkStore:
    """Read-through backing store for the benchmark cache."""

    def __init__(self, uri: str | None = None):
        self.uri = uri or config.DB_URI
        self.engine = create_engine(self.uri, echo=False)
        SQLModel.metadata.create_all(self.engine)

    def upsert_many(self, items: Iterable[IndustryBenchmark]) -> int:
        written = 0
        with Session(self.engine) as session:
            for item in items:
                industry = item.industry.strip()
                category = (item.category or "").strip() or None

                stmt = select(BenchmarkRow).where(
                    func.lower(BenchmarkRow.industry) == industry.lower()
                )
                if category is None:
                    stmt = stmt.where(BenchmarkRow.category.is_(None))  # type: ignore[union-attr]
                else:
                    stmt = stmt.where(func.lower(BenchmarkRow.category) == category.lower())
                row = session.exec(stmt).first()

                if row is None:
                    row = BenchmarkRow(industry=industry, category=category)
                for field in _BENCHMARK_FIELDS:
                    setattr(row, field, getattr(item, field))
                row.ts = datetime.utcnow()
                session.add(row)
                written += 1
            session.commit()
        return written

    def _first(self, *conditions) -> IndustryBenchmark | None:
        with Session(self.engine) as session:
            stmt = select(BenchmarkRow).where(*conditions).order_by(BenchmarkRow.id).limit(1)
            return _to_domain(session.exec(stmt).first())

    def find_exact_match(self, industry: str, category: str) -> IndustryBenchmark | None:
        return self._first(
            func.lower(BenchmarkRow.industry) == industry.lower(),
            func.lower(BenchmarkRow.category) == category.lower(),
        )

    def find_by_industry(self, industry: str) -> IndustryBenchmark | None:
        return self._first(func.lower(BenchmarkRow.industry) == industry.lower())

    def find_default(self) -> IndustryBenchmark | None:
        return self._first(func.lower(BenchmarkRow.industry) == DEFAULT_INDUSTRY.lower())
