# src/dealengine/analysis/scoring.py
"""
Acquisition fit score (0-100).

Ten criteria, each scored 1-10 through fixed buckets, weighted and summed:

    fit_score = clamp(round(sum(raw * weight * 10)), 0, 100)

Missing data never raises; each criterion falls back to its lowest bucket
or, where a gap says nothing about quality (key-person risk, valuation), to
a neutral 5.
"""
from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, fields
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dealengine.domain.assumptions import DEFAULT_THESIS, ThesisConfig
from dealengine.domain.listing import ListingSnapshot
from dealengine.domain.opportunity import Opportunity

DEFAULT_VALUATION_MULTIPLE = 5.0

_HIGH_VALUE_CERT_MARKERS = ("mbe", "wbe", "gsa", "factory", "authorized", "certified")


class FitCriterion(str, Enum):
    OWNER_AGE_RETIREMENT = "owner_age_retirement"
    TRADE_FIT = "trade_fit"
    REVENUE_SIZE = "revenue_size"
    YEARS_IN_BUSINESS = "years_in_business"
    GEOGRAPHIC_FIT = "geographic_fit"
    RECURRING_REVENUE = "recurring_revenue"
    CROSS_SELL_SYNERGY = "cross_sell_synergy"
    KEY_PERSON_RISK = "key_person_risk"
    CERTIFICATIONS = "certifications"
    VALUATION_FIT = "valuation_fit"


# Must sum to 1.0 (checked in tests).
FIT_SCORE_WEIGHTS: dict[FitCriterion, float] = {
    FitCriterion.OWNER_AGE_RETIREMENT: 0.20,
    FitCriterion.TRADE_FIT: 0.15,
    FitCriterion.REVENUE_SIZE: 0.10,
    FitCriterion.YEARS_IN_BUSINESS: 0.10,
    FitCriterion.GEOGRAPHIC_FIT: 0.10,
    FitCriterion.RECURRING_REVENUE: 0.10,
    FitCriterion.CROSS_SELL_SYNERGY: 0.10,
    FitCriterion.KEY_PERSON_RISK: 0.05,
    FitCriterion.CERTIFICATIONS: 0.05,
    FitCriterion.VALUATION_FIT: 0.05,
}


class FitScoreInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # listing
    primary_trade: str | None = None
    secondary_trades: list[str] = Field(default_factory=list)
    revenue: float | None = None
    established: int | None = None
    state: str | None = None
    metro_area: str | None = None
    certifications: list[str] = Field(default_factory=list)
    asking_price: float | None = None
    ebitda: float | None = None
    inferred_ebitda: float | None = None
    target_multiple_low: float | None = None
    target_multiple_high: float | None = None

    # primary owner contact, e.g. "55-65"
    estimated_age_range: str | None = None

    # opportunity
    key_person_risk: str | None = None
    recurring_revenue_pct: float | None = None

    @field_validator("secondary_trades", "certifications", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return [] if v is None else v


@dataclass(frozen=True)
class CriterionScore:
    raw: int        # 1-10
    weighted: float  # raw * weight * 10


@dataclass(frozen=True)
class FitScoreBreakdown:
    owner_age_retirement: CriterionScore
    trade_fit: CriterionScore
    revenue_size: CriterionScore
    years_in_business: CriterionScore
    geographic_fit: CriterionScore
    recurring_revenue: CriterionScore
    cross_sell_synergy: CriterionScore
    key_person_risk: CriterionScore
    certifications: CriterionScore
    valuation_fit: CriterionScore

    def items(self) -> list[tuple[FitCriterion, CriterionScore]]:
        return [(FitCriterion(f.name), getattr(self, f.name)) for f in fields(self)]


@dataclass(frozen=True)
class FitScoreResult:
    fit_score: int  # 0-100
    breakdown: FitScoreBreakdown

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def weighted(raw: int, criterion: FitCriterion) -> CriterionScore:
    return CriterionScore(raw=raw, weighted=raw * FIT_SCORE_WEIGHTS[criterion] * 10)


def combine(raw_scores: dict[FitCriterion, int]) -> int:
    """Weighted sum of raw criterion scores, rounded and clamped to 0-100."""
    total = sum(weighted(raw, c).weighted for c, raw in raw_scores.items())
    # halves round up
    return max(0, min(100, math.floor(total + 0.5)))


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


def score_owner_age(age_range: str | None) -> int:
    """10 = 65+, 8 = 55-64, 5 = 45-54, 3 = 35-44, 1 = younger or unknown."""
    if not age_range:
        return 1
    m = re.search(r"(\d+)", age_range)
    if not m:
        return 1

    age = int(m.group(1))
    if age >= 65:
        return 10
    if age >= 55:
        return 8
    if age >= 45:
        return 5
    if age >= 35:
        return 3
    return 1


def score_trade_fit(primary: str | None, secondary: list[str], thesis: ThesisConfig) -> int:
    if not primary:
        return 1
    if primary in thesis.target_trades:
        return 10
    if primary in thesis.secondary_trades:
        return 7
    if any(t in thesis.target_trades for t in secondary):
        return 7
    if any(t in thesis.secondary_trades for t in secondary):
        return 5
    return 3


def score_revenue_size(revenue: float | None) -> int:
    """Sweet spot is $3M-$8M."""
    if not revenue:
        return 1
    if 3_000_000 <= revenue <= 8_000_000:
        return 10
    if 1_000_000 <= revenue <= 15_000_000:
        return 7
    if 500_000 <= revenue <= 25_000_000:
        return 3
    return 1


def score_years_in_business(established: int | None, as_of_year: int) -> int:
    if not established:
        return 1
    years = as_of_year - established
    if years >= 25:
        return 10
    if years >= 15:
        return 8
    if years >= 10:
        return 5
    if years >= 5:
        return 3
    return 1


def score_geographic_fit(state: str | None, metro_area: str | None, thesis: ThesisConfig) -> int:
    if not state:
        return 1
    st = state.upper().strip()

    if st in thesis.target_states:
        metro = (metro_area or "").lower()
        if metro and any(m.lower() in metro for m in thesis.target_metros):
            return 10
        return 8
    if st in thesis.neighboring_states:
        return 3
    return 1


def score_recurring_revenue(pct: float | None) -> int:
    if pct is None:
        return 1
    if pct >= 0.30:
        return 10
    if pct >= 0.20:
        return 7
    if pct >= 0.10:
        return 5
    return 3


def score_cross_sell_synergy(primary: str | None, secondary: list[str], thesis: ThesisConfig) -> int:
    if not primary:
        return 1
    all_trades = [primary, *secondary]
    core_covered = sum(1 for t in thesis.target_trades if t in all_trades)

    # one core trade fills a platform leg; several is still strong
    if core_covered == 1:
        return 10
    if core_covered >= 2:
        return 9
    if any(t in all_trades for t in thesis.secondary_trades):
        return 7
    return 3


def score_key_person_risk(risk: str | None) -> int:
    # inverted: low risk scores high; unknown is neutral
    return {"LOW": 10, "MEDIUM": 6, "HIGH": 3}.get(risk or "", 5)


def score_certifications(certs: list[str]) -> int:
    total = len(certs)
    lowered = [c.lower() for c in certs]
    high_value = any(marker in c for c in lowered for marker in _HIGH_VALUE_CERT_MARKERS)

    if total >= 3 and high_value:
        return 10
    if total >= 3:
        return 7
    if total >= 1:
        return 5
    return 1


def estimate_enterprise_value(
    asking_price: float | None,
    ebitda: float | None,
    inferred_ebitda: float | None,
    target_multiple_high: float | None,
) -> float | None:
    """Asking price if known, else earnings x the high target multiple."""
    if asking_price:
        return asking_price
    effective = ebitda if ebitda is not None else inferred_ebitda
    multiple = target_multiple_high if target_multiple_high is not None else DEFAULT_VALUATION_MULTIPLE
    if effective:
        return effective * multiple
    return None


def score_valuation_fit(ev: float | None) -> int:
    if not ev:
        return 5
    if ev < 3_000_000:
        return 10
    if ev <= 8_000_000:
        return 7
    if ev <= 15_000_000:
        return 3
    return 1


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def compute_fit_score(
    inp: FitScoreInput,
    thesis: ThesisConfig | None = None,
    *,
    as_of_year: int | None = None,
) -> FitScoreResult:
    thesis = thesis or DEFAULT_THESIS
    year = as_of_year if as_of_year is not None else date.today().year
    C = FitCriterion

    ev = estimate_enterprise_value(
        inp.asking_price, inp.ebitda, inp.inferred_ebitda, inp.target_multiple_high
    )

    raws: dict[FitCriterion, int] = {
        C.OWNER_AGE_RETIREMENT: score_owner_age(inp.estimated_age_range),
        C.TRADE_FIT: score_trade_fit(inp.primary_trade, inp.secondary_trades, thesis),
        C.REVENUE_SIZE: score_revenue_size(inp.revenue),
        C.YEARS_IN_BUSINESS: score_years_in_business(inp.established, year),
        C.GEOGRAPHIC_FIT: score_geographic_fit(inp.state, inp.metro_area, thesis),
        C.RECURRING_REVENUE: score_recurring_revenue(inp.recurring_revenue_pct),
        C.CROSS_SELL_SYNERGY: score_cross_sell_synergy(inp.primary_trade, inp.secondary_trades, thesis),
        C.KEY_PERSON_RISK: score_key_person_risk(inp.key_person_risk),
        C.CERTIFICATIONS: score_certifications(inp.certifications),
        C.VALUATION_FIT: score_valuation_fit(ev),
    }

    breakdown = FitScoreBreakdown(**{c.value: weighted(raw, c) for c, raw in raws.items()})
    return FitScoreResult(fit_score=combine(raws), breakdown=breakdown)


def fit_input_from(
    listing: ListingSnapshot,
    opportunity: Opportunity | None = None,
    *,
    owner_age_range: str | None = None,
) -> FitScoreInput:
    """Assemble fit-score input from a listing, its opportunity and owner contact."""
    return FitScoreInput(
        primary_trade=listing.primary_trade,
        secondary_trades=list(listing.secondary_trades),
        revenue=listing.revenue,
        established=listing.established,
        state=listing.state,
        metro_area=listing.metro_area,
        certifications=list(listing.certifications),
        asking_price=listing.asking_price,
        ebitda=listing.ebitda,
        inferred_ebitda=listing.inferred_ebitda,
        target_multiple_low=listing.target_multiple_low,
        target_multiple_high=listing.target_multiple_high,
        estimated_age_range=owner_age_range,
        key_person_risk=(
            opportunity.key_person_risk.value
            if opportunity is not None and opportunity.key_person_risk is not None
            else None
        ),
        recurring_revenue_pct=opportunity.recurring_revenue_pct if opportunity is not None else None,
    )
