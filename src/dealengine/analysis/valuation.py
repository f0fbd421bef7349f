# src/dealengine/analysis/valuation.py
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from dealengine.adapters.config import config
from dealengine.domain.errors import ConfigurationError
from dealengine.domain.opportunity import KeyPersonRisk, RevenueTrend

ADJUSTMENT_STEP = 0.5
MULTIPLE_FLOOR = 1.0


class EarningsType(str, Enum):
    EBITDA = "EBITDA"
    SDE = "SDE"


class ValuationInput(BaseModel):
    """
    Assumptions for a scenario valuation. Percentages are fractions
    (0.35 means 35%).
    """
    model_config = ConfigDict(extra="ignore")

    ebitda: float | None = None
    sde: float | None = None
    use_sde: bool = False

    base_multiple_low: float | None = None
    base_multiple_high: float | None = None

    recurring_revenue_pct: float | None = None
    revenue_trend: RevenueTrend | None = None
    revenue_growth_cagr: float | None = None
    customer_concentration: float | None = None  # top customer share of revenue
    dc_experience: bool | None = None
    key_person_risk: KeyPersonRisk | None = None


@dataclass(frozen=True)
class MultipleAdjustment:
    label: str
    value: float
    reason: str


@dataclass(frozen=True)
class ValuationScenario:
    earnings_base: float
    earnings_type: EarningsType
    base_multiple_low: float
    base_multiple_high: float
    adjustments: list[MultipleAdjustment] = field(default_factory=list)
    total_adjustment: float = 0.0
    adjusted_multiple_low: float = 0.0
    adjusted_multiple_high: float = 0.0
    valuation_low: float = 0.0
    valuation_high: float = 0.0
    midpoint: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["earnings_type"] = self.earnings_type.value
        return d


def _pct(x: float) -> str:
    # halves round up: 0.125 reads as 13%
    return f"{math.floor(x * 100 + 0.5)}%"


def collect_adjustments(inp: ValuationInput) -> list[MultipleAdjustment]:
    """
    Each triggered condition moves both ends of the multiple range by ±0.5x.
    Order here is the display order.
    """
    out: list[MultipleAdjustment] = []

    rr = inp.recurring_revenue_pct
    if rr is not None:
        if rr > 0.20:
            out.append(MultipleAdjustment("Recurring Revenue", ADJUSTMENT_STEP, f"{_pct(rr)} recurring (>20%)"))
        elif rr == 0:
            out.append(
                MultipleAdjustment(
                    "No Recurring Revenue",
                    -ADJUSTMENT_STEP,
                    "Pure project work, no maintenance/monitoring contracts",
                )
            )

    cagr = inp.revenue_growth_cagr
    if cagr is not None and cagr > 0.10:
        out.append(MultipleAdjustment("Revenue Growth", ADJUSTMENT_STEP, f"{_pct(cagr)} CAGR (>10%)"))

    if inp.revenue_trend == RevenueTrend.DECLINING:
        out.append(MultipleAdjustment("Declining Revenue", -ADJUSTMENT_STEP, "Revenue trend is declining"))

    conc = inp.customer_concentration
    if conc is not None:
        if conc < 0.20:
            out.append(
                MultipleAdjustment(
                    "Low Concentration", ADJUSTMENT_STEP, f"Top customer {_pct(conc)} of revenue (<20%)"
                )
            )
        elif conc > 0.40:
            out.append(
                MultipleAdjustment(
                    "High Concentration", -ADJUSTMENT_STEP, f"Top customer {_pct(conc)} of revenue (>40%)"
                )
            )

    if inp.dc_experience:
        out.append(MultipleAdjustment("DC Experience", ADJUSTMENT_STEP, "Proven data center project experience"))

    if inp.key_person_risk == KeyPersonRisk.HIGH:
        out.append(MultipleAdjustment("Key Person Risk", -ADJUSTMENT_STEP, "Entirely owner-dependent operations"))

    return out


def compute_valuation(inp: ValuationInput) -> ValuationScenario | None:
    """
    Scenario valuation: earnings x (base multiple + stacked adjustments).

    Returns None when the selected earnings base (EBITDA, or SDE when
    `use_sde`) is missing or non-positive.
    Raises ConfigurationError for a base multiple range that is not
    0 < low <= high.
    """
    earnings = (inp.sde if inp.use_sde else inp.ebitda) or 0.0
    if earnings <= 0:
        return None

    base_low = (
        inp.base_multiple_low if inp.base_multiple_low is not None else config.VALUATION_BASE_MULTIPLE_LOW
    )
    base_high = (
        inp.base_multiple_high if inp.base_multiple_high is not None else config.VALUATION_BASE_MULTIPLE_HIGH
    )
    if not 0 < base_low <= base_high:
        raise ConfigurationError(f"invalid base multiple range: {base_low}-{base_high}")

    adjustments = collect_adjustments(inp)
    total = sum(a.value for a in adjustments)

    adj_low = max(MULTIPLE_FLOOR, base_low + total)
    adj_high = max(MULTIPLE_FLOOR, base_high + total)

    val_low = earnings * adj_low
    val_high = earnings * adj_high

    return ValuationScenario(
        earnings_base=earnings,
        earnings_type=EarningsType.SDE if inp.use_sde else EarningsType.EBITDA,
        base_multiple_low=base_low,
        base_multiple_high=base_high,
        adjustments=adjustments,
        total_adjustment=total,
        adjusted_multiple_low=adj_low,
        adjusted_multiple_high=adj_high,
        valuation_low=val_low,
        valuation_high=val_high,
        midpoint=(val_low + val_high) / 2,
    )
