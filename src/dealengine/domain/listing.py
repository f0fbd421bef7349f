from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InferenceMethod(str, Enum):
    LISTED_MULTIPLE = "LISTED_MULTIPLE"
    REVENUE_MARGIN = "REVENUE_MARGIN"
    PRICE_MULTIPLE = "PRICE_MULTIPLE"
    CROSS_CHECK = "CROSS_CHECK"
    MANUAL = "MANUAL"

    @property
    def label(self) -> str:
        return _METHOD_LABELS[self][0]

    @property
    def description(self) -> str:
        return _METHOD_LABELS[self][1]


_METHOD_LABELS: dict[InferenceMethod, tuple[str, str]] = {
    InferenceMethod.LISTED_MULTIPLE: (
        "Listed Multiple",
        "Calculated from the listing's own stated price-to-earnings multiple",
    ),
    InferenceMethod.REVENUE_MARGIN: (
        "Revenue + Margin",
        "Estimated using revenue and the industry's typical EBITDA margin",
    ),
    InferenceMethod.PRICE_MULTIPLE: (
        "Price / Multiple",
        "Estimated by dividing asking price by the industry's typical SDE multiple",
    ),
    InferenceMethod.CROSS_CHECK: (
        "Cross-Check",
        "Estimated using both revenue and asking price with industry benchmarks",
    ),
    InferenceMethod.MANUAL: (
        "Manual",
        "Manually entered by the user",
    ),
}


class ListingSnapshot(BaseModel):
    """
    Read-only view of a target company at a point in time.

    Financial fields are nullable: listings are scraped or keyed in by hand
    and routinely omit earnings. The inference_* fields hold the output of a
    previous inference run, if any.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    asking_price: float | None = None
    revenue: float | None = None
    ebitda: float | None = None
    sde: float | None = None
    cash_flow: float | None = None
    price_to_sde: float | None = None
    price_to_ebitda: float | None = None

    industry: str | None = None
    category: str | None = None

    inferred_ebitda: float | None = None
    inferred_sde: float | None = None
    inference_method: InferenceMethod | None = None
    inference_confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    # Fit-score attributes
    primary_trade: str | None = None
    secondary_trades: list[str] = Field(default_factory=list)
    established: int | None = None
    state: str | None = None
    metro_area: str | None = None
    certifications: list[str] = Field(default_factory=list)
    target_multiple_low: float | None = None
    target_multiple_high: float | None = None

    @field_validator("secondary_trades", "certifications", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return [] if v is None else v


class IndustryBenchmark(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    industry: str
    category: str | None = None

    # SDE multiple band (price / SDE)
    sde_low: float | None = None
    sde_median: float | None = None
    sde_high: float | None = None

    # EBITDA multiple band (price / EBITDA)
    ebitda_low: float | None = None
    ebitda_median: float | None = None
    ebitda_high: float | None = None

    ebitda_margin_median: float | None = None
    revenue_multiple_median: float | None = None


@dataclass(frozen=True)
class InferenceResult:
    inferred_ebitda: float | None
    inferred_sde: float | None
    inference_method: InferenceMethod
    inference_confidence: float  # 0.0–1.0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["inference_method"] = self.inference_method.value
        return d
