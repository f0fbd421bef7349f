from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class RevenueTrend(str, Enum):
    GROWING = "GROWING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class KeyPersonRisk(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class LinkedListing(BaseModel):
    """The slice of a listing the deal-value waterfall reads."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    asking_price: float | None = None
    ebitda: float | None = None
    inferred_ebitda: float | None = None
    target_multiple_low: float | None = None
    target_multiple_high: float | None = None


class Opportunity(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str | None = None
    stage: str | None = None

    deal_value: float | None = None
    offer_price: float | None = None
    actual_ebitda: float | None = None

    key_person_risk: KeyPersonRisk | None = None
    recurring_revenue_pct: float | None = None

    listing: LinkedListing | None = None


class DealValueSource(str, Enum):
    DEAL_VALUE = "DEAL_VALUE"
    OFFER_PRICE = "OFFER_PRICE"
    ACTUAL_EBITDA = "ACTUAL_EBITDA"
    LISTING_EBITDA = "LISTING_EBITDA"
    ASKING_PRICE = "ASKING_PRICE"


@dataclass(frozen=True)
class DealValueRange:
    low: float
    high: float
    source: DealValueSource

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2

    def to_dict(self) -> dict[str, Any]:
        return {"low": self.low, "high": self.high, "source": self.source.value}


@dataclass(frozen=True)
class PipelineTotal:
    low: float
    high: float
    midpoint: float
    counted: int
    excluded: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
