# src/dealengine/services/deals.py
"""
Canonical deal value.

`resolve_deal_value` is the only function that answers "what is this deal
worth". Stats, kanban column totals, charts and exports all go through it
(or through `implied_enterprise_value` / `total_pipeline_value`, which wrap
it) so that every surface shows the same number.

Waterfall, first available (> 0) wins:
  1. opportunity.deal_value
  2. opportunity.offer_price
  3. opportunity.actual_ebitda x multiple range
  4. listing ebitda (else inferred_ebitda) x multiple range
  5. listing asking_price
"""
from __future__ import annotations

from typing import Callable, Iterable

from dealengine.adapters.config import config
from dealengine.adapters.logging_utils import get_logger
from dealengine.domain.errors import ConfigurationError
from dealengine.domain.opportunity import (
    DealValueRange,
    DealValueSource,
    Opportunity,
    PipelineTotal,
)

logger = get_logger(__name__)

MultipleRange = tuple[float, float]
Tier = Callable[[Opportunity, MultipleRange], DealValueRange | None]


def _available(v: float | None) -> bool:
    return v is not None and v > 0


def _exact(v: float | None, source: DealValueSource) -> DealValueRange | None:
    if not _available(v):
        return None
    return DealValueRange(low=float(v), high=float(v), source=source)


def _ranged(v: float | None, rng: MultipleRange, source: DealValueSource) -> DealValueRange | None:
    if not _available(v):
        return None
    lo, hi = rng
    return DealValueRange(low=float(v) * lo, high=float(v) * hi, source=source)


def _tier_deal_value(opp: Opportunity, rng: MultipleRange) -> DealValueRange | None:
    return _exact(opp.deal_value, DealValueSource.DEAL_VALUE)


def _tier_offer_price(opp: Opportunity, rng: MultipleRange) -> DealValueRange | None:
    return _exact(opp.offer_price, DealValueSource.OFFER_PRICE)


def _tier_actual_ebitda(opp: Opportunity, rng: MultipleRange) -> DealValueRange | None:
    return _ranged(opp.actual_ebitda, rng, DealValueSource.ACTUAL_EBITDA)


def _tier_listing_ebitda(opp: Opportunity, rng: MultipleRange) -> DealValueRange | None:
    listing = opp.listing
    if listing is None:
        return None
    # a reported figure (even a loss) shadows the inferred one
    ebitda = listing.ebitda if listing.ebitda else listing.inferred_ebitda
    return _ranged(ebitda, rng, DealValueSource.LISTING_EBITDA)


def _tier_asking_price(opp: Opportunity, rng: MultipleRange) -> DealValueRange | None:
    if opp.listing is None:
        return None
    return _exact(opp.listing.asking_price, DealValueSource.ASKING_PRICE)


WATERFALL: tuple[Tier, ...] = (
    _tier_deal_value,
    _tier_offer_price,
    _tier_actual_ebitda,
    _tier_listing_ebitda,
    _tier_asking_price,
)


def pipeline_multiple_range(opp: Opportunity, override: MultipleRange | None = None) -> MultipleRange:
    """
    Multiple range applied to the EBITDA tiers.

    An explicit override wins; otherwise the linked listing's target multiples,
    then the configured pipeline defaults, fill each end independently. A
    listing whose own targets are unusable falls back to the defaults.
    """
    if override is not None:
        lo, hi = override
        if not _valid_range(lo, hi):
            raise ConfigurationError(f"invalid multiple range: {lo}-{hi}")
        return float(lo), float(hi)

    default = (config.PIPELINE_MULTIPLE_LOW, config.PIPELINE_MULTIPLE_HIGH)
    listing = opp.listing
    if listing is None:
        return default

    lo = listing.target_multiple_low if listing.target_multiple_low is not None else default[0]
    hi = listing.target_multiple_high if listing.target_multiple_high is not None else default[1]
    if not _valid_range(lo, hi):
        logger.warning(
            "listing_multiple_range_ignored",
            extra={"context": {"opportunity_id": opp.id, "low": lo, "high": hi}},
        )
        return default
    return float(lo), float(hi)


def _valid_range(lo: float, hi: float) -> bool:
    return 0 < lo <= hi


def resolve_deal_value(
    opportunity: Opportunity,
    multiple_range: MultipleRange | None = None,
) -> DealValueRange | None:
    """Canonical low/high value for an opportunity, or None if nothing is known."""
    rng = pipeline_multiple_range(opportunity, multiple_range)
    for tier in WATERFALL:
        value = tier(opportunity, rng)
        if value is not None:
            return value
    return None


def implied_enterprise_value(
    opportunity: Opportunity,
    multiple_range: MultipleRange | None = None,
) -> float | None:
    """Single-number value: midpoint of the canonical range."""
    rng = resolve_deal_value(opportunity, multiple_range)
    return rng.midpoint if rng is not None else None


def total_pipeline_value(
    opportunities: Iterable[Opportunity],
    multiple_range: MultipleRange | None = None,
) -> PipelineTotal:
    """
    Sum canonical values across opportunities. Opportunities with no
    resolvable value are excluded and counted, never treated as zero.
    """
    low = high = 0.0
    counted = excluded = 0
    for opp in opportunities:
        rng = resolve_deal_value(opp, multiple_range)
        if rng is None:
            excluded += 1
            continue
        low += rng.low
        high += rng.high
        counted += 1

    if excluded:
        logger.debug(
            "pipeline_total_excluded_unvalued",
            extra={"context": {"counted": counted, "excluded": excluded}},
        )
    return PipelineTotal(
        low=low,
        high=high,
        midpoint=(low + high) / 2,
        counted=counted,
        excluded=excluded,
    )
