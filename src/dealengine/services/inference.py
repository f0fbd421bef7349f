# src/dealengine/services/inference.py
from __future__ import annotations

import math
from typing import Callable

from dealengine.adapters.config import config
from dealengine.adapters.logging_utils import get_logger
from dealengine.domain.listing import InferenceMethod, InferenceResult, ListingSnapshot
from dealengine.domain.ports import BenchmarkLookup
from dealengine.services.validation import DEFAULT_POLICY, InferenceSanityPolicy

logger = get_logger(__name__)

# SDE ~= EBITDA * 1.15 (SDE adds back owner compensation)
SDE_TO_EBITDA_RATIO = 1.15
# EBITDA ~= SDE * 0.87
EBITDA_TO_SDE_RATIO = 0.87

# Cross-check bounds
REVENUE_MULTIPLE_BOUNDS = (0.3, 5.0)
EBITDA_MULTIPLE_BOUNDS = (1.0, 12.0)

CONFIDENCE = {
    "listed_multiple": 0.90,
    "cross_check": 0.70,
    "cross_check_fallback": 0.40,
    "revenue_margin": 0.60,
    "price_multiple": 0.45,
}

Strategy = Callable[[ListingSnapshot, BenchmarkLookup], InferenceResult | None]


def round_money(value: float) -> int:
    """Round to the nearest whole unit, halves up."""
    return int(math.floor(value + 0.5))


def _positive(v: float | None) -> bool:
    return v is not None and v > 0


# ---------------------------------------------------------------------------
# Strategies, in priority order
# ---------------------------------------------------------------------------


def try_listed_multiple(listing: ListingSnapshot, benchmarks: BenchmarkLookup) -> InferenceResult | None:
    """The listing states its own price-to-SDE and/or price-to-EBITDA multiple."""
    price = listing.asking_price
    if not _positive(price):
        return None
    if listing.price_to_sde is None and listing.price_to_ebitda is None:
        return None

    sde: float | None = None
    ebitda: float | None = None

    if _positive(listing.price_to_sde):
        sde = price / listing.price_to_sde
    if _positive(listing.price_to_ebitda):
        ebitda = price / listing.price_to_ebitda

    if sde is not None and ebitda is None:
        ebitda = sde * EBITDA_TO_SDE_RATIO
    elif ebitda is not None and sde is None:
        sde = ebitda * SDE_TO_EBITDA_RATIO

    return InferenceResult(
        inferred_ebitda=round_money(ebitda) if ebitda is not None else None,
        inferred_sde=round_money(sde) if sde is not None else None,
        inference_method=InferenceMethod.LISTED_MULTIPLE,
        inference_confidence=CONFIDENCE["listed_multiple"],
    )


def _price_over_sde_median(
    price: float,
    sde_median: float | None,
    method: InferenceMethod,
    confidence: float,
) -> InferenceResult | None:
    if not sde_median:
        return None
    sde = round_money(price / sde_median)
    ebitda = round_money(sde * EBITDA_TO_SDE_RATIO)
    return InferenceResult(
        inferred_ebitda=ebitda,
        inferred_sde=sde,
        inference_method=method,
        inference_confidence=confidence,
    )


def try_cross_check(listing: ListingSnapshot, benchmarks: BenchmarkLookup) -> InferenceResult | None:
    """
    Asking price and revenue are both known: triangulate.

    The implied revenue multiple must be plausible (0.3x-5x) and the
    margin-derived EBITDA must imply a plausible earnings multiple (1x-12x).
    When either bound fails we fall back to price / industry SDE multiple
    at reduced confidence.
    """
    price, revenue = listing.asking_price, listing.revenue
    if not _positive(price) or not _positive(revenue):
        return None

    bench = benchmarks.lookup(listing.industry, listing.category)
    if bench is None or bench.ebitda_margin_median is None:
        return None

    def fallback() -> InferenceResult | None:
        return _price_over_sde_median(
            price, bench.sde_median, InferenceMethod.CROSS_CHECK, CONFIDENCE["cross_check_fallback"]
        )

    rev_lo, rev_hi = REVENUE_MULTIPLE_BOUNDS
    implied_revenue_multiple = price / revenue
    if implied_revenue_multiple < rev_lo or implied_revenue_multiple > rev_hi:
        return fallback()

    ebitda = round_money(revenue * bench.ebitda_margin_median)

    mult_lo, mult_hi = EBITDA_MULTIPLE_BOUNDS
    implied_ebitda_multiple = price / ebitda if ebitda > 0 else math.inf
    if implied_ebitda_multiple < mult_lo or implied_ebitda_multiple > mult_hi:
        return fallback()

    return InferenceResult(
        inferred_ebitda=ebitda,
        inferred_sde=round_money(ebitda * SDE_TO_EBITDA_RATIO),
        inference_method=InferenceMethod.CROSS_CHECK,
        inference_confidence=CONFIDENCE["cross_check"],
    )


def try_revenue_margin(listing: ListingSnapshot, benchmarks: BenchmarkLookup) -> InferenceResult | None:
    revenue = listing.revenue
    if not _positive(revenue):
        return None

    bench = benchmarks.lookup(listing.industry, listing.category)
    if bench is None or bench.ebitda_margin_median is None:
        return None

    ebitda = round_money(revenue * bench.ebitda_margin_median)
    return InferenceResult(
        inferred_ebitda=ebitda,
        inferred_sde=round_money(ebitda * SDE_TO_EBITDA_RATIO),
        inference_method=InferenceMethod.REVENUE_MARGIN,
        inference_confidence=CONFIDENCE["revenue_margin"],
    )


def try_price_multiple(listing: ListingSnapshot, benchmarks: BenchmarkLookup) -> InferenceResult | None:
    price = listing.asking_price
    if not _positive(price):
        return None

    bench = benchmarks.lookup(listing.industry, listing.category)
    if bench is None:
        return None
    return _price_over_sde_median(
        price, bench.sde_median, InferenceMethod.PRICE_MULTIPLE, CONFIDENCE["price_multiple"]
    )


STRATEGIES: tuple[Strategy, ...] = (
    try_listed_multiple,
    try_cross_check,
    try_revenue_margin,
    try_price_multiple,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def infer_financials(
    listing: ListingSnapshot,
    benchmarks: BenchmarkLookup,
    *,
    policy: InferenceSanityPolicy = DEFAULT_POLICY,
    strategies: tuple[Strategy, ...] = STRATEGIES,
) -> InferenceResult | None:
    """
    Estimate missing EBITDA / SDE for a listing.

    Returns None when both figures are already reported (inference never
    overrides confirmed numbers) or when no strategy has enough data.
    The first strategy that produces a result wins; its output is then run
    through the sanity policy, which may lower confidence to 0.20.
    """
    if listing.ebitda is not None and listing.sde is not None:
        return None

    for strategy in strategies:
        result = strategy(listing, benchmarks)
        if result is None:
            continue

        failed = policy.failed_checks(
            result, asking_price=listing.asking_price, revenue=listing.revenue
        )
        checked = policy.downgrade(result) if failed else result
        if failed:
            logger.info(
                "inference_confidence_downgraded",
                extra={
                    "context": {
                        "method": result.inference_method.value,
                        "failed_checks": failed,
                    }
                },
            )
        logger.debug(
            "inference_complete",
            extra={"context": {"method": checked.inference_method.value,
                               "confidence": checked.inference_confidence}},
        )
        return checked

    return None


def apply_inference(
    listing: ListingSnapshot,
    benchmarks: BenchmarkLookup,
    *,
    policy: InferenceSanityPolicy = DEFAULT_POLICY,
) -> ListingSnapshot:
    """
    Return a copy of `listing` whose inference fields come entirely from a
    fresh run. Prior inferred values are never merged in.
    """
    result = infer_financials(listing, benchmarks, policy=policy)
    if result is None:
        update = dict(
            inferred_ebitda=None,
            inferred_sde=None,
            inference_method=None,
            inference_confidence=None,
        )
    else:
        update = dict(
            inferred_ebitda=result.inferred_ebitda,
            inferred_sde=result.inferred_sde,
            inference_method=result.inference_method,
            inference_confidence=result.inference_confidence,
        )
    return listing.model_copy(update=update)


def meets_threshold(listing: ListingSnapshot, minimum: float | None = None) -> bool:
    """
    True if any reported or inferred EBITDA reaches MINIMUM_EBITDA or any SDE
    figure reaches MINIMUM_SDE, or if none is known at all (kept for manual
    review). An explicit `minimum` applies to both.
    """
    ebitda_floor = config.MINIMUM_EBITDA if minimum is None else minimum
    sde_floor = config.MINIMUM_SDE if minimum is None else minimum
    checks = [
        (listing.ebitda, ebitda_floor),
        (listing.inferred_ebitda, ebitda_floor),
        (listing.sde, sde_floor),
        (listing.inferred_sde, sde_floor),
    ]

    if all(v is None for v, _ in checks):
        return True
    return any(v is not None and v >= floor for v, floor in checks)
