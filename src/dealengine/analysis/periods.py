# src/dealengine/analysis/periods.py
from __future__ import annotations

from typing import Any

from dealengine.analysis.lbo import DealAssumptions
from dealengine.analysis.valuation import ValuationInput
from dealengine.domain.errors import ConfigurationError
from dealengine.domain.finance import FinancialPeriod
from dealengine.domain.opportunity import RevenueTrend
from dealengine.services.inference import round_money

ANNUAL = "ANNUAL"

# year-over-year moves within 5% either way count as stable
TREND_BAND = 0.05


def resolve_period_ebitda(period: FinancialPeriod) -> float:
    """Best available earnings: adjusted EBITDA > EBITDA > SDE > 0."""
    return period.adjusted_ebitda or period.ebitda or period.sde or 0.0


def sort_periods_newest_first(periods: list[FinancialPeriod]) -> list[FinancialPeriod]:
    # within a year, the annual period sorts ahead of quarters, then latest quarter first
    return sorted(
        periods,
        key=lambda p: (-p.year, 0 if p.period_type == ANNUAL else 1, -(p.quarter or 0)),
    )


def most_recent_annual(periods: list[FinancialPeriod]) -> FinancialPeriod | None:
    annual = [p for p in periods if p.period_type == ANNUAL]
    if not annual:
        return None
    return max(annual, key=lambda p: p.year)


def derive_growth_rate(periods: list[FinancialPeriod]) -> float | None:
    """Revenue growth between the two newest annual periods, or None."""
    annual = sorted(
        (p for p in periods if p.period_type == ANNUAL),
        key=lambda p: p.year,
        reverse=True,
    )
    if len(annual) < 2:
        return None

    recent = annual[0].total_revenue or 0.0
    prior = annual[1].total_revenue or 0.0
    if prior <= 0 or recent <= 0:
        return None
    return (recent - prior) / prior


def default_period_weights(count: int) -> list[float]:
    """50/30/20 for three years; for four or more the newest gets 40% and the rest decline linearly."""
    if count <= 1:
        return [1.0]
    if count == 2:
        return [0.6, 0.4]
    if count == 3:
        return [0.5, 0.3, 0.2]

    weights = [0.4]
    remaining = 0.6
    denom = count * (count - 1) / 2
    for i in range(1, count):
        weights.append(remaining * (count - i) / denom)
    return weights


def valuation_input_from_periods(
    periods: list[FinancialPeriod],
    weights: list[float] | None = None,
    **overrides: Any,
) -> ValuationInput | None:
    """
    Build scenario-valuation input from statement periods.

    `periods` are taken newest first (sorted here); weights align by index and
    are normalised to sum to one. Growth and trend come from the two newest
    annual periods. Extra keyword arguments are passed through to
    ValuationInput (e.g. recurring_revenue_pct).
    """
    if not periods:
        return None

    ordered = sort_periods_newest_first(periods)
    w = weights if weights is not None else default_period_weights(len(ordered))
    total_w = sum(w)
    if total_w <= 0:
        return None
    norm = [x / total_w for x in w]

    ebitda = 0.0
    for i, p in enumerate(ordered):
        share = norm[i] if i < len(norm) else 0.0
        ebitda += resolve_period_ebitda(p) * share

    growth = derive_growth_rate(ordered)

    fields: dict[str, Any] = {"ebitda": float(round_money(ebitda))}
    if growth is not None:
        fields["revenue_growth_cagr"] = growth
        if growth < -TREND_BAND:
            fields["revenue_trend"] = RevenueTrend.DECLINING
        elif growth > TREND_BAND:
            fields["revenue_trend"] = RevenueTrend.GROWING
        else:
            fields["revenue_trend"] = RevenueTrend.STABLE
    fields.update(overrides)
    return ValuationInput(**fields)


def _normalised_weights(count: int, weights: list[float] | None) -> list[float]:
    w = weights if weights is not None else default_period_weights(count)
    total_w = sum(w)
    if total_w <= 0:
        raise ConfigurationError("period weights must sum to a positive number")
    return [w[i] / total_w if i < len(w) else 0.0 for i in range(count)]


def deal_assumptions_from_periods(
    periods: list[FinancialPeriod],
    weights: list[float] | None = None,
    defaults: DealAssumptions | None = None,
) -> DealAssumptions:
    """
    Seed the deal model from statement periods.

    A single period is used as is. Several periods are blended newest first
    with `weights` (declining defaults if omitted); revenue and EBITDA are
    rounded to whole units and the margin is the ratio of the unrounded
    blends. A growth rate from the two newest annual periods replaces the
    default growth assumption.
    """
    base = defaults or DealAssumptions()
    if not periods:
        return base

    ordered = sort_periods_newest_first(periods)
    if len(ordered) == 1:
        w_revenue = ordered[0].total_revenue or 0.0
        w_ebitda = resolve_period_ebitda(ordered[0])
        revenue, ebitda = w_revenue, w_ebitda
    else:
        norm = _normalised_weights(len(ordered), weights)
        w_revenue = sum((p.total_revenue or 0.0) * share for p, share in zip(ordered, norm))
        w_ebitda = sum(resolve_period_ebitda(p) * share for p, share in zip(ordered, norm))
        revenue = float(round_money(w_revenue))
        ebitda = float(round_money(w_ebitda))

    update: dict[str, Any] = {
        "target_revenue": revenue,
        "target_ebitda": ebitda,
        "target_ebitda_margin": w_ebitda / w_revenue if w_revenue > 0 else 0.0,
    }
    growth = derive_growth_rate(ordered)
    if growth is not None:
        update["revenue_growth_rate"] = growth
    return base.model_copy(update=update)


def deal_assumptions_from_average(
    periods: list[FinancialPeriod], defaults: DealAssumptions | None = None
) -> DealAssumptions:
    """Equal-weight blend of every period."""
    return deal_assumptions_from_periods(periods, [1.0] * len(periods), defaults)
