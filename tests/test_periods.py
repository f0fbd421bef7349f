# tests/test_periods.py
import math

import pytest

from dealengine.analysis.periods import (
    default_period_weights,
    derive_growth_rate,
    most_recent_annual,
    resolve_period_ebitda,
    sort_periods_newest_first,
    valuation_input_from_periods,
)
from dealengine.analysis.valuation import compute_valuation
from dealengine.domain.finance import FinancialPeriod
from dealengine.domain.opportunity import RevenueTrend


def _p(year, revenue=None, adj=None, ebitda=None, sde=None, **kw):
    return FinancialPeriod(
        year=year, total_revenue=revenue, adjusted_ebitda=adj, ebitda=ebitda, sde=sde, **kw
    )


@pytest.mark.parametrize(
    "period, expected",
    [
        (_p(2023, adj=300_000, ebitda=250_000, sde=400_000), 300_000),
        (_p(2023, ebitda=250_000, sde=400_000), 250_000),
        (_p(2023, sde=400_000), 400_000),
        (_p(2023), 0.0),
    ],
)
def test_resolve_period_ebitda(period, expected):
    assert resolve_period_ebitda(period) == expected


@pytest.mark.parametrize("count", [1, 2, 3, 4, 5, 8])
def test_default_weights_sum_to_one_and_decline(count):
    w = default_period_weights(count)

    assert len(w) == count
    assert math.isclose(sum(w), 1.0)
    assert w == sorted(w, reverse=True)


def test_three_year_weights():
    assert default_period_weights(3) == [0.5, 0.3, 0.2]


def test_sort_puts_annual_before_quarters():
    periods = [
        _p(2023, period_type="QUARTERLY", quarter=1),
        _p(2022),
        _p(2023, period_type="QUARTERLY", quarter=3),
        _p(2023),
    ]

    ordered = sort_periods_newest_first(periods)

    assert [(p.year, p.period_type, p.quarter) for p in ordered] == [
        (2023, "ANNUAL", None),
        (2023, "QUARTERLY", 3),
        (2023, "QUARTERLY", 1),
        (2022, "ANNUAL", None),
    ]


def test_most_recent_annual_ignores_quarters():
    periods = [_p(2024, period_type="QUARTERLY", quarter=1), _p(2022), _p(2023)]
    assert most_recent_annual(periods).year == 2023
    assert most_recent_annual([_p(2024, period_type="QUARTERLY", quarter=2)]) is None


def test_growth_rate_from_two_newest_annuals():
    periods = [_p(2021, revenue=2_000_000), _p(2023, revenue=3_000_000), _p(2022, revenue=2_500_000)]
    assert math.isclose(derive_growth_rate(periods), 0.2)


@pytest.mark.parametrize(
    "periods",
    [
        [],
        [_p(2023, revenue=1_000_000)],
        [_p(2023, revenue=1_000_000), _p(2022, revenue=0)],
        [_p(2023), _p(2022, revenue=1_000_000)],
    ],
)
def test_growth_rate_undefined(periods):
    assert derive_growth_rate(periods) is None


def test_weighted_earnings_and_growth_feed_valuation():
    periods = [
        _p(2021, revenue=2_000_000, adj=200_000),
        _p(2023, revenue=3_000_000, adj=300_000),
        _p(2022, revenue=2_500_000, adj=250_000),
    ]

    inp = valuation_input_from_periods(periods, recurring_revenue_pct=0.25)

    assert inp.ebitda == 265_000
    assert math.isclose(inp.revenue_growth_cagr, 0.2)
    assert inp.revenue_trend is RevenueTrend.GROWING
    assert inp.recurring_revenue_pct == 0.25

    v = compute_valuation(inp)
    assert [a.label for a in v.adjustments] == ["Recurring Revenue", "Revenue Growth"]
    assert v.adjusted_multiple_low == 4.0


def test_declining_revenue_sets_trend():
    periods = [_p(2023, revenue=2_000_000, ebitda=300_000), _p(2022, revenue=2_500_000, ebitda=350_000)]

    inp = valuation_input_from_periods(periods)

    assert inp.revenue_trend is RevenueTrend.DECLINING
    assert inp.ebitda == 320_000


@pytest.mark.parametrize(
    "prior, recent, expected",
    [
        (2_000_000, 1_900_000, RevenueTrend.STABLE),
        (2_000_000, 1_880_000, RevenueTrend.DECLINING),
        (2_000_000, 2_100_000, RevenueTrend.STABLE),
        (2_000_000, 2_120_000, RevenueTrend.GROWING),
        (3_000_000, 2_970_000, RevenueTrend.STABLE),
    ],
)
def test_trend_band_is_five_percent(prior, recent, expected):
    periods = [_p(2023, revenue=recent, ebitda=700_000), _p(2022, revenue=prior, ebitda=700_000)]

    inp = valuation_input_from_periods(periods)

    assert inp.revenue_trend is expected


def test_small_dip_does_not_discount_multiple():
    periods = [_p(2023, revenue=2_970_000, ebitda=700_000), _p(2022, revenue=3_000_000, ebitda=700_000)]

    v = compute_valuation(valuation_input_from_periods(periods))

    assert "Declining Revenue" not in [a.label for a in v.adjustments]


def test_explicit_weights_are_normalised():
    periods = [_p(2023, adj=400_000), _p(2022, adj=200_000)]
    inp = valuation_input_from_periods(periods, weights=[3, 1])
    assert inp.ebitda == 350_000
    assert inp.revenue_trend is None


def test_no_periods_no_input():
    assert valuation_input_from_periods([]) is None
