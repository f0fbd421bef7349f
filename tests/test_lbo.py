# tests/test_lbo.py
import math

import pytest
from hypothesis import given, strategies as st

from dealengine.adapters.config import config
from dealengine.analysis.lbo import (
    DealAssumptions,
    comparison_assumptions,
    compound_growth,
    deal_assumptions_from_listing,
    ebitda_source_label,
    irr,
    model_deal,
    pmt,
    remaining_balance,
    resolve_listing_ebitda,
    sensitivity_table,
)
from dealengine.analysis.periods import deal_assumptions_from_average, deal_assumptions_from_periods
from dealengine.domain.errors import ConfigurationError
from dealengine.domain.finance import FinancialPeriod
from dealengine.domain.listing import ListingSnapshot


def _baseline(**kw):
    fields = dict(target_revenue=5_000_000.0, target_ebitda=1_000_000.0, target_ebitda_margin=0.20)
    fields.update(kw)
    return DealAssumptions(**fields)


def _npv(rate, flows):
    return sum(cf / (1 + rate) ** t for t, cf in enumerate(flows))


# ---------- financial helpers ----------

def test_pmt_without_interest_is_straight_line():
    assert pmt(0, 10, 1_000.0) == 100.0


def test_pmt_single_period_repays_with_interest():
    assert pmt(0.10, 1, 100.0) == pytest.approx(110.0)


def test_compound_growth():
    assert compound_growth(1_000.0, 0.10, 2) == pytest.approx(1_210.0)
    assert compound_growth(1_000.0, 0.10, 0) == 1_000.0


def test_remaining_balance_edges():
    assert remaining_balance(0.085, 10, 2_400_000.0, 0) == pytest.approx(2_400_000.0)
    assert remaining_balance(0.085, 10, 2_400_000.0, 10) == 0.0
    assert remaining_balance(0.085, 10, 2_400_000.0, 12) == 0.0
    assert remaining_balance(0, 10, 1_000.0, 3) == 700.0


@given(
    rate=st.one_of(st.just(0.0), st.floats(min_value=0.001, max_value=0.25)),
    n=st.integers(min_value=1, max_value=30),
    pv=st.floats(min_value=1_000.0, max_value=10_000_000.0),
)
def test_balance_only_goes_down(rate, n, pv):
    balances = [remaining_balance(rate, n, pv, k) for k in range(n + 1)]

    assert balances[-1] == 0.0
    for earlier, later in zip(balances, balances[1:]):
        assert later <= earlier + 1e-6 * pv
    # payments over the term cover the principal
    assert pmt(rate, n, pv) * n >= pv * (1 - 1e-9)


def test_irr_of_one_year_ten_percent():
    assert irr([-100.0, 110.0]) == pytest.approx(0.10)
    assert irr([-100.0, 0.0, 121.0]) == pytest.approx(0.10)


@pytest.mark.parametrize("flows", [[0.0, 0.0, 0.0], [100.0, 100.0]])
def test_irr_without_solution_is_none(flows):
    assert irr(flows) is None


@given(
    r=st.floats(min_value=0.0, max_value=0.5),
    n=st.integers(min_value=1, max_value=8),
    pv=st.floats(min_value=1_000.0, max_value=5_000_000.0),
)
def test_irr_recovers_coupon_of_par_bond(r, n, pv):
    flows = [-pv] + [pv * r] * (n - 1) + [pv * (1 + r)]

    found = irr(flows)

    assert found is not None
    assert found == pytest.approx(r, abs=1e-6)
    assert _npv(found, flows) == pytest.approx(0.0, abs=1e-4 * pv)


# ---------- deal model ----------

def test_deal_structure_and_year_one_cash_flow():
    m = model_deal(_baseline())

    assert m.deal.enterprise_value == 4_000_000
    assert m.deal.equity_check == pytest.approx(1_000_000)
    assert m.deal.bank_debt == pytest.approx(2_400_000)
    assert m.deal.seller_note == pytest.approx(600_000)

    assert m.debt.bank_annual_payment == pytest.approx(pmt(0.085, 10, 2_400_000))
    assert m.debt.total_annual_debt_service == pytest.approx(
        m.debt.bank_annual_payment + m.debt.seller_annual_payment
    )
    assert m.debt.bank_monthly_payment == pytest.approx(m.debt.bank_annual_payment / 12)

    assert m.cash_flow.adjusted_ebitda == 800_000
    assert m.cash_flow.pre_tax_cash_flow == pytest.approx(800_000 - m.debt.total_annual_debt_service)
    assert m.cash_flow.after_tax_cash_flow == pytest.approx(m.cash_flow.pre_tax_cash_flow * 0.75)
    assert m.cash_flow.dscr == pytest.approx(800_000 / m.debt.total_annual_debt_service)


def test_projection_and_exit_agree():
    m = model_deal(_baseline())
    proj = m.projection

    assert [p.year for p in proj] == list(range(1, 11))
    assert proj[0].revenue == 5_000_000
    assert proj[1].revenue == pytest.approx(5_250_000)
    assert proj[1].ebitda_margin == 0.20
    assert proj[2].ebitda_margin == pytest.approx(0.22)

    # the five-year seller note is paid through year 5 only
    assert proj[4].debt_service == pytest.approx(m.debt.total_annual_debt_service)
    assert proj[5].debt_service == pytest.approx(m.debt.bank_annual_payment)

    exit_row = proj[6]
    assert m.exit.exit_revenue == exit_row.revenue
    assert m.exit.exit_ebitda == exit_row.adjusted_ebitda
    assert m.exit.cumulative_fcf == exit_row.cumulative_fcf
    assert m.exit.remaining_debt_at_exit == pytest.approx(exit_row.remaining_debt)
    assert m.exit.exit_ev == pytest.approx(exit_row.adjusted_ebitda * 7.0)
    assert m.exit.moic == pytest.approx(m.exit.total_return / m.deal.equity_check)

    flows = [-m.deal.equity_check] + [p.free_cash_flow for p in proj[:7]]
    flows[-1] += m.exit.equity_to_buyer
    assert m.exit.irr == irr(flows)
    assert m.exit.irr > 0
    assert m.exit.moic > 1


def test_taxes_never_negative():
    m = model_deal(_baseline(target_ebitda=300_000.0, target_ebitda_margin=0.06))

    assert m.projection[0].pre_tax_cf < 0
    assert all(p.taxes >= 0 for p in m.projection)
    assert m.projection[0].free_cash_flow == m.projection[0].pre_tax_cf


def test_all_equity_deal_has_infinite_dscr():
    m = model_deal(_baseline(equity_pct=1.0, bank_debt_pct=0.0, seller_note_pct=0.0))

    assert m.debt.total_annual_debt_service == 0
    assert math.isinf(m.cash_flow.dscr)
    assert all(p.debt_service == 0 and p.remaining_debt == 0 for p in m.projection)
    assert math.isinf(m.to_dict()["cash_flow"]["dscr"])


def test_late_exit_extends_projection():
    m = model_deal(_baseline(exit_year=12))
    assert len(m.projection) == 12
    assert m.exit.exit_revenue == m.projection[-1].revenue


def test_synergies_and_bolt_on_start_in_year_two():
    m = model_deal(
        _baseline(
            year_2_bolt_on_revenue=1_000_000.0,
            synergy_sg_a_savings=50_000.0,
            synergy_cross_sell_pct=0.01,
        )
    )
    y1, y2 = m.projection[0], m.projection[1]

    assert y1.synergies == 0
    assert y2.revenue == pytest.approx(6_250_000)
    assert y2.synergies == pytest.approx(50_000 + 62_500)


@given(
    revenue=st.floats(min_value=2_000_000.0, max_value=20_000_000.0),
    margin=st.floats(min_value=0.10, max_value=0.30),
    exit_multiple=st.floats(min_value=3.0, max_value=10.0),
    delta=st.floats(min_value=0.5, max_value=3.0),
)
def test_higher_exit_multiple_improves_returns(revenue, margin, exit_multiple, delta):
    base = dict(target_revenue=revenue, target_ebitda=revenue * margin, target_ebitda_margin=margin)

    m1 = model_deal(DealAssumptions(exit_multiple=exit_multiple, **base))
    m2 = model_deal(DealAssumptions(exit_multiple=exit_multiple + delta, **base))

    assert m2.exit.exit_ev > m1.exit.exit_ev
    assert m2.exit.moic > m1.exit.moic


@given(
    ebitda=st.floats(min_value=500_000.0, max_value=5_000_000.0),
    entry=st.floats(min_value=2.0, max_value=8.0),
    delta=st.floats(min_value=0.25, max_value=2.0),
)
def test_paying_more_lowers_coverage(ebitda, entry, delta):
    m1 = model_deal(DealAssumptions(target_ebitda=ebitda, entry_multiple=entry, owner_salary=0.0))
    m2 = model_deal(DealAssumptions(target_ebitda=ebitda, entry_multiple=entry + delta, owner_salary=0.0))

    assert m2.deal.equity_check > m1.deal.equity_check
    assert m2.debt.total_annual_debt_service > m1.debt.total_annual_debt_service
    assert m2.cash_flow.dscr < m1.cash_flow.dscr


def test_defaults_follow_config(monkeypatch):
    monkeypatch.setattr(config, "DEAL_EXIT_MULTIPLE", 6.0)

    a = DealAssumptions()

    assert a.exit_multiple == 6.0
    assert a.entry_multiple == 4.0
    assert a.owner_salary == 200_000
    assert (a.equity_pct, a.bank_debt_pct, a.seller_note_pct) == (0.25, 0.60, 0.15)


# ---------- sensitivity ----------

def test_sensitivity_grid_over_multiples():
    t = sensitivity_table(
        _baseline(), "entry_multiple", [3.0, 4.5, 6.0], "exit_multiple", [6, 7, 8], lambda m: m.exit.moic
    )

    assert t.rows == ["3", "4.5", "6"]
    assert t.cols == ["6", "7", "8"]
    assert len(t.data) == 3 and all(len(r) == 3 for r in t.data)
    for row in t.data:
        assert row == sorted(row)
    for col in zip(*t.data):
        assert list(col) == sorted(col, reverse=True)
    assert t.data[1][1] == pytest.approx(model_deal(_baseline(entry_multiple=4.5)).exit.moic)


def test_sensitivity_rederives_margin_when_earnings_vary():
    t = sensitivity_table(
        _baseline(), "target_ebitda", [500_000, 1_000_000], "exit_year", [5], lambda m: m.projection[0].ebitda
    )
    assert t.data[0][0] == pytest.approx(500_000)
    assert t.data[1][0] == pytest.approx(1_000_000)


def test_sensitivity_rejects_unknown_inputs():
    with pytest.raises(ConfigurationError):
        sensitivity_table(_baseline(), "entry_multiple", [4.0], "moon_phase", [1.0], lambda m: 0.0)


# ---------- listing and period mapping ----------

@pytest.mark.parametrize(
    "fields, value, label",
    [
        ({"ebitda": 700_000, "sde": 900_000}, 700_000, "Reported EBITDA"),
        ({"ebitda": 0, "sde": 500_000, "inferred_ebitda": 450_000}, 500_000, "Reported SDE"),
        ({"inferred_ebitda": 450_000, "inferred_sde": 520_000}, 450_000, "Inferred EBITDA"),
        ({"inferred_sde": 520_000}, 520_000, "Inferred SDE"),
        ({}, 0.0, "No data"),
    ],
)
def test_listing_earnings_fallback(fields, value, label):
    listing = ListingSnapshot(**fields)
    assert resolve_listing_ebitda(listing) == value
    assert ebitda_source_label(listing) == label


def test_listing_seeds_deal_with_derived_entry_multiple():
    listing = ListingSnapshot(revenue=5_000_000, ebitda=800_000, asking_price=3_100_000)

    a = deal_assumptions_from_listing(listing)

    assert a.target_revenue == 5_000_000
    assert a.target_ebitda == 800_000
    assert a.target_ebitda_margin == pytest.approx(0.16)
    assert a.entry_multiple == 3.9


@pytest.mark.parametrize(
    "asking, expected",
    [(1_960_000, 2.0), (8_200_000, 4.0), (1_500_000, 4.0), (None, 4.0)],
)
def test_entry_multiple_kept_inside_two_to_eight(asking, expected):
    listing = ListingSnapshot(revenue=5_000_000, ebitda=1_000_000, asking_price=asking)
    assert deal_assumptions_from_listing(listing).entry_multiple == expected


def test_comparison_keeps_standard_multiples():
    listing = ListingSnapshot(revenue=5_000_000, sde=1_000_000, asking_price=3_000_000)

    a = comparison_assumptions(listing)

    assert a.entry_multiple == 4.0
    assert a.exit_multiple == 7.0
    assert a.target_ebitda == 1_000_000


def _p(year, revenue=None, adj=None, sde=None):
    return FinancialPeriod(year=year, total_revenue=revenue, adjusted_ebitda=adj, sde=sde)


def test_weighted_periods_seed_revenue_margin_and_growth():
    periods = [
        _p(2021, revenue=2_000_000, adj=200_000),
        _p(2023, revenue=3_000_000, adj=300_000),
        _p(2022, revenue=2_500_000, adj=250_000),
    ]

    a = deal_assumptions_from_periods(periods)

    assert a.target_revenue == 2_650_000
    assert a.target_ebitda == 265_000
    assert a.target_ebitda_margin == pytest.approx(0.10)
    assert a.revenue_growth_rate == pytest.approx(0.20)


def test_single_period_is_used_directly():
    a = deal_assumptions_from_periods([_p(2023, revenue=4_000_000, sde=500_000)])

    assert (a.target_revenue, a.target_ebitda) == (4_000_000, 500_000)
    assert a.target_ebitda_margin == 0.125
    assert a.revenue_growth_rate == 0.05


def test_average_weights_periods_equally():
    periods = [_p(2023, revenue=3_000_000, adj=300_000), _p(2022, revenue=2_000_000, adj=200_000)]

    a = deal_assumptions_from_average(periods)

    assert (a.target_revenue, a.target_ebitda) == (2_500_000, 250_000)


def test_no_periods_keeps_defaults():
    defaults = DealAssumptions(exit_year=5)
    assert deal_assumptions_from_periods([], defaults=defaults) == defaults


def test_zero_weights_rejected():
    periods = [_p(2023, revenue=1_000_000, adj=100_000), _p(2022, revenue=1_000_000, adj=100_000)]
    with pytest.raises(ConfigurationError):
        deal_assumptions_from_periods(periods, weights=[0, 0])
