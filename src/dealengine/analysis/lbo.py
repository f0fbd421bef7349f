# src/dealengine/analysis/lbo.py
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from dealengine.adapters.config import config
from dealengine.domain.errors import ConfigurationError
from dealengine.domain.listing import ListingSnapshot

# margin expansion assumed from year 3 of ownership
MARGIN_EXPANSION = 0.02
MARGIN_EXPANSION_YEAR = 3
MIN_PROJECTION_YEARS = 10

# an asking-price multiple outside this band is treated as noise
DERIVED_ENTRY_MULTIPLE_RANGE = (2.0, 8.0)


def pmt(rate: float, nper: int, pv: float) -> float:
    """Level periodic payment that retires `pv` over `nper` periods."""
    factor = (1 + rate) ** nper
    if rate == 0 or factor == 1:
        return pv / nper
    return pv * rate * factor / (factor - 1)


def compound_growth(pv: float, rate: float, periods: int) -> float:
    return pv * (1 + rate) ** periods


def remaining_balance(rate: float, total_periods: int, pv: float, periods_elapsed: int) -> float:
    """Loan balance after `periods_elapsed` level payments; zero once the term is over."""
    if periods_elapsed >= total_periods:
        return 0.0
    if rate == 0:
        return pv * (1 - periods_elapsed / total_periods)
    payment = pmt(rate, total_periods, pv)
    factor = (1 + rate) ** periods_elapsed
    return pv * factor - payment * ((factor - 1) / rate)


def irr(
    cash_flows: Sequence[float],
    guess: float = 0.1,
    max_iterations: int = 100,
    tolerance: float = 1e-7,
) -> float | None:
    """
    Internal rate of return by Newton-Raphson.

    cash_flows[0] is normally the (negative) initial investment. Returns None
    if the iteration stalls on a flat derivative, overflows, or does not
    converge within `max_iterations`.
    """
    rate = guess
    for _ in range(max_iterations):
        if 1 + rate == 0:
            return None
        npv = 0.0
        dnpv = 0.0
        try:
            for t, cf in enumerate(cash_flows):
                npv += cf / (1 + rate) ** t
                dnpv -= t * cf / (1 + rate) ** (t + 1)
        except (OverflowError, ZeroDivisionError):
            return None
        if abs(dnpv) < 1e-12:
            return None
        new_rate = rate - npv / dnpv
        if not math.isfinite(new_rate):
            return None
        if abs(new_rate - rate) < tolerance:
            return new_rate
        rate = new_rate
    return None


class DealAssumptions(BaseModel):
    """
    Inputs to the leveraged-buyout model. Percentages and rates are fractions.

    The capital-structure shares are expected to sum to one but this is not
    enforced; the model takes them as given.
    """
    model_config = ConfigDict(extra="ignore")

    # target company
    target_revenue: float = 0.0
    target_ebitda: float = 0.0
    target_ebitda_margin: float = 0.0
    revenue_growth_rate: float = 0.05

    entry_multiple: float = Field(default_factory=lambda: config.DEAL_ENTRY_MULTIPLE)

    # capital structure
    equity_pct: float = 0.25
    bank_debt_pct: float = 0.60
    seller_note_pct: float = 0.15
    bank_interest_rate: float = 0.085
    bank_term_years: int = Field(default=10, ge=1)
    seller_note_rate: float = 0.06
    seller_note_term: int = Field(default=5, ge=1)

    # operating
    owner_salary: float = Field(default_factory=lambda: config.DEAL_OWNER_SALARY)
    existing_owner_excess_comp: float = 0.0
    one_time_adjustments: float = 0.0
    capex_annual: float = 0.0
    tax_rate: float = 0.25

    # growth and synergies
    year_2_bolt_on_revenue: float = 0.0
    synergy_sg_a_savings: float = 0.0
    synergy_procurement: float = 0.0
    synergy_cross_sell_pct: float = 0.0

    exit_year: int = Field(default=7, ge=1)
    exit_multiple: float = Field(default_factory=lambda: config.DEAL_EXIT_MULTIPLE)


@dataclass(frozen=True)
class DealStructure:
    enterprise_value: float
    equity_check: float
    bank_debt: float
    seller_note: float


@dataclass(frozen=True)
class DebtService:
    bank_annual_payment: float
    seller_annual_payment: float
    total_annual_debt_service: float
    bank_monthly_payment: float
    seller_monthly_payment: float


@dataclass(frozen=True)
class CashFlowSummary:
    adjusted_ebitda: float
    pre_tax_cash_flow: float
    after_tax_cash_flow: float
    dscr: float


@dataclass(frozen=True)
class ProjectionYear:
    year: int
    revenue: float
    ebitda_margin: float
    ebitda: float
    synergies: float
    adjusted_ebitda: float
    debt_service: float
    capex: float
    pre_tax_cf: float
    taxes: float
    free_cash_flow: float
    cumulative_fcf: float
    remaining_debt: float
    implied_ev: float
    equity_value: float
    moic: float


@dataclass(frozen=True)
class ExitAnalysis:
    exit_revenue: float
    exit_ebitda: float
    exit_ev: float
    remaining_debt_at_exit: float
    equity_to_buyer: float
    cumulative_fcf: float
    total_return: float
    moic: float
    irr: float | None


@dataclass(frozen=True)
class DealModel:
    deal: DealStructure
    debt: DebtService
    cash_flow: CashFlowSummary
    exit: ExitAnalysis
    projection: list[ProjectionYear] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _margin_for_year(a: DealAssumptions, year: int) -> float:
    return a.target_ebitda_margin + (MARGIN_EXPANSION if year >= MARGIN_EXPANSION_YEAR else 0.0)


def _debt_outstanding(a: DealAssumptions, deal: DealStructure, year: int) -> tuple[float, float]:
    return (
        remaining_balance(a.bank_interest_rate, a.bank_term_years, deal.bank_debt, year),
        remaining_balance(a.seller_note_rate, a.seller_note_term, deal.seller_note, year),
    )


def project_years(a: DealAssumptions, deal: DealStructure, debt: DebtService) -> list[ProjectionYear]:
    """
    Year-by-year operating and debt projection over max(exit_year, 10) years.

    A loan's payment is only made in years that start with a balance on it.
    Taxes are never negative.
    """
    years: list[ProjectionYear] = []
    for y in range(1, max(a.exit_year, MIN_PROJECTION_YEARS) + 1):
        prev = years[-1] if years else None

        if prev is None:
            revenue = a.target_revenue
        else:
            revenue = prev.revenue * (1 + a.revenue_growth_rate)
            if y == 2:
                revenue += a.year_2_bolt_on_revenue

        margin = _margin_for_year(a, y)
        ebitda = revenue * margin
        synergies = 0.0
        if y >= 2:
            synergies = a.synergy_sg_a_savings + a.synergy_procurement + revenue * a.synergy_cross_sell_pct
        adjusted = ebitda + synergies - a.owner_salary

        bank_open, seller_open = _debt_outstanding(a, deal, y - 1)
        debt_service = (debt.bank_annual_payment if bank_open > 0 else 0.0) + (
            debt.seller_annual_payment if seller_open > 0 else 0.0
        )

        pre_tax = adjusted - debt_service - a.capex_annual
        taxes = max(0.0, pre_tax * a.tax_rate)
        fcf = pre_tax - taxes
        cumulative = (prev.cumulative_fcf if prev else 0.0) + fcf

        remaining = sum(_debt_outstanding(a, deal, y))
        implied_ev = adjusted * a.exit_multiple
        equity_value = implied_ev - remaining
        moic = (equity_value + cumulative) / deal.equity_check if deal.equity_check > 0 else 0.0

        years.append(
            ProjectionYear(
                year=y,
                revenue=revenue,
                ebitda_margin=margin,
                ebitda=ebitda,
                synergies=synergies,
                adjusted_ebitda=adjusted,
                debt_service=debt_service,
                capex=a.capex_annual,
                pre_tax_cf=pre_tax,
                taxes=taxes,
                free_cash_flow=fcf,
                cumulative_fcf=cumulative,
                remaining_debt=remaining,
                implied_ev=implied_ev,
                equity_value=equity_value,
                moic=moic,
            )
        )
    return years


def model_deal(a: DealAssumptions) -> DealModel:
    """
    Full buyout model: deal structure, debt service, year-one cash flow,
    projection and exit returns.

    DSCR is infinite for an all-equity deal. IRR is None when the return
    stream has no solvable rate.
    """
    ev = a.target_ebitda * a.entry_multiple
    deal = DealStructure(
        enterprise_value=ev,
        equity_check=ev * a.equity_pct,
        bank_debt=ev * a.bank_debt_pct,
        seller_note=ev * a.seller_note_pct,
    )

    bank_annual = pmt(a.bank_interest_rate, a.bank_term_years, deal.bank_debt) if deal.bank_debt > 0 else 0.0
    seller_annual = (
        pmt(a.seller_note_rate, a.seller_note_term, deal.seller_note) if deal.seller_note > 0 else 0.0
    )
    total_ds = bank_annual + seller_annual
    debt = DebtService(
        bank_annual_payment=bank_annual,
        seller_annual_payment=seller_annual,
        total_annual_debt_service=total_ds,
        bank_monthly_payment=bank_annual / 12,
        seller_monthly_payment=seller_annual / 12,
    )

    adjusted = a.target_ebitda + a.existing_owner_excess_comp + a.one_time_adjustments - a.owner_salary
    pre_tax = adjusted - total_ds - a.capex_annual
    cash_flow = CashFlowSummary(
        adjusted_ebitda=adjusted,
        pre_tax_cash_flow=pre_tax,
        after_tax_cash_flow=pre_tax * (1 - a.tax_rate),
        dscr=adjusted / total_ds if total_ds > 0 else float("inf"),
    )

    projection = project_years(a, deal, debt)
    # the projection always reaches the exit year
    exit_row = projection[a.exit_year - 1]

    exit_ev = exit_row.adjusted_ebitda * a.exit_multiple
    remaining_at_exit = sum(_debt_outstanding(a, deal, a.exit_year))
    equity_to_buyer = exit_ev - remaining_at_exit
    total_return = equity_to_buyer + exit_row.cumulative_fcf

    flows = [-deal.equity_check]
    for p in projection[: a.exit_year]:
        flows.append(p.free_cash_flow + (equity_to_buyer if p.year == a.exit_year else 0.0))

    exit_ = ExitAnalysis(
        exit_revenue=exit_row.revenue,
        exit_ebitda=exit_row.adjusted_ebitda,
        exit_ev=exit_ev,
        remaining_debt_at_exit=remaining_at_exit,
        equity_to_buyer=equity_to_buyer,
        cumulative_fcf=exit_row.cumulative_fcf,
        total_return=total_return,
        moic=total_return / deal.equity_check if deal.equity_check > 0 else 0.0,
        irr=irr(flows),
    )
    return DealModel(deal=deal, debt=debt, cash_flow=cash_flow, projection=projection, exit=exit_)


@dataclass(frozen=True)
class SensitivityTable:
    rows: list[str]
    cols: list[str]
    data: list[list[float]]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _label(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else str(v)


_SCALE_FIELDS = {"target_revenue", "target_ebitda"}


def sensitivity_table(
    base: DealAssumptions,
    row_param: str,
    row_values: Sequence[float],
    col_param: str,
    col_values: Sequence[float],
    metric: Callable[[DealModel], float],
) -> SensitivityTable:
    """
    Re-run the model over a grid of two varied inputs and collect one metric.

    Varying revenue or EBITDA re-derives the margin so the projection stays
    consistent with the new figures.
    """
    fields = DealAssumptions.model_fields
    for name in (row_param, col_param):
        if name not in fields:
            raise ConfigurationError(f"unknown deal assumption: {name}")

    rescale = bool({row_param, col_param} & _SCALE_FIELDS)
    data: list[list[float]] = []
    for rv in row_values:
        row: list[float] = []
        for cv in col_values:
            tweaked = DealAssumptions.model_validate({**base.model_dump(), row_param: rv, col_param: cv})
            if rescale and tweaked.target_revenue > 0:
                tweaked = tweaked.model_copy(
                    update={"target_ebitda_margin": tweaked.target_ebitda / tweaked.target_revenue}
                )
            row.append(metric(model_deal(tweaked)))
        data.append(row)

    return SensitivityTable(
        rows=[_label(v) for v in row_values],
        cols=[_label(v) for v in col_values],
        data=data,
    )


# ---------- listing mapping ----------

def resolve_listing_ebitda(listing: ListingSnapshot) -> float:
    """Reported EBITDA > reported SDE > inferred EBITDA > inferred SDE > 0."""
    return listing.ebitda or listing.sde or listing.inferred_ebitda or listing.inferred_sde or 0.0


def ebitda_source_label(listing: ListingSnapshot) -> str:
    if listing.ebitda:
        return "Reported EBITDA"
    if listing.sde:
        return "Reported SDE"
    if listing.inferred_ebitda:
        return "Inferred EBITDA"
    if listing.inferred_sde:
        return "Inferred SDE"
    return "No data"


def derive_entry_multiple(asking_price: float | None, ebitda: float) -> float | None:
    """Asking price over earnings to one decimal (halves up), if inside 2x-8x."""
    if not asking_price or asking_price <= 0 or ebitda <= 0:
        return None
    m = math.floor(asking_price / ebitda * 10 + 0.5) / 10
    lo, hi = DERIVED_ENTRY_MULTIPLE_RANGE
    return m if lo <= m <= hi else None


def comparison_assumptions(listing: ListingSnapshot, defaults: DealAssumptions | None = None) -> DealAssumptions:
    """Listing figures on standard multiples, for side-by-side comparison."""
    base = defaults or DealAssumptions()
    revenue = listing.revenue or 0.0
    ebitda = resolve_listing_ebitda(listing)
    return base.model_copy(
        update={
            "target_revenue": revenue,
            "target_ebitda": ebitda,
            "target_ebitda_margin": ebitda / revenue if revenue > 0 else 0.0,
        }
    )


def deal_assumptions_from_listing(
    listing: ListingSnapshot, defaults: DealAssumptions | None = None
) -> DealAssumptions:
    """
    Seed the deal model from a listing. The entry multiple is taken from the
    asking price when that gives a plausible figure, otherwise the default
    entry multiple stands.
    """
    out = comparison_assumptions(listing, defaults)
    derived = derive_entry_multiple(listing.asking_price, out.target_ebitda)
    if derived is not None:
        out = out.model_copy(update={"entry_multiple": derived})
    return out
