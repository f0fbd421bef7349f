from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

# Line-item categories
REVENUE = "REVENUE"
COGS = "COGS"
OPEX = "OPEX"
D_AND_A = "D_AND_A"
INTEREST = "INTEREST"
TAX = "TAX"
OTHER_INCOME = "OTHER_INCOME"
OTHER_EXPENSE = "OTHER_EXPENSE"


class LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: str
    amount: float = 0.0
    is_negative: bool = False
    label: str | None = None


class AddBack(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: float = 0.0
    include_in_ebitda: bool = True
    include_in_sde: bool = True
    label: str | None = None


class FinancialPeriod(BaseModel):
    """One statement period. Summary fields are usually the output of recompute_period_summary."""
    model_config = ConfigDict(extra="ignore")

    year: int
    period_type: str = "ANNUAL"
    quarter: int | None = None

    total_revenue: float | None = None
    total_cogs: float | None = None
    gross_profit: float | None = None
    ebitda: float | None = None
    adjusted_ebitda: float | None = None
    sde: float | None = None
    gross_margin: float | None = None
    ebitda_margin: float | None = None
    total_add_backs: float | None = None

    # None means line items were never loaded, not that there are none
    line_items: list[LineItem] | None = None


class PeriodOverrides(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_revenue: float | None = None
    total_cogs: float | None = None
    gross_profit: float | None = None
    total_opex: float | None = None
    ebitda: float | None = None
    net_income: float | None = None


@dataclass(frozen=True)
class PeriodSummary:
    total_revenue: float
    total_cogs: float
    gross_profit: float
    total_opex: float
    ebitda: float
    depreciation_amort: float
    ebit: float
    interest_expense: float
    tax_expense: float
    net_income: float
    total_add_backs: float
    adjusted_ebitda: float
    sde: float
    gross_margin: float | None
    ebitda_margin: float | None
    adjusted_ebitda_margin: float | None
    net_margin: float | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def sum_by_category(items: Iterable[LineItem], category: str) -> float:
    total = 0.0
    for item in items:
        if item.category == category:
            total += -item.amount if item.is_negative else item.amount
    return total


def safe_ratio(numerator: float, denominator: float) -> float | None:
    if denominator == 0:
        return None
    return numerator / denominator


def recompute_period_summary(
    line_items: list[LineItem],
    add_backs: list[AddBack],
    overrides: PeriodOverrides | None = None,
) -> PeriodSummary:
    """
    P&L waterfall from line items. A non-null override replaces the computed
    figure at that step and flows into everything below it.

    adjusted EBITDA = EBITDA + add-backs flagged for EBITDA
    SDE             = EBITDA + add-backs flagged for SDE
    """
    ov = overrides or PeriodOverrides()

    def pick(override: float | None, computed: float) -> float:
        return override if override is not None else computed

    total_revenue = pick(ov.total_revenue, sum_by_category(line_items, REVENUE))
    total_cogs = pick(ov.total_cogs, sum_by_category(line_items, COGS))
    gross_profit = pick(ov.gross_profit, total_revenue - total_cogs)

    total_opex = pick(ov.total_opex, sum_by_category(line_items, OPEX))
    ebitda = pick(ov.ebitda, gross_profit - total_opex)

    depreciation_amort = sum_by_category(line_items, D_AND_A)
    ebit = ebitda - depreciation_amort

    interest_expense = sum_by_category(line_items, INTEREST)
    tax_expense = sum_by_category(line_items, TAX)
    other_income = sum_by_category(line_items, OTHER_INCOME)
    other_expense = sum_by_category(line_items, OTHER_EXPENSE)

    net_income = pick(
        ov.net_income,
        ebit - interest_expense - tax_expense + other_income - other_expense,
    )

    ebitda_add_backs = sum(ab.amount for ab in add_backs if ab.include_in_ebitda)
    sde_add_backs = sum(ab.amount for ab in add_backs if ab.include_in_sde)

    adjusted_ebitda = ebitda + ebitda_add_backs
    sde = ebitda + sde_add_backs

    return PeriodSummary(
        total_revenue=total_revenue,
        total_cogs=total_cogs,
        gross_profit=gross_profit,
        total_opex=total_opex,
        ebitda=ebitda,
        depreciation_amort=depreciation_amort,
        ebit=ebit,
        interest_expense=interest_expense,
        tax_expense=tax_expense,
        net_income=net_income,
        total_add_backs=ebitda_add_backs,
        adjusted_ebitda=adjusted_ebitda,
        sde=sde,
        gross_margin=safe_ratio(gross_profit, total_revenue),
        ebitda_margin=safe_ratio(ebitda, total_revenue),
        adjusted_ebitda_margin=safe_ratio(adjusted_ebitda, total_revenue),
        net_margin=safe_ratio(net_income, total_revenue),
    )


def build_period(
    year: int,
    line_items: list[LineItem],
    add_backs: list[AddBack] | None = None,
    overrides: PeriodOverrides | None = None,
    *,
    period_type: str = "ANNUAL",
) -> FinancialPeriod:
    """Recompute a period's summary and package it for the quality checks."""
    s = recompute_period_summary(line_items, add_backs or [], overrides)
    return FinancialPeriod(
        year=year,
        period_type=period_type,
        total_revenue=s.total_revenue,
        total_cogs=s.total_cogs,
        gross_profit=s.gross_profit,
        ebitda=s.ebitda,
        adjusted_ebitda=s.adjusted_ebitda,
        sde=s.sde,
        gross_margin=s.gross_margin,
        ebitda_margin=s.ebitda_margin,
        total_add_backs=s.total_add_backs,
        line_items=list(line_items),
    )
