from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable

from dealengine.adapters.config import config
from dealengine.domain.assumptions import ThesisConfig
from dealengine.domain.finance import COGS, OPEX, REVENUE, FinancialPeriod

EXPECTED_CATEGORIES = (REVENUE, COGS, OPEX)
GROSS_PROFIT_TOLERANCE = 1.0


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER[self]


_SEVERITY_ORDER = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}


@dataclass(frozen=True)
class QualityFinding:
    id: str
    severity: Severity
    title: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["severity"] = self.severity.value
        return d


def _num(v: float | None) -> float:
    return float(v) if v is not None else 0.0


def _money(v: float) -> str:
    return f"${int(round(v)):,}"


def _pct(v: float) -> str:
    return f"{v * 100:.1f}%"


# ---------------------------------------------------------------------------
# Single-period rules (run on the most recent period)
# ---------------------------------------------------------------------------


def check_negative_ebitda(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    ebitda = _num(latest.ebitda)
    if ebitda >= 0:
        return []
    return [QualityFinding(
        "negative-ebitda",
        Severity.ERROR,
        "Negative EBITDA",
        f"EBITDA is negative ({_money(ebitda)}). This business is not profitable before adjustments.",
    )]


def check_thesis_floor(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    adj = _num(latest.adjusted_ebitda)
    floor = ctx["thesis_floor"]
    if not (0 < adj < floor):
        return []
    return [QualityFinding(
        "below-thesis-minimum",
        Severity.WARNING,
        "Below Thesis Minimum",
        f"Adj. EBITDA of {_money(adj)} is below the {_money(floor)} thesis floor.",
    )]


def check_addback_ratio(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    revenue = _num(latest.total_revenue)
    add_backs = _num(latest.total_add_backs)
    if revenue <= 0 or add_backs <= 0:
        return []

    ratio = add_backs / revenue
    if ratio > 0.5:
        return [QualityFinding(
            "high-addback-ratio",
            Severity.ERROR,
            "Very High Add-Back Ratio",
            f"Add-backs are {_pct(ratio)} of revenue. Extremely high and may not survive buyer due diligence.",
        )]
    if ratio > 0.3:
        return [QualityFinding(
            "elevated-addback-ratio",
            Severity.WARNING,
            "Elevated Add-Back Ratio",
            f"Add-backs are {_pct(ratio)} of revenue. Buyers may scrutinize these adjustments.",
        )]
    return []


def check_gross_margin(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    # trades / contractors typically run 25-45%
    revenue = _num(latest.total_revenue)
    gm = _num(latest.gross_margin)
    if revenue <= 0 or gm <= 0:
        return []
    if gm < 0.15:
        return [QualityFinding(
            "low-gross-margin",
            Severity.WARNING,
            "Low Gross Margin",
            f"Gross margin of {_pct(gm)} is below typical range for trades businesses (25-45%).",
        )]
    if gm > 0.65:
        return [QualityFinding(
            "high-gross-margin",
            Severity.INFO,
            "High Gross Margin",
            f"Gross margin of {_pct(gm)} is unusually high. Verify COGS is complete.",
        )]
    return []


def check_ebitda_margin(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    revenue = _num(latest.total_revenue)
    em = _num(latest.ebitda_margin)
    if revenue <= 0 or em <= 0:
        return []
    if em < 0.08:
        return [QualityFinding(
            "low-ebitda-margin",
            Severity.WARNING,
            "Low EBITDA Margin",
            f"EBITDA margin of {_pct(em)} is thin. Limited room for debt service.",
        )]
    if em > 0.35:
        return [QualityFinding(
            "high-ebitda-margin",
            Severity.INFO,
            "High EBITDA Margin",
            f"EBITDA margin of {_pct(em)} is very strong. Verify operating expenses are complete.",
        )]
    return []


def check_owner_comp(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    sde = _num(latest.sde)
    adj = _num(latest.adjusted_ebitda)
    revenue = _num(latest.total_revenue)
    if sde <= 0 or adj <= 0 or revenue <= 0:
        return []

    share = (sde - adj) / revenue
    if share <= 0.25:
        return []
    return [QualityFinding(
        "high-owner-comp",
        Severity.WARNING,
        "High Owner Compensation",
        f"Imputed owner comp is {_pct(share)} of revenue. May indicate owner-dependent business.",
    )]


def check_missing_line_items(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    if latest.line_items is None:
        return []
    present = {li.category for li in latest.line_items}
    missing = [c for c in EXPECTED_CATEGORIES if c not in present]
    if not missing:
        return []
    return [QualityFinding(
        "missing-line-items",
        Severity.INFO,
        "Incomplete P&L",
        f"Missing categories: {', '.join(missing)}. Add these for accurate computation.",
    )]


def check_gross_profit_math(latest: FinancialPeriod, ctx: dict[str, Any]) -> list[QualityFinding]:
    # only meaningful when all three figures are present and non-zero
    if not (latest.total_revenue and latest.total_cogs and latest.gross_profit):
        return []
    expected = latest.total_revenue - latest.total_cogs
    actual = latest.gross_profit
    if abs(expected - actual) <= GROSS_PROFIT_TOLERANCE:
        return []
    return [QualityFinding(
        "math-inconsistency",
        Severity.ERROR,
        "Math Inconsistency",
        f"Gross Profit doesn't match Revenue - COGS (expected {_money(expected)}, got {_money(actual)}).",
    )]


# ---------------------------------------------------------------------------
# Multi-period rules (run on the full, newest-first sequence)
# ---------------------------------------------------------------------------


def check_yoy_volatility(periods: list[FinancialPeriod], ctx: dict[str, Any]) -> list[QualityFinding]:
    out: list[QualityFinding] = []
    for curr_p, prev_p in zip(periods, periods[1:]):
        curr = _num(curr_p.total_revenue)
        prev = _num(prev_p.total_revenue)
        if prev <= 0 or curr <= 0:
            continue
        change = (curr - prev) / prev
        if abs(change) <= 0.2:
            continue
        sign = "+" if change > 0 else ""
        out.append(QualityFinding(
            f"yoy-volatility-{curr_p.year}",
            Severity.WARNING,
            f"Revenue Volatility ({curr_p.year})",
            f"{curr_p.year} revenue changed {sign}{_pct(change)} YoY. High volatility increases risk.",
        ))
    return out


def check_single_period(periods: list[FinancialPeriod], ctx: dict[str, Any]) -> list[QualityFinding]:
    if len(periods) != 1:
        return []
    return [QualityFinding(
        "single-period",
        Severity.INFO,
        "Limited Data",
        "Only one financial period. Add more years to see trends and compute growth rates.",
    )]


PeriodRule = Callable[[FinancialPeriod, dict[str, Any]], list[QualityFinding]]
SeriesRule = Callable[[list[FinancialPeriod], dict[str, Any]], list[QualityFinding]]

LATEST_PERIOD_RULES: tuple[PeriodRule, ...] = (
    check_negative_ebitda,
    check_thesis_floor,
    check_addback_ratio,
    check_gross_margin,
    check_ebitda_margin,
    check_owner_comp,
    check_missing_line_items,
    check_gross_profit_math,
)

SERIES_RULES: tuple[SeriesRule, ...] = (
    check_yoy_volatility,
    check_single_period,
)


def run_quality_checks(
    periods: list[FinancialPeriod],
    *,
    thesis: ThesisConfig | None = None,
    thesis_floor: float | None = None,
) -> list[QualityFinding]:
    """
    Run every rule over the supplied statement periods.

    Single-period rules look at the most recent year; series rules see all
    periods newest first. Findings come back sorted error, warning, info.

    The earnings floor is `thesis_floor` if given, else `thesis.thesis_floor`,
    else the configured MINIMUM_EBITDA.
    """
    if not periods:
        return []

    ordered = sorted(periods, key=lambda p: p.year, reverse=True)
    latest = ordered[0]
    if thesis_floor is None:
        thesis_floor = thesis.thesis_floor if thesis is not None else config.MINIMUM_EBITDA
    ctx: dict[str, Any] = {"thesis_floor": thesis_floor}

    findings: list[QualityFinding] = []
    for rule in LATEST_PERIOD_RULES:
        findings.extend(rule(latest, ctx))
    for series_rule in SERIES_RULES:
        findings.extend(series_rule(ordered, ctx))

    findings.sort(key=lambda f: f.severity.rank)
    return findings
