# src/dealengine/services/validation.py
from __future__ import annotations

from dataclasses import dataclass, replace

from dealengine.domain.listing import InferenceResult

LOW_CONFIDENCE = 0.20


def is_reasonable_ebitda_margin(
    ebitda: float, revenue: float, lo: float = 0.03, hi: float = 0.50
) -> bool:
    """EBITDA should be between 3% and 50% of revenue."""
    if revenue <= 0:
        return False
    margin = ebitda / revenue
    return lo <= margin <= hi


def is_reasonable_multiple(
    price: float, sde: float, lo: float = 0.5, hi: float = 8.0
) -> bool:
    """Asking price / SDE should be between 0.5x and 8x."""
    if sde <= 0:
        return False
    multiple = price / sde
    return lo <= multiple <= hi


def is_reasonable_sde(sde: float, revenue: float) -> bool:
    """A business cannot distribute more to its owner than it takes in."""
    if revenue <= 0:
        return False
    return sde <= revenue


@dataclass(frozen=True)
class InferenceSanityPolicy:
    """
    Bounds applied to every inference result before it is returned.

    Each check only runs when its inputs are present; any failure drops the
    confidence to `downgraded_confidence` but keeps the estimate.
    """
    min_ebitda_margin: float = 0.03
    max_ebitda_margin: float = 0.50
    min_price_to_sde: float = 0.5
    max_price_to_sde: float = 8.0
    sde_may_exceed_revenue: bool = False
    downgraded_confidence: float = LOW_CONFIDENCE

    def failed_checks(
        self,
        result: InferenceResult,
        *,
        asking_price: float | None,
        revenue: float | None,
    ) -> list[str]:
        failed: list[str] = []
        ebitda = result.inferred_ebitda
        sde = result.inferred_sde

        if ebitda is not None and revenue and revenue > 0:
            if not is_reasonable_ebitda_margin(
                ebitda, revenue, self.min_ebitda_margin, self.max_ebitda_margin
            ):
                failed.append("ebitda_margin")

        if sde is not None and revenue and revenue > 0 and not self.sde_may_exceed_revenue:
            if not is_reasonable_sde(sde, revenue):
                failed.append("sde_exceeds_revenue")

        if sde is not None and asking_price and asking_price > 0:
            if not is_reasonable_multiple(
                asking_price, sde, self.min_price_to_sde, self.max_price_to_sde
            ):
                failed.append("price_to_sde")

        return failed

    def downgrade(self, result: InferenceResult) -> InferenceResult:
        return replace(result, inference_confidence=self.downgraded_confidence)


DEFAULT_POLICY = InferenceSanityPolicy()
