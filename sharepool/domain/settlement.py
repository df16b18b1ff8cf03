"""Fill sizing for one sell order within a funded batch."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from sharepool.domain.pricing import quantize_price


@dataclass(frozen=True, slots=True)
class FillPlan:
    quantity: int
    amount: Decimal
    completes_order: bool

    @property
    def is_empty(self) -> bool:
        return self.quantity == 0


def plan_fill(
    remaining_quantity: int,
    price_per_share: Decimal,
    *,
    funds: Decimal,
    approval_limit: Decimal | None = None,
) -> FillPlan:
    """Size the next fill: whole shares only, bounded by funds and the approval limit."""

    if remaining_quantity <= 0 or price_per_share <= 0:
        return FillPlan(quantity=0, amount=Decimal("0.00"), completes_order=remaining_quantity <= 0)
    remaining_value = price_per_share * remaining_quantity
    fundable = min(remaining_value, funds)
    if approval_limit is not None:
        fundable = min(fundable, approval_limit)
    if fundable <= 0:
        return FillPlan(quantity=0, amount=Decimal("0.00"), completes_order=False)
    quantity = min(int((fundable / price_per_share).to_integral_value(rounding=ROUND_FLOOR)), remaining_quantity)
    amount = quantize_price(price_per_share * quantity)
    # Rounding the amount up must not spend past the allowance.
    while quantity > 0 and amount > fundable:
        quantity -= 1
        amount = quantize_price(price_per_share * quantity)
    return FillPlan(quantity=quantity, amount=amount, completes_order=quantity == remaining_quantity)


def min_allowance(*limits: Decimal | None) -> Decimal | None:
    """Smallest of the given limits, ignoring unlimited (``None``) ones."""

    present = [limit for limit in limits if limit is not None]
    if not present:
        return None
    return max(min(present), Decimal("0"))


__all__ = ["FillPlan", "min_allowance", "plan_fill"]
