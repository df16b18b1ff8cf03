"""Progressive ownership arithmetic for installment bookings."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from sharepool.core.errors import ValidationError
from sharepool.domain.pricing import quantize_price
from sharepool.domain.status import BookingStatus

_HUNDRED = Decimal(100)


def payment_percentage(cumulative_paid: Decimal, total_amount: Decimal) -> Decimal:
    """Share of ``total_amount`` paid so far, capped at 100."""

    if total_amount <= 0:
        return _HUNDRED
    percentage = cumulative_paid / total_amount * _HUNDRED
    return min(percentage, _HUNDRED).quantize(Decimal("0.0001"), rounding=ROUND_FLOOR)


def shares_unlocked(cumulative_paid: Decimal, total_amount: Decimal, quantity: int) -> int:
    """``floor(percentage / 100 * quantity)`` computed without intermediate rounding."""

    if total_amount <= 0 or cumulative_paid >= total_amount:
        return quantity
    if cumulative_paid <= 0:
        return 0
    owned = (cumulative_paid * quantity / total_amount).to_integral_value(rounding=ROUND_FLOOR)
    return min(int(owned), quantity)


def status_for(cumulative_paid: Decimal, total_amount: Decimal) -> BookingStatus:
    if cumulative_paid >= total_amount:
        return BookingStatus.COMPLETED
    if cumulative_paid > 0:
        return BookingStatus.PARTIALLY_PAID
    return BookingStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class BookingQuote:
    """Amounts fixed when a booking is created."""

    quantity: int
    price_per_share: Decimal
    total_amount: Decimal
    down_payment_percent: Decimal
    down_payment_amount: Decimal

    @classmethod
    def assemble(
        cls, quantity: int, price_per_share: Decimal, down_payment_percent: Decimal
    ) -> "BookingQuote":
        if quantity <= 0:
            raise ValidationError("Booking quantity must be greater than zero", quantity=quantity)
        if price_per_share <= 0:
            raise ValidationError("Price per share must be greater than zero")
        total = quantize_price(price_per_share * quantity)
        down_payment = (total * down_payment_percent / _HUNDRED).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        return cls(
            quantity=quantity,
            price_per_share=price_per_share,
            total_amount=total,
            down_payment_percent=down_payment_percent,
            down_payment_amount=min(down_payment, total),
        )


__all__ = [
    "BookingQuote",
    "payment_percentage",
    "shares_unlocked",
    "status_for",
]
