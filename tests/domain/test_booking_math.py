from decimal import Decimal

import pytest

from sharepool.core.errors import ValidationError
from sharepool.domain.booking import BookingQuote, payment_percentage, shares_unlocked, status_for
from sharepool.domain.status import BookingStatus


def test_quote_fixes_total_and_down_payment() -> None:
    quote = BookingQuote.assemble(100, Decimal("10000.00"), Decimal("30"))

    assert quote.total_amount == Decimal("1000000.00")
    assert quote.down_payment_amount == Decimal("300000.00")


def test_quote_rejects_non_positive_quantity() -> None:
    with pytest.raises(ValidationError):
        BookingQuote.assemble(0, Decimal("10.00"), Decimal("30"))


@pytest.mark.parametrize(
    ("paid", "expected"),
    [
        ("0", 0),
        ("9999.99", 0),
        ("10000.00", 1),
        ("300000.00", 30),
        ("999999.99", 99),
        ("1000000.00", 100),
    ],
)
def test_shares_unlocked_floors_the_paid_fraction(paid: str, expected: int) -> None:
    assert shares_unlocked(Decimal(paid), Decimal("1000000.00"), 100) == expected


def test_payment_percentage_is_capped() -> None:
    assert payment_percentage(Decimal("450"), Decimal("1000")) == Decimal("45.0000")
    assert payment_percentage(Decimal("1200"), Decimal("1000")) == Decimal("100")


def test_status_follows_cumulative_payments() -> None:
    total = Decimal("1000")
    assert status_for(Decimal("0"), total) is BookingStatus.ACTIVE
    assert status_for(Decimal("1"), total) is BookingStatus.PARTIALLY_PAID
    assert status_for(total, total) is BookingStatus.COMPLETED
