from datetime import timedelta
from decimal import Decimal

import pytest

from sharepool.core.errors import ConfigurationError, InsufficientFundsError, ValidationError
from sharepool.domain.status import BookingStatus
from sharepool.models import ShareHolding
from sharepool.services.booking_ledger import EXPIRED_REASON, BookingLedger

USER_ID = 7


@pytest.fixture()
def market(seed):
    instrument = seed.instrument(price="10000.00", total_shares=1_000, available_shares=1_000)
    payer = seed.wallet("personal", "2000000.00", user_id=USER_ID)
    proceeds = seed.wallet("share_proceeds")
    return instrument, payer, proceeds


def _holding(session, instrument) -> ShareHolding | None:
    return session.query(ShareHolding).filter_by(user_id=USER_ID, instrument_id=instrument.id).one_or_none()


def _book(session, market, now, quantity=100, percent=None):
    instrument, payer, _ = market
    return BookingLedger(session).create_booking(
        instrument.id, USER_ID, quantity, percent, payer_wallet_id=payer.id, now=now
    )


def test_create_booking_collects_down_payment_and_unlocks_shares(session, market, now) -> None:
    instrument, payer, proceeds = market

    booking = _book(session, market, now)

    assert booking.total_amount == Decimal("1000000.00")
    assert booking.down_payment_amount == Decimal("300000.00")
    assert booking.cumulative_payments == Decimal("300000.00")
    assert booking.remaining_amount == Decimal("700000.00")
    assert booking.shares_owned_progressively == 30
    assert booking.status is BookingStatus.PARTIALLY_PAID
    assert booking.expires_at == now + timedelta(days=30)
    assert instrument.available_shares == 900
    assert payer.balance == Decimal("1700000.00")
    assert proceeds.balance == Decimal("300000.00")
    assert _holding(session, instrument).quantity == 30


def test_down_payment_below_minimum_is_rejected(session, market, now) -> None:
    with pytest.raises(ValidationError):
        _book(session, market, now, percent=Decimal("5"))


def test_booking_more_than_available_is_rejected(session, market, now) -> None:
    with pytest.raises(ValidationError):
        _book(session, market, now, quantity=1_001)


def test_unaffordable_down_payment_changes_nothing(session, seed, now) -> None:
    instrument = seed.instrument(price="10000.00", total_shares=1_000)
    payer = seed.wallet("personal", "100.00", user_id=USER_ID)
    seed.wallet("share_proceeds")

    with pytest.raises(InsufficientFundsError):
        BookingLedger(session).create_booking(instrument.id, USER_ID, 100, payer_wallet_id=payer.id, now=now)

    assert instrument.available_shares == 1_000
    assert payer.balance == Decimal("100.00")


def test_missing_proceeds_wallet_is_a_configuration_error(session, seed, now) -> None:
    instrument = seed.instrument(price="10000.00", total_shares=1_000)
    payer = seed.wallet("personal", "2000000.00", user_id=USER_ID)

    with pytest.raises(ConfigurationError):
        BookingLedger(session).create_booking(instrument.id, USER_ID, 100, payer_wallet_id=payer.id, now=now)


def test_payments_unlock_shares_progressively(session, market, now) -> None:
    instrument, _, _ = market
    ledger = BookingLedger(session)
    booking = _book(session, market, now)

    result = ledger.apply_payment(booking.id, Decimal("150000"), now=now + timedelta(days=1))

    assert result.shares_unlocked == 15
    assert result.payment_percentage == Decimal("45.0000")
    assert booking.shares_owned_progressively == 45
    assert _holding(session, instrument).quantity == 45

    final = ledger.apply_payment(booking.id, booking.remaining_amount, now=now + timedelta(days=2))

    assert final.shares_unlocked == 55
    assert booking.status is BookingStatus.COMPLETED
    assert booking.remaining_amount == Decimal("0.00")
    assert [payment.is_down_payment for payment in ledger.payments(booking.id)] == [True, False, False]


def test_overpayment_is_rejected(session, market, now) -> None:
    booking = _book(session, market, now)

    with pytest.raises(ValidationError):
        BookingLedger(session).apply_payment(booking.id, Decimal("700000.01"), now=now)


def test_payment_after_expiry_is_rejected(session, market, now) -> None:
    booking = _book(session, market, now)

    with pytest.raises(ValidationError):
        BookingLedger(session).apply_payment(booking.id, Decimal("1000"), now=now + timedelta(days=31))


def test_reduce_below_owned_shares_fails(session, market, now) -> None:
    booking = _book(session, market, now)

    with pytest.raises(ValidationError):
        BookingLedger(session).reduce_quantity(booking.id, 25)
    with pytest.raises(ValidationError):
        BookingLedger(session).reduce_quantity(booking.id, 100)


def test_reduce_releases_shares_and_keeps_ownership(session, market, now) -> None:
    instrument, _, _ = market
    booking = _book(session, market, now)

    BookingLedger(session).reduce_quantity(booking.id, 50, now=now)

    assert booking.quantity == 50
    assert booking.total_amount == Decimal("500000.00")
    assert booking.remaining_amount == Decimal("200000.00")
    assert booking.shares_owned_progressively == 30
    assert booking.payment_percentage == Decimal("60.0000")
    assert instrument.available_shares == 950


def test_cancel_truncates_to_owned_shares(session, market, now) -> None:
    instrument, _, _ = market
    booking = _book(session, market, now)

    BookingLedger(session).cancel(booking.id, reason="changed my mind", now=now)

    assert booking.status is BookingStatus.COMPLETED
    assert booking.quantity == 30
    assert booking.total_amount == Decimal("300000.00")
    assert booking.remaining_amount == Decimal("0.00")
    assert booking.cancellation_reason == "changed my mind"
    assert instrument.available_shares == 970
    assert _holding(session, instrument).quantity == 30


def test_cancel_without_owned_shares(session, market, now) -> None:
    instrument, _, _ = market
    booking = _book(session, market, now, quantity=5, percent=Decimal("10"))
    assert booking.shares_owned_progressively == 0

    BookingLedger(session).cancel(booking.id, now=now)

    assert booking.status is BookingStatus.CANCELLED
    assert instrument.available_shares == 1_000
    with pytest.raises(ValidationError):
        BookingLedger(session).cancel(booking.id, now=now)


def test_expire_overdue_closes_open_bookings(session, market, now) -> None:
    booking = _book(session, market, now)
    ledger = BookingLedger(session)

    assert ledger.expire_overdue(now=now + timedelta(days=29)) == []
    expired = ledger.expire_overdue(now=now + timedelta(days=31))

    assert [item.id for item in expired] == [booking.id]
    assert booking.cancellation_reason == EXPIRED_REASON
    assert booking.status is BookingStatus.COMPLETED
    assert ledger.list_user_bookings(USER_ID, status=BookingStatus.COMPLETED) == [booking]


def test_payer_wallet_must_belong_to_the_buyer(session, market, seed, now) -> None:
    instrument, _, _ = market
    other_wallet = seed.wallet("personal", "2000000.00", user_id=USER_ID + 1)

    with pytest.raises(ValidationError):
        BookingLedger(session).create_booking(
            instrument.id, USER_ID, 100, payer_wallet_id=other_wallet.id, now=now
        )

    assert other_wallet.balance == Decimal("2000000.00")
    assert instrument.available_shares == 1_000
