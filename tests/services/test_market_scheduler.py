from datetime import timedelta
from decimal import Decimal

import pytest

from sharepool.core.config import SchedulerSettings
from sharepool.domain.status import BookingStatus, OrderStatus, PriceMode, TransactionType
from sharepool.models import Booking, Instrument, SellOrder
from sharepool.services.booking_ledger import BookingLedger
from sharepool.services.scheduler import MarketScheduler
from sharepool.services.settings_service import SettingsService
from sharepool.services.settlement_queue import SettlementQueue


@pytest.fixture()
def scheduler(session_factory) -> MarketScheduler:
    return MarketScheduler(session_factory, SchedulerSettings(), retry_attempts=1)


@pytest.fixture()
def busy_market(session, seed, now):
    instrument = seed.instrument(price="20000.00", mode=PriceMode.AUTOMATIC)
    seed.trade(instrument, TransactionType.BUY, 500, now - timedelta(hours=2))
    seed.trade(instrument, TransactionType.BUY, 200, now - timedelta(hours=30))
    SettingsService(session).update_pricing(is_enabled=True)

    seed.wallet("share_buyback", "1000000.00")
    seed.holding(1, instrument, 100)
    order = SettlementQueue(session).submit(instrument.id, 1, 50, now=now - timedelta(days=1))

    seed.wallet("share_proceeds")
    payer = seed.wallet("personal", "100000.00", user_id=2)
    booking = BookingLedger(session).create_booking(
        instrument.id, 2, 10, payer_wallet_id=payer.id, now=now - timedelta(days=40)
    )
    session.commit()
    return instrument.id, order.id, booking.id


def test_run_all_executes_every_cycle(scheduler, busy_market, session, now) -> None:
    instrument_id, order_id, booking_id = busy_market

    pricing, settlement, expiry = scheduler.run_all(now=now)

    assert pricing.ok and settlement.ok and expiry.ok
    assert pricing.details == {str(instrument_id): "22000.00"}
    assert settlement.details[str(instrument_id)]["processed"] == 1
    assert expiry.details["expired"] == [booking_id]

    session.expire_all()
    assert session.get(Instrument, instrument_id).current_price == Decimal("22000.00")
    assert session.get(SellOrder, order_id).status is OrderStatus.COMPLETED
    assert session.get(Booking, booking_id).status is BookingStatus.COMPLETED
    assert [report.name for report in scheduler.history] == ["pricing", "settlement", "booking_expiry"]


def test_pricing_is_skipped_until_due(scheduler, busy_market, now) -> None:
    instrument_id, _, _ = busy_market

    scheduler.run_pricing_cycle(now=now)
    again = scheduler.run_pricing_cycle(now=now + timedelta(hours=1))

    assert again.details == {str(instrument_id): "not_due"}


def test_failures_are_reported_per_instrument(scheduler, session, seed, now) -> None:
    instrument = seed.instrument(price="10.00", mode=PriceMode.AUTOMATIC)
    SettingsService(session).update_pricing(is_enabled=True, minimum_price_floor=Decimal("1000"))
    session.commit()

    report = scheduler.run_pricing_cycle(now=now)

    assert not report.ok
    assert report.errors[0].startswith(f"{instrument.id}:")


def test_start_registers_interval_jobs(scheduler) -> None:
    scheduler.start()
    try:
        assert scheduler.is_running
        assert {job["id"] for job in scheduler.scheduled_jobs()} == {"pricing", "settlement", "booking_expiry"}
    finally:
        scheduler.stop()
    assert not scheduler.is_running
    assert scheduler.scheduled_jobs() == []
