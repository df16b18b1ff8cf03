from datetime import timedelta
from decimal import Decimal

import pytest

from sharepool.core.errors import ConcurrencyConflictError, ConfigurationError, ValidationError
from sharepool.domain.config import PricingConfig
from sharepool.domain.status import PriceMethod, PriceMode, TransactionType
from sharepool.services.pricing_engine import PricingEngine


def _growing_activity(seed, instrument, now) -> None:
    seed.trade(instrument, TransactionType.BUY, 500, now - timedelta(hours=2))
    seed.trade(instrument, TransactionType.BUY, 200, now - timedelta(hours=30))


def test_recalculation_records_capped_increase(session, seed, now) -> None:
    instrument = seed.instrument(price="20000.00", mode=PriceMode.AUTOMATIC)
    _growing_activity(seed, instrument, now)

    result = PricingEngine(session).compute_next_price(instrument.id, now=now)

    assert result.applied
    assert result.new_price == Decimal("22000.00")
    assert instrument.current_price == Decimal("22000.00")
    record = result.record
    assert record.calculation_method is PriceMethod.AUTO_MARKET_ACTIVITY
    assert record.previous_price == Decimal("20000.00")
    assert record.percent_change == Decimal("10.0000")
    assert record.factors["current_period"]["net_movement"] == 500
    assert record.factors["previous_period"]["net_movement"] == 200
    assert "current_window" in record.factors


def test_buybacks_count_against_sales(session, seed, now) -> None:
    instrument = seed.instrument(price="100.00", mode=PriceMode.AUTOMATIC)
    seed.trade(instrument, TransactionType.PURCHASE, 100, now - timedelta(hours=1))
    seed.trade(instrument, TransactionType.BUYBACK, 400, now - timedelta(hours=1))
    seed.trade(instrument, TransactionType.SALE, 100, now - timedelta(hours=26))

    result = PricingEngine(session).compute_next_price(instrument.id, now=now)

    assert result.calculation.current_activity.net_movement == -300
    assert result.calculation.previous_activity.net_movement == -100
    assert result.new_price == Decimal("90.00")


def test_insignificant_move_writes_nothing(session, seed, now) -> None:
    instrument = seed.instrument(price="20000.00", mode=PriceMode.AUTOMATIC)
    engine = PricingEngine(session)

    result = engine.compute_next_price(instrument.id, now=now)

    assert not result.applied
    assert result.new_price == Decimal("20000.00")
    assert len(engine.price_history(instrument.id)) == 1


def test_recalculation_requires_automatic_mode(session, seed, now) -> None:
    instrument = seed.instrument(mode=PriceMode.MANUAL)

    with pytest.raises(ValidationError):
        PricingEngine(session).compute_next_price(instrument.id, now=now)


def test_unreachable_floor_is_rejected(session, seed, now) -> None:
    instrument = seed.instrument(price="100.00", mode=PriceMode.AUTOMATIC)
    config = PricingConfig(minimum_price_floor=Decimal("1000"))

    with pytest.raises(ConfigurationError):
        PricingEngine(session).compute_next_price(instrument.id, now=now, config=config)


def test_preview_does_not_write(session, seed, now) -> None:
    instrument = seed.instrument(price="20000.00", mode=PriceMode.MANUAL)
    _growing_activity(seed, instrument, now)
    engine = PricingEngine(session)

    calculation = engine.preview_next_price(instrument.id, now=now)

    assert calculation.new_price == Decimal("22000.00")
    assert instrument.current_price == Decimal("20000.00")
    assert len(engine.price_history(instrument.id)) == 1


def test_mode_switches_resume_each_lineage(session, seed, now) -> None:
    """Toggling modes restores the last price each mode produced."""

    instrument = seed.instrument(price="100.00", mode=PriceMode.MANUAL)
    engine = PricingEngine(session)

    to_auto = engine.switch_mode(instrument.id, PriceMode.AUTOMATIC, actor="admin")
    assert to_auto.calculation_method is PriceMethod.MODE_SWITCH_TO_AUTO
    assert to_auto.price == to_auto.previous_price == Decimal("100.00")
    assert to_auto.factors["baseline_record_id"] is None

    _growing_activity(seed, instrument, now)
    assert engine.compute_next_price(instrument.id, now=now).new_price == Decimal("110.00")

    to_manual = engine.switch_mode(instrument.id, "manual")
    assert to_manual.price == Decimal("100.00")
    assert to_manual.factors["price_before_switch"] == "110.00"
    assert instrument.price_calculation_mode is PriceMode.MANUAL

    back_to_auto = engine.switch_mode(instrument.id, PriceMode.AUTOMATIC)
    assert back_to_auto.price == Decimal("110.00")
    assert instrument.current_price == Decimal("110.00")
    assert back_to_auto.factors["mode_transition"] == "manual_to_automatic"


def test_switch_to_active_mode_is_a_no_op(session, seed) -> None:
    instrument = seed.instrument(mode=PriceMode.MANUAL)
    engine = PricingEngine(session)

    assert engine.switch_mode(instrument.id, PriceMode.MANUAL) is None
    assert len(engine.price_history(instrument.id)) == 1


def test_manual_price_in_automatic_mode_switches_first(session, seed) -> None:
    instrument = seed.instrument(price="20000.00", mode=PriceMode.AUTOMATIC)
    engine = PricingEngine(session)

    record = engine.set_manual_price(instrument.id, Decimal("25000"), actor="admin", notes="Board decision")

    history = engine.price_history(instrument.id)
    assert [entry.calculation_method for entry in history[:2]] == [
        PriceMethod.MANUAL,
        PriceMethod.MODE_SWITCH_TO_MANUAL,
    ]
    assert record.price == Decimal("25000.00")
    assert record.percent_change == Decimal("25.0000")
    assert instrument.price_calculation_mode is PriceMode.MANUAL
    assert instrument.current_price == Decimal("25000.00")


def test_manual_price_must_be_positive(session, seed) -> None:
    instrument = seed.instrument()

    with pytest.raises(ValidationError):
        PricingEngine(session).set_manual_price(instrument.id, Decimal("0"))


def test_stale_version_is_a_conflict(session, seed) -> None:
    instrument = seed.instrument()

    with pytest.raises(ConcurrencyConflictError):
        PricingEngine(session).set_manual_price(
            instrument.id, Decimal("10"), expected_version=instrument.version + 1
        )


def test_recalculation_due_honours_interval(session, seed, now) -> None:
    instrument = seed.instrument(price="20000.00", mode=PriceMode.AUTOMATIC)
    _growing_activity(seed, instrument, now)
    engine = PricingEngine(session)
    enabled = PricingConfig(is_enabled=True, update_interval_hours=24)

    assert not engine.recalculation_due(instrument.id, now=now, config=PricingConfig())
    assert engine.recalculation_due(instrument.id, now=now, config=enabled)

    engine.compute_next_price(instrument.id, now=now, config=enabled)

    assert not engine.recalculation_due(instrument.id, now=now + timedelta(hours=1), config=enabled)
    assert engine.recalculation_due(instrument.id, now=now + timedelta(hours=24), config=enabled)
