from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from sharepool.core.errors import ConfigurationError, InvalidTransitionError
from sharepool.domain.config import ActivityPeriod, BookingConfig, BuybackConfig, PricingConfig
from sharepool.domain.settlement import min_allowance, plan_fill
from sharepool.domain.status import BookingStatus, OrderStatus, PriceMethod, PriceMode


def test_order_transitions() -> None:
    assert OrderStatus.PENDING.transition_to(OrderStatus.PARTIAL) is OrderStatus.PARTIAL
    assert OrderStatus.PARTIAL.transition_to(OrderStatus.PARTIAL) is OrderStatus.PARTIAL
    assert OrderStatus.PARTIAL.transition_to(OrderStatus.COMPLETED) is OrderStatus.COMPLETED
    with pytest.raises(InvalidTransitionError):
        OrderStatus.COMPLETED.transition_to(OrderStatus.CANCELLED)
    with pytest.raises(InvalidTransitionError):
        OrderStatus.CANCELLED.transition_to(OrderStatus.CANCELLED)


def test_booking_transitions() -> None:
    assert BookingStatus.ACTIVE.transition_to(BookingStatus.PARTIALLY_PAID) is BookingStatus.PARTIALLY_PAID
    with pytest.raises(InvalidTransitionError):
        BookingStatus.PARTIALLY_PAID.transition_to(BookingStatus.ACTIVE)
    with pytest.raises(InvalidTransitionError):
        BookingStatus.COMPLETED.transition_to(BookingStatus.CANCELLED)


def test_price_lineages() -> None:
    assert PriceMethod.lineage(PriceMode.MANUAL) == (PriceMethod.MANUAL, PriceMethod.MODE_SWITCH_TO_MANUAL)
    assert PriceMethod.switch_to(PriceMode.AUTOMATIC) is PriceMethod.MODE_SWITCH_TO_AUTO


def test_plan_fill_whole_shares_within_funds() -> None:
    plan = plan_fill(200, Decimal("10000.00"), funds=Decimal("1200000.00"))

    assert plan.quantity == 120
    assert plan.amount == Decimal("1200000.00")
    assert not plan.completes_order


def test_plan_fill_respects_approval_limit() -> None:
    plan = plan_fill(100, Decimal("10000.00"), funds=Decimal("5000000"), approval_limit=Decimal("255000"))

    assert plan.quantity == 25
    assert plan.amount == Decimal("250000.00")


def test_plan_fill_is_empty_when_one_share_is_unaffordable() -> None:
    plan = plan_fill(50, Decimal("10000.00"), funds=Decimal("9999.99"))

    assert plan.is_empty
    assert plan.amount == Decimal("0.00")


def test_min_allowance_ignores_unlimited() -> None:
    assert min_allowance(None, Decimal("5"), None, Decimal("3")) == Decimal("3")
    assert min_allowance(None, None) is None
    assert min_allowance(Decimal("-4"), Decimal("10")) == Decimal("0")


def test_activity_windows_are_adjacent() -> None:
    now = datetime(2025, 1, 15)
    current, previous = ActivityPeriod.WEEKLY.windows(now)

    assert current.end == now
    assert current.start == now - timedelta(days=7)
    assert previous.end == current.start
    assert previous.start == now - timedelta(days=14)


def test_config_validation() -> None:
    with pytest.raises(ConfigurationError):
        PricingConfig(sensitivity_scale=11).validate()
    with pytest.raises(ConfigurationError):
        BuybackConfig(max_daily_amount=Decimal("100"), max_weekly_amount=Decimal("50")).validate()
    with pytest.raises(ConfigurationError):
        BookingConfig(default_down_payment_percent=Decimal("5")).validate()
    assert PricingConfig().sensitivity_multiplier == Decimal("1.0")
