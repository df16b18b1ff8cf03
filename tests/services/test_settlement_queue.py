import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal
from unittest.mock import create_autospec

import pytest
from sqlalchemy import select

from sharepool.core.errors import ConfigurationError, InvalidTransitionError, NotFoundError, ValidationError
from sharepool.db.locks import retry_on_conflict
from sharepool.db.session import session_scope
from sharepool.domain.config import BuybackConfig
from sharepool.domain.status import OrderStatus
from sharepool.models import SellOrder, SellOrderSettlement, ShareTransaction
from sharepool.services.fund_ledger import FundLedger, FundOperation
from sharepool.services.settlement_queue import (
    APPROVAL_LIMIT_BELOW_PRICE,
    SKIP_BELOW_THRESHOLD,
    SKIP_CAP_REACHED,
    SKIP_DISABLED,
    SKIP_EMPTY_QUEUE,
    SettlementQueue,
)


@pytest.fixture()
def market(seed):
    instrument = seed.instrument(price="10000.00", total_shares=10_000, available_shares=1_000)
    fund = seed.wallet("share_buyback", "2200000.00")
    holdings = {user_id: seed.holding(user_id, instrument, quantity) for user_id, quantity in ((1, 100), (2, 200), (3, 50))}
    return instrument, fund, holdings


def _queue_three(session, instrument, now, **kwargs):
    queue = SettlementQueue(session, **kwargs)
    orders = [
        queue.submit(instrument.id, user_id, quantity, now=now + timedelta(minutes=user_id))
        for user_id, quantity in ((1, 100), (2, 200), (3, 50))
    ]
    return queue, orders


def test_submit_reserves_shares_and_appends(session, market, now) -> None:
    instrument, _, holdings = market
    queue, orders = _queue_three(session, instrument, now)

    assert [order.fifo_position for order in orders] == [1, 2, 3]
    assert orders[0].requested_price == Decimal("10000.00")
    assert holdings[2].reserved_quantity == 200
    assert [order.id for order in queue.queue_snapshot(instrument.id)] == [order.id for order in orders]


def test_submit_more_than_free_shares_fails(session, market, now) -> None:
    instrument, _, _ = market
    queue = SettlementQueue(session)
    queue.submit(instrument.id, 1, 60, now=now)

    with pytest.raises(ValidationError):
        queue.submit(instrument.id, 1, 41, now=now)
    with pytest.raises(ValidationError):
        queue.submit(instrument.id, 42, 1, now=now)


def test_batch_settles_in_queue_order_until_funds_run_out(session, market, now) -> None:
    instrument, fund, holdings = market
    queue, (first, second, third) = _queue_three(session, instrument, now)

    result = queue.process_batch(instrument.id, now=now + timedelta(hours=1))

    assert [(item.order_id, item.quantity, item.amount) for item in result.processed] == [
        (first.id, 100, Decimal("1000000.00")),
        (second.id, 120, Decimal("1200000.00")),
    ]
    assert result.spent == Decimal("2200000.00")
    assert result.stopped_reason == "insufficient_allowance_for_next_order"
    assert first.status is OrderStatus.COMPLETED
    assert first.fifo_position is None
    assert second.status is OrderStatus.PARTIAL
    assert second.remaining_quantity == 80
    assert second.fifo_position == 1
    assert third.status is OrderStatus.PENDING
    assert third.fifo_position == 2
    assert fund.balance == Decimal("0.00")
    assert instrument.available_shares == 1_220
    assert holdings[2].quantity == 80
    assert holdings[2].reserved_quantity == 80
    settlements = session.query(SellOrderSettlement).order_by(SellOrderSettlement.id).all()
    assert {settlement.batch_id for settlement in settlements} == {result.batch_id}
    assert settlements[-1].fund_balance_after == Decimal("0.00")
    assert session.query(ShareTransaction).count() == 2


def test_seller_wallet_is_credited(session, market, seed, now) -> None:
    instrument, _, _ = market
    seller_wallet = seed.wallet("personal", "0", user_id=1)
    queue = SettlementQueue(session)
    queue.submit(instrument.id, 1, 10, seller_wallet_id=seller_wallet.id, now=now)

    queue.process_batch(instrument.id, now=now)

    assert seller_wallet.balance == Decimal("100000.00")


def test_explicit_allowance_and_batch_size_bound_the_run(session, market, now) -> None:
    instrument, _, _ = market
    queue, (first, second, _) = _queue_three(session, instrument, now)

    result = queue.process_batch(instrument.id, max_orders=1, available_funds=Decimal("550000"), now=now)

    assert [item.order_id for item in result.processed] == [first.id]
    assert result.processed[0].quantity == 55
    assert first.status is OrderStatus.PARTIAL
    assert second.processed_quantity == 0


def test_approval_limit_caps_each_order(session, market, now) -> None:
    instrument, _, _ = market
    queue, orders = _queue_three(session, instrument, now)
    config = BuybackConfig(auto_approval_limit=Decimal("500000"))

    result = queue.process_batch(instrument.id, now=now, config=config)

    assert [item.quantity for item in result.processed] == [50, 50, 50]
    assert [order.status for order in orders] == [OrderStatus.PARTIAL, OrderStatus.PARTIAL, OrderStatus.COMPLETED]


def test_daily_cap_rolls_over(session, seed, now) -> None:
    instrument = seed.instrument(price="10000.00", total_shares=10_000, available_shares=1_000)
    seed.wallet("share_buyback", "5000000.00")
    seed.holding(1, instrument, 100)
    seed.holding(2, instrument, 200)
    queue = SettlementQueue(session)
    queue.submit(instrument.id, 1, 100, now=now)
    second = queue.submit(instrument.id, 2, 200, now=now)
    config = BuybackConfig(max_daily_amount=Decimal("1500000"))

    first_run = queue.process_batch(instrument.id, now=now, config=config)
    capped = queue.process_batch(instrument.id, now=now + timedelta(hours=1), config=config)
    next_day = queue.process_batch(instrument.id, now=now + timedelta(hours=25), config=config)

    assert first_run.spent == Decimal("1500000.00")
    assert capped.skipped_reason == SKIP_CAP_REACHED
    assert next_day.spent == Decimal("1500000.00")
    assert second.status is OrderStatus.COMPLETED


def test_batch_skips(session, market, now) -> None:
    instrument, fund, _ = market
    queue = SettlementQueue(session)

    assert queue.process_batch(instrument.id, now=now, config=BuybackConfig(is_enabled=False)).skipped_reason == SKIP_DISABLED
    assert queue.process_batch(instrument.id, now=now).skipped_reason == SKIP_EMPTY_QUEUE
    threshold = BuybackConfig(minimum_fund_threshold=fund.balance + 1)
    assert queue.process_batch(instrument.id, now=now, config=threshold).skipped_reason == SKIP_BELOW_THRESHOLD


def test_missing_fund_wallet_is_a_configuration_error(session, seed, now) -> None:
    instrument = seed.instrument()

    with pytest.raises(ConfigurationError):
        SettlementQueue(session).process_batch(instrument.id, now=now)


def test_refused_debit_leaves_the_order_untouched(session, market, now) -> None:
    instrument, fund, holdings = market
    funds = create_autospec(FundLedger, instance=True)
    funds.find_wallet.return_value = fund
    funds.debit.return_value = FundOperation(
        success=False,
        wallet_id=fund.id,
        amount=Decimal("1000000.00"),
        balance_before=Decimal("0.00"),
        balance_after=Decimal("0.00"),
        error=FundLedger.INSUFFICIENT_FUNDS,
    )
    queue, (first, _, _) = _queue_three(session, instrument, now, funds=funds)

    result = queue.process_batch(instrument.id, now=now)

    assert result.processed == []
    assert [(item.order_id, item.reason) for item in result.failed] == [(first.id, "insufficient_funds")]
    assert result.stopped_reason == "fund_debit_failed"
    assert first.status is OrderStatus.PENDING
    assert first.fifo_position == 1
    assert holdings[1].reserved_quantity == 100
    funds.credit.assert_not_called()
    assert session.query(SellOrderSettlement).count() == 0


def test_modify_requeues_at_the_tail(session, market, now) -> None:
    instrument, _, holdings = market
    queue, (first, second, third) = _queue_three(session, instrument, now)

    queue.modify(first.id, 80, now=now + timedelta(hours=1))

    assert first.quantity == 80
    assert first.modification_count == 1
    assert holdings[1].reserved_quantity == 80
    assert [second.fifo_position, third.fifo_position, first.fifo_position] == [1, 2, 3]
    with pytest.raises(ValidationError):
        queue.modify(first.id, 80)
    with pytest.raises(ValidationError):
        queue.modify(first.id, 101)


def test_only_pending_orders_can_be_modified(session, market, now) -> None:
    instrument, _, _ = market
    queue, (first, _, _) = _queue_three(session, instrument, now)
    queue.process_batch(instrument.id, max_orders=1, available_funds=Decimal("100000"), now=now)

    with pytest.raises(ValidationError):
        queue.modify(first.id, 50)


def test_cancel_partial_keeps_settled_shares(session, market, now) -> None:
    instrument, _, holdings = market
    queue, (first, second, _) = _queue_three(session, instrument, now)
    queue.process_batch(instrument.id, max_orders=1, available_funds=Decimal("400000"), now=now)

    queue.cancel(first.id, reason="no longer selling", now=now)

    assert first.status is OrderStatus.CANCELLED
    assert first.processed_quantity == 40
    assert first.fifo_position is None
    assert holdings[1].quantity == 60
    assert holdings[1].reserved_quantity == 0
    assert second.fifo_position == 1
    with pytest.raises(InvalidTransitionError):
        queue.cancel(first.id)


def test_orders_are_priced_and_paid_at_the_current_price(session, market, seed, now) -> None:
    instrument, fund, _ = market
    instrument.current_price = Decimal("12000.00")
    seller_wallet = seed.wallet("personal", "0", user_id=1)
    queue = SettlementQueue(session)

    order = queue.submit(instrument.id, 1, 5, seller_wallet_id=seller_wallet.id, now=now)
    queue.process_batch(instrument.id, now=now)

    assert order.requested_price == Decimal("12000.00")
    assert order.status is OrderStatus.COMPLETED
    assert seller_wallet.balance == Decimal("60000.00")
    assert fund.balance == Decimal("2140000.00")


@pytest.mark.parametrize("owner", [2, None])
def test_seller_wallet_must_belong_to_the_seller(session, market, seed, now, owner) -> None:
    instrument, _, holdings = market
    wallet_type = "personal" if owner is not None else "share_buyback_reserve"
    foreign_wallet = seed.wallet(wallet_type, "0", user_id=owner)

    with pytest.raises(ValidationError):
        SettlementQueue(session).submit(instrument.id, 1, 10, seller_wallet_id=foreign_wallet.id, now=now)

    assert holdings[1].reserved_quantity == 0
    assert session.query(SellOrder).count() == 0


def test_unknown_seller_wallet_is_not_found(session, market, now) -> None:
    instrument, _, _ = market

    with pytest.raises(NotFoundError):
        SettlementQueue(session).submit(instrument.id, 1, 10, seller_wallet_id=9_999, now=now)


def test_approval_limit_below_share_price_is_reported(session, market, now) -> None:
    instrument, fund, holdings = market
    queue, (first, _, _) = _queue_three(session, instrument, now)
    config = BuybackConfig(auto_approval_limit=Decimal("5000"))

    result = queue.process_batch(instrument.id, now=now, config=config)

    assert result.processed == []
    assert [(item.order_id, item.reason) for item in result.failed] == [(first.id, APPROVAL_LIMIT_BELOW_PRICE)]
    assert result.stopped_reason == APPROVAL_LIMIT_BELOW_PRICE
    assert first.status is OrderStatus.PENDING
    assert first.fifo_position == 1
    assert holdings[1].reserved_quantity == 100
    assert fund.balance == Decimal("2200000.00")


def test_concurrent_submissions_get_dense_unique_positions(file_session_factory, seeder_for, now) -> None:
    sellers = list(range(1, 13))
    with session_scope(file_session_factory) as session:
        seed = seeder_for(session)
        instrument = seed.instrument(price="10000.00", total_shares=10_000, available_shares=1_000)
        for user_id in sellers:
            seed.holding(user_id, instrument, 10)
        instrument_id = instrument.id

    barrier = threading.Barrier(len(sellers), timeout=30)

    def submit(user_id: int) -> int:
        barrier.wait()

        def attempt() -> int:
            with session_scope(file_session_factory) as session:
                return SettlementQueue(session).submit(instrument_id, user_id, 5, now=now).id

        return retry_on_conflict(attempt, attempts=5)

    with ThreadPoolExecutor(max_workers=len(sellers)) as pool:
        order_ids = list(pool.map(submit, sellers))

    with session_scope(file_session_factory) as session:
        orders = session.scalars(select(SellOrder).where(SellOrder.instrument_id == instrument_id)).all()

    assert len(set(order_ids)) == len(sellers)
    assert len(orders) == len(sellers)
    assert sorted(order.fifo_position for order in orders) == list(range(1, len(sellers) + 1))
    assert {order.user_id for order in orders} == set(sellers)
