"""FIFO exit queue settled in batches against the buyback fund.

Queue mutations and batch runs for one instrument are serialized by a keyed
lock, and every queued row is read ``FOR UPDATE`` before positions change.
Within a batch each order's fund debit is checked before anything else is
written for that order, so a refused debit leaves the order untouched.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from sharepool.core.errors import ConfigurationError, NotFoundError, ValidationError
from sharepool.core.logger import get_logger, log_context
from sharepool.db.locks import KeyedLockRegistry, flush_or_conflict, ledger_locks
from sharepool.domain.config import BuybackConfig
from sharepool.domain.fifo import FifoQueue
from sharepool.domain.settlement import FillPlan, min_allowance, plan_fill
from sharepool.domain.status import OrderStatus, TransactionType
from sharepool.models import Instrument, SellOrder, SellOrderSettlement, ShareTransaction, Wallet, utcnow
from sharepool.repositories.instrument_repository import InstrumentRepository
from sharepool.repositories.order_repository import SellOrderRepository
from sharepool.services.fund_ledger import FundLedger, FundOperation
from sharepool.services.settings_service import SettingsService

LOGGER = get_logger(__name__)

SKIP_DISABLED = "buyback_disabled"
SKIP_BELOW_THRESHOLD = "fund_below_threshold"
SKIP_EMPTY_QUEUE = "queue_empty"
SKIP_CAP_REACHED = "spend_cap_reached"
SKIP_NO_FUNDS = "no_funds_available"
APPROVAL_LIMIT_BELOW_PRICE = "approval_limit_below_share_price"


@dataclass(frozen=True, slots=True)
class SettledOrder:
    order_id: int
    quantity: int
    amount: Decimal
    status: OrderStatus
    remaining_quantity: int


@dataclass(frozen=True, slots=True)
class FailedOrder:
    order_id: int
    reason: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Outcome of one settlement run; ``skipped_reason`` is set when nothing ran."""

    instrument_id: int
    batch_id: str
    processed: list[SettledOrder] = field(default_factory=list)
    failed: list[FailedOrder] = field(default_factory=list)
    spent: Decimal = Decimal("0.00")
    funds_available: Decimal | None = None
    skipped_reason: str | None = None
    stopped_reason: str | None = None


@dataclass(frozen=True, slots=True)
class _QueueState:
    queue: FifoQueue
    orders: dict[int, SellOrder]


class SettlementQueue:
    """Submit, modify, cancel and settle sell orders in strict queue order."""

    def __init__(
        self,
        session: Session,
        repository: SellOrderRepository | None = None,
        *,
        instruments: InstrumentRepository | None = None,
        funds: FundLedger | None = None,
        settings: SettingsService | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self._session = session
        self._repository = repository or SellOrderRepository(session)
        self._instruments = instruments or InstrumentRepository(session)
        self._funds = funds or FundLedger(session)
        self._settings = settings or SettingsService(session)
        self._locks = locks or ledger_locks

    # Queue bookkeeping -------------------------------------------------

    def _load_queue(self, instrument_id: int) -> _QueueState:
        orders = self._repository.queued(instrument_id, for_update=True)
        return _QueueState(queue=FifoQueue(order.id for order in orders), orders={o.id: o for o in orders})

    @staticmethod
    def _persist_positions(state: _QueueState) -> None:
        positions = state.queue.positions()
        for order_id, order in state.orders.items():
            position = positions.get(order_id)
            if order.fifo_position != position:
                order.fifo_position = position

    def _get(self, order_id: int) -> SellOrder:
        order = self._repository.get(order_id)
        if order is None:
            raise NotFoundError("Sell order", order_id)
        return order

    # Submission, modification, cancellation ----------------------------
    #
    # Lock order matches process_batch: instrument, queued orders, holding.

    def submit(
        self,
        instrument_id: int,
        user_id: int,
        quantity: int,
        *,
        seller_wallet_id: int | None = None,
        now: datetime | None = None,
    ) -> SellOrder:
        """Reserve the seller's shares and queue the order at the tail, priced at the current price."""

        if quantity <= 0:
            raise ValidationError("Sell quantity must be greater than zero", quantity=quantity)
        moment = now or utcnow()
        with self._locks.hold(("queue", instrument_id)), log_context.scope(
            instrument=instrument_id, user=user_id
        ):
            instrument = self._instruments.lock(instrument_id)
            if seller_wallet_id is not None:
                self._funds.user_wallet(seller_wallet_id, user_id, instrument.currency)
            price = instrument.current_price
            state = self._load_queue(instrument_id)

            holding = self._instruments.lock_holding(user_id, instrument_id)
            free = holding.free_quantity if holding is not None else 0
            if holding is None or quantity > free:
                raise ValidationError(
                    "Not enough unreserved shares to sell", requested=quantity, available=free
                )
            holding.reserved_quantity += quantity

            order = SellOrder(
                user_id=user_id,
                instrument_id=instrument_id,
                seller_wallet_id=seller_wallet_id,
                original_quantity=quantity,
                quantity=quantity,
                remaining_quantity=quantity,
                processed_quantity=0,
                processed_amount=Decimal("0.00"),
                requested_price=price,
                status=OrderStatus.PENDING,
                queued_at=moment,
                created_at=moment,
            )
            self._session.add(order)
            flush_or_conflict(self._session, "Sell order")
            state.orders[order.id] = order
            state.queue.append(order.id)
            self._persist_positions(state)
            flush_or_conflict(self._session, f"Sell order {order.id}")
            LOGGER.info(
                "Sell order %s queued at position %s for %s shares at %s",
                order.id,
                order.fifo_position,
                quantity,
                price,
            )
            return order

    def _locked_order(self, state: _QueueState, order_id: int) -> SellOrder:
        order = state.orders.get(order_id)
        return order if order is not None else self._repository.lock(order_id)

    def modify(self, order_id: int, new_quantity: int, *, now: datetime | None = None) -> SellOrder:
        """Change a pending order's quantity; the order moves to the back of the queue."""

        if new_quantity <= 0:
            raise ValidationError("Sell quantity must be greater than zero", quantity=new_quantity)
        instrument_id = self._get(order_id).instrument_id
        with self._locks.hold(("queue", instrument_id)), log_context.scope(order=order_id):
            self._instruments.lock(instrument_id)
            state = self._load_queue(instrument_id)
            order = self._locked_order(state, order_id)
            if order.status is not OrderStatus.PENDING:
                raise ValidationError(
                    "Only pending orders can be modified", order_id=order_id, status=order.status.value
                )
            if new_quantity == order.quantity:
                raise ValidationError("New quantity is unchanged", quantity=new_quantity)

            holding = self._instruments.lock_holding(order.user_id, instrument_id)
            delta = new_quantity - order.remaining_quantity
            free = holding.free_quantity if holding is not None else 0
            if holding is None or delta > free:
                raise ValidationError(
                    "Not enough unreserved shares to sell", requested=delta, available=free
                )
            holding.reserved_quantity += delta

            order.quantity = new_quantity
            order.remaining_quantity = new_quantity
            order.modification_count += 1
            order.queued_at = now or utcnow()

            state.queue.requeue(order.id)
            self._persist_positions(state)
            flush_or_conflict(self._session, f"Sell order {order.id}")
            LOGGER.info(
                "Sell order %s changed to %s shares, requeued at position %s",
                order.id,
                new_quantity,
                order.fifo_position,
            )
            return order

    def cancel(
        self,
        order_id: int,
        *,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> SellOrder:
        """Withdraw the unfilled part of an order; settled shares stay settled."""

        instrument_id = self._get(order_id).instrument_id
        with self._locks.hold(("queue", instrument_id)), log_context.scope(order=order_id):
            self._instruments.lock(instrument_id)
            state = self._load_queue(instrument_id)
            order = self._locked_order(state, order_id)
            order.status = order.status.transition_to(OrderStatus.CANCELLED)
            holding = self._instruments.lock_holding(order.user_id, instrument_id)
            if holding is not None and order.remaining_quantity:
                holding.reserved_quantity -= min(order.remaining_quantity, holding.reserved_quantity)
            order.cancelled_at = now or utcnow()
            order.cancellation_reason = reason

            if order.id in state.queue:
                state.queue.remove(order.id)
            self._persist_positions(state)
            flush_or_conflict(self._session, f"Sell order {order.id}")
            LOGGER.info(
                "Sell order %s cancelled, %s shares released, %s kept as settled",
                order.id,
                order.remaining_quantity,
                order.processed_quantity,
            )
            return order

    # Batch settlement --------------------------------------------------

    def _remaining_cap(self, cap: Decimal | None, since: datetime) -> Decimal | None:
        if cap is None:
            return None
        return cap - self._repository.spent_since(since)

    def _fund_wallet(self, instrument: Instrument, config: BuybackConfig) -> Wallet:
        wallet = self._funds.find_wallet(config.fund_wallet_type, instrument.currency)
        if wallet is None:
            raise ConfigurationError(
                "No buyback fund wallet configured",
                wallet_type=config.fund_wallet_type,
                currency=instrument.currency,
            )
        return wallet

    def process_batch(
        self,
        instrument_id: int,
        *,
        max_orders: int | None = None,
        available_funds: Decimal | None = None,
        now: datetime | None = None,
        config: BuybackConfig | None = None,
    ) -> BatchResult:
        """Settle queued orders in position order until funds, caps or the batch size run out."""

        if max_orders is not None and max_orders < 1:
            raise ValidationError("max_orders must be at least 1", max_orders=max_orders)
        if available_funds is not None and Decimal(available_funds) < 0:
            raise ValidationError("available_funds cannot be negative")
        moment = now or utcnow()
        config = config or self._settings.buyback_config()
        batch_id = str(uuid.uuid4())
        if not config.is_enabled:
            LOGGER.info("Buyback disabled, batch skipped")
            return BatchResult(instrument_id, batch_id, skipped_reason=SKIP_DISABLED)

        with self._locks.hold(("queue", instrument_id)), log_context.scope(
            instrument=instrument_id, batch=batch_id[:8]
        ):
            instrument = self._instruments.lock(instrument_id)
            wallet = self._fund_wallet(instrument, config)
            balance = wallet.balance
            if balance <= 0 or balance < config.minimum_fund_threshold:
                LOGGER.info(
                    "Buyback fund %s below threshold %s, batch skipped",
                    balance,
                    config.minimum_fund_threshold,
                )
                return BatchResult(
                    instrument_id, batch_id, funds_available=balance, skipped_reason=SKIP_BELOW_THRESHOLD
                )

            state = self._load_queue(instrument_id)
            if not state.queue:
                return BatchResult(instrument_id, batch_id, funds_available=balance, skipped_reason=SKIP_EMPTY_QUEUE)

            daily = self._remaining_cap(config.max_daily_amount, moment - timedelta(days=1))
            weekly = self._remaining_cap(config.max_weekly_amount, moment - timedelta(days=7))
            explicit = None if available_funds is None else Decimal(available_funds)
            funds = min_allowance(explicit, balance, daily, weekly)
            if funds <= 0:
                capped = (daily is not None and daily <= 0) or (weekly is not None and weekly <= 0)
                reason = SKIP_CAP_REACHED if capped else SKIP_NO_FUNDS
                LOGGER.info("No spend allowance left (%s), batch skipped", reason)
                return BatchResult(instrument_id, batch_id, funds_available=Decimal("0.00"), skipped_reason=reason)

            limit = max_orders or config.batch_size
            processed: list[SettledOrder] = []
            failed: list[FailedOrder] = []
            spent = Decimal("0.00")
            stopped_reason: str | None = None

            for order_id in list(state.queue)[:limit]:
                order = state.orders[order_id]
                plan = plan_fill(
                    order.remaining_quantity,
                    order.requested_price,
                    funds=funds - spent,
                    approval_limit=config.auto_approval_limit,
                )
                if plan.is_empty:
                    limit_value = config.auto_approval_limit
                    if limit_value is not None and limit_value < order.requested_price:
                        LOGGER.warning(
                            "Sell order %s blocks the queue: approval limit %s is below its share price %s",
                            order.id,
                            limit_value,
                            order.requested_price,
                        )
                        failed.append(FailedOrder(order.id, APPROVAL_LIMIT_BELOW_PRICE, Decimal("0.00")))
                        stopped_reason = APPROVAL_LIMIT_BELOW_PRICE
                    else:
                        stopped_reason = "insufficient_allowance_for_next_order"
                    break
                outcome = self._settle(order, plan, instrument, wallet, batch_id, moment)
                if not outcome.success:
                    failed.append(FailedOrder(order.id, outcome.error or "debit_failed", plan.amount))
                    stopped_reason = "fund_debit_failed"
                    break
                spent += plan.amount
                if not order.status.is_queued:
                    state.queue.remove(order.id)
                processed.append(
                    SettledOrder(
                        order_id=order.id,
                        quantity=plan.quantity,
                        amount=plan.amount,
                        status=order.status,
                        remaining_quantity=order.remaining_quantity,
                    )
                )

            self._persist_positions(state)
            flush_or_conflict(self._session, "Sell order queue")
            LOGGER.info(
                "Batch settled %d orders for %s, %d failed, allowance %s",
                len(processed),
                spent,
                len(failed),
                funds,
            )
            return BatchResult(
                instrument_id,
                batch_id,
                processed=processed,
                failed=failed,
                spent=spent,
                funds_available=funds,
                stopped_reason=stopped_reason,
            )

    def _settle(
        self,
        order: SellOrder,
        plan: FillPlan,
        instrument: Instrument,
        wallet: Wallet,
        batch_id: str,
        now: datetime,
    ) -> FundOperation:
        reference = f"sell-order:{order.id}"
        debit = self._funds.debit(
            wallet.id,
            plan.amount,
            instrument.currency,
            reference=reference,
            description=f"Buyback of {plan.quantity} shares",
        )
        if not debit.success:
            LOGGER.warning("Fund debit refused for sell order %s: %s", order.id, debit.error)
            return debit
        if order.seller_wallet_id is not None:
            self._funds.credit(
                order.seller_wallet_id,
                plan.amount,
                instrument.currency,
                reference=reference,
                description=f"Sale of {plan.quantity} shares",
            )

        order.remaining_quantity -= plan.quantity
        order.processed_quantity += plan.quantity
        order.processed_amount += plan.amount
        order.status = order.status.transition_to(
            OrderStatus.COMPLETED if order.remaining_quantity == 0 else OrderStatus.PARTIAL
        )

        holding = self._instruments.holding_for_update(order.user_id, instrument.id)
        holding.quantity -= plan.quantity
        holding.reserved_quantity -= plan.quantity
        instrument.available_shares += plan.quantity

        self._session.add(
            ShareTransaction(
                instrument_id=instrument.id,
                user_id=order.user_id,
                transaction_type=TransactionType.BUYBACK,
                quantity=plan.quantity,
                price_per_share=order.requested_price,
                total_amount=plan.amount,
                reference=reference,
                created_at=now,
            )
        )
        self._session.add(
            SellOrderSettlement(
                sell_order_id=order.id,
                batch_id=batch_id,
                quantity=plan.quantity,
                price_per_share=order.requested_price,
                amount=plan.amount,
                fund_balance_before=debit.balance_before,
                fund_balance_after=debit.balance_after,
                created_at=now,
            )
        )
        LOGGER.info(
            "Sell order %s settled %s shares for %s (%s left)",
            order.id,
            plan.quantity,
            plan.amount,
            order.remaining_quantity,
        )
        return debit

    # Queries -----------------------------------------------------------

    def get_order(self, order_id: int) -> SellOrder:
        return self._get(order_id)

    def queue_snapshot(self, instrument_id: int) -> list[SellOrder]:
        return self._repository.queued(instrument_id)

    def list_user_orders(self, user_id: int) -> list[SellOrder]:
        return self._repository.list_for_user(user_id)


__all__ = [
    "APPROVAL_LIMIT_BELOW_PRICE",
    "BatchResult",
    "FailedOrder",
    "SKIP_BELOW_THRESHOLD",
    "SKIP_CAP_REACHED",
    "SKIP_DISABLED",
    "SKIP_EMPTY_QUEUE",
    "SKIP_NO_FUNDS",
    "SettledOrder",
    "SettlementQueue",
]
