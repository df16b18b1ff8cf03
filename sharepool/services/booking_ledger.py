"""Installment bookings that unlock shares as payments accumulate."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from sharepool.core.errors import (
    ConfigurationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from sharepool.core.logger import get_logger, log_context
from sharepool.db.locks import KeyedLockRegistry, flush_or_conflict, ledger_locks
from sharepool.domain.booking import BookingQuote, shares_unlocked, status_for
from sharepool.domain.config import BookingConfig
from sharepool.domain.pricing import quantize_price
from sharepool.domain.status import BookingStatus, TransactionType
from sharepool.models import Booking, BookingPayment, ShareTransaction, utcnow
from sharepool.repositories.booking_repository import BookingRepository
from sharepool.repositories.instrument_repository import InstrumentRepository
from sharepool.services.fund_ledger import FundLedger
from sharepool.services.settings_service import SettingsService

LOGGER = get_logger(__name__)

EXPIRED_REASON = "expired"


@dataclass(frozen=True, slots=True)
class BookingPaymentResult:
    """A booking after a payment, with the shares that payment unlocked."""

    booking: Booking
    payment: BookingPayment
    shares_unlocked: int

    @property
    def payment_percentage(self) -> Decimal:
        return self.booking.payment_percentage


def _to_amount(value: Decimal | str | int, field: str) -> Decimal:
    try:
        amount = quantize_price(Decimal(str(value)))
    except InvalidOperation as exc:
        raise ValidationError(f"{field} is not a number", value=str(value)) from exc
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", value=str(value))
    return amount


class BookingLedger:
    """Create, pay, reduce, cancel and expire installment bookings."""

    def __init__(
        self,
        session: Session,
        repository: BookingRepository | None = None,
        *,
        instruments: InstrumentRepository | None = None,
        funds: FundLedger | None = None,
        settings: SettingsService | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self._session = session
        self._repository = repository or BookingRepository(session)
        self._instruments = instruments or InstrumentRepository(session)
        self._funds = funds or FundLedger(session)
        self._settings = settings or SettingsService(session)
        self._locks = locks or ledger_locks

    # Creation ----------------------------------------------------------

    def create_booking(
        self,
        instrument_id: int,
        user_id: int,
        quantity: int,
        down_payment_percent: Decimal | None = None,
        *,
        payer_wallet_id: int,
        now: datetime | None = None,
        config: BookingConfig | None = None,
    ) -> Booking:
        """Reserve ``quantity`` shares at the current price and collect the down payment."""

        moment = now or utcnow()
        config = config or self._settings.booking_config()
        percent = (
            config.default_down_payment_percent
            if down_payment_percent is None
            else Decimal(str(down_payment_percent))
        )
        if not config.min_down_payment_percent <= percent <= Decimal("100"):
            raise ValidationError(
                "Down payment percent is outside the allowed range",
                down_payment_percent=str(percent),
                minimum=str(config.min_down_payment_percent),
            )
        if quantity <= 0:
            raise ValidationError("Booking quantity must be greater than zero", quantity=quantity)

        with self._locks.hold(("instrument", instrument_id)), log_context.scope(
            instrument=instrument_id, user=user_id
        ):
            instrument = self._instruments.lock(instrument_id)
            if quantity > instrument.available_shares:
                raise ValidationError(
                    "Not enough shares available to book",
                    requested=quantity,
                    available=instrument.available_shares,
                )
            quote = BookingQuote.assemble(quantity, instrument.current_price, percent)

            payer_balance = self._funds.user_wallet(payer_wallet_id, user_id, instrument.currency).balance
            if quote.down_payment_amount > payer_balance:
                raise InsufficientFundsError(
                    quote.down_payment_amount, payer_balance, wallet_id=payer_wallet_id
                )
            self._proceeds_wallet_id(instrument.currency, config)

            instrument.available_shares -= quantity
            booking = Booking(
                user_id=user_id,
                instrument_id=instrument.id,
                payer_wallet_id=payer_wallet_id,
                quantity=quantity,
                booked_price_per_share=quote.price_per_share,
                total_amount=quote.total_amount,
                down_payment_percent=quote.down_payment_percent,
                down_payment_amount=quote.down_payment_amount,
                cumulative_payments=Decimal("0.00"),
                remaining_amount=quote.total_amount,
                shares_owned_progressively=0,
                currency=instrument.currency,
                status=BookingStatus.ACTIVE,
                expires_at=moment + timedelta(days=config.credit_period_days),
                created_at=moment,
            )
            self._session.add(booking)
            flush_or_conflict(self._session, "Booking")
            LOGGER.info(
                "Booking %s created: %s shares at %s, down payment %s",
                booking.id,
                quantity,
                quote.price_per_share,
                quote.down_payment_amount,
            )
            if quote.down_payment_amount > 0:
                self._apply(booking, quote.down_payment_amount, is_down_payment=True, now=moment, config=config)
            return booking

    # Payments ----------------------------------------------------------

    def apply_payment(
        self,
        booking_id: int,
        amount: Decimal | str | int,
        *,
        now: datetime | None = None,
    ) -> BookingPaymentResult:
        """Apply a payment and unlock the shares it has earned."""

        value = _to_amount(amount, "Payment amount")
        moment = now or utcnow()
        with self._locks.hold(("booking", booking_id)), log_context.scope(booking=booking_id):
            booking = self._repository.lock(booking_id)
            self._require_open(booking)
            if moment > booking.expires_at:
                raise ValidationError(
                    "Booking credit period has ended",
                    booking_id=booking_id,
                    expires_at=booking.expires_at.isoformat(),
                )
            if booking.cumulative_payments + value > booking.total_amount:
                raise ValidationError(
                    "Payment exceeds the remaining balance",
                    amount=str(value),
                    remaining=str(booking.remaining_amount),
                )
            return self._apply(booking, value, is_down_payment=False, now=moment)

    def _apply(
        self,
        booking: Booking,
        amount: Decimal,
        *,
        is_down_payment: bool,
        now: datetime,
        config: BookingConfig | None = None,
    ) -> BookingPaymentResult:
        self._collect(booking, amount, config or self._settings.booking_config())

        cumulative = booking.cumulative_payments + amount
        owned_before = booking.shares_owned_progressively
        owned_after = max(owned_before, shares_unlocked(cumulative, booking.total_amount, booking.quantity))
        booking.status = booking.status.transition_to(status_for(cumulative, booking.total_amount))
        booking.cumulative_payments = cumulative
        booking.remaining_amount = max(Decimal("0.00"), booking.total_amount - cumulative)
        booking.shares_owned_progressively = owned_after

        delta = owned_after - owned_before
        payment = BookingPayment(
            booking_id=booking.id,
            amount=amount,
            cumulative_after=cumulative,
            shares_unlocked=delta,
            is_down_payment=is_down_payment,
            created_at=now,
        )
        self._session.add(payment)
        if delta:
            self._unlock(booking, delta, now)
        flush_or_conflict(self._session, f"Booking {booking.id}")
        LOGGER.info(
            "Booking %s paid %s (%s%%), %s shares unlocked, status %s",
            booking.id,
            amount,
            booking.payment_percentage,
            delta,
            booking.status.value,
        )
        return BookingPaymentResult(booking=booking, payment=payment, shares_unlocked=delta)

    def _proceeds_wallet_id(self, currency: str, config: BookingConfig) -> int:
        wallet = self._funds.find_wallet(config.proceeds_wallet_type, currency)
        if wallet is None:
            raise ConfigurationError(
                "No proceeds wallet configured for bookings",
                wallet_type=config.proceeds_wallet_type,
                currency=currency,
            )
        return wallet.id

    def _collect(self, booking: Booking, amount: Decimal, config: BookingConfig) -> None:
        """Move ``amount`` from the payer to the proceeds wallet, or raise."""

        if booking.payer_wallet_id is None:
            return
        proceeds_wallet_id = self._proceeds_wallet_id(booking.currency, config)
        reference = f"booking:{booking.id}"
        self._funds.debit(
            booking.payer_wallet_id,
            amount,
            booking.currency,
            reference=reference,
            description="Booking payment",
        ).raise_for_failure()
        self._funds.credit(
            proceeds_wallet_id,
            amount,
            booking.currency,
            reference=reference,
            description="Booking payment received",
        )

    def _unlock(self, booking: Booking, quantity: int, now: datetime) -> None:
        holding = self._instruments.holding_for_update(booking.user_id, booking.instrument_id)
        holding.quantity += quantity
        self._session.add(
            ShareTransaction(
                instrument_id=booking.instrument_id,
                user_id=booking.user_id,
                transaction_type=TransactionType.BOOKING_UNLOCK,
                quantity=quantity,
                price_per_share=booking.booked_price_per_share,
                total_amount=quantize_price(booking.booked_price_per_share * quantity),
                reference=f"booking:{booking.id}",
                created_at=now,
            )
        )

    # Reduction and cancellation ----------------------------------------

    @staticmethod
    def _require_open(booking: Booking) -> None:
        if not booking.status.is_open:
            raise ValidationError(
                "Booking is no longer open",
                booking_id=booking.id,
                status=booking.status.value,
            )

    def reduce_quantity(
        self,
        booking_id: int,
        new_quantity: int,
        *,
        now: datetime | None = None,
    ) -> Booking:
        """Shrink a booking, never below the shares already earned."""

        moment = now or utcnow()
        with self._locks.hold(("booking", booking_id)), log_context.scope(booking=booking_id):
            booking = self._repository.lock(booking_id)
            self._require_open(booking)
            if new_quantity >= booking.quantity:
                raise ValidationError(
                    "New quantity must be lower than the booked quantity",
                    new_quantity=new_quantity,
                    quantity=booking.quantity,
                )
            if new_quantity <= booking.shares_owned_progressively:
                raise ValidationError(
                    "Cannot reduce below the shares already owned",
                    new_quantity=new_quantity,
                    shares_owned=booking.shares_owned_progressively,
                )
            instrument = self._instruments.lock(booking.instrument_id)
            released = booking.quantity - new_quantity
            instrument.available_shares += released

            booking.quantity = new_quantity
            booking.total_amount = quantize_price(booking.booked_price_per_share * new_quantity)
            booking.remaining_amount = max(Decimal("0.00"), booking.total_amount - booking.cumulative_payments)
            owned_before = booking.shares_owned_progressively
            owned_after = max(
                owned_before,
                shares_unlocked(booking.cumulative_payments, booking.total_amount, new_quantity),
            )
            booking.shares_owned_progressively = owned_after
            booking.status = booking.status.transition_to(
                status_for(booking.cumulative_payments, booking.total_amount)
            )
            if owned_after > owned_before:
                self._unlock(booking, owned_after - owned_before, moment)
            flush_or_conflict(self._session, f"Booking {booking.id}")
            LOGGER.info(
                "Booking %s reduced to %s shares, %s released", booking.id, new_quantity, released
            )
            return booking

    def _cancel_locked(self, booking: Booking, reason: str | None, now: datetime) -> Booking:
        owned = booking.shares_owned_progressively
        instrument = self._instruments.lock(booking.instrument_id)
        released = booking.quantity - owned
        instrument.available_shares += released
        booking.cancelled_at = now
        booking.cancellation_reason = reason

        if owned > 0:
            booking.quantity = owned
            booking.total_amount = quantize_price(booking.booked_price_per_share * owned)
            booking.remaining_amount = Decimal("0.00")
            booking.status = booking.status.transition_to(BookingStatus.COMPLETED)
            overpaid = booking.cumulative_payments - booking.total_amount
            if overpaid > 0:
                LOGGER.warning(
                    "Booking %s truncated to %s owned shares; %s paid beyond the owned value is not refunded",
                    booking.id,
                    owned,
                    overpaid,
                )
        else:
            booking.status = booking.status.transition_to(BookingStatus.CANCELLED)
        flush_or_conflict(self._session, f"Booking {booking.id}")
        LOGGER.info(
            "Booking %s closed as %s (%s), %s shares released",
            booking.id,
            booking.status.value,
            reason or "no reason given",
            released,
        )
        return booking

    def cancel(
        self,
        booking_id: int,
        *,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Booking:
        """Cancel the unpaid part of a booking; owned shares are kept."""

        with self._locks.hold(("booking", booking_id)), log_context.scope(booking=booking_id):
            booking = self._repository.lock(booking_id)
            self._require_open(booking)
            return self._cancel_locked(booking, reason, now or utcnow())

    def expire_overdue(self, *, now: datetime | None = None) -> list[Booking]:
        """Cancel every open booking past its credit period."""

        moment = now or utcnow()
        expired: list[Booking] = []
        for booking_id in self._repository.overdue_ids(moment):
            with self._locks.hold(("booking", booking_id)), log_context.scope(booking=booking_id):
                booking = self._repository.lock(booking_id)
                if not booking.status.is_open or booking.expires_at >= moment:
                    continue
                expired.append(self._cancel_locked(booking, EXPIRED_REASON, moment))
        if expired:
            LOGGER.info("Expired %d overdue bookings", len(expired))
        return expired

    # Queries -----------------------------------------------------------

    def get_booking(self, booking_id: int) -> Booking:
        booking = self._repository.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def list_user_bookings(self, user_id: int, *, status: BookingStatus | None = None) -> list[Booking]:
        return self._repository.list_for_user(user_id, status=status)

    def payments(self, booking_id: int) -> list[BookingPayment]:
        self.get_booking(booking_id)
        return self._repository.payments(booking_id)


__all__ = ["BookingLedger", "BookingPaymentResult", "EXPIRED_REASON"]
