"""Closed status variants and their allowed transitions."""
from __future__ import annotations

from enum import Enum
from typing import Mapping

from sharepool.core.errors import InvalidTransitionError


class PriceMode(str, Enum):
    """Source of the instrument's price."""

    MANUAL = "manual"
    AUTOMATIC = "automatic"


class PriceMethod(str, Enum):
    """``calculation_method`` of a price history record."""

    MANUAL = "manual"
    AUTO_MARKET_ACTIVITY = "auto_market_activity"
    MODE_SWITCH_TO_AUTO = "mode_switch_to_auto"
    MODE_SWITCH_TO_MANUAL = "mode_switch_to_manual"

    @classmethod
    def lineage(cls, mode: PriceMode) -> tuple["PriceMethod", ...]:
        """Methods whose records carry prices set while ``mode`` was active."""

        if mode is PriceMode.MANUAL:
            return (cls.MANUAL, cls.MODE_SWITCH_TO_MANUAL)
        return (cls.AUTO_MARKET_ACTIVITY, cls.MODE_SWITCH_TO_AUTO)

    @classmethod
    def switch_to(cls, mode: PriceMode) -> "PriceMethod":
        if mode is PriceMode.MANUAL:
            return cls.MODE_SWITCH_TO_MANUAL
        return cls.MODE_SWITCH_TO_AUTO


class BookingStatus(str, Enum):
    ACTIVE = "active"
    PARTIALLY_PAID = "partially_paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return self in (BookingStatus.ACTIVE, BookingStatus.PARTIALLY_PAID)

    def transition_to(self, target: "BookingStatus") -> "BookingStatus":
        return _checked("Booking", _BOOKING_TRANSITIONS, self, target)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_queued(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.PARTIAL)

    def transition_to(self, target: "OrderStatus") -> "OrderStatus":
        return _checked("Sell order", _ORDER_TRANSITIONS, self, target)


class TransactionType(str, Enum):
    """Share transaction kinds feeding the trade activity aggregate."""

    PURCHASE = "purchase"
    BUY = "buy"
    BOOKING_UNLOCK = "booking_unlock"
    SALE = "sale"
    SELL = "sell"
    BUYBACK = "buyback"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


SOLD_TYPES: tuple[TransactionType, ...] = (
    TransactionType.PURCHASE,
    TransactionType.BUY,
    TransactionType.BOOKING_UNLOCK,
)
BOUGHT_BACK_TYPES: tuple[TransactionType, ...] = (
    TransactionType.SALE,
    TransactionType.SELL,
    TransactionType.BUYBACK,
)


# A status may always "transition" to itself: payments on a partially paid
# booking and partial fills on a partial order keep the status unchanged.
_BOOKING_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.ACTIVE: frozenset(
        {BookingStatus.PARTIALLY_PAID, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    BookingStatus.PARTIALLY_PAID: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

_ORDER_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PARTIAL, OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.PARTIAL: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def _checked(entity: str, table: Mapping, current: Enum, target: Enum) -> Enum:
    if target == current and table[current]:
        return target
    if target not in table[current]:
        raise InvalidTransitionError(entity, current.value, target.value)
    return target


__all__ = [
    "BOUGHT_BACK_TYPES",
    "BookingStatus",
    "OrderStatus",
    "PriceMethod",
    "PriceMode",
    "SOLD_TYPES",
    "TransactionStatus",
    "TransactionType",
]
