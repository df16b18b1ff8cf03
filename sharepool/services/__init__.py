"""Service layer entrypoints for pricing, bookings and settlement."""

from .booking_ledger import BookingLedger, BookingPaymentResult
from .fund_ledger import FundLedger, FundOperation
from .pricing_engine import PriceRecalculation, PricingEngine
from .settings_service import SettingsService
from .settlement_queue import BatchResult, SettlementQueue

__all__ = [
    "BatchResult",
    "BookingLedger",
    "BookingPaymentResult",
    "FundLedger",
    "FundOperation",
    "PriceRecalculation",
    "PricingEngine",
    "SettingsService",
    "SettlementQueue",
]
