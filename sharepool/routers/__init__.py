"""HTTP routers exposed by the share pool service."""

from .bookings import router as bookings_router
from .health import router as health_router
from .pricing import router as pricing_router
from .sell_orders import router as sell_orders_router

__all__ = ["bookings_router", "health_router", "pricing_router", "sell_orders_router"]
