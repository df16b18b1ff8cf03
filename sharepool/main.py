"""FastAPI application instance and startup hooks."""
from __future__ import annotations

from fastapi import FastAPI

from sharepool.core import get_logger, get_settings
from sharepool.core.logger import configure_logging
from sharepool.db.locks import ledger_locks
from sharepool.routers import bookings_router, health_router, pricing_router, sell_orders_router
from sharepool.services.scheduler import MarketScheduler
from sharepool.web.dependencies import session_factory
from sharepool.web.errors import register_error_handlers

LOGGER = get_logger(__name__)


def create_app(*, start_scheduler: bool | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The market scheduler runs in-process when ``SCHEDULER_ENABLED`` is set,
    unless ``start_scheduler`` overrides it.
    """

    settings = get_settings()
    configure_logging(settings.logging, app_name="sharepool")
    ledger_locks.set_timeout(settings.locks.acquire_timeout_seconds)

    app = FastAPI(title="Share Pool", version="0.1.0")
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(pricing_router)
    app.include_router(bookings_router)
    app.include_router(sell_orders_router)
    app.state.scheduler = None

    run_scheduler = settings.scheduler.enabled if start_scheduler is None else start_scheduler

    @app.on_event("startup")
    def start_market_jobs() -> None:
        if not run_scheduler:
            LOGGER.info("Market scheduler disabled")
            return
        scheduler = MarketScheduler(session_factory(), settings.scheduler)
        scheduler.start()
        app.state.scheduler = scheduler

    @app.on_event("shutdown")
    def stop_market_jobs() -> None:
        scheduler = app.state.scheduler
        if scheduler is not None:
            scheduler.stop()
            app.state.scheduler = None

    LOGGER.info("FastAPI application initialised")
    return app
