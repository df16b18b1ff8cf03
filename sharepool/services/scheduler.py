"""Periodic and on-demand triggers for pricing, settlement and booking expiry.

Each cycle opens its own session through ``session_scope`` so one failing
instrument never rolls back work already committed for another. Cycles are
safe to call at any time: a recalculation that is not due, an empty queue or
no overdue bookings are no-ops.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session, sessionmaker

from sharepool.core.config import SchedulerSettings, get_settings
from sharepool.core.errors import SharePoolError
from sharepool.core.logger import get_logger, log_context, timeit
from sharepool.db.locks import retry_on_conflict
from sharepool.db.session import get_sessionmaker, session_scope
from sharepool.domain.status import PriceMode
from sharepool.models import utcnow
from sharepool.repositories.instrument_repository import InstrumentRepository
from sharepool.repositories.order_repository import SellOrderRepository
from sharepool.services.booking_ledger import BookingLedger
from sharepool.services.pricing_engine import PricingEngine
from sharepool.services.settlement_queue import SettlementQueue

LOGGER = get_logger(__name__)


@dataclass
class CycleReport:
    """Summary of one scheduler cycle."""

    name: str
    started_at: datetime
    finished_at: datetime | None = None
    details: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class MarketScheduler:
    """Runs the market jobs once on demand or repeatedly on an interval.

    Usage:
        scheduler = MarketScheduler()
        scheduler.start()            # begin interval jobs
        scheduler.run_all()          # trigger every cycle now
        scheduler.stop()
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: SchedulerSettings | None = None,
        *,
        retry_attempts: int | None = None,
    ) -> None:
        self._session_factory = session_factory or get_sessionmaker()
        self._settings = settings or get_settings().scheduler
        self._retry_attempts = retry_attempts or get_settings().locks.conflict_retry_attempts
        self._scheduler: BackgroundScheduler | None = None
        self._history: list[CycleReport] = []
        self._history_lock = threading.Lock()
        self._max_history = 100

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def history(self) -> list[CycleReport]:
        with self._history_lock:
            return list(self._history)

    # Lifecycle ---------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            LOGGER.warning("Market scheduler already running")
            return
        scheduler = BackgroundScheduler(
            timezone=self._settings.timezone,
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        scheduler.add_job(
            self.run_pricing_cycle,
            IntervalTrigger(minutes=self._settings.pricing_interval_minutes),
            id="pricing",
            name="Market activity price recalculation",
        )
        scheduler.add_job(
            self.run_settlement_cycle,
            IntervalTrigger(minutes=self._settings.settlement_interval_minutes),
            id="settlement",
            name="Buyback batch settlement",
        )
        scheduler.add_job(
            self.run_expiry_cycle,
            IntervalTrigger(minutes=self._settings.expiry_interval_minutes),
            id="booking_expiry",
            name="Overdue booking expiry",
        )
        scheduler.start()
        self._scheduler = scheduler
        LOGGER.info("Market scheduler started with %d jobs", len(scheduler.get_jobs()))

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            LOGGER.info("Market scheduler stopped")

    def scheduled_jobs(self) -> list[dict[str, str]]:
        if self._scheduler is None:
            return []
        return [
            {"id": job.id, "name": job.name, "next_run": str(job.next_run_time), "trigger": str(job.trigger)}
            for job in self._scheduler.get_jobs()
        ]

    # Cycles ------------------------------------------------------------

    def _record(self, report: CycleReport) -> CycleReport:
        report.finished_at = utcnow()
        with self._history_lock:
            self._history.append(report)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]
        return report

    def _ids(self, query: Callable[[Session], list[int]]) -> list[int]:
        with session_scope(self._session_factory) as session:
            return query(session)

    def _per_instrument(
        self,
        report: CycleReport,
        instrument_ids: list[int],
        action: Callable[[Session, int], Any],
    ) -> None:
        for instrument_id in instrument_ids:
            with log_context.scope(instrument=instrument_id):
                def attempt() -> Any:
                    with session_scope(self._session_factory) as session:
                        return action(session, instrument_id)

                try:
                    report.details[str(instrument_id)] = retry_on_conflict(
                        attempt, attempts=self._retry_attempts
                    )
                except SharePoolError as exc:
                    LOGGER.error("%s cycle failed for instrument %s: %s", report.name, instrument_id, exc.message)
                    report.errors.append(f"{instrument_id}: {exc.message}")

    def run_pricing_cycle(self, *, now: datetime | None = None) -> CycleReport:
        """Recalculate the price of every automatic instrument whose interval elapsed."""

        moment = now or utcnow()
        report = CycleReport(name="pricing", started_at=moment)
        instrument_ids = self._ids(
            lambda session: InstrumentRepository(session).list_ids_in_mode(PriceMode.AUTOMATIC)
        )

        def recalculate(session: Session, instrument_id: int) -> str:
            engine = PricingEngine(session)
            if not engine.recalculation_due(instrument_id, now=moment):
                return "not_due"
            result = engine.compute_next_price(instrument_id, now=moment)
            return str(result.new_price) if result.applied else "unchanged"

        with timeit("pricing cycle", logger=LOGGER, unit="instruments", total=len(instrument_ids)):
            self._per_instrument(report, instrument_ids, recalculate)
        return self._record(report)

    def run_settlement_cycle(self, *, now: datetime | None = None) -> CycleReport:
        """Process one batch for every instrument with a non-empty queue."""

        moment = now or utcnow()
        report = CycleReport(name="settlement", started_at=moment)
        instrument_ids = self._ids(lambda session: SellOrderRepository(session).instruments_with_queue())

        def settle(session: Session, instrument_id: int) -> dict[str, Any]:
            result = SettlementQueue(session).process_batch(instrument_id, now=moment)
            return {
                "processed": len(result.processed),
                "failed": len(result.failed),
                "spent": str(result.spent),
                "skipped_reason": result.skipped_reason,
                "stopped_reason": result.stopped_reason,
            }

        with timeit("settlement cycle", logger=LOGGER, unit="instruments", total=len(instrument_ids)):
            self._per_instrument(report, instrument_ids, settle)
        return self._record(report)

    def run_expiry_cycle(self, *, now: datetime | None = None) -> CycleReport:
        """Cancel open bookings whose credit period has ended."""

        moment = now or utcnow()
        report = CycleReport(name="booking_expiry", started_at=moment)
        with timeit("booking expiry cycle", logger=LOGGER):
            try:
                with session_scope(self._session_factory) as session:
                    expired = BookingLedger(session).expire_overdue(now=moment)
                    report.details["expired"] = [booking.id for booking in expired]
            except SharePoolError as exc:
                LOGGER.error("Booking expiry cycle failed: %s", exc.message)
                report.errors.append(exc.message)
        return self._record(report)

    def run_all(self, *, now: datetime | None = None) -> list[CycleReport]:
        moment = now or utcnow()
        return [
            self.run_pricing_cycle(now=moment),
            self.run_settlement_cycle(now=moment),
            self.run_expiry_cycle(now=moment),
        ]


__all__ = ["CycleReport", "MarketScheduler"]
