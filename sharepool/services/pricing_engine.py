"""Market-activity price recalculation, manual overrides and mode switches.

Every write appends a :class:`PriceHistory` record and updates the
instrument in the same transaction. Mode switches seed the new mode with the
latest price recorded in that mode's lineage so toggling back and forth never
makes the price jump.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from sharepool.core.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from sharepool.core.logger import get_logger, log_context
from sharepool.db.locks import KeyedLockRegistry, flush_or_conflict, ledger_locks
from sharepool.domain.config import PricingConfig
from sharepool.domain.pricing import (
    PriceCalculation,
    compute_market_activity_price,
    percent_change,
    quantize_price,
)
from sharepool.domain.status import PriceMethod, PriceMode
from sharepool.models import Instrument, PriceHistory, utcnow
from sharepool.repositories.instrument_repository import InstrumentRepository
from sharepool.services.settings_service import SettingsService

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PriceRecalculation:
    """Result of :meth:`PricingEngine.compute_next_price`.

    ``record`` is ``None`` when the move was below the significance threshold
    and nothing was written.
    """

    instrument_id: int
    calculation: PriceCalculation
    record: PriceHistory | None

    @property
    def applied(self) -> bool:
        return self.record is not None

    @property
    def new_price(self) -> Decimal:
        return self.calculation.new_price if self.applied else self.calculation.current_price


class PricingEngine:
    """Facade over the instrument price and its history."""

    def __init__(
        self,
        session: Session,
        repository: InstrumentRepository | None = None,
        settings: SettingsService | None = None,
        *,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self._session = session
        self._repository = repository or InstrumentRepository(session)
        self._settings = settings or SettingsService(session)
        self._locks = locks or ledger_locks

    # Recalculation -----------------------------------------------------

    def _calculate(self, instrument: Instrument, config: PricingConfig, now: datetime) -> PriceCalculation:
        current_window, previous_window = config.market_activity_period.windows(now)
        current = self._repository.trade_activity(instrument.id, current_window)
        previous = self._repository.trade_activity(instrument.id, previous_window)
        return compute_market_activity_price(instrument.current_price, current, previous, config)

    def preview_next_price(
        self,
        instrument_id: int,
        *,
        now: datetime | None = None,
        config: PricingConfig | None = None,
    ) -> PriceCalculation:
        """Run the formula against current data without writing anything."""

        instrument = self._repository.get(instrument_id)
        if instrument is None:
            raise NotFoundError("Instrument", instrument_id)
        return self._calculate(instrument, config or self._settings.pricing_config(), now or utcnow())

    def compute_next_price(
        self,
        instrument_id: int,
        *,
        now: datetime | None = None,
        config: PricingConfig | None = None,
    ) -> PriceRecalculation:
        """Recalculate the price from market activity and record it when significant."""

        moment = now or utcnow()
        config = config or self._settings.pricing_config()
        with self._locks.hold(("instrument", instrument_id)), log_context.scope(instrument=instrument_id):
            instrument = self._repository.lock(instrument_id)
            if instrument.price_calculation_mode is not PriceMode.AUTOMATIC:
                raise ValidationError(
                    "Instrument is not in automatic pricing mode",
                    instrument_id=instrument_id,
                    mode=instrument.price_calculation_mode.value,
                )
            calculation = self._calculate(instrument, config, moment)
            if not calculation.is_significant:
                LOGGER.info(
                    "Price change %s%% below threshold, keeping %s",
                    calculation.actual_change_percent,
                    instrument.current_price,
                )
                return PriceRecalculation(instrument_id, calculation, None)

            current_window, previous_window = config.market_activity_period.windows(moment)
            factors = calculation.factors(config)
            factors["current_window"] = [current_window.start.isoformat(), current_window.end.isoformat()]
            factors["previous_window"] = [previous_window.start.isoformat(), previous_window.end.isoformat()]
            record = PriceHistory(
                instrument_id=instrument.id,
                price=calculation.new_price,
                previous_price=instrument.current_price,
                percent_change=calculation.actual_change_percent,
                calculation_method=PriceMethod.AUTO_MARKET_ACTIVITY,
                factors=factors,
                notes=(
                    f"Market activity {calculation.current_activity.net_movement:+d} vs "
                    f"{calculation.previous_activity.net_movement:+d} net shares"
                ),
                created_by="scheduler",
                created_at=moment,
            )
            self._session.add(record)
            instrument.current_price = calculation.new_price
            flush_or_conflict(self._session, f"Instrument {instrument.id}")
            LOGGER.info(
                "Price moved %s -> %s (%s%%)",
                calculation.current_price,
                calculation.new_price,
                calculation.actual_change_percent,
            )
            return PriceRecalculation(instrument_id, calculation, record)

    def recalculation_due(
        self,
        instrument_id: int,
        *,
        now: datetime | None = None,
        config: PricingConfig | None = None,
    ) -> bool:
        """True when automatic pricing is enabled and the update interval has elapsed."""

        config = config or self._settings.pricing_config()
        if not config.is_enabled:
            return False
        instrument = self._repository.get(instrument_id)
        if instrument is None or instrument.price_calculation_mode is not PriceMode.AUTOMATIC:
            return False
        last = self._repository.latest_with_method(instrument_id, PriceMethod.AUTO_MARKET_ACTIVITY)
        if last is None:
            return True
        return (now or utcnow()) - last.created_at >= timedelta(hours=config.update_interval_hours)

    # Mode and manual price ---------------------------------------------

    @staticmethod
    def _check_version(instrument: Instrument, expected_version: int | None) -> None:
        if expected_version is not None and instrument.version != expected_version:
            raise ConcurrencyConflictError(
                "Instrument changed since it was read; reload and retry",
                instrument_id=instrument.id,
                expected_version=expected_version,
                actual_version=instrument.version,
            )

    def _switch(
        self,
        instrument: Instrument,
        target: PriceMode,
        *,
        actor: str | None,
        notes: str | None,
    ) -> PriceHistory:
        source = instrument.price_calculation_mode
        baseline_record = self._repository.latest_in_lineage(instrument.id, target)
        baseline = baseline_record.price if baseline_record is not None else instrument.current_price
        record = PriceHistory(
            instrument_id=instrument.id,
            price=baseline,
            previous_price=baseline,
            percent_change=Decimal("0"),
            calculation_method=PriceMethod.switch_to(target),
            factors={
                "mode_transition": f"{source.value}_to_{target.value}",
                "from_mode": source.value,
                "to_mode": target.value,
                "baseline_price": str(baseline),
                "baseline_record_id": baseline_record.id if baseline_record is not None else None,
                "price_before_switch": str(instrument.current_price),
            },
            notes=notes or f"Switched pricing from {source.value} to {target.value}",
            created_by=actor,
        )
        self._session.add(record)
        instrument.current_price = baseline
        instrument.price_calculation_mode = target
        LOGGER.info(
            "Pricing mode %s -> %s with baseline %s", source.value, target.value, baseline
        )
        return record

    def switch_mode(
        self,
        instrument_id: int,
        target: PriceMode | str,
        *,
        expected_version: int | None = None,
        actor: str | None = None,
        notes: str | None = None,
    ) -> PriceHistory | None:
        """Flip the pricing mode, seeding it from the target lineage's latest price.

        Returns ``None`` when ``target`` is already the active mode.
        """

        target = PriceMode(target)
        with self._locks.hold(("instrument", instrument_id)), log_context.scope(instrument=instrument_id):
            instrument = self._repository.lock(instrument_id)
            self._check_version(instrument, expected_version)
            if instrument.price_calculation_mode is target:
                LOGGER.info("Pricing mode already %s, nothing to switch", target.value)
                return None
            record = self._switch(instrument, target, actor=actor, notes=notes)
            flush_or_conflict(self._session, f"Instrument {instrument.id}")
            return record

    def set_manual_price(
        self,
        instrument_id: int,
        new_price: Decimal,
        *,
        expected_version: int | None = None,
        notes: str | None = None,
        actor: str | None = None,
    ) -> PriceHistory:
        """Record an admin-set price and force manual mode."""

        price = quantize_price(Decimal(new_price))
        if price <= 0:
            raise ValidationError("Price must be greater than zero", price=str(new_price))
        with self._locks.hold(("instrument", instrument_id)), log_context.scope(instrument=instrument_id):
            instrument = self._repository.lock(instrument_id)
            self._check_version(instrument, expected_version)
            if instrument.price_calculation_mode is not PriceMode.MANUAL:
                self._switch(
                    instrument,
                    PriceMode.MANUAL,
                    actor=actor,
                    notes="Switched to manual for a price override",
                )
            previous = instrument.current_price
            record = PriceHistory(
                instrument_id=instrument.id,
                price=price,
                previous_price=previous,
                percent_change=percent_change(previous, price),
                calculation_method=PriceMethod.MANUAL,
                factors={"previous_price": str(previous), "new_price": str(price)},
                notes=notes,
                created_by=actor,
            )
            self._session.add(record)
            instrument.current_price = price
            flush_or_conflict(self._session, f"Instrument {instrument.id}")
            LOGGER.info("Manual price set %s -> %s by %s", previous, price, actor or "admin")
            return record

    def price_history(self, instrument_id: int, *, limit: int = 50) -> list[PriceHistory]:
        return self._repository.price_history(instrument_id, limit=limit)


__all__ = ["PriceRecalculation", "PricingEngine"]
