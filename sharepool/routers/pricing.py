"""Routes for the instrument price, its history and pricing settings."""
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sharepool.core.errors import NotFoundError
from sharepool.domain.pricing import PriceCalculation
from sharepool.repositories.instrument_repository import InstrumentRepository
from sharepool.schemas.pricing import (
    ActivitySnapshot,
    InstrumentSnapshot,
    ManualPriceRequest,
    ModeSwitchRequest,
    PriceChangeResponse,
    PriceHistoryEntry,
    PricePreview,
    PricingSettingsPayload,
    PricingSettingsUpdate,
    RecalculationResponse,
)
from sharepool.services import PricingEngine, SettingsService
from sharepool.web.dependencies import get_db_session

router = APIRouter(prefix="/pricing", tags=["pricing"])


def _instrument(session: Session, instrument_id: int) -> InstrumentSnapshot:
    instrument = InstrumentRepository(session).get(instrument_id)
    if instrument is None:
        raise NotFoundError("Instrument", instrument_id)
    return InstrumentSnapshot.model_validate(instrument)


def _preview(calculation: PriceCalculation) -> PricePreview:
    def activity(value) -> ActivitySnapshot:
        return ActivitySnapshot(
            sold_quantity=value.sold_quantity,
            bought_back_quantity=value.bought_back_quantity,
            net_movement=value.net_movement,
        )

    return PricePreview(
        current_price=calculation.current_price,
        new_price=calculation.new_price,
        raw_change_percent=calculation.raw_change_percent,
        weighted_change_percent=calculation.weighted_change_percent,
        capped_change_percent=calculation.capped_change_percent,
        actual_change_percent=calculation.actual_change_percent,
        floor_applied=calculation.floor_applied,
        significant=calculation.is_significant,
        current_period=activity(calculation.current_activity),
        previous_period=activity(calculation.previous_activity),
    )


@router.get("/instruments/{instrument_id}", response_model=InstrumentSnapshot)
def get_instrument(instrument_id: int, session: Session = Depends(get_db_session)) -> InstrumentSnapshot:
    return _instrument(session, instrument_id)


@router.get("/instruments/{instrument_id}/history", response_model=list[PriceHistoryEntry])
def get_price_history(
    instrument_id: int,
    limit: int = Query(50, ge=1, le=500),
    session: Session = Depends(get_db_session),
) -> list[PriceHistoryEntry]:
    _instrument(session, instrument_id)
    records = PricingEngine(session).price_history(instrument_id, limit=limit)
    return [PriceHistoryEntry.model_validate(record) for record in records]


@router.get("/instruments/{instrument_id}/preview", response_model=PricePreview)
def preview_price(instrument_id: int, session: Session = Depends(get_db_session)) -> PricePreview:
    return _preview(PricingEngine(session).preview_next_price(instrument_id))


@router.post("/instruments/{instrument_id}/recalculate", response_model=RecalculationResponse)
def recalculate_price(instrument_id: int, session: Session = Depends(get_db_session)) -> RecalculationResponse:
    result = PricingEngine(session).compute_next_price(instrument_id)
    record = PriceHistoryEntry.model_validate(result.record) if result.record is not None else None
    return RecalculationResponse(applied=result.applied, preview=_preview(result.calculation), record=record)


@router.post("/instruments/{instrument_id}/mode", response_model=PriceChangeResponse)
def switch_mode(
    instrument_id: int,
    payload: ModeSwitchRequest,
    session: Session = Depends(get_db_session),
) -> PriceChangeResponse:
    record = PricingEngine(session).switch_mode(
        instrument_id,
        payload.target,
        expected_version=payload.expected_version,
        actor=payload.actor,
        notes=payload.notes,
    )
    return PriceChangeResponse(
        instrument=_instrument(session, instrument_id),
        record=PriceHistoryEntry.model_validate(record) if record is not None else None,
    )


@router.post("/instruments/{instrument_id}/manual-price", response_model=PriceChangeResponse)
def set_manual_price(
    instrument_id: int,
    payload: ManualPriceRequest,
    session: Session = Depends(get_db_session),
) -> PriceChangeResponse:
    record = PricingEngine(session).set_manual_price(
        instrument_id,
        payload.price,
        expected_version=payload.expected_version,
        notes=payload.notes,
        actor=payload.actor,
    )
    return PriceChangeResponse(
        instrument=_instrument(session, instrument_id),
        record=PriceHistoryEntry.model_validate(record),
    )


@router.get("/settings", response_model=PricingSettingsPayload)
def get_pricing_settings(session: Session = Depends(get_db_session)) -> PricingSettingsPayload:
    return PricingSettingsPayload(**asdict(SettingsService(session).pricing_config()))


@router.put("/settings", response_model=PricingSettingsPayload)
def update_pricing_settings(
    payload: PricingSettingsUpdate,
    session: Session = Depends(get_db_session),
) -> PricingSettingsPayload:
    changes = payload.model_dump(exclude_none=True)
    actor = changes.pop("actor", None)
    config = SettingsService(session).update_pricing(actor=actor, **changes)
    return PricingSettingsPayload(**asdict(config))
