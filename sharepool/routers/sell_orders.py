"""Routes for sell orders, the buyback queue and batch settlement."""
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sharepool.schemas.orders import (
    BatchRequest,
    BatchResponse,
    BuybackSettingsPayload,
    BuybackSettingsUpdate,
    SellOrderCancel,
    SellOrderCreate,
    SellOrderModify,
    SellOrderView,
)
from sharepool.services import SettingsService, SettlementQueue
from sharepool.web.dependencies import get_db_session

router = APIRouter(prefix="/sell-orders", tags=["sell-orders"])


@router.post("", response_model=SellOrderView, status_code=status.HTTP_201_CREATED)
def submit_order(payload: SellOrderCreate, session: Session = Depends(get_db_session)) -> SellOrderView:
    order = SettlementQueue(session).submit(
        payload.instrument_id,
        payload.user_id,
        payload.quantity,
        seller_wallet_id=payload.seller_wallet_id,
    )
    return SellOrderView.model_validate(order)


@router.get("/queue/{instrument_id}", response_model=list[SellOrderView])
def get_queue(instrument_id: int, session: Session = Depends(get_db_session)) -> list[SellOrderView]:
    return [SellOrderView.model_validate(order) for order in SettlementQueue(session).queue_snapshot(instrument_id)]


@router.post("/batches", response_model=BatchResponse)
def process_batch(payload: BatchRequest, session: Session = Depends(get_db_session)) -> BatchResponse:
    result = SettlementQueue(session).process_batch(
        payload.instrument_id,
        max_orders=payload.max_orders,
        available_funds=payload.available_funds,
    )
    return BatchResponse.model_validate(result)


@router.get("/settings", response_model=BuybackSettingsPayload)
def get_buyback_settings(session: Session = Depends(get_db_session)) -> BuybackSettingsPayload:
    return BuybackSettingsPayload(**asdict(SettingsService(session).buyback_config()))


@router.put("/settings", response_model=BuybackSettingsPayload)
def update_buyback_settings(
    payload: BuybackSettingsUpdate,
    session: Session = Depends(get_db_session),
) -> BuybackSettingsPayload:
    changes = payload.model_dump(exclude_none=True)
    actor = changes.pop("actor", None)
    unset = changes.pop("unset", [])
    config = SettingsService(session).update_buyback(actor=actor, unset=unset, **changes)
    return BuybackSettingsPayload(**asdict(config))


@router.get("/users/{user_id}", response_model=list[SellOrderView])
def list_user_orders(user_id: int, session: Session = Depends(get_db_session)) -> list[SellOrderView]:
    return [SellOrderView.model_validate(order) for order in SettlementQueue(session).list_user_orders(user_id)]


@router.get("/{order_id}", response_model=SellOrderView)
def get_order(order_id: int, session: Session = Depends(get_db_session)) -> SellOrderView:
    return SellOrderView.model_validate(SettlementQueue(session).get_order(order_id))


@router.post("/{order_id}/modify", response_model=SellOrderView)
def modify_order(
    order_id: int,
    payload: SellOrderModify,
    session: Session = Depends(get_db_session),
) -> SellOrderView:
    return SellOrderView.model_validate(SettlementQueue(session).modify(order_id, payload.new_quantity))


@router.post("/{order_id}/cancel", response_model=SellOrderView)
def cancel_order(
    order_id: int,
    payload: SellOrderCancel,
    session: Session = Depends(get_db_session),
) -> SellOrderView:
    return SellOrderView.model_validate(SettlementQueue(session).cancel(order_id, reason=payload.reason))
