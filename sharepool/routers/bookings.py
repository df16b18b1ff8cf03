"""Routes for installment bookings."""
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sharepool.domain.status import BookingStatus
from sharepool.schemas.bookings import (
    BookingCancelRequest,
    BookingCreate,
    BookingPaymentRequest,
    BookingPaymentResponse,
    BookingReduceRequest,
    BookingSettingsPayload,
    BookingSettingsUpdate,
    BookingView,
)
from sharepool.services import BookingLedger, SettingsService
from sharepool.web.dependencies import get_db_session

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingView, status_code=status.HTTP_201_CREATED)
def create_booking(payload: BookingCreate, session: Session = Depends(get_db_session)) -> BookingView:
    booking = BookingLedger(session).create_booking(
        payload.instrument_id,
        payload.user_id,
        payload.quantity,
        payload.down_payment_percent,
        payer_wallet_id=payload.payer_wallet_id,
    )
    return BookingView.model_validate(booking)


@router.get("/settings", response_model=BookingSettingsPayload)
def get_booking_settings(session: Session = Depends(get_db_session)) -> BookingSettingsPayload:
    return BookingSettingsPayload(**asdict(SettingsService(session).booking_config()))


@router.put("/settings", response_model=BookingSettingsPayload)
def update_booking_settings(
    payload: BookingSettingsUpdate,
    session: Session = Depends(get_db_session),
) -> BookingSettingsPayload:
    changes = payload.model_dump(exclude_none=True)
    actor = changes.pop("actor", None)
    return BookingSettingsPayload(**asdict(SettingsService(session).update_booking(actor=actor, **changes)))


@router.get("/users/{user_id}", response_model=list[BookingView])
def list_user_bookings(
    user_id: int,
    booking_status: BookingStatus | None = None,
    session: Session = Depends(get_db_session),
) -> list[BookingView]:
    bookings = BookingLedger(session).list_user_bookings(user_id, status=booking_status)
    return [BookingView.model_validate(booking) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingView)
def get_booking(booking_id: int, session: Session = Depends(get_db_session)) -> BookingView:
    return BookingView.model_validate(BookingLedger(session).get_booking(booking_id))


@router.post("/{booking_id}/payments", response_model=BookingPaymentResponse)
def apply_payment(
    booking_id: int,
    payload: BookingPaymentRequest,
    session: Session = Depends(get_db_session),
) -> BookingPaymentResponse:
    result = BookingLedger(session).apply_payment(booking_id, payload.amount)
    return BookingPaymentResponse(
        booking=BookingView.model_validate(result.booking),
        amount=result.payment.amount,
        shares_unlocked=result.shares_unlocked,
    )


@router.post("/{booking_id}/reduce", response_model=BookingView)
def reduce_booking(
    booking_id: int,
    payload: BookingReduceRequest,
    session: Session = Depends(get_db_session),
) -> BookingView:
    return BookingView.model_validate(BookingLedger(session).reduce_quantity(booking_id, payload.new_quantity))


@router.post("/{booking_id}/cancel", response_model=BookingView)
def cancel_booking(
    booking_id: int,
    payload: BookingCancelRequest,
    session: Session = Depends(get_db_session),
) -> BookingView:
    return BookingView.model_validate(BookingLedger(session).cancel(booking_id, reason=payload.reason))
