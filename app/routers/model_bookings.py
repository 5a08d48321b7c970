from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Model
from ..schemas import (
    BookingResponse,
    CheckInRequest,
    CheckInStatusResponse,
    CompletionResponse,
    CountResponse,
    RejectRequest,
)
from ..services.booking_service import BookingService
from ..services.jwt_service import get_current_model

router = APIRouter(
    prefix="/model/bookings",
    tags=["model bookings"],
    responses={404: {"description": "Booking not found"}},
)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.list_model_bookings(db, model.id, status_filter, limit, offset)


@router.get("/pending-count", response_model=CountResponse)
async def pending_count(
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return CountResponse(count=await BookingService.pending_count(db, model.id))


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.get_for_model(db, booking_id, model.id)


@router.post("/{booking_id}/accept", response_model=BookingResponse)
async def accept_booking(
    booking_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.accept_booking(db, booking_id, model)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: int,
    payload: Optional[RejectRequest] = None,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending booking; the customer's hold is refunded in full."""
    reason = payload.reason if payload else None
    return await BookingService.reject_booking(db, booking_id, model, reason)


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    await BookingService.delete_model_booking(db, booking_id, model)


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in(
    booking_id: int,
    payload: CheckInRequest,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.check_in(
        db, booking_id, "model", model.id, payload.latitude, payload.longitude)


@router.get("/{booking_id}/check-in-status", response_model=CheckInStatusResponse)
async def check_in_status(
    booking_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService.get_for_model(db, booking_id, model.id)
    return BookingService.checkin_status(booking)


@router.post("/{booking_id}/complete", response_model=CompletionResponse)
async def complete_booking(
    booking_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    """
    Mark the booking as delivered.

    Starts the customer's confirmation window and returns the one-time
    completion token the model shows as a QR code. If the customer neither
    confirms nor disputes, payment is released automatically.
    """
    return await BookingService.complete_booking(db, booking_id, model)
