from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Customer
from ..schemas import (
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    CheckInRequest,
    CheckInStatusResponse,
    ConfirmByTokenRequest,
    DisputeRequest,
)
from ..services.booking_service import BookingService
from ..services.jwt_service import get_current_customer

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    responses={404: {"description": "Booking not found"}},
)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a model's service.

    The price is calculated from the service's billing type and held from the
    customer's wallet until the booking completes or is cancelled.
    """
    data = payload.model_dump()
    if payload.session_type is not None:
        data["session_type"] = payload.session_type.value
    return await BookingService.create_booking(db, customer, data)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.list_customer_bookings(db, customer.id, status_filter, limit, offset)


@router.post("/confirm-by-token", response_model=BookingResponse)
async def confirm_by_token(
    payload: ConfirmByTokenRequest,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Confirm completion by scanning the QR code shown by the model."""
    return await BookingService.confirm_by_token(db, payload.token, customer)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.get_for_customer(db, booking_id, customer.id)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    payload: BookingUpdate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Edit a pending booking; a price change adjusts the wallet hold."""
    changes = payload.model_dump(exclude_unset=True)
    if payload.session_type is not None:
        changes["session_type"] = payload.session_type.value
    return await BookingService.update_booking(db, booking_id, customer, changes)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.cancel_booking(db, booking_id, customer)


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    await BookingService.delete_customer_booking(db, booking_id, customer)


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in(
    booking_id: int,
    payload: CheckInRequest,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    GPS check-in at the meeting location.

    Allowed from shortly before the start time until the end of the booking,
    within the configured radius of the booking location.
    """
    return await BookingService.check_in(
        db, booking_id, "customer", customer.id, payload.latitude, payload.longitude)


@router.get("/{booking_id}/check-in-status", response_model=CheckInStatusResponse)
async def check_in_status(
    booking_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService.get_for_customer(db, booking_id, customer.id)
    return BookingService.checkin_status(booking)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_completion(
    booking_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Confirm the model's completion and release the held payment."""
    return await BookingService.confirm_completion(db, booking_id, customer)


@router.post("/{booking_id}/dispute", response_model=BookingResponse)
async def dispute_booking(
    booking_id: int,
    payload: DisputeRequest,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.dispute_booking(db, booking_id, customer, payload.reason)
