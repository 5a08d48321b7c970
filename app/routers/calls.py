from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Customer, Model
from ..schemas import (
    CallBookingCreate,
    CallEndResponse,
    CallSessionResponse,
    HeartbeatResponse,
    PeerRegisterRequest,
)
from ..services.call_service import CallService
from ..services.jwt_service import JWTService, Principal, get_current_customer, get_current_model

router = APIRouter(
    prefix="/calls",
    tags=["calls"],
    responses={404: {"description": "Call booking not found"}},
)


def _session(info: dict) -> CallSessionResponse:
    """Merge the booking row with the computed pricing fields."""
    session = CallSessionResponse.model_validate(info["booking"])
    return session.model_copy(update={k: v for k, v in info.items() if k != "booking"})


async def _describe(db: AsyncSession, booking) -> CallSessionResponse:
    return _session(await CallService.describe(db, booking))


@router.post("", response_model=CallSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_call_booking(
    payload: CallBookingCreate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a per-minute call with a model.

    Holds up to the maximum call length worth of credit from the wallet;
    the unused part is refunded when the call ends.
    """
    info = await CallService.create_call_booking(
        db, customer, payload.model_service_id, payload.call_type, payload.scheduled_time)
    return _session(info)


@router.get("/history", response_model=List[CallSessionResponse])
async def call_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    bookings = await CallService.call_history(db, principal.role, principal.id, limit, offset)
    return [await _describe(db, booking) for booking in bookings]


@router.get("/{booking_id}", response_model=CallSessionResponse)
async def get_call(
    booking_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return _session(await CallService.get_call(db, booking_id, principal.role, principal.id))


@router.post("/{booking_id}/initiate", response_model=CallSessionResponse)
async def initiate_call(
    booking_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Ring the model. The model receives an incoming-call notification with both peer IDs."""
    booking = await CallService.initiate_call(db, booking_id, customer)
    return await _describe(db, booking)


@router.post("/{booking_id}/accept", response_model=CallSessionResponse)
async def accept_call(
    booking_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    booking = await CallService.accept_call(db, booking_id, model)
    return await _describe(db, booking)


@router.post("/{booking_id}/decline", response_model=CallSessionResponse)
async def decline_call(
    booking_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    booking = await CallService.decline_call(db, booking_id, model)
    return await _describe(db, booking)


@router.post("/{booking_id}/start", response_model=CallSessionResponse)
async def start_timer(
    booking_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Start billing once the peer connection is established."""
    booking = await CallService.start_timer(db, booking_id, principal.role, principal.id)
    return await _describe(db, booking)


@router.post("/{booking_id}/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    booking_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await CallService.heartbeat(db, booking_id, principal.role, principal.id)


@router.post("/{booking_id}/end", response_model=CallEndResponse)
async def end_call(
    booking_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """End the call, pay the model for the minutes used and refund the rest."""
    return await CallService.end_call(db, booking_id, principal.role, principal.id)


@router.post("/{booking_id}/missed", response_model=CallSessionResponse)
async def mark_missed(
    booking_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await CallService.get_call(db, booking_id, principal.role, principal.id)
    booking = await CallService.mark_missed(db, booking_id)
    return await _describe(db, booking)


@router.post("/{booking_id}/peer", response_model=CallSessionResponse)
async def register_peer(
    booking_id: int,
    payload: PeerRegisterRequest,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Record the caller's WebRTC peer ID so the other side can connect."""
    booking = await CallService.register_peer(db, booking_id, principal.role, principal.id, payload.peer_id)
    return await _describe(db, booking)
