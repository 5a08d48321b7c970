"""
Per-minute call sessions.

A call is a booking on a per_minute service. Its call_status walks

    scheduled | ready_to_call -> ringing -> connecting -> in_call -> completed
                                 ringing -> missed | cancelled (declined)

Creating the call holds up to ``call_max_hold_minutes`` worth of credit; when
the call ends the used minutes are released to the model and the rest is
refunded.
"""
import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from ..models import Booking, Customer, Model, ModelService, Service, Transaction
from ..utils import ensure_utc, utcnow
from .audit_service import AuditService, audit_failures
from .booking_service import claim_transition
from .catalog_service import CatalogService, minute_rate_of
from .notification_service import NotificationService
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

INITIATABLE = ("ready_to_call", "scheduled")
ENDABLE = ("in_call", "ringing", "connecting")


def new_room_id() -> str:
    return f"call_{uuid.uuid4().hex}"


def new_peer_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def billable_minutes(duration_seconds: int) -> int:
    """Every started minute is billed, with a one minute minimum"""
    return max(1, math.ceil(duration_seconds / 60))


def remaining_balance(hold_amount: int, duration_seconds: int, minute_rate: int) -> int:
    return max(0, hold_amount - math.ceil(duration_seconds / 60) * minute_rate)


def _duration_seconds(booking: Booking, until: Optional[datetime] = None) -> int:
    if booking.call_started_at is None:
        return 0
    until = until or utcnow()
    return max(0, int((until - ensure_utc(booking.call_started_at)).total_seconds()))


async def _display_name(db: AsyncSession, role: str, user_id: int) -> str:
    user = await db.get(Customer if role == "customer" else Model, user_id)
    return user.first_name if user else "Someone"


class CallService:
    @staticmethod
    async def _get(db: AsyncSession, booking_id: int) -> Booking:
        booking = await db.get(Booking, booking_id)
        if booking is None or booking.call_type is None:
            raise NotFoundError("Call booking")
        return booking

    @staticmethod
    def _ensure_participant(booking: Booking, role: str, user_id: int) -> None:
        owner = booking.customer_id if role == "customer" else booking.model_id
        if owner != user_id:
            raise PermissionDeniedError("You are not a participant of this call")

    @staticmethod
    async def _pricing(db: AsyncSession, booking: Booking) -> tuple:
        """Return (minute_rate, commission_rate, hold_amount) for a call booking"""
        minute_rate = 0
        commission = 0.0
        if booking.model_service_id is not None:
            application = await db.get(ModelService, booking.model_service_id)
            if application is not None:
                service = await db.get(Service, application.service_id)
                if service is not None:
                    minute_rate = minute_rate_of(service, application)
                    commission = float(service.commission or 0)
        hold_amount = booking.price
        if booking.hold_transaction_id is not None:
            hold_tx = await db.get(Transaction, booking.hold_transaction_id)
            if hold_tx is not None:
                hold_amount = -hold_tx.amount
        return minute_rate, commission, hold_amount

    @staticmethod
    @audit_failures("call_booking_created")
    async def create_call_booking(
        db: AsyncSession,
        customer: Customer,
        model_service_id: int,
        call_type: str = "video",
        scheduled_time: Optional[datetime] = None,
    ) -> dict:
        application, service = await CatalogService.load_bookable(db, model_service_id)
        if service.billing_type != "per_minute":
            raise ValidationFailedError("This service does not support call booking")
        rate = minute_rate_of(service, application)
        if rate <= 0:
            raise ValidationFailedError("Call service rate not configured")

        wallet = await WalletService.get_wallet(db, customer_id=customer.id)
        if wallet.total_balance < rate:
            raise InsufficientBalanceError(rate, wallet.total_balance)
        hold_amount = min(wallet.total_balance, rate * settings.call_max_hold_minutes)

        scheduled_time = ensure_utc(scheduled_time)
        initial = "scheduled" if scheduled_time is not None and scheduled_time > utcnow() else "ready_to_call"

        hold_tx = await WalletService.hold(
            db, customer.id, hold_amount, "call_hold", f"Call credit held for {service.name}")
        booking = Booking(
            customer_id=customer.id,
            model_id=application.model_id,
            model_service_id=application.id,
            price=hold_amount,
            status=initial,
            payment_status="held",
            hold_transaction_id=hold_tx.id,
            call_type=call_type,
            call_status=initial,
            call_room_id=new_room_id(),
            customer_peer_id=new_peer_id("cust"),
            scheduled_call_time=scheduled_time,
            start_date=scheduled_time or utcnow(),
        )
        db.add(booking)
        await db.flush()
        AuditService.record(db, "call_booking_created", customer_id=customer.id, model_id=application.model_id,
                            payload={"booking_id": booking.id, "hold": hold_amount, "rate": rate})
        await db.commit()
        await db.refresh(booking)

        return {
            "booking": booking,
            "minute_rate": rate,
            "hold_amount": hold_amount,
            "max_minutes": hold_amount // rate,
        }

    @staticmethod
    async def get_call(db: AsyncSession, booking_id: int, role: str, user_id: int) -> dict:
        booking = await CallService._get(db, booking_id)
        CallService._ensure_participant(booking, role, user_id)
        return await CallService.describe(db, booking)

    @staticmethod
    async def describe(db: AsyncSession, booking: Booking) -> dict:
        minute_rate, _, hold_amount = await CallService._pricing(db, booking)
        duration = _duration_seconds(booking) if booking.call_status == "in_call" else 0
        if booking.call_status == "completed" and booking.call_ended_at is not None:
            duration = _duration_seconds(booking, ensure_utc(booking.call_ended_at))
        return {
            "booking": booking,
            "minute_rate": minute_rate,
            "hold_amount": hold_amount,
            "max_minutes": hold_amount // minute_rate if minute_rate else 0,
            "duration_seconds": duration,
        }

    @staticmethod
    @audit_failures("call_initiated")
    async def initiate_call(db: AsyncSession, booking_id: int, customer: Customer) -> Booking:
        booking = await CallService._get(db, booking_id)
        CallService._ensure_participant(booking, "customer", customer.id)
        if booking.call_status not in INITIATABLE:
            raise InvalidStateError(f"Cannot initiate call with status: {booking.call_status}")

        await claim_transition(db, booking, {"call_status": INITIATABLE}, {"call_status": "ringing"},
                               "The call changed status in the meantime")
        booking.call_ringing_at = utcnow()
        booking.model_peer_id = new_peer_id("model")
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "model", booking.model_id, "incoming_call",
            {
                "booking_id": booking.id,
                "call_room_id": booking.call_room_id,
                "customer_peer_id": booking.customer_peer_id,
                "model_peer_id": booking.model_peer_id,
                "call_type": booking.call_type,
                "url": f"/model/calls/{booking.id}",
            },
            name=await _display_name(db, "customer", customer.id))
        return booking

    @staticmethod
    @audit_failures("call_accepted")
    async def accept_call(db: AsyncSession, booking_id: int, model: Model) -> Booking:
        booking = await CallService._get(db, booking_id)
        CallService._ensure_participant(booking, "model", model.id)
        if booking.call_status != "ringing":
            raise InvalidStateError(f"Cannot accept call with status: {booking.call_status}")
        await claim_transition(db, booking, {"call_status": "ringing"},
                               {"call_status": "connecting", "status": "confirmed"},
                               "The call changed status in the meantime")
        await db.commit()
        await db.refresh(booking)
        return booking

    @staticmethod
    @audit_failures("call_declined")
    async def decline_call(db: AsyncSession, booking_id: int, model: Model) -> Booking:
        booking = await CallService._get(db, booking_id)
        CallService._ensure_participant(booking, "model", model.id)
        if booking.call_status != "ringing":
            raise InvalidStateError(f"Cannot decline call with status: {booking.call_status}")

        await claim_transition(db, booking, {"call_status": "ringing"},
                               {"call_status": "cancelled", "status": "rejected"},
                               "The call changed status in the meantime")
        _, _, hold_amount = await CallService._pricing(db, booking)
        await WalletService.refund(db, booking.customer_id, hold_amount, booking.hold_transaction_id,
                                   "call_refund", f"Refund for declined call #{booking.id}")
        booking.payment_status = "refunded"
        booking.reject_reason = "Model declined the call"
        AuditService.record(db, "call_declined", customer_id=booking.customer_id, model_id=model.id,
                            payload={"booking_id": booking.id, "refunded": hold_amount})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "customer", booking.customer_id, "booking_rejected", {"booking_id": booking.id},
            name=await _display_name(db, "model", model.id), reason=booking.reject_reason)
        await NotificationService.notify(
            db, "customer", booking.customer_id, "payment_refunded",
            {"booking_id": booking.id, "amount": hold_amount})
        return booking

    @staticmethod
    @audit_failures("call_started")
    async def start_timer(db: AsyncSession, booking_id: int, role: str, user_id: int) -> Booking:
        booking = await CallService._get(db, booking_id)
        CallService._ensure_participant(booking, role, user_id)
        if booking.call_status != "connecting":
            raise InvalidStateError(f"Cannot start timer with status: {booking.call_status}")
        now = utcnow()
        await claim_transition(db, booking, {"call_status": "connecting"},
                               {"call_status": "in_call", "status": "in_progress"},
                               "The call changed status in the meantime")
        booking.call_started_at = now
        booking.call_last_heartbeat = now
        await db.commit()
        await db.refresh(booking)
        return booking

    @staticmethod
    async def heartbeat(db: AsyncSession, booking_id: int, role: str, user_id: int) -> dict:
        booking = await CallService._get(db, booking_id)
        CallService._ensure_participant(booking, role, user_id)
        if booking.call_status != "in_call":
            raise InvalidStateError("Call is not active")

        booking.call_last_heartbeat = utcnow()
        await db.commit()

        minute_rate, _, hold_amount = await CallService._pricing(db, booking)
        duration = _duration_seconds(booking)
        return {
            "booking_id": booking.id,
            "duration_seconds": duration,
            "remaining_balance": remaining_balance(hold_amount, duration, minute_rate),
        }

    @staticmethod
    @audit_failures("call_ended")
    async def end_call(
        db: AsyncSession,
        booking_id: int,
        ended_by: str,
        user_id: Optional[int] = None,
        ended_at: Optional[datetime] = None,
    ) -> dict:
        """End a call and settle it. ``ended_by`` is customer, model or system."""
        booking = await CallService._get(db, booking_id)
        if ended_by in ("customer", "model"):
            CallService._ensure_participant(booking, ended_by, user_id)
        if booking.call_status not in ENDABLE:
            raise InvalidStateError(f"Cannot end call with status: {booking.call_status}")

        now = ended_at or utcnow()
        minute_rate, commission_rate, hold_amount = await CallService._pricing(db, booking)
        duration = _duration_seconds(booking, now)
        minutes = billable_minutes(duration)
        cost = min(minutes * minute_rate, hold_amount)
        refund = hold_amount - cost

        await claim_transition(db, booking, {"call_status": ENDABLE},
                               {"call_status": "completed", "status": "completed", "payment_status": "released"},
                               "The call changed status in the meantime")
        earning = await WalletService.release(
            db, booking.model_id, cost, booking.hold_transaction_id, commission_rate,
            "call_earning", f"Earning from call #{booking.id} ({minutes} min)")
        if refund > 0:
            await WalletService.refund(
                db, booking.customer_id, refund, None, "call_refund_unused",
                f"Unused balance refund for call #{booking.id} ({minutes} minutes used)")

        booking.call_ended_at = now
        booking.completed_at = now
        booking.minutes = minutes
        booking.price = cost
        booking.release_transaction_id = earning.id
        AuditService.record(
            db, "call_ended", customer_id=booking.customer_id, model_id=booking.model_id,
            description=f"Call ended by {ended_by}. Duration: {minutes} min, Cost: {cost}, Refund: {refund}",
            payload={"booking_id": booking.id, "minutes": minutes, "cost": cost, "refund": refund})
        await db.commit()
        await db.refresh(booking)

        if ended_by != "customer":
            await NotificationService.notify(
                db, "customer", booking.customer_id, "call_ended", {"booking_id": booking.id, "minutes": minutes},
                name=await _display_name(db, "model", booking.model_id))
        if ended_by != "model":
            await NotificationService.notify(
                db, "model", booking.model_id, "call_ended", {"booking_id": booking.id, "minutes": minutes},
                name=await _display_name(db, "customer", booking.customer_id))

        return {
            "booking_id": booking.id,
            "minutes": minutes,
            "cost": cost,
            "refunded": refund,
            "ended_by": ended_by,
        }

    @staticmethod
    @audit_failures("call_missed")
    async def mark_missed(db: AsyncSession, booking_id: int) -> Booking:
        booking = await CallService._get(db, booking_id)
        if booking.call_status != "ringing":
            raise InvalidStateError(f"Cannot mark as missed with status: {booking.call_status}")

        await claim_transition(db, booking, {"call_status": "ringing"},
                               {"call_status": "missed", "status": "cancelled", "payment_status": "refunded"},
                               "The call changed status in the meantime")
        _, _, hold_amount = await CallService._pricing(db, booking)
        await WalletService.refund(db, booking.customer_id, hold_amount, booking.hold_transaction_id,
                                   "call_refund", f"Refund for missed call #{booking.id}")
        AuditService.record(db, "call_missed", customer_id=booking.customer_id, model_id=booking.model_id,
                            payload={"booking_id": booking.id, "refunded": hold_amount})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "customer", booking.customer_id, "call_missed", {"booking_id": booking.id, "amount": hold_amount},
            name=await _display_name(db, "model", booking.model_id))
        await NotificationService.notify(
            db, "model", booking.model_id, "call_missed", {"booking_id": booking.id},
            name=await _display_name(db, "customer", booking.customer_id))
        return booking

    @staticmethod
    async def register_peer(db: AsyncSession, booking_id: int, role: str, user_id: int, peer_id: str) -> Booking:
        booking = await CallService._get(db, booking_id)
        CallService._ensure_participant(booking, role, user_id)
        if role == "customer":
            booking.customer_peer_id = peer_id
        else:
            booking.model_peer_id = peer_id
        await db.commit()
        await db.refresh(booking)
        return booking

    @staticmethod
    async def call_history(
        db: AsyncSession, role: str, user_id: int, limit: int = 20, offset: int = 0
    ) -> List[Booking]:
        owner = Booking.customer_id if role == "customer" else Booking.model_id
        result = await db.execute(
            select(Booking)
            .where(owner == user_id, Booking.call_type.is_not(None))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def sweep_stale_calls(db: AsyncSession, now: Optional[datetime] = None) -> dict:
        """Miss unanswered calls and end calls whose heartbeats stopped"""
        now = now or utcnow()
        ring_cutoff = now - timedelta(seconds=settings.call_ring_timeout_seconds)
        heartbeat_cutoff = now - timedelta(seconds=settings.call_heartbeat_timeout_seconds)

        missed_ids = (await db.execute(
            select(Booking.id).where(Booking.call_status == "ringing", Booking.call_ringing_at <= ring_cutoff)
        )).scalars().all()
        stale = (await db.execute(
            select(Booking.id, Booking.call_last_heartbeat).where(
                Booking.call_status == "in_call", Booking.call_last_heartbeat <= heartbeat_cutoff)
        )).all()

        missed = ended = 0
        for booking_id in missed_ids:
            try:
                await CallService.mark_missed(db, booking_id)
                missed += 1
            except Exception as e:
                await db.rollback()
                logger.error(f"Failed to mark call {booking_id} as missed: {e}")
        for booking_id, last_heartbeat in stale:
            try:
                # Bill up to the last sign of life, not up to the sweep
                await CallService.end_call(db, booking_id, "system", ended_at=ensure_utc(last_heartbeat))
                ended += 1
            except Exception as e:
                await db.rollback()
                logger.error(f"Failed to end stale call {booking_id}: {e}")

        if missed or ended:
            logger.info(f"Call sweep: {missed} missed, {ended} ended")
        return {"missed": missed, "ended": ended}
