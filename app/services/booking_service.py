"""
Service booking lifecycle.

    pending -> confirmed -> in_progress -> awaiting_confirmation -> completed | disputed
    pending -> rejected
    pending | confirmed -> cancelled

Money follows the status: the price is held when the booking is created,
refunded on cancel/reject and released to the model (minus commission) when
the customer confirms completion or the auto-release deadline passes.
"""
import logging
import math
import secrets
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from ..models import Booking, Customer, Model
from ..utils import distance_meters, ensure_utc, utcnow
from .audit_service import AuditService, audit_failures
from .catalog_service import CatalogService, quote_price
from .notification_service import NotificationService
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

CANCELLABLE = ("pending", "confirmed")
CHECKIN_ALLOWED = ("confirmed", "in_progress")
COMPLETABLE = ("confirmed", "in_progress")
MODEL_DELETABLE = ("cancelled", "rejected", "completed")
EDITABLE_FIELDS = ("location", "location_lat", "location_lng",
                   "preferred_attire", "start_date", "end_date")


def check_in_window(start_date: datetime, end_date: Optional[datetime], now: Optional[datetime] = None) -> None:
    """Raise unless now is between (start - window) and end."""
    now = now or utcnow()
    opens_at = ensure_utc(start_date) - timedelta(minutes=settings.checkin_window_before_minutes)
    if now < opens_at:
        minutes_until = math.ceil((opens_at - now).total_seconds() / 60)
        raise ValidationFailedError(
            f"Check-in opens in {minutes_until} minutes "
            f"({settings.checkin_window_before_minutes} minutes before the booking starts)")
    if end_date is not None and now > ensure_utc(end_date):
        raise ValidationFailedError("This booking has already ended")


def check_in_distance(booking: Booking, latitude: float, longitude: float) -> Optional[int]:
    """Raise when the booking has a location and the caller is too far from it.

    Returns the rounded distance in metres, or None when the booking has no location.
    """
    if booking.location_lat is None or booking.location_lng is None:
        return None
    distance = round(distance_meters(booking.location_lat, booking.location_lng, latitude, longitude))
    if distance > settings.checkin_radius_meters:
        raise ValidationFailedError(
            f"You are {distance}m away from the booking location. "
            f"Please move closer (within {settings.checkin_radius_meters}m) to check in")
    return distance


def can_cancel(start_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if start_date is None:
        return True
    now = now or utcnow()
    hours_until = (ensure_utc(start_date) - now).total_seconds() / 3600
    return hours_until >= settings.cancel_cutoff_hours


def generate_completion_token() -> str:
    return f"xao_{secrets.token_urlsafe(24)}"


async def claim_transition(db: AsyncSession, booking: Booking, expected: dict, changes: dict, message: str) -> None:
    """Apply ``changes`` only if the stored row still matches ``expected``.

    Runs as a conditional UPDATE before any wallet write, so of two concurrent
    transitions from the same status only one matches the row. The loser's
    unit of work is rolled back and it gets InvalidStateError.
    """
    booking_id = booking.id
    conditions = [Booking.id == booking_id]
    for field, allowed in expected.items():
        column = getattr(Booking, field)
        conditions.append(column.in_(allowed) if isinstance(allowed, tuple) else column == allowed)
    result = await db.execute(
        update(Booking)
        .where(*conditions)
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.warning(f"Booking {booking_id} changed concurrently; expected {expected}")
        raise InvalidStateError(message)
    for field, value in changes.items():
        setattr(booking, field, value)


async def _name_of(db: AsyncSession, role: str, user_id: int) -> str:
    user = await db.get(Customer if role == "customer" else Model, user_id)
    if user is None:
        return "Someone"
    return " ".join(p for p in (user.first_name, user.last_name) if p)


class BookingService:
    @staticmethod
    async def _get(db: AsyncSession, booking_id: int) -> Booking:
        booking = await db.get(Booking, booking_id)
        if booking is None or booking.call_type is not None:
            raise NotFoundError("Booking")
        return booking

    @staticmethod
    async def get_for_customer(db: AsyncSession, booking_id: int, customer_id: int) -> Booking:
        booking = await BookingService._get(db, booking_id)
        if booking.customer_id != customer_id:
            raise PermissionDeniedError("This booking does not belong to you")
        return booking

    @staticmethod
    async def get_for_model(db: AsyncSession, booking_id: int, model_id: int) -> Booking:
        booking = await BookingService._get(db, booking_id)
        if booking.model_id != model_id:
            raise PermissionDeniedError("This booking does not belong to you")
        return booking

    # Customer side

    @staticmethod
    @audit_failures("booking_created")
    async def create_booking(db: AsyncSession, customer: Customer, data: dict) -> Booking:
        application, service = await CatalogService.load_bookable(db, data["model_service_id"])
        session_type = data.get("session_type")
        _, _, total = quote_price(service, application, data.get("day_amount"), data.get("hours"), session_type)

        start_date = ensure_utc(data["start_date"])
        end_date = ensure_utc(data.get("end_date"))
        if start_date <= utcnow():
            raise ValidationFailedError("Start date must be in the future")
        if end_date is not None and end_date <= start_date:
            raise ValidationFailedError("End date must be after the start date")

        hold_tx = await WalletService.hold(
            db, customer.id, total, "booking_hold", f"Payment held for {service.name} booking")

        booking = Booking(
            customer_id=customer.id,
            model_id=application.model_id,
            model_service_id=application.id,
            price=total,
            day_amount=data.get("day_amount"),
            hours=data.get("hours"),
            session_type=session_type,
            location=data.get("location"),
            location_lat=data.get("location_lat"),
            location_lng=data.get("location_lng"),
            preferred_attire=data.get("preferred_attire"),
            start_date=start_date,
            end_date=end_date,
            status="pending",
            payment_status="held",
            hold_transaction_id=hold_tx.id,
        )
        db.add(booking)
        await db.flush()
        AuditService.record(db, "booking_created", customer_id=customer.id, model_id=application.model_id,
                            description=f"Booked {service.name} for {total}",
                            payload={"booking_id": booking.id, "price": total})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "model", booking.model_id, "booking_created",
            {"booking_id": booking.id, "price": booking.price},
            name=await _name_of(db, "customer", customer.id))
        return booking

    @staticmethod
    @audit_failures("booking_edited")
    async def update_booking(db: AsyncSession, booking_id: int, customer: Customer, changes: dict) -> Booking:
        booking = await BookingService.get_for_customer(db, booking_id, customer.id)
        if booking.status != "pending":
            raise InvalidStateError("Only pending bookings can be edited")

        edits = {}
        for field in EDITABLE_FIELDS:
            value = changes.get(field)
            if value is not None:
                edits[field] = ensure_utc(value) if field in ("start_date", "end_date") else value
        start_date = edits.get("start_date", ensure_utc(booking.start_date))
        end_date = edits.get("end_date", ensure_utc(booking.end_date))
        if "start_date" in edits and start_date <= utcnow():
            raise ValidationFailedError("Start date must be in the future")
        if end_date is not None and start_date is not None and end_date <= start_date:
            raise ValidationFailedError("End date must be after the start date")

        if any(changes.get(k) is not None for k in ("day_amount", "hours", "session_type")):
            application, service = await CatalogService.load_bookable(db, booking.model_service_id)
            edits["day_amount"] = changes.get("day_amount") or booking.day_amount
            edits["hours"] = changes.get("hours") or booking.hours
            edits["session_type"] = changes.get("session_type") or booking.session_type
            _, _, total = quote_price(service, application, edits["day_amount"], edits["hours"],
                                      edits["session_type"])
            delta = total - booking.price
            if delta:
                await WalletService.adjust_hold(
                    db, customer.id, booking.hold_transaction_id, delta,
                    f"Hold adjusted for edited booking #{booking.id}")
            edits["price"] = total

        await claim_transition(db, booking, {"status": "pending"}, edits or {"status": "pending"},
                               "Only pending bookings can be edited")

        AuditService.record(db, "booking_edited", customer_id=customer.id, model_id=booking.model_id,
                            payload={"booking_id": booking.id, "price": booking.price})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "model", booking.model_id, "booking_edited", {"booking_id": booking.id},
            name=await _name_of(db, "customer", customer.id))
        return booking

    @staticmethod
    @audit_failures("booking_cancelled")
    async def cancel_booking(db: AsyncSession, booking_id: int, customer: Customer) -> Booking:
        booking = await BookingService.get_for_customer(db, booking_id, customer.id)
        if booking.status not in CANCELLABLE:
            raise InvalidStateError("This booking cannot be cancelled. Please contact support")
        if not can_cancel(booking.start_date):
            raise InvalidStateError(
                f"Cannot cancel within {settings.cancel_cutoff_hours} hours of booking start time. "
                "Please contact support")

        await claim_transition(db, booking, {"status": CANCELLABLE}, {"status": "cancelled"},
                               "This booking cannot be cancelled. Please contact support")
        refunded = 0
        if booking.payment_status == "held":
            await WalletService.refund(db, customer.id, booking.price, booking.hold_transaction_id,
                                       "booking_refund", f"Refund for cancelled booking #{booking.id}")
            booking.payment_status = "refunded"
            refunded = booking.price
        AuditService.record(db, "booking_cancelled", customer_id=customer.id, model_id=booking.model_id,
                            payload={"booking_id": booking.id, "refunded": refunded})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "model", booking.model_id, "booking_cancelled", {"booking_id": booking.id},
            name=await _name_of(db, "customer", customer.id))
        if refunded:
            await NotificationService.notify(
                db, "customer", customer.id, "payment_refunded",
                {"booking_id": booking.id, "amount": refunded})
        return booking

    @staticmethod
    async def delete_customer_booking(db: AsyncSession, booking_id: int, customer: Customer) -> None:
        booking = await BookingService.get_for_customer(db, booking_id, customer.id)
        if booking.status == "pending":
            raise InvalidStateError("A pending booking can't be deleted. Cancel it first")
        if booking.payment_status in ("held", "pending_release"):
            raise InvalidStateError("This booking still has payment in escrow")
        await db.delete(booking)
        AuditService.record(db, "booking_deleted", customer_id=customer.id, model_id=booking.model_id,
                            payload={"booking_id": booking_id})
        await db.commit()

    @staticmethod
    async def list_customer_bookings(
        db: AsyncSession, customer_id: int, status: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> List[Booking]:
        stmt = select(Booking).where(Booking.customer_id == customer_id, Booking.call_type.is_(None))
        if status:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # Model side

    @staticmethod
    async def list_model_bookings(
        db: AsyncSession, model_id: int, status: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> List[Booking]:
        stmt = select(Booking).where(Booking.model_id == model_id, Booking.call_type.is_(None))
        if status:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def pending_count(db: AsyncSession, model_id: int) -> int:
        count = await db.scalar(
            select(func.count(Booking.id)).where(
                Booking.model_id == model_id,
                Booking.status == "pending",
                Booking.call_type.is_(None),
            )
        )
        return count or 0

    @staticmethod
    @audit_failures("booking_accepted")
    async def accept_booking(db: AsyncSession, booking_id: int, model: Model) -> Booking:
        booking = await BookingService.get_for_model(db, booking_id, model.id)
        if booking.status != "pending":
            raise InvalidStateError("Only pending bookings can be accepted")
        await claim_transition(db, booking, {"status": "pending"}, {"status": "confirmed"},
                               "Only pending bookings can be accepted")
        AuditService.record(db, "booking_accepted", customer_id=booking.customer_id, model_id=model.id,
                            payload={"booking_id": booking.id})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "customer", booking.customer_id, "booking_confirmed", {"booking_id": booking.id},
            name=await _name_of(db, "model", model.id))
        return booking

    @staticmethod
    @audit_failures("booking_rejected")
    async def reject_booking(db: AsyncSession, booking_id: int, model: Model, reason: Optional[str] = None) -> Booking:
        booking = await BookingService.get_for_model(db, booking_id, model.id)
        if booking.status != "pending":
            raise InvalidStateError("Only pending bookings can be rejected")

        await claim_transition(db, booking, {"status": "pending"},
                               {"status": "rejected", "reject_reason": reason},
                               "Only pending bookings can be rejected")
        if booking.payment_status == "held":
            await WalletService.refund(db, booking.customer_id, booking.price, booking.hold_transaction_id,
                                       "booking_refund", f"Refund for rejected booking #{booking.id}")
            booking.payment_status = "refunded"
        AuditService.record(db, "booking_rejected", customer_id=booking.customer_id, model_id=model.id,
                            description=reason, payload={"booking_id": booking.id})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "customer", booking.customer_id, "booking_rejected", {"booking_id": booking.id},
            name=await _name_of(db, "model", model.id), reason=reason or "")
        if booking.payment_status == "refunded":
            await NotificationService.notify(
                db, "customer", booking.customer_id, "payment_refunded",
                {"booking_id": booking.id, "amount": booking.price})
        return booking

    @staticmethod
    async def delete_model_booking(db: AsyncSession, booking_id: int, model: Model) -> None:
        booking = await BookingService.get_for_model(db, booking_id, model.id)
        if booking.status not in MODEL_DELETABLE:
            raise InvalidStateError("Only cancelled, rejected, or completed bookings can be deleted")
        await db.delete(booking)
        AuditService.record(db, "booking_deleted", customer_id=booking.customer_id, model_id=model.id,
                            payload={"booking_id": booking_id})
        await db.commit()

    # Check-in

    @staticmethod
    async def check_in(
        db: AsyncSession, booking_id: int, role: str, user_id: int, latitude: float, longitude: float
    ) -> Booking:
        if role == "model":
            booking = await BookingService.get_for_model(db, booking_id, user_id)
            already = booking.model_checked_in_at is not None
        else:
            booking = await BookingService.get_for_customer(db, booking_id, user_id)
            already = booking.customer_checked_in_at is not None

        if booking.status not in CHECKIN_ALLOWED:
            raise InvalidStateError("Can only check in for confirmed bookings")
        if already:
            raise InvalidStateError("You have already checked in for this booking")
        check_in_window(booking.start_date, booking.end_date)
        check_in_distance(booking, latitude, longitude)

        now = utcnow()
        if role == "model":
            booking.model_checked_in_at = now
            booking.model_check_in_lat = latitude
            booking.model_check_in_lng = longitude
        else:
            booking.customer_checked_in_at = now
            booking.customer_check_in_lat = latitude
            booking.customer_check_in_lng = longitude

        if booking.model_checked_in_at is not None and booking.customer_checked_in_at is not None:
            booking.status = "in_progress"

        AuditService.record(db, f"booking_checkin_{role}", customer_id=booking.customer_id,
                            model_id=booking.model_id, payload={"booking_id": booking.id})
        await db.commit()
        await db.refresh(booking)

        other = "customer" if role == "model" else "model"
        other_id = booking.customer_id if role == "model" else booking.model_id
        await NotificationService.notify(
            db, other, other_id, f"booking_checkin_{role}",
            {"booking_id": booking.id, "both_checked_in": booking.status == "in_progress"},
            name=await _name_of(db, role, user_id))
        return booking

    @staticmethod
    def checkin_status(booking: Booking, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        hours_left = None
        if booking.auto_release_at is not None:
            seconds = (ensure_utc(booking.auto_release_at) - now).total_seconds()
            hours_left = max(0, math.ceil(seconds / 3600))
        return {
            "booking_id": booking.id,
            "status": booking.status,
            "model_checked_in": booking.model_checked_in_at is not None,
            "customer_checked_in": booking.customer_checked_in_at is not None,
            "both_checked_in": booking.model_checked_in_at is not None and booking.customer_checked_in_at is not None,
            "model_checked_in_at": booking.model_checked_in_at,
            "customer_checked_in_at": booking.customer_checked_in_at,
            "hours_until_auto_release": hours_left,
        }

    # Completion and escrow release

    @staticmethod
    @audit_failures("booking_completed_by_model")
    async def complete_booking(db: AsyncSession, booking_id: int, model: Model) -> Booking:
        booking = await BookingService.get_for_model(db, booking_id, model.id)
        if booking.status not in COMPLETABLE:
            raise InvalidStateError("Only in-progress or confirmed bookings can be marked as completed")
        now = utcnow()
        if booking.start_date is not None and now < ensure_utc(booking.start_date):
            raise ValidationFailedError("Cannot complete booking before the scheduled date")

        await claim_transition(db, booking, {"status": COMPLETABLE},
                               {"status": "awaiting_confirmation", "payment_status": "pending_release"},
                               "Only in-progress or confirmed bookings can be marked as completed")
        booking.model_completed_at = now
        booking.auto_release_at = now + timedelta(hours=settings.auto_release_hours)
        booking.completion_token = generate_completion_token()
        booking.completion_token_expires_at = now + timedelta(hours=settings.completion_token_hours)
        AuditService.record(db, "booking_completed_by_model", customer_id=booking.customer_id,
                            model_id=model.id, payload={"booking_id": booking.id})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "customer", booking.customer_id, "booking_completed", {"booking_id": booking.id},
            name=await _name_of(db, "model", model.id), hours=settings.auto_release_hours)
        return booking

    @staticmethod
    async def _release(db: AsyncSession, booking: Booking) -> int:
        """Release the held price to the model; returns the net amount paid out.

        The customer's confirmation and the auto-release job can both reach this
        for the same booking; the claim lets exactly one of them pay out.
        """
        await claim_transition(
            db, booking,
            {"status": "awaiting_confirmation", "payment_status": "pending_release"},
            {"status": "completed", "payment_status": "released"},
            "This booking is not awaiting confirmation")
        rate = await CatalogService.commission_rate(db, booking.model_service_id)
        earning = await WalletService.release(
            db, booking.model_id, booking.price, booking.hold_transaction_id, rate,
            "booking_earning", f"Earning from booking #{booking.id}")
        booking.completed_at = utcnow()
        booking.release_transaction_id = earning.id
        booking.completion_token = None
        booking.completion_token_expires_at = None
        return earning.amount

    @staticmethod
    @audit_failures("booking_confirmed_by_customer")
    async def confirm_completion(db: AsyncSession, booking_id: int, customer: Customer) -> Booking:
        booking = await BookingService.get_for_customer(db, booking_id, customer.id)
        if booking.status != "awaiting_confirmation":
            raise InvalidStateError("This booking is not awaiting confirmation")
        return await BookingService._finish_confirmation(db, booking, customer)

    @staticmethod
    @audit_failures("booking_confirmed_by_customer")
    async def confirm_by_token(db: AsyncSession, token: str, customer: Customer) -> Booking:
        booking = await db.scalar(select(Booking).where(Booking.completion_token == token))
        if booking is None:
            raise ValidationFailedError(
                "Invalid or expired QR code. Please ask the model to generate a new one")
        if booking.customer_id != customer.id:
            raise PermissionDeniedError("This booking does not belong to you")
        if booking.status == "completed":
            raise InvalidStateError("This booking has already been completed")
        if booking.status != "awaiting_confirmation":
            raise InvalidStateError("This booking is not awaiting confirmation")
        expires_at = ensure_utc(booking.completion_token_expires_at)
        if expires_at is not None and expires_at < utcnow():
            raise ValidationFailedError(
                f"This QR code has expired. The booking will be auto-completed within "
                f"{settings.auto_release_hours} hours")
        return await BookingService._finish_confirmation(db, booking, customer)

    @staticmethod
    async def _finish_confirmation(db: AsyncSession, booking: Booking, customer: Customer) -> Booking:
        net = await BookingService._release(db, booking)
        AuditService.record(db, "booking_confirmed_by_customer", customer_id=customer.id,
                            model_id=booking.model_id, payload={"booking_id": booking.id, "released": net})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "model", booking.model_id, "booking_confirmed_completion", {"booking_id": booking.id},
            name=await _name_of(db, "customer", customer.id))
        await NotificationService.notify(
            db, "model", booking.model_id, "payment_released", {"booking_id": booking.id, "amount": net})
        return booking

    @staticmethod
    @audit_failures("booking_disputed")
    async def dispute_booking(db: AsyncSession, booking_id: int, customer: Customer, reason: str) -> Booking:
        reason = (reason or "").strip()
        if len(reason) < settings.dispute_min_reason_length:
            raise ValidationFailedError(
                f"Please provide a detailed reason for the dispute "
                f"(at least {settings.dispute_min_reason_length} characters)")
        booking = await BookingService.get_for_customer(db, booking_id, customer.id)
        if booking.status != "awaiting_confirmation":
            raise InvalidStateError("This booking cannot be disputed at this time")

        await claim_transition(db, booking, {"status": "awaiting_confirmation"}, {"status": "disputed"},
                               "This booking cannot be disputed at this time")
        booking.dispute_reason = reason
        booking.disputed_at = utcnow()
        AuditService.record(db, "booking_disputed", customer_id=customer.id, model_id=booking.model_id,
                            description=reason, payload={"booking_id": booking.id})
        await db.commit()
        await db.refresh(booking)

        await NotificationService.notify(
            db, "model", booking.model_id, "booking_disputed", {"booking_id": booking.id},
            name=await _name_of(db, "customer", customer.id))
        return booking

    @staticmethod
    async def process_auto_release(db: AsyncSession, now: Optional[datetime] = None) -> List[dict]:
        """Complete bookings whose confirmation deadline passed; one failure does not stop the rest"""
        now = now or utcnow()
        result = await db.execute(
            select(Booking.id).where(
                Booking.status == "awaiting_confirmation",
                Booking.payment_status == "pending_release",
                Booking.auto_release_at <= now,
            )
        )
        results = []
        for booking_id in result.scalars().all():
            try:
                booking = await db.get(Booking, booking_id)
                net = await BookingService._release(db, booking)
                AuditService.record(db, "booking_auto_released", customer_id=booking.customer_id,
                                    model_id=booking.model_id, payload={"booking_id": booking.id, "released": net})
                await db.commit()
            except Exception as e:
                await db.rollback()
                logger.error(f"Auto-release failed for booking {booking_id}: {e}")
                await AuditService.record_failure("booking_auto_released", description=str(e),
                                                  payload={"booking_id": booking_id})
                results.append({"booking_id": booking_id, "success": False, "error": str(e)})
                continue

            results.append({"booking_id": booking_id, "success": True, "error": None})
            await NotificationService.notify(
                db, "customer", booking.customer_id, "booking_auto_released", {"booking_id": booking.id})
            await NotificationService.notify(
                db, "model", booking.model_id, "payment_released", {"booking_id": booking.id, "amount": net})

        if results:
            logger.info(f"Auto-release processed {len(results)} bookings")
        return results
