import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ConflictError, NotFoundError, PermissionDeniedError
from ..models import Booking, Customer, Model, Review
from .audit_service import AuditService

logger = logging.getLogger(__name__)


class ReviewService:
    @staticmethod
    async def _existing(db: AsyncSession, customer_id: int, model_id: int) -> Optional[Review]:
        return await db.scalar(
            select(Review).where(Review.customer_id == customer_id, Review.model_id == model_id)
        )

    @staticmethod
    async def _completed_booking(db: AsyncSession, customer_id: int, model_id: int) -> Optional[Booking]:
        return await db.scalar(
            select(Booking)
            .where(
                Booking.customer_id == customer_id,
                Booking.model_id == model_id,
                Booking.status == "completed",
            )
            .order_by(Booking.completed_at.desc())
            .limit(1)
        )

    @staticmethod
    async def can_review(db: AsyncSession, customer_id: int, model_id: int) -> dict:
        if await ReviewService._existing(db, customer_id, model_id) is not None:
            return {"can_review": False, "reason": "already_reviewed"}
        if await ReviewService._completed_booking(db, customer_id, model_id) is None:
            return {"can_review": False, "reason": "no_completed_booking"}
        return {"can_review": True, "reason": None}

    @staticmethod
    async def create_review(
        db: AsyncSession,
        customer: Customer,
        model_id: int,
        rating: int,
        title: Optional[str] = None,
        review_text: Optional[str] = None,
        is_anonymous: bool = False,
    ) -> Review:
        model = await db.get(Model, model_id)
        if model is None:
            raise NotFoundError("Model")
        if await ReviewService._existing(db, customer.id, model_id) is not None:
            raise ConflictError("You have already reviewed this model")
        booking = await ReviewService._completed_booking(db, customer.id, model_id)
        if booking is None:
            raise PermissionDeniedError("You can only review a model after a completed booking")

        review = Review(
            customer_id=customer.id,
            model_id=model_id,
            booking_id=booking.id,
            rating=rating,
            title=title,
            review_text=review_text,
            is_anonymous=is_anonymous,
        )
        db.add(review)
        await db.flush()

        average, total = (await db.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(Review.model_id == model_id)
        )).one()
        model.rating = round(float(average or 0), 1)
        model.total_reviews = total

        AuditService.record(db, "review_created", customer_id=customer.id, model_id=model_id,
                            payload={"review_id": review.id, "rating": rating})
        await db.commit()
        await db.refresh(review)
        review.customer_name = None if is_anonymous else customer.first_name
        return review

    @staticmethod
    async def list_model_reviews(db: AsyncSession, model_id: int, page: int = 1, limit: int = 10) -> dict:
        total = await db.scalar(select(func.count(Review.id)).where(Review.model_id == model_id))
        result = await db.execute(
            select(Review, Customer.first_name)
            .join(Customer, Review.customer_id == Customer.id)
            .where(Review.model_id == model_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = []
        for review, first_name in result.all():
            items.append({
                "id": review.id,
                "model_id": review.model_id,
                "rating": review.rating,
                "title": review.title,
                "review_text": review.review_text,
                "is_anonymous": review.is_anonymous,
                "customer_name": None if review.is_anonymous else first_name,
                "created_at": review.created_at,
            })
        return {"items": items, "total": total or 0, "page": page, "limit": limit}
