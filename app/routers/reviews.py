from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Customer
from ..schemas import CanReviewResponse, PaginatedReviews, ReviewCreate, ReviewResponse
from ..services.jwt_service import get_current_customer
from ..services.review_service import ReviewService

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: ReviewCreate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Review a model after a completed booking. One review per model."""
    return await ReviewService.create_review(
        db, customer, payload.model_id, payload.rating,
        payload.title, payload.review_text, payload.is_anonymous,
    )


@router.get("/models/{model_id}", response_model=PaginatedReviews)
async def list_model_reviews(
    model_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    return await ReviewService.list_model_reviews(db, model_id, page, limit)


@router.get("/can-review/{model_id}", response_model=CanReviewResponse)
async def can_review(
    model_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await ReviewService.can_review(db, customer.id, model_id)
