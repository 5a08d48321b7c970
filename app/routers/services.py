from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Model
from ..schemas import (
    ModelServiceApply,
    ModelServiceResponse,
    ModelServiceUpdate,
    PriceQuote,
    ServiceResponse,
    ServiceWithApplication,
    SessionTypeEnum,
)
from ..services.catalog_service import CatalogService, quote_price
from ..services.jwt_service import get_current_model

router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=List[ServiceResponse])
async def list_services(db: AsyncSession = Depends(get_db)):
    """Active catalogue entries."""
    return await CatalogService.list_services(db)


@router.get("/mine", response_model=List[ServiceWithApplication])
async def my_services(
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    """Every catalogue service, each paired with the caller's application when one exists."""
    return await CatalogService.services_for_model(db, model.id)


@router.post("/applications", response_model=ModelServiceResponse, status_code=status.HTTP_201_CREATED)
async def apply_for_service(
    payload: ModelServiceApply,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    rates = payload.model_dump(exclude={"service_id"}, exclude_none=True)
    return await CatalogService.apply_for_service(db, model.id, payload.service_id, **rates)


@router.patch("/applications/{model_service_id}", response_model=ModelServiceResponse)
async def update_application(
    model_service_id: int,
    payload: ModelServiceUpdate,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await CatalogService.update_application(
        db, model.id, model_service_id, **payload.model_dump(exclude_unset=True)
    )


@router.delete("/applications/{model_service_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_application(
    model_service_id: int,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    await CatalogService.cancel_application(db, model.id, model_service_id)


@router.get("/models/{model_id}", response_model=List[ServiceWithApplication])
async def model_services(model_id: int, db: AsyncSession = Depends(get_db)):
    """Services an active model currently offers, with the model's own rates."""
    return await CatalogService.model_public_services(db, model_id)


@router.get("/quote", response_model=PriceQuote)
async def price_quote(
    model_service_id: int = Query(...),
    day_amount: Optional[int] = Query(None, ge=1, le=30),
    hours: Optional[int] = Query(None, ge=1, le=24),
    session_type: Optional[SessionTypeEnum] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Price a prospective booking without creating it.

    Uses the same calculation as booking creation, so the quote matches the
    amount that will be held from the wallet.
    """
    application, service = await CatalogService.load_bookable(db, model_service_id)
    unit, quantity, total = quote_price(
        service, application, day_amount, hours, session_type.value if session_type else None
    )
    return PriceQuote(
        model_service_id=model_service_id,
        billing_type=service.billing_type,
        unit_price=unit,
        quantity=quantity,
        total=total,
    )
