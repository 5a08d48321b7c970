from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Customer, Model
from ..schemas import (
    AvailabilityEnum,
    AvailabilityUpdate,
    CustomerProfile,
    CustomerProfileUpdate,
    ModelCard,
    ModelProfile,
    ModelProfileUpdate,
    ModelPublicProfile,
    SettingsUpdate,
)
from ..services.jwt_service import get_current_customer, get_current_model
from ..services.profile_service import ProfileService

router = APIRouter(tags=["profiles"])


@router.get("/models", response_model=List[ModelCard])
async def list_models(
    available_status: Optional[AvailabilityEnum] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Browse active models, best rated first. ``distance_km`` is set when both sides share a location."""
    return await ProfileService.list_models(
        db, customer, available_status.value if available_status else None, limit, offset)


@router.get("/models/nearby", response_model=List[ModelCard])
async def nearby_models(
    max_distance_km: float = Query(50, gt=0, le=500),
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    limit: int = Query(20, ge=1, le=100),
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Models within ``max_distance_km`` of the customer, nearest first.

    Uses the customer's saved location unless ``latitude`` and ``longitude`` are given.
    """
    return await ProfileService.nearby_models(db, customer, max_distance_km, latitude, longitude, limit)


@router.get("/models/{model_id}", response_model=ModelPublicProfile)
async def model_profile(
    model_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await ProfileService.get_model_profile(db, model_id, customer)


# Own profile

@router.patch("/profile", response_model=CustomerProfile)
async def update_customer_profile(
    payload: CustomerProfileUpdate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await ProfileService.update_profile(db, "customer", customer, payload.model_dump(exclude_unset=True))


@router.patch("/profile/settings", response_model=CustomerProfile)
async def update_customer_settings(
    payload: SettingsUpdate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await ProfileService.update_settings(db, "customer", customer, payload.model_dump(exclude_unset=True))


@router.patch("/model/profile", response_model=ModelProfile)
async def update_model_profile(
    payload: ModelProfileUpdate,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await ProfileService.update_profile(db, "model", model, payload.model_dump(exclude_unset=True))


@router.patch("/model/settings", response_model=ModelProfile)
async def update_model_settings(
    payload: SettingsUpdate,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await ProfileService.update_settings(db, "model", model, payload.model_dump(exclude_unset=True))


@router.patch("/model/availability", response_model=ModelProfile)
async def set_availability(
    payload: AvailabilityUpdate,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    """Show the model as online, offline or busy."""
    return await ProfileService.set_availability(db, model, payload.available_status.value)
