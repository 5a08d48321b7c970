"""
Model discovery and self-service profile edits.

Customers browse active models, optionally ranked by distance from their
stored (or supplied) location. Both roles edit their own profile and
notification settings; models also toggle their availability.
"""
import logging
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFoundError, ValidationFailedError
from ..models import Customer, Model
from ..utils import haversine_distance
from .audit_service import AuditService
from .catalog_service import CatalogService

logger = logging.getLogger(__name__)

AVAILABILITY = ("online", "offline", "busy")
CUSTOMER_EDITABLE = ("first_name", "last_name", "username", "gender", "dob",
                     "latitude", "longitude", "country", "profile_url")
MODEL_EDITABLE = CUSTOMER_EDITABLE + ("bio", "address")
SETTINGS = ("send_push_noti", "send_sms_noti")


def distance_km(
    lat1: Optional[float], lng1: Optional[float], lat2: Optional[float], lng2: Optional[float]
) -> Optional[float]:
    if None in (lat1, lng1, lat2, lng2):
        return None
    return round(haversine_distance(lat1, lng1, lat2, lng2), 2)


def _card(model: Model, distance: Optional[float]) -> dict:
    return {**{c.name: getattr(model, c.name) for c in Model.__table__.columns}, "distance_km": distance}


class ProfileService:
    @staticmethod
    async def list_models(
        db: AsyncSession,
        customer: Customer,
        available_status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[dict]:
        """Active models, best rated first"""
        stmt = select(Model).where(Model.status == "active")
        if available_status:
            stmt = stmt.where(Model.available_status == available_status)
        stmt = stmt.order_by(Model.rating.desc(), Model.id.desc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return [
            _card(m, distance_km(customer.latitude, customer.longitude, m.latitude, m.longitude))
            for m in result.scalars().all()
        ]

    @staticmethod
    async def nearby_models(
        db: AsyncSession,
        customer: Customer,
        max_distance_km: float = 50,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        limit: int = 20,
    ) -> List[dict]:
        """Active models within ``max_distance_km``, nearest first, ties broken by rating"""
        if latitude is None or longitude is None:
            latitude, longitude = customer.latitude, customer.longitude
        if latitude is None or longitude is None:
            raise ValidationFailedError("Your location is required to find nearby models")

        result = await db.execute(
            select(Model).where(
                Model.status == "active",
                Model.latitude.is_not(None),
                Model.longitude.is_not(None),
            )
        )
        cards = []
        for model in result.scalars().all():
            distance = distance_km(latitude, longitude, model.latitude, model.longitude)
            if distance <= max_distance_km:
                cards.append(_card(model, distance))
        cards.sort(key=lambda c: (c["distance_km"], -(c["rating"] or 0)))
        return cards[:limit]

    @staticmethod
    async def get_model_profile(db: AsyncSession, model_id: int, customer: Customer) -> dict:
        model = await db.get(Model, model_id)
        if model is None or model.status != "active":
            raise NotFoundError("Model")
        profile = _card(model, distance_km(customer.latitude, customer.longitude, model.latitude, model.longitude))
        profile["services"] = await CatalogService.model_public_services(db, model_id)
        return profile

    @staticmethod
    async def update_profile(
        db: AsyncSession, role: str, account: Union[Customer, Model], changes: dict
    ) -> Union[Customer, Model]:
        editable = MODEL_EDITABLE if role == "model" else CUSTOMER_EDITABLE
        updates = {f: changes[f] for f in editable if changes.get(f) is not None}
        latitude = updates.get("latitude", account.latitude)
        longitude = updates.get("longitude", account.longitude)
        if (latitude is None) != (longitude is None):
            raise ValidationFailedError("Latitude and longitude must be set together")

        for field, value in updates.items():
            setattr(account, field, value)
        updated = sorted(updates)

        AuditService.record(db, f"{role}_profile_updated",
                            customer_id=account.id if role == "customer" else None,
                            model_id=account.id if role == "model" else None,
                            payload={"fields": updated})
        await db.commit()
        await db.refresh(account)
        logger.info(f"{role} {account.id} updated profile fields {updated}")
        return account

    @staticmethod
    async def update_settings(
        db: AsyncSession, role: str, account: Union[Customer, Model], changes: dict
    ) -> Union[Customer, Model]:
        for field in SETTINGS:
            if changes.get(field) is not None:
                setattr(account, field, changes[field])
        AuditService.record(db, f"{role}_settings_updated",
                            customer_id=account.id if role == "customer" else None,
                            model_id=account.id if role == "model" else None,
                            payload={k: changes.get(k) for k in SETTINGS if changes.get(k) is not None})
        await db.commit()
        await db.refresh(account)
        return account

    @staticmethod
    async def set_availability(db: AsyncSession, model: Model, available_status: str) -> Model:
        if available_status not in AVAILABILITY:
            raise ValidationFailedError(f"Availability must be one of: {', '.join(AVAILABILITY)}")
        previous = model.available_status
        model.available_status = available_status
        AuditService.record(db, "model_availability_changed", model_id=model.id,
                            description=f"{previous} -> {available_status}")
        await db.commit()
        await db.refresh(model)
        return model
