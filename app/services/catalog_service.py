import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ConflictError, NotFoundError, ValidationFailedError
from ..models import Model, ModelService, Service

logger = logging.getLogger(__name__)


def minute_rate_of(service: Service, model_service: ModelService) -> int:
    return model_service.custom_minute_rate or service.minute_rate or 0


def quote_price(
    service: Service,
    model_service: ModelService,
    day_amount: Optional[int] = None,
    hours: Optional[int] = None,
    session_type: Optional[str] = None,
) -> Tuple[int, int, int]:
    """Price a booking from the service's billing type.

    Returns (unit_price, quantity, total). Custom rates on the model's
    application take precedence over the catalogue rates.
    """
    billing = service.billing_type
    if billing == "per_day":
        unit = model_service.custom_rate or service.base_rate or 0
        quantity = day_amount or 1
    elif billing == "per_hour":
        unit = model_service.custom_hourly_rate or service.hourly_rate or 0
        quantity = hours or 1
    elif billing == "per_session":
        if session_type == "one_night":
            unit = model_service.custom_one_night_price or service.one_night_price or 0
        elif session_type == "one_time":
            unit = model_service.custom_one_time_price or service.one_time_price or 0
        else:
            raise ValidationFailedError("session_type must be one_time or one_night for this service")
        quantity = 1
    elif billing == "per_minute":
        raise ValidationFailedError("Per-minute services are booked as calls")
    else:
        raise ValidationFailedError(f"Unsupported billing type: {billing}")

    if unit <= 0:
        raise ValidationFailedError("This service has no price configured")
    return unit, quantity, unit * quantity


class CatalogService:
    @staticmethod
    async def list_services(db: AsyncSession) -> List[Service]:
        result = await db.execute(
            select(Service).where(Service.status == "active").order_by(Service.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def services_for_model(db: AsyncSession, model_id: int) -> List[dict]:
        services = await CatalogService.list_services(db)
        result = await db.execute(select(ModelService).where(ModelService.model_id == model_id))
        applications = {ms.service_id: ms for ms in result.scalars().all()}
        return [{"service": s, "application": applications.get(s.id)} for s in services]

    @staticmethod
    async def apply_for_service(db: AsyncSession, model_id: int, service_id: int, **rates) -> ModelService:
        service = await db.get(Service, service_id)
        if service is None or service.status != "active":
            raise NotFoundError("Service")

        existing = await db.scalar(
            select(ModelService).where(
                ModelService.model_id == model_id, ModelService.service_id == service_id)
        )
        if existing is not None:
            raise ConflictError("You have already applied for this service")

        application = ModelService(model_id=model_id, service_id=service_id,
                                   is_available=True, status="active", **rates)
        db.add(application)
        await db.commit()
        await db.refresh(application)
        logger.info(f"Model {model_id} applied for service {service_id}")
        return application

    @staticmethod
    async def get_application(db: AsyncSession, model_id: int, model_service_id: int) -> ModelService:
        application = await db.get(ModelService, model_service_id)
        if application is None or application.model_id != model_id:
            raise NotFoundError("Service application")
        return application

    @staticmethod
    async def update_application(db: AsyncSession, model_id: int, model_service_id: int, **changes) -> ModelService:
        application = await CatalogService.get_application(db, model_id, model_service_id)
        for field, value in changes.items():
            if value is not None:
                setattr(application, field, value)
        await db.commit()
        await db.refresh(application)
        return application

    @staticmethod
    async def cancel_application(db: AsyncSession, model_id: int, model_service_id: int) -> None:
        application = await CatalogService.get_application(db, model_id, model_service_id)
        await db.delete(application)
        await db.commit()

    @staticmethod
    async def model_public_services(db: AsyncSession, model_id: int) -> List[dict]:
        model = await db.get(Model, model_id)
        if model is None or model.status != "active":
            raise NotFoundError("Model")
        result = await db.execute(
            select(ModelService, Service)
            .join(Service, ModelService.service_id == Service.id)
            .where(
                ModelService.model_id == model_id,
                ModelService.is_available.is_(True),
                ModelService.status == "active",
                Service.status == "active",
            )
        )
        return [{"service": s, "application": ms} for ms, s in result.all()]

    @staticmethod
    async def load_bookable(db: AsyncSession, model_service_id: int) -> Tuple[ModelService, Service]:
        """Resolve an available model service together with its catalogue entry"""
        application = await db.get(ModelService, model_service_id)
        if application is None or not application.is_available or application.status != "active":
            raise NotFoundError("Service")
        service = await db.get(Service, application.service_id)
        if service is None or service.status != "active":
            raise NotFoundError("Service")
        model = await db.get(Model, application.model_id)
        if model is None or model.status != "active":
            raise NotFoundError("Model")
        return application, service

    @staticmethod
    async def commission_rate(db: AsyncSession, model_service_id: Optional[int]) -> float:
        if model_service_id is None:
            return 0.0
        application = await db.get(ModelService, model_service_id)
        if application is None:
            return 0.0
        service = await db.get(Service, application.service_id)
        return float(service.commission or 0) if service else 0.0
