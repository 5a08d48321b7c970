import asyncio
import logging
import random
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException

from .config import settings
from .database import create_tables
from .exceptions import DomainError, RateLimitedError
from .routers.admin import router as admin_router
from .routers.auth import router as auth_router
from .routers.bookings import router as bookings_router
from .routers.calls import router as calls_router
from .routers.health import router as health_router
from .routers.model_bookings import router as model_bookings_router
from .routers.notifications import router as notifications_router
from .routers.packages import router as packages_router
from .routers.profiles import router as profiles_router
from .routers.push import router as push_router
from .routers.reviews import router as reviews_router
from .routers.services import router as services_router
from .routers.wallet import router as wallet_router
from .services.maintenance_service import MaintenanceService
from .services.notification_broker import broker
from .services.subscription_events import hub

# Configure logging
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()

    maintenance_task: Optional[asyncio.Task] = None
    if settings.maintenance_enabled:
        maintenance_task = asyncio.create_task(MaintenanceService.start_scheduler())

    yield

    if maintenance_task is not None:
        maintenance_task.cancel()
        try:
            await maintenance_task
        except asyncio.CancelledError:
            pass

    # Close open SSE streams so the server can drain
    try:
        await broker.shutdown()
        hub.shutdown()
    except Exception as e:
        logger.error(f"Error shutting down event streams: {e}")


app = FastAPI(
    title="XaoSao API",
    description="""
# XaoSao API Documentation

Booking platform connecting customers with companion models.

## 🔐 Authentication

Customers and models authenticate separately:
- `POST /auth/customer/login`
- `POST /auth/model/login`

Include the token in the Authorization header: `Authorization: Bearer <your_token>`.
Server-sent event endpoints also accept it as `?token=`.

## 💰 Payments

Bookings and calls hold their price in the customer's wallet (escrow).
The hold is released to the model, minus commission, when the booking is
confirmed or auto-released, and refunded when it is rejected or cancelled.

## 📡 Real-time

- `GET /notifications/stream`: per-user notification events (SSE)
- `GET /packages/subscription-events`: subscription activation (SSE)
- Web push via VAPID: `GET /push/vapid-public-key`, `POST /push/subscribe`

### Error Handling
Errors use one envelope: `{"error": {"code", "message"}, "request_id"}`.
""",
    version="1.0.0",
    lifespan=lifespan
)

# Include routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(wallet_router)
app.include_router(services_router)
app.include_router(bookings_router)
app.include_router(model_bookings_router)
app.include_router(calls_router)
app.include_router(notifications_router)
app.include_router(push_router)
app.include_router(packages_router)
app.include_router(profiles_router)
app.include_router(reviews_router)
app.include_router(admin_router)

# CORS for UI
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", [
                        "method", "route", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5)
)
SSE_CHANNELS = Gauge("sse_channels", "Notification channels with at least one open stream")
SSE_CHANNELS.set_function(broker.channel_count)

ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    429: "too_many_requests",
    500: "internal_server_error",
    503: "service_unavailable",
}


def error_response(request: Request, status_code: int, message: str,
                   details=None, headers: Optional[dict] = None) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    error = {"code": ERROR_CODES.get(status_code, "error"), "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "request_id": request_id},
        headers={**(headers or {}), "X-Request-ID": request_id},
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return error_response(request, exc.status_code, exc.message, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return error_response(request, exc.status_code, message, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"Validation error rid={request_id} path={request.url.path}")
    # Errors may carry non-JSON values (e.g. the raised ValueError) in ctx
    details = [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
    return error_response(request, 422, "Validation error", details=details)


@app.middleware("http")
async def add_request_id_and_errors(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    # Lightweight JSON log (sample all in debug, a fraction in prod)
    if settings.debug or random.random() < settings.log_sample_rate:
        logger.info({
            "event": "request",
            "method": request.method,
            "path": request.url.path,
            "rid": request_id,
        })
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"Unhandled error rid={request_id}")
        route = getattr(request.scope.get("route"), "path", request.url.path)
        REQUEST_COUNT.labels(method=request.method,
                             route=route, status=500).inc()
        return error_response(request, 500, "Internal Server Error")

    elapsed = time.perf_counter() - start
    REQUEST_LATENCY.observe(elapsed)
    route = getattr(request.scope.get("route"), "path", request.url.path)
    REQUEST_COUNT.labels(method=request.method,
                         route=route, status=response.status_code).inc()
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/metrics")
async def metrics(request: Request):
    # In dev/debug mode, expose metrics without auth
    if not settings.debug:
        token = request.headers.get("X-Metrics-Token")
        if not settings.metrics_token or token != settings.metrics_token:
            return error_response(request, 403, "Forbidden")
    data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)
