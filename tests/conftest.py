import os
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import text

# Ensure pytest-asyncio plugin is active for async tests
pytest_plugins = ("pytest_asyncio",)

# Ensure project root on path before importing app modules
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Configure the app to use a local SQLite database during tests
_test_db_path = project_root / "test.db"
os.environ["APP_DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_db_path.as_posix()}"
os.environ["APP_DEBUG"] = "false"
os.environ["APP_MAINTENANCE_ENABLED"] = "false"
os.environ["APP_SMS_ENABLED"] = "false"
os.environ["APP_ADMIN_API_KEY"] = "test-admin-key"
os.environ["APP_SSE_API_SECRET"] = "test-sse-secret"
os.environ["APP_METRICS_TOKEN"] = "test-metrics-token"
os.environ["APP_VAPID_PUBLIC_KEY"] = ""
os.environ["APP_VAPID_PRIVATE_KEY"] = ""

# Start each test session from a clean database file
if _test_db_path.exists():
    _test_db_path.unlink()

ADMIN_KEY = "test-admin-key"
PASSWORD = "secret123"


async def _clear_database(session) -> None:
    """Remove all data from the database between tests."""
    from app.models import Base

    await session.execute(text("PRAGMA foreign_keys=OFF"))
    for table in reversed(Base.metadata.sorted_tables):
        await session.execute(table.delete())
    await session.commit()
    await session.execute(text("PRAGMA foreign_keys=ON"))


@pytest_asyncio.fixture(scope="session", autouse=True)
async def setup_database():
    """Create all tables for the duration of the test session."""
    from app.database import create_tables, drop_tables

    await create_tables()
    yield
    await drop_tables()
    if _test_db_path.exists():
        _test_db_path.unlink()


@pytest_asyncio.fixture
async def test_session(setup_database):
    """Provide an async database session to tests that need direct access."""
    from app.database import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        yield session
        await _clear_database(session)


@pytest_asyncio.fixture(autouse=True)
async def clean_database_after_test(setup_database):
    """Clean up any data created via API calls after each test."""
    yield
    from app.database import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        await _clear_database(session)


@pytest_asyncio.fixture
async def client(test_session):
    """Test client whose requests share the test's database session."""
    from app.database import get_db
    from app.main import app

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _auth_headers(role: str, user_id: int) -> dict:
    from app.services.jwt_service import JWTService

    return {"Authorization": f"Bearer {JWTService.create_token(user_id, role)}"}


async def _create_customer(session, whatsapp: str = "2055550001", balance: int = 1_000_000, **fields):
    from app.models import Customer, Wallet
    from app.services.auth_service import hash_password

    customer = Customer(
        number=fields.pop("number", f"XSC-{whatsapp[-4:]}"),
        first_name=fields.pop("first_name", "Noy"),
        whatsapp=whatsapp,
        password_hash=hash_password(PASSWORD),
        status=fields.pop("status", "active"),
        send_push_noti=False,
        send_sms_noti=False,
        **fields,
    )
    session.add(customer)
    await session.flush()
    session.add(Wallet(customer_id=customer.id, total_balance=balance,
                       total_recharge=balance, total_deposit=0, status="active"))
    await session.commit()
    await session.refresh(customer)
    return customer


async def _create_model(session, whatsapp: str = "2077770001", **fields):
    from app.models import Model, Wallet
    from app.services.auth_service import hash_password

    model = Model(
        number=fields.pop("number", f"XSM-{whatsapp[-4:]}"),
        first_name=fields.pop("first_name", "Dara"),
        whatsapp=whatsapp,
        password_hash=hash_password(PASSWORD),
        status=fields.pop("status", "active"),
        available_status=fields.pop("available_status", "online"),
        rating=fields.pop("rating", 0),
        total_reviews=fields.pop("total_reviews", 0),
        send_push_noti=False,
        send_sms_noti=False,
        **fields,
    )
    session.add(model)
    await session.flush()
    session.add(Wallet(model_id=model.id, total_balance=0, total_recharge=0,
                       total_deposit=0, status="active"))
    await session.commit()
    await session.refresh(model)
    return model


async def _create_offering(session, model, name: str = "Dinner Date", billing_type: str = "per_day",
                          commission: float = 10, **rates):
    """Catalogue service plus the model's application for it."""
    from app.models import ModelService, Service

    service = Service(
        name=name,
        billing_type=billing_type,
        base_rate=rates.pop("base_rate", 100_000 if billing_type == "per_day" else 0),
        hourly_rate=rates.pop("hourly_rate", None),
        one_time_price=rates.pop("one_time_price", None),
        one_night_price=rates.pop("one_night_price", None),
        minute_rate=rates.pop("minute_rate", None),
        commission=commission,
        status="active",
    )
    session.add(service)
    await session.flush()
    application = ModelService(model_id=model.id, service_id=service.id,
                               is_available=True, status="active", **rates)
    session.add(application)
    await session.commit()
    await session.refresh(application)
    return service, application


@pytest_asyncio.fixture
async def customer(test_session):
    return await _create_customer(test_session)


@pytest_asyncio.fixture
async def model_account(test_session):
    return await _create_model(test_session)


@pytest.fixture
def customer_headers(customer):
    return _auth_headers("customer", customer.id)


@pytest.fixture
def model_headers(model_account):
    return _auth_headers("model", model_account.id)


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def password():
    """Plain-text password of every account the factories create."""
    return PASSWORD


@pytest.fixture
def auth_headers():
    """Build Bearer headers for any role and id: ``auth_headers("model", 3)``."""
    return _auth_headers


@pytest.fixture
def create_customer():
    return _create_customer


@pytest.fixture
def create_model():
    return _create_model


@pytest.fixture
def create_offering():
    return _create_offering
