import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import select

from app.models import AuditLog, Customer, Model, Notification, Wallet
from app.routers import auth as auth_router
from app.services.jwt_service import JWTService



@pytest.fixture(autouse=True)
def reset_login_throttle():
    auth_router._login_attempt_log.clear()
    yield
    auth_router._login_attempt_log.clear()


class TestRegistration:
    """Account creation for both roles."""

    async def test_register_customer_returns_token_and_wallet(self, client, test_session):
        response = await client.post("/auth/customer/register", json={
            "first_name": "Noy",
            "whatsapp": "2055551234",
            "password": "secret123",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["role"] == "customer"
        assert data["token_type"] == "bearer"
        assert JWTService.verify_token(data["access_token"])["role"] == "customer"

        customer = (await test_session.execute(
            select(Customer).where(Customer.whatsapp == "2055551234"))).scalar_one()
        assert customer.number == "XSC-0001"
        assert customer.password_hash != "secret123"
        wallet = (await test_session.execute(
            select(Wallet).where(Wallet.customer_id == customer.id))).scalar_one()
        assert wallet.total_balance == 0

        welcome = (await test_session.execute(
            select(Notification).where(Notification.recipient_id == customer.id))).scalar_one()
        assert welcome.type == "welcome"
        audit = (await test_session.execute(select(AuditLog))).scalars().all()
        assert [a.action for a in audit] == ["customer_registered"]

    async def test_account_numbers_are_sequential(self, client):
        for i, phone in enumerate(["2055550010", "2055550011"], start=1):
            response = await client.post("/auth/customer/register", json={
                "first_name": f"User{i}", "whatsapp": phone, "password": "secret123"})
            assert response.status_code == 201

        me = await client.get("/auth/me", headers={
            "Authorization": f"Bearer {response.json()['access_token']}"})
        assert me.json()["number"] == "XSC-0002"

    async def test_register_duplicate_phone_conflicts(self, client, customer):
        response = await client.post("/auth/customer/register", json={
            "first_name": "Again", "whatsapp": customer.whatsapp, "password": "secret123"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "conflict"

    async def test_taken_account_number_is_skipped(self, client, test_session, create_customer):
        # The newest account holds a lower number than an older one, so the next number is already taken
        await create_customer(test_session, whatsapp="2055550021", number="XSC-0002")
        await create_customer(test_session, whatsapp="2055550022", number="XSC-0001")

        response = await client.post("/auth/customer/register", json={
            "first_name": "Late", "whatsapp": "2055550023", "password": "secret123"})
        assert response.status_code == 201

        me = await client.get("/auth/me", headers={
            "Authorization": f"Bearer {response.json()['access_token']}"})
        assert me.json()["number"] == "XSC-0003"

    async def test_register_rejects_weak_password(self, client):
        response = await client.post("/auth/customer/register", json={
            "first_name": "Noy", "whatsapp": "2055551234", "password": "onlyletters"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"

    async def test_register_model_starts_pending_and_cannot_log_in(self, client, test_session):
        response = await client.post("/auth/model/register", json={
            "first_name": "Dara", "whatsapp": "2077771234", "password": "secret123", "bio": "Hello"})

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert response.json()["number"] == "XSM-0001"

        login = await client.post("/auth/model/login", json={
            "whatsapp": "2077771234", "password": "secret123"})
        assert login.status_code == 401


class TestLogin:
    async def test_login_success(self, client, customer, password):
        response = await client.post("/auth/customer/login", json={
            "whatsapp": customer.whatsapp, "password": password})

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == customer.id
        assert data["expires_in_minutes"] == 1440

    async def test_remember_me_extends_expiry(self, client, customer, password):
        response = await client.post("/auth/customer/login", json={
            "whatsapp": customer.whatsapp, "password": password, "remember_me": True})

        assert response.json()["expires_in_minutes"] == 43200

    async def test_wrong_password_and_unknown_user_look_the_same(self, client, customer, password):
        wrong = await client.post("/auth/customer/login", json={
            "whatsapp": customer.whatsapp, "password": "nope12345"})
        unknown = await client.post("/auth/customer/login", json={
            "whatsapp": "2099999999", "password": password})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["error"]["message"] == unknown.json()["error"]["message"]

    async def test_customer_cannot_log_in_as_model(self, client, customer, password):
        response = await client.post("/auth/model/login", json={
            "whatsapp": customer.whatsapp, "password": password})
        assert response.status_code == 401

    async def test_login_throttle(self, client, customer, password):
        for _ in range(auth_router.LOGIN_ATTEMPTS_PER_MINUTE):
            r = await client.post("/auth/customer/login", json={
                "whatsapp": customer.whatsapp, "password": "wrong1234"})
            assert r.status_code == 401
        r = await client.post("/auth/customer/login", json={
            "whatsapp": customer.whatsapp, "password": password})
        assert r.status_code == 429


class TestSessionTokens:
    async def test_me_requires_token(self, client):
        response = await client.get("/auth/me")
        assert response.status_code == 401

    async def test_me_with_query_token(self, client, model_account):
        token = JWTService.create_token(model_account.id, "model")
        response = await client.get(f"/auth/me?token={token}")

        assert response.status_code == 200
        assert response.json()["available_status"] == "online"

    async def test_invalid_token_rejected(self, client):
        response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    async def test_role_guard(self, client, customer_headers):
        response = await client.get("/model/bookings", headers=customer_headers)
        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Model access required"

    async def test_suspended_account_token_rejected(self, client, test_session, auth_headers, create_customer):
        customer = await create_customer(test_session, whatsapp="2055550099", status="suspended")
        response = await client.get("/auth/me", headers=auth_headers("customer", customer.id))
        assert response.status_code == 401

    async def test_change_password(self, client, customer, customer_headers, password):
        bad = await client.post("/auth/change-password", headers=customer_headers, json={
            "old_password": "wrong1234", "new_password": "newpass123"})
        assert bad.status_code == 400

        ok = await client.post("/auth/change-password", headers=customer_headers, json={
            "old_password": password, "new_password": "newpass123"})
        assert ok.status_code == 200

        login = await client.post("/auth/customer/login", json={
            "whatsapp": customer.whatsapp, "password": "newpass123"})
        assert login.status_code == 200


class TestPasswordReset:
    async def test_full_reset_flow(self, client, test_session, customer):
        response = await client.post("/auth/customer/forgot-password", json={"whatsapp": customer.whatsapp})
        assert response.status_code == 200
        assert response.json()["expires_in_minutes"] == 10
        # Codes are only echoed back in debug mode
        assert response.json()["reset_code"] is None

        await test_session.refresh(customer)
        code = customer.reset_token
        assert len(code) == 6 and code == code.upper()

        premature = await client.post("/auth/customer/reset-password", json={
            "code": code, "new_password": "brandnew1"})
        assert premature.status_code == 400

        verify = await client.post("/auth/customer/verify-code", json={"code": code.lower()})
        assert verify.status_code == 200

        reset = await client.post("/auth/customer/reset-password", json={
            "code": code, "new_password": "brandnew1"})
        assert reset.status_code == 200

        await test_session.refresh(customer)
        assert customer.reset_token is None

        login = await client.post("/auth/customer/login", json={
            "whatsapp": customer.whatsapp, "password": "brandnew1"})
        assert login.status_code == 200

    async def test_forgot_password_unknown_phone(self, client):
        response = await client.post("/auth/model/forgot-password", json={"whatsapp": "2000000000"})
        assert response.status_code == 404

    async def test_resend_blocked_during_cooldown(self, client, customer):
        first = await client.post("/auth/customer/forgot-password", json={"whatsapp": customer.whatsapp})
        assert first.status_code == 200

        again = await client.post("/auth/customer/resend-code", json={"whatsapp": customer.whatsapp})
        assert again.status_code == 429
        assert "Retry-After" in again.headers

    async def test_invalid_code(self, client, customer):
        response = await client.post("/auth/customer/verify-code", json={"code": "ABCDEF"})
        assert response.status_code == 400

    async def test_expired_code(self, client, test_session, customer):
        customer.reset_token = "A1B2C3"
        customer.reset_token_expiry = datetime.now(timezone.utc) - timedelta(minutes=1)
        await test_session.commit()

        response = await client.post("/auth/customer/verify-code", json={"code": "A1B2C3"})
        assert response.status_code == 400

    async def test_reset_codes_are_scoped_by_role(self, client, test_session, create_model):
        model = await create_model(test_session)
        model.reset_token = "F00D42"
        model.reset_token_expiry = datetime.now(timezone.utc) + timedelta(minutes=5)
        await test_session.commit()

        response = await client.post("/auth/customer/verify-code", json={"code": "F00D42"})
        assert response.status_code == 400
