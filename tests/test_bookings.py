import asyncio

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import select

from app.database import AsyncSessionLocal
from app.exceptions import InvalidStateError
from app.models import AuditLog, Booking, Customer, Notification, Transaction, Wallet
from app.services.booking_service import BookingService
from app.services.wallet_service import WalletService


VENUE = {"location": "Vientiane Center", "location_lat": 17.9757, "location_lng": 102.6331}
AT_VENUE = {"latitude": 17.9757, "longitude": 102.6331}


def _in(hours: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


async def _balance(session, **owner) -> int:
    result = await session.execute(select(Wallet).where(
        *(getattr(Wallet, k) == v for k, v in owner.items())))
    wallet = result.scalar_one()
    await session.refresh(wallet)
    return wallet.total_balance


@pytest.fixture
async def offering(test_session, model_account, create_offering):
    _, application = await create_offering(test_session, model_account, commission=10, base_rate=100_000)
    return application


async def _book(client, headers, offering, hours_ahead: float = 24, **extra):
    body = {"model_service_id": offering.id, "day_amount": 2, "start_date": _in(hours_ahead), **VENUE}
    body.update(extra)
    response = await client.post("/bookings", headers=headers, json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateBooking:
    async def test_price_is_computed_and_held(self, client, test_session, customer, customer_headers,
                                              model_account, offering):
        booking = await _book(client, customer_headers, offering)

        assert booking["price"] == 200_000
        assert booking["status"] == "pending"
        assert booking["payment_status"] == "held"
        assert await _balance(test_session, customer_id=customer.id) == 800_000

        hold = (await test_session.execute(
            select(Transaction).where(Transaction.identifier == "booking_hold"))).scalar_one()
        assert hold.amount == -200_000
        assert hold.status == "held"

        note = (await test_session.execute(
            select(Notification).where(Notification.type == "booking_created"))).scalar_one()
        assert note.recipient_type == "model"
        assert note.recipient_id == model_account.id

    async def test_quote_matches_booking_price(self, client, offering):
        response = await client.get(f"/services/quote?model_service_id={offering.id}&day_amount=2")
        assert response.json()["total"] == 200_000

    async def test_insufficient_balance(self, client, test_session, offering, auth_headers, create_customer):
        poor = await create_customer(test_session, whatsapp="2055550003", balance=1_000)
        response = await client.post("/bookings", headers=auth_headers("customer", poor.id), json={
            "model_service_id": offering.id, "start_date": _in(24)})

        assert response.status_code == 400
        assert "Insufficient balance" in response.json()["error"]["message"]

    async def test_start_date_must_be_future(self, client, customer_headers, offering):
        response = await client.post("/bookings", headers=customer_headers, json={
            "model_service_id": offering.id, "start_date": _in(-1)})
        assert response.status_code == 400

    async def test_unavailable_service(self, client, test_session, customer_headers, offering):
        offering.is_available = False
        await test_session.commit()

        response = await client.post("/bookings", headers=customer_headers, json={
            "model_service_id": offering.id, "start_date": _in(24)})
        assert response.status_code == 404

    async def test_models_cannot_book(self, client, model_headers, offering):
        response = await client.post("/bookings", headers=model_headers, json={
            "model_service_id": offering.id, "start_date": _in(24)})
        assert response.status_code == 403


class TestPendingBooking:
    async def test_edit_adjusts_hold(self, client, test_session, customer, customer_headers, offering):
        booking = await _book(client, customer_headers, offering)

        response = await client.patch(f"/bookings/{booking['id']}", headers=customer_headers,
                                      json={"day_amount": 3, "preferred_attire": "Formal"})
        assert response.status_code == 200
        assert response.json()["price"] == 300_000
        assert response.json()["preferred_attire"] == "Formal"
        assert await _balance(test_session, customer_id=customer.id) == 700_000

        await client.patch(f"/bookings/{booking['id']}", headers=customer_headers, json={"day_amount": 1})
        assert await _balance(test_session, customer_id=customer.id) == 900_000

        ledger = (await test_session.execute(
            select(Transaction).where(Transaction.customer_id == customer.id).order_by(Transaction.id)
        )).scalars().all()
        assert [(t.identifier, t.amount, t.status) for t in ledger] == [
            ("booking_hold", -200_000, "held"),
            ("booking_hold", -100_000, "approved"),
            ("booking_refund", 200_000, "approved"),
        ]

    async def test_edit_start_date_must_be_future(self, client, customer_headers, offering):
        booking = await _book(client, customer_headers, offering)

        response = await client.patch(f"/bookings/{booking['id']}", headers=customer_headers,
                                      json={"start_date": _in(-48)})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Start date must be in the future"

        unchanged = await client.get(f"/bookings/{booking['id']}", headers=customer_headers)
        assert unchanged.json()["start_date"] == booking["start_date"]

    async def test_edit_end_before_start(self, client, customer_headers, offering):
        booking = await _book(client, customer_headers, offering, hours_ahead=24)

        response = await client.patch(f"/bookings/{booking['id']}", headers=customer_headers,
                                      json={"end_date": _in(12)})
        assert response.status_code == 400

    async def test_cancel_refunds(self, client, test_session, customer, customer_headers, offering):
        booking = await _book(client, customer_headers, offering)

        response = await client.post(f"/bookings/{booking['id']}/cancel", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["payment_status"] == "refunded"
        assert await _balance(test_session, customer_id=customer.id) == 1_000_000

        again = await client.post(f"/bookings/{booking['id']}/cancel", headers=customer_headers)
        assert again.status_code == 409

        outcomes = (await test_session.execute(
            select(AuditLog.status).where(AuditLog.action == "booking_cancelled").order_by(AuditLog.id)
        )).scalars().all()
        assert outcomes == ["success", "failed"]
        failed = (await test_session.execute(
            select(AuditLog).where(AuditLog.status == "failed"))).scalar_one()
        assert failed.customer_id == customer.id
        assert failed.payload == {"error": "InvalidStateError", "booking_id": booking["id"]}

    async def test_cancel_blocked_close_to_start(self, client, customer_headers, offering):
        booking = await _book(client, customer_headers, offering, hours_ahead=1)

        response = await client.post(f"/bookings/{booking['id']}/cancel", headers=customer_headers)
        assert response.status_code == 409
        assert "hours of booking start" in response.json()["error"]["message"]

    async def test_reject_refunds_with_reason(self, client, test_session, customer, customer_headers,
                                              model_headers, offering):
        booking = await _book(client, customer_headers, offering)

        response = await client.post(f"/model/bookings/{booking['id']}/reject", headers=model_headers,
                                     json={"reason": "Not available that day"})
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["reject_reason"] == "Not available that day"
        assert await _balance(test_session, customer_id=customer.id) == 1_000_000

    async def test_delete_rules(self, client, customer_headers, model_headers, offering):
        booking = await _book(client, customer_headers, offering)

        pending = await client.delete(f"/bookings/{booking['id']}", headers=customer_headers)
        assert pending.status_code == 409
        model_pending = await client.delete(f"/model/bookings/{booking['id']}", headers=model_headers)
        assert model_pending.status_code == 409

        await client.post(f"/bookings/{booking['id']}/cancel", headers=customer_headers)
        assert (await client.delete(f"/bookings/{booking['id']}", headers=customer_headers)).status_code == 204

    async def test_other_customer_cannot_touch_booking(self, client, test_session, customer_headers, offering,
                                                      auth_headers, create_customer, create_model):
        booking = await _book(client, customer_headers, offering)
        intruder = await create_customer(test_session, whatsapp="2055550004")

        response = await client.post(f"/bookings/{booking['id']}/cancel",
                                     headers=auth_headers("customer", intruder.id))
        assert response.status_code == 403

        other_model = await create_model(test_session, whatsapp="2077770004")
        response = await client.post(f"/model/bookings/{booking['id']}/accept",
                                     headers=auth_headers("model", other_model.id))
        assert response.status_code == 403

    async def test_pending_count_and_listing(self, client, customer_headers, model_headers, offering):
        first = await _book(client, customer_headers, offering)
        await _book(client, customer_headers, offering, hours_ahead=48)
        await client.post(f"/model/bookings/{first['id']}/accept", headers=model_headers)

        count = await client.get("/model/bookings/pending-count", headers=model_headers)
        assert count.json() == {"count": 1}

        confirmed = await client.get("/bookings?status=confirmed", headers=customer_headers)
        assert [b["id"] for b in confirmed.json()] == [first["id"]]


class TestServiceLifecycle:
    async def _confirmed_booking_at_venue(self, client, customer_headers, model_headers, offering):
        booking = await _book(client, customer_headers, offering, hours_ahead=0.25)
        accepted = await client.post(f"/model/bookings/{booking['id']}/accept", headers=model_headers)
        assert accepted.json()["status"] == "confirmed"
        return booking

    async def _start_service(self, client, test_session, customer_headers, model_headers, offering):
        booking = await self._confirmed_booking_at_venue(client, customer_headers, model_headers, offering)
        await client.post(f"/model/bookings/{booking['id']}/check-in", headers=model_headers, json=AT_VENUE)
        await client.post(f"/bookings/{booking['id']}/check-in", headers=customer_headers, json=AT_VENUE)
        row = await test_session.get(Booking, booking["id"])
        # Pretend the booked time has arrived
        row.start_date = datetime.now(timezone.utc) - timedelta(minutes=5)
        await test_session.commit()
        return booking

    async def test_check_in_both_parties_starts_service(self, client, customer_headers, model_headers, offering):
        booking = await self._confirmed_booking_at_venue(client, customer_headers, model_headers, offering)

        model_in = await client.post(f"/model/bookings/{booking['id']}/check-in",
                                     headers=model_headers, json=AT_VENUE)
        assert model_in.status_code == 200
        assert model_in.json()["status"] == "confirmed"

        twice = await client.post(f"/model/bookings/{booking['id']}/check-in",
                                  headers=model_headers, json=AT_VENUE)
        assert twice.status_code == 409

        customer_in = await client.post(f"/bookings/{booking['id']}/check-in",
                                        headers=customer_headers, json=AT_VENUE)
        assert customer_in.json()["status"] == "in_progress"

        status = await client.get(f"/bookings/{booking['id']}/check-in-status", headers=customer_headers)
        assert status.json()["both_checked_in"] is True

    async def test_check_in_too_far_away(self, client, customer_headers, model_headers, offering):
        booking = await self._confirmed_booking_at_venue(client, customer_headers, model_headers, offering)

        response = await client.post(f"/bookings/{booking['id']}/check-in", headers=customer_headers,
                                     json={"latitude": 17.99, "longitude": 102.6331})
        assert response.status_code == 400
        assert "away from the booking location" in response.json()["error"]["message"]

    async def test_check_in_too_early(self, client, customer_headers, model_headers, offering):
        booking = await _book(client, customer_headers, offering, hours_ahead=5)
        await client.post(f"/model/bookings/{booking['id']}/accept", headers=model_headers)

        response = await client.post(f"/model/bookings/{booking['id']}/check-in",
                                     headers=model_headers, json=AT_VENUE)
        assert response.status_code == 400
        assert "Check-in opens in" in response.json()["error"]["message"]

    async def test_check_in_requires_confirmed_booking(self, client, customer_headers, offering):
        booking = await _book(client, customer_headers, offering, hours_ahead=0.25)
        response = await client.post(f"/bookings/{booking['id']}/check-in", headers=customer_headers,
                                     json=AT_VENUE)
        assert response.status_code == 409

    async def test_complete_then_confirm_releases_payment(self, client, test_session, customer_headers,
                                                          model_headers, model_account, offering):
        booking = await self._start_service(client, test_session, customer_headers, model_headers, offering)

        completed = await client.post(f"/model/bookings/{booking['id']}/complete", headers=model_headers)
        assert completed.status_code == 200
        data = completed.json()
        assert data["status"] == "awaiting_confirmation"
        assert data["payment_status"] == "pending_release"
        assert data["completion_token"].startswith("xao_")
        assert data["auto_release_at"] is not None

        confirmed = await client.post(f"/bookings/{booking['id']}/confirm", headers=customer_headers)
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "completed"
        assert confirmed.json()["payment_status"] == "released"

        # 10% commission on 200,000
        assert await _balance(test_session, model_id=model_account.id) == 180_000
        earning = (await test_session.execute(
            select(Transaction).where(Transaction.identifier == "booking_earning"))).scalar_one()
        assert earning.commission == 20_000

        summary = await client.get("/wallet/summary", headers=model_headers)
        assert summary.json()["total_income"] == 180_000

    async def test_confirm_by_token(self, client, test_session, customer_headers, model_headers, offering):
        booking = await self._start_service(client, test_session, customer_headers, model_headers, offering)
        token = (await client.post(f"/model/bookings/{booking['id']}/complete",
                                   headers=model_headers)).json()["completion_token"]

        bad = await client.post("/bookings/confirm-by-token", headers=customer_headers, json={"token": "xao_nope"})
        assert bad.status_code == 400

        ok = await client.post("/bookings/confirm-by-token", headers=customer_headers, json={"token": token})
        assert ok.status_code == 200
        assert ok.json()["status"] == "completed"

        # Tokens are single use
        reused = await client.post("/bookings/confirm-by-token", headers=customer_headers, json={"token": token})
        assert reused.status_code == 400

    async def test_expired_token(self, client, test_session, customer_headers, model_headers, offering):
        booking = await self._start_service(client, test_session, customer_headers, model_headers, offering)
        token = (await client.post(f"/model/bookings/{booking['id']}/complete",
                                   headers=model_headers)).json()["completion_token"]
        row = await test_session.get(Booking, booking["id"])
        row.completion_token_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await test_session.commit()

        response = await client.post("/bookings/confirm-by-token", headers=customer_headers, json={"token": token})
        assert response.status_code == 400
        assert "expired" in response.json()["error"]["message"]

    async def test_cannot_complete_before_start(self, client, customer_headers, model_headers, offering):
        booking = await self._confirmed_booking_at_venue(client, customer_headers, model_headers, offering)

        response = await client.post(f"/model/bookings/{booking['id']}/complete", headers=model_headers)
        assert response.status_code == 400

    async def test_dispute_holds_payment(self, client, test_session, customer_headers, model_headers,
                                         model_account, offering):
        booking = await self._start_service(client, test_session, customer_headers, model_headers, offering)
        await client.post(f"/model/bookings/{booking['id']}/complete", headers=model_headers)

        short = await client.post(f"/bookings/{booking['id']}/dispute", headers=customer_headers,
                                  json={"reason": "bad"})
        assert short.status_code == 400

        disputed = await client.post(f"/bookings/{booking['id']}/dispute", headers=customer_headers,
                                     json={"reason": "The model left after ten minutes"})
        assert disputed.status_code == 200
        assert disputed.json()["status"] == "disputed"
        assert disputed.json()["payment_status"] == "pending_release"
        assert await _balance(test_session, model_id=model_account.id) == 0

        confirm = await client.post(f"/bookings/{booking['id']}/confirm", headers=customer_headers)
        assert confirm.status_code == 409


class TestAutoRelease:
    async def test_overdue_bookings_are_released(self, client, test_session, customer_headers, model_headers,
                                                 model_account, offering, admin_headers):
        lifecycle = TestServiceLifecycle()
        booking = await lifecycle._start_service(client, test_session, customer_headers, model_headers, offering)
        await client.post(f"/model/bookings/{booking['id']}/complete", headers=model_headers)

        not_due = await client.post("/admin/maintenance/auto-release", headers=admin_headers)
        assert not_due.json() == []

        row = await test_session.get(Booking, booking["id"])
        row.auto_release_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await test_session.commit()

        response = await client.post("/admin/maintenance/auto-release", headers=admin_headers)
        assert response.json() == [{"booking_id": booking["id"], "success": True, "error": None}]

        await test_session.refresh(row)
        assert row.status == "completed"
        assert await _balance(test_session, model_id=model_account.id) == 180_000

        note = (await test_session.execute(
            select(Notification).where(Notification.type == "booking_auto_released"))).scalar_one()
        assert note.recipient_type == "customer"

    async def test_release_without_hold_record(self, test_session, customer, model_account, offering):
        now = datetime.now(timezone.utc)
        legacy = Booking(customer_id=customer.id, model_id=model_account.id, model_service_id=offering.id,
                         price=50_000, status="awaiting_confirmation", payment_status="pending_release",
                         auto_release_at=now - timedelta(hours=1))
        test_session.add(legacy)
        await test_session.commit()

        results = await BookingService.process_auto_release(test_session)
        assert len(results) == 1
        assert results[0]["success"] is True
        await test_session.refresh(legacy)
        assert legacy.payment_status == "released"


class TestConcurrentRelease:
    async def _overdue_booking(self, session, customer, model_account, offering) -> int:
        hold = await WalletService.hold(session, customer.id, 200_000, "booking_hold", "Dinner Date")
        booking = Booking(customer_id=customer.id, model_id=model_account.id, model_service_id=offering.id,
                          price=200_000, status="awaiting_confirmation", payment_status="pending_release",
                          hold_transaction_id=hold.id,
                          auto_release_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        session.add(booking)
        await session.commit()
        return booking.id

    async def test_confirm_and_auto_release_pay_out_once(self, test_session, customer, model_account, offering):
        booking_id = await self._overdue_booking(test_session, customer, model_account, offering)

        async def confirm():
            async with AsyncSessionLocal() as db:
                buyer = await db.get(Customer, customer.id)
                return await BookingService.confirm_completion(db, booking_id, buyer)

        async def auto_release():
            async with AsyncSessionLocal() as db:
                return await BookingService.process_auto_release(db)

        confirmed, released = await asyncio.gather(confirm(), auto_release(), return_exceptions=True)

        winners = [r for r in released if r["success"]]
        if isinstance(confirmed, Exception):
            assert isinstance(confirmed, InvalidStateError)
            assert len(winners) == 1
        else:
            assert winners == []

        earnings = (await test_session.execute(
            select(Transaction).where(Transaction.identifier == "booking_earning"))).scalars().all()
        assert len(earnings) == 1
        assert await _balance(test_session, model_id=model_account.id) == 180_000

    async def test_second_confirmation_is_rejected(self, test_session, customer, model_account, offering):
        booking_id = await self._overdue_booking(test_session, customer, model_account, offering)

        async def confirm():
            async with AsyncSessionLocal() as db:
                buyer = await db.get(Customer, customer.id)
                return await BookingService.confirm_completion(db, booking_id, buyer)

        outcomes = await asyncio.gather(confirm(), confirm(), return_exceptions=True)

        assert sum(isinstance(o, Booking) for o in outcomes) == 1
        assert sum(isinstance(o, InvalidStateError) for o in outcomes) == 1
        assert await _balance(test_session, model_id=model_account.id) == 180_000
        assert await _balance(test_session, customer_id=customer.id) == 800_000
