from types import SimpleNamespace

import pytest
from pywebpush import WebPushException
from sqlalchemy import select

from app.config import settings
from app.models import PushSubscription
from app.services.notification_broker import broker, channel_for
from app.services.notification_service import NotificationService, render
from app.services.push_service import PushService, build_payload


SUBSCRIPTION = {
    "endpoint": "https://push.example.com/send/abc123",
    "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM",
             "auth": "tBHItJI5svbpez7KI4CCXg"},
}


@pytest.fixture
def vapid(monkeypatch):
    monkeypatch.setattr(settings, "vapid_public_key", "BPublicKeyForTests")
    monkeypatch.setattr(settings, "vapid_private_key", "private-key-for-tests")


class TestNotificationInbox:
    async def test_notify_stores_and_publishes(self, test_session, customer):
        queue = broker.subscribe(channel_for("customer", customer.id))
        try:
            note = await NotificationService.notify(
                test_session, "customer", customer.id, "booking_confirmed", {"booking_id": 3}, name="Dara")
        finally:
            broker.unsubscribe(channel_for("customer", customer.id), queue)

        assert note.title == "Booking Confirmed"
        assert note.message == "Dara accepted your booking"
        event = queue.get_nowait()
        assert event["id"] == note.id
        assert event["data"] == {"booking_id": 3}

    def test_render_fills_missing_fields_with_blanks(self):
        title, message = render("booking_rejected", name="Dara")
        assert title == "Booking Rejected"
        assert message == "Dara declined your booking."

        title, message = render("custom_event", message="Hello there")
        assert title == "Custom Event"
        assert message == "Hello there"

    async def test_list_read_and_delete(self, client, test_session, customer, customer_headers):
        for booking_id in (1, 2):
            await NotificationService.notify(test_session, "customer", customer.id, "booking_confirmed",
                                             {"booking_id": booking_id}, name="Dara")

        listing = await client.get("/notifications", headers=customer_headers)
        assert [n["data"]["booking_id"] for n in listing.json()] == [2, 1]
        assert (await client.get("/notifications/unread-count", headers=customer_headers)).json() == {"count": 2}

        first = listing.json()[1]
        read = await client.post(f"/notifications/{first['id']}/read", headers=customer_headers)
        assert read.json()["is_read"] is True

        unread = await client.get("/notifications?unread_only=true", headers=customer_headers)
        assert len(unread.json()) == 1

        all_read = await client.post("/notifications/read-all", headers=customer_headers)
        assert all_read.json() == {"count": 1}

        deleted = await client.delete(f"/notifications/{first['id']}", headers=customer_headers)
        assert deleted.status_code == 204
        assert len((await client.get("/notifications", headers=customer_headers)).json()) == 1

    async def test_notifications_are_private(self, client, test_session, customer, model_account,
                                            auth_headers, create_customer):
        note = await NotificationService.notify(test_session, "customer", customer.id, "welcome", name="Noy")

        # Same numeric id, different role
        response = await client.post(f"/notifications/{note.id}/read",
                                     headers=auth_headers("model", customer.id))
        assert response.status_code in (401, 404)

        other = await create_customer(test_session, whatsapp="2055550008")
        response = await client.delete(f"/notifications/{note.id}", headers=auth_headers("customer", other.id))
        assert response.status_code == 404

    async def test_settings(self, client, customer_headers):
        current = await client.get("/notifications/settings", headers=customer_headers)
        assert current.json() == {"send_push_noti": False, "send_sms_noti": False}

        updated = await client.put("/notifications/settings", headers=customer_headers,
                                   json={"send_sms_noti": True})
        assert updated.json() == {"send_push_noti": False, "send_sms_noti": True}

    async def test_stream_requires_token(self, client):
        response = await client.get("/notifications/stream")
        assert response.status_code == 401

        response = await client.get("/notifications/stream?token=garbage")
        assert response.status_code == 401


class TestPushSubscriptions:
    async def test_vapid_key_unavailable_when_unconfigured(self, client):
        response = await client.get("/push/vapid-public-key")
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "service_unavailable"

    async def test_vapid_key(self, client, vapid):
        response = await client.get("/push/vapid-public-key")
        assert response.json() == {"public_key": "BPublicKeyForTests"}

    async def test_subscribe_is_an_upsert(self, client, test_session, customer, customer_headers, model_headers):
        response = await client.post("/push/subscribe", headers={**customer_headers, "User-Agent": "Firefox"},
                                     json=SUBSCRIPTION)
        assert response.status_code == 201
        await test_session.refresh(customer)
        assert customer.send_push_noti is True

        # The same browser endpoint moves to whoever subscribed last
        await client.post("/push/subscribe", headers=model_headers, json=SUBSCRIPTION)
        rows = (await test_session.execute(select(PushSubscription))).scalars().all()
        assert len(rows) == 1
        await test_session.refresh(rows[0])
        assert rows[0].user_type == "model"

    async def test_unsubscribe_turns_push_off(self, client, test_session, customer, customer_headers):
        await client.post("/push/subscribe", headers=customer_headers, json=SUBSCRIPTION)

        response = await client.post("/push/unsubscribe", headers=customer_headers,
                                     json={"endpoint": SUBSCRIPTION["endpoint"]})
        assert response.json()["message"] == "Unsubscribed"
        await test_session.refresh(customer)
        assert customer.send_push_noti is False

        missing = await client.post("/push/unsubscribe", headers=customer_headers,
                                    json={"endpoint": SUBSCRIPTION["endpoint"]})
        assert missing.json()["message"] == "Subscription not found"

    async def test_remove_all(self, client, customer_headers):
        for n in range(2):
            await client.post("/push/subscribe", headers=customer_headers,
                              json={**SUBSCRIPTION, "endpoint": f"{SUBSCRIPTION['endpoint']}-{n}"})

        response = await client.delete("/push/subscriptions", headers=customer_headers)
        assert response.json()["message"] == "Removed 2 subscriptions"


class TestPushDelivery:
    def test_payload_defaults(self):
        payload = build_payload("model", {"title": "Hi", "body": "There"})
        assert payload["data"]["url"] == "/model/notifications"
        assert payload["tag"] == "xaosao-notification"

    async def test_skipped_when_unconfigured(self, test_session, customer, monkeypatch):
        calls = []
        monkeypatch.setattr(PushService, "_send_one", staticmethod(lambda info, body: calls.append(info)))
        await PushService.subscribe(test_session, "customer", customer.id, SUBSCRIPTION["endpoint"],
                                    "p256dh", "auth")

        result = await PushService.send_to_user(test_session, "customer", customer.id, {"title": "x"})
        assert result == {"sent": 0, "failed": 0}
        assert calls == []

    async def test_sends_and_prunes_gone_subscriptions(self, test_session, customer, monkeypatch, vapid):
        def fake_send(info, body):
            if info["endpoint"].endswith("gone"):
                raise WebPushException("Gone", response=SimpleNamespace(status_code=410, text="gone"))

        monkeypatch.setattr(PushService, "_send_one", staticmethod(fake_send))
        for suffix in ("live", "gone"):
            await PushService.subscribe(test_session, "customer", customer.id,
                                        f"https://push.example.com/{suffix}", "p256dh", "auth")

        result = await PushService.send_to_user(test_session, "customer", customer.id, {"title": "x"})

        assert result == {"sent": 1, "failed": 1}
        endpoints = (await test_session.execute(select(PushSubscription.endpoint))).scalars().all()
        assert endpoints == ["https://push.example.com/live"]

    async def test_push_respects_opt_out(self, test_session, customer, monkeypatch, vapid):
        calls = []
        monkeypatch.setattr(PushService, "_send_one", staticmethod(lambda info, body: calls.append(info)))
        await PushService.subscribe(test_session, "customer", customer.id, SUBSCRIPTION["endpoint"],
                                    "p256dh", "auth")
        customer.send_push_noti = False
        await test_session.commit()

        result = await PushService.send_to_user(test_session, "customer", customer.id, {"title": "x"})
        assert result["sent"] == 0
        assert calls == []
