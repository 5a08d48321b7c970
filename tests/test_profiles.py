import pytest
from sqlalchemy import select

from app.models import AuditLog, Model
from app.services.profile_service import distance_km


VIENTIANE = (17.9757, 102.6331)
# Roughly 3.4 km and 107 km away
THAT_LUANG = (17.9766, 102.6653)
VANG_VIENG = (18.9220, 102.4478)


def test_distance_needs_both_points():
    assert distance_km(*VIENTIANE, None, None) is None
    assert distance_km(*VIENTIANE, *VIENTIANE) == 0


@pytest.fixture
async def located_customer(test_session, create_customer):
    return await create_customer(test_session, whatsapp="2055550030",
                                 latitude=VIENTIANE[0], longitude=VIENTIANE[1])


@pytest.fixture
async def catalogue(test_session, create_model):
    near = await create_model(test_session, whatsapp="2077770031", first_name="Near",
                              latitude=THAT_LUANG[0], longitude=THAT_LUANG[1], rating=4.0)
    far = await create_model(test_session, whatsapp="2077770032", first_name="Far",
                             latitude=VANG_VIENG[0], longitude=VANG_VIENG[1], rating=5.0)
    hidden = await create_model(test_session, whatsapp="2077770033", first_name="Hidden", status="pending")
    return near, far, hidden


class TestDiscovery:
    async def test_list_active_models_best_rated_first(self, client, located_customer, catalogue, auth_headers):
        response = await client.get("/models", headers=auth_headers("customer", located_customer.id))

        assert response.status_code == 200
        models = response.json()
        assert [m["first_name"] for m in models] == ["Far", "Near"]
        assert 100 < models[0]["distance_km"] < 115
        assert "whatsapp" not in models[0]

    async def test_filter_by_availability(self, client, test_session, located_customer, catalogue, auth_headers):
        near, far, _ = catalogue
        far.available_status = "busy"
        await test_session.commit()

        response = await client.get("/models?available_status=busy",
                                    headers=auth_headers("customer", located_customer.id))
        assert [m["id"] for m in response.json()] == [far.id]

    async def test_nearby_uses_saved_location(self, client, located_customer, catalogue, auth_headers):
        headers = auth_headers("customer", located_customer.id)

        close = await client.get("/models/nearby?max_distance_km=10", headers=headers)
        assert [m["first_name"] for m in close.json()] == ["Near"]
        assert 3 < close.json()[0]["distance_km"] < 4

        wide = await client.get("/models/nearby?max_distance_km=200", headers=headers)
        assert [m["first_name"] for m in wide.json()] == ["Near", "Far"]

    async def test_nearby_with_explicit_location(self, client, customer_headers, catalogue):
        lat, lng = VANG_VIENG
        response = await client.get(f"/models/nearby?max_distance_km=5&latitude={lat}&longitude={lng}",
                                    headers=customer_headers)
        assert [m["first_name"] for m in response.json()] == ["Far"]

    async def test_nearby_requires_a_location(self, client, customer_headers, catalogue):
        response = await client.get("/models/nearby", headers=customer_headers)
        assert response.status_code == 400
        assert "location" in response.json()["error"]["message"]

    async def test_model_profile_lists_services(self, client, test_session, customer_headers, catalogue,
                                                create_offering):
        near, _, hidden = catalogue
        await create_offering(test_session, near, name="Dinner Date")

        response = await client.get(f"/models/{near.id}", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["first_name"] == "Near"
        assert [s["service"]["name"] for s in response.json()["services"]] == ["Dinner Date"]
        assert response.json()["distance_km"] is None

        missing = await client.get(f"/models/{hidden.id}", headers=customer_headers)
        assert missing.status_code == 404

    async def test_models_cannot_browse(self, client, model_headers):
        response = await client.get("/models", headers=model_headers)
        assert response.status_code == 403


class TestOwnProfile:
    async def test_customer_updates_profile(self, client, test_session, customer, customer_headers):
        response = await client.patch("/profile", headers=customer_headers, json={
            "last_name": "Phommachanh", "latitude": VIENTIANE[0], "longitude": VIENTIANE[1]})

        assert response.status_code == 200
        assert response.json()["last_name"] == "Phommachanh"
        assert response.json()["first_name"] == "Noy"
        assert response.json()["latitude"] == VIENTIANE[0]

        audit = (await test_session.execute(
            select(AuditLog).where(AuditLog.action == "customer_profile_updated"))).scalar_one()
        assert audit.payload == {"fields": ["last_name", "latitude", "longitude"]}

    async def test_half_a_location_is_rejected(self, client, customer_headers):
        response = await client.patch("/profile", headers=customer_headers, json={"latitude": VIENTIANE[0]})
        assert response.status_code == 400

    async def test_model_updates_bio(self, client, model_headers):
        response = await client.patch("/model/profile", headers=model_headers,
                                      json={"bio": "Fluent in Lao, Thai and English", "address": "Vientiane"})
        assert response.status_code == 200
        assert response.json()["bio"] == "Fluent in Lao, Thai and English"

    async def test_customer_cannot_use_model_routes(self, client, customer_headers):
        response = await client.patch("/model/profile", headers=customer_headers, json={"bio": "x"})
        assert response.status_code == 403

    async def test_settings(self, client, customer_headers, model_headers):
        customer = await client.patch("/profile/settings", headers=customer_headers, json={"send_sms_noti": True})
        assert customer.json()["send_sms_noti"] is True
        assert customer.json()["send_push_noti"] is False

        model = await client.patch("/model/settings", headers=model_headers, json={"send_push_noti": True})
        assert model.json()["send_push_noti"] is True


class TestAvailability:
    async def test_toggle(self, client, test_session, model_account, model_headers):
        response = await client.patch("/model/availability", headers=model_headers,
                                      json={"available_status": "busy"})

        assert response.status_code == 200
        assert response.json()["available_status"] == "busy"
        stored = await test_session.scalar(select(Model.available_status).where(Model.id == model_account.id))
        assert stored == "busy"

    async def test_unknown_status(self, client, model_headers):
        response = await client.patch("/model/availability", headers=model_headers,
                                      json={"available_status": "sleeping"})
        assert response.status_code == 422
