import pytest

from app.models import Booking



async def _completed_booking(session, customer, model):
    booking = Booking(customer_id=customer.id, model_id=model.id, price=100_000,
                      status="completed", payment_status="released")
    session.add(booking)
    await session.commit()
    return booking


@pytest.mark.asyncio
async def test_review_requires_completed_booking(client, customer, customer_headers, model_account):
    check = await client.get(f"/reviews/can-review/{model_account.id}", headers=customer_headers)
    assert check.json() == {"can_review": False, "reason": "no_completed_booking"}

    response = await client.post("/reviews", headers=customer_headers,
                                 json={"model_id": model_account.id, "rating": 5})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_review_updates_model_rating(client, test_session, customer, customer_headers, model_account,
                                           auth_headers, create_customer):
    await _completed_booking(test_session, customer, model_account)
    assert (await client.get(f"/reviews/can-review/{model_account.id}",
                             headers=customer_headers)).json()["can_review"] is True

    response = await client.post("/reviews", headers=customer_headers, json={
        "model_id": model_account.id, "rating": 4, "title": "Lovely evening", "review_text": "Great company"})
    assert response.status_code == 201
    assert response.json()["customer_name"] == "Noy"

    other = await create_customer(test_session, whatsapp="2055550009", first_name="Keo")
    await _completed_booking(test_session, other, model_account)
    await client.post("/reviews", headers=auth_headers("customer", other.id),
                      json={"model_id": model_account.id, "rating": 5, "is_anonymous": True})

    await test_session.refresh(model_account)
    assert model_account.rating == 4.5
    assert model_account.total_reviews == 2

    listing = await client.get(f"/reviews/models/{model_account.id}?limit=10")
    data = listing.json()
    assert data["total"] == 2
    assert sorted(r["customer_name"] or "anonymous" for r in data["items"]) == ["Noy", "anonymous"]


@pytest.mark.asyncio
async def test_one_review_per_model(client, test_session, customer, customer_headers, model_account):
    await _completed_booking(test_session, customer, model_account)
    body = {"model_id": model_account.id, "rating": 3}
    assert (await client.post("/reviews", headers=customer_headers, json=body)).status_code == 201

    again = await client.post("/reviews", headers=customer_headers, json=body)
    assert again.status_code == 409
    check = await client.get(f"/reviews/can-review/{model_account.id}", headers=customer_headers)
    assert check.json()["reason"] == "already_reviewed"


@pytest.mark.asyncio
async def test_rating_bounds(client, customer_headers, model_account):
    response = await client.post("/reviews", headers=customer_headers,
                                 json={"model_id": model_account.id, "rating": 6})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reviews_pagination(client, test_session, model_account, auth_headers, create_customer):
    for n in range(3):
        reviewer = await create_customer(test_session, whatsapp=f"205555010{n}")
        await _completed_booking(test_session, reviewer, model_account)
        await client.post("/reviews", headers=auth_headers("customer", reviewer.id),
                          json={"model_id": model_account.id, "rating": 5})

    page = await client.get(f"/reviews/models/{model_account.id}?page=2&limit=2")
    assert page.json()["total"] == 3
    assert len(page.json()["items"]) == 1


@pytest.mark.asyncio
async def test_review_unknown_model(client, customer_headers):
    response = await client.post("/reviews", headers=customer_headers, json={"model_id": 4040, "rating": 5})
    assert response.status_code == 404
