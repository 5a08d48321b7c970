"""Unit tests for pure helpers: geo, pricing, commission and phone formatting."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.exceptions import ValidationFailedError
from app.services.booking_service import can_cancel, check_in_distance, check_in_window, generate_completion_token
from app.services.call_service import billable_minutes, remaining_balance
from app.services.catalog_service import quote_price
from app.services.sms_service import format_phone_number
from app.services.wallet_service import split_commission
from app.utils import distance_meters, ensure_utc, haversine_distance


def test_haversine_distance_known_points():
    # Vientiane to Luang Prabang is roughly 210 km as the crow flies
    distance = haversine_distance(17.9757, 102.6331, 19.8856, 102.1347)
    assert 200 < distance < 225


def test_distance_meters_same_point():
    assert distance_meters(17.9757, 102.6331, 17.9757, 102.6331) == 0


def test_ensure_utc_attaches_timezone_to_naive_values():
    naive = datetime(2024, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc
    assert ensure_utc(None) is None


def test_split_commission_floors_commission():
    assert split_commission(100_000, 10) == (10_000, 90_000)
    assert split_commission(999, 15) == (149, 850)
    assert split_commission(5_000, 0) == (0, 5_000)


def _service(**kw):
    base = dict(billing_type="per_day", base_rate=0, hourly_rate=None,
                one_time_price=None, one_night_price=None, minute_rate=None)
    base.update(kw)
    return SimpleNamespace(**base)


def _application(**kw):
    base = dict(custom_rate=None, custom_hourly_rate=None, custom_one_time_price=None,
                custom_one_night_price=None, custom_minute_rate=None)
    base.update(kw)
    return SimpleNamespace(**base)


def test_quote_per_day_uses_custom_rate():
    unit, qty, total = quote_price(_service(base_rate=100_000), _application(custom_rate=150_000), day_amount=2)
    assert (unit, qty, total) == (150_000, 2, 300_000)


def test_quote_per_hour_defaults_to_one_hour():
    unit, qty, total = quote_price(_service(billing_type="per_hour", hourly_rate=40_000), _application())
    assert (unit, qty, total) == (40_000, 1, 40_000)


def test_quote_per_session_requires_session_type():
    service = _service(billing_type="per_session", one_time_price=200_000, one_night_price=500_000)
    assert quote_price(service, _application(), session_type="one_night")[2] == 500_000
    with pytest.raises(ValidationFailedError):
        quote_price(service, _application())


def test_quote_rejects_per_minute_services():
    with pytest.raises(ValidationFailedError, match="calls"):
        quote_price(_service(billing_type="per_minute", minute_rate=5_000), _application())


def test_quote_rejects_unpriced_service():
    with pytest.raises(ValidationFailedError):
        quote_price(_service(base_rate=0), _application())


def test_billable_minutes_rounds_up_with_minimum():
    assert billable_minutes(0) == 1
    assert billable_minutes(60) == 1
    assert billable_minutes(61) == 2
    assert billable_minutes(300) == 5


def test_remaining_balance_never_negative():
    assert remaining_balance(50_000, 120, 5_000) == 40_000
    assert remaining_balance(10_000, 600, 5_000) == 0


@pytest.mark.parametrize("raw,expected", [
    ("2055551234", "2055551234"),
    ("+856 20 5555 1234", "2055551234"),
    ("02055551234", "2055551234"),
    ("3055551234", "3055551234"),
    ("1055551234", None),
    ("205555", None),
    (None, None),
])
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


def test_check_in_window():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    # Opens 30 minutes before the start
    check_in_window(now + timedelta(minutes=20), None, now=now)
    with pytest.raises(ValidationFailedError, match="opens in"):
        check_in_window(now + timedelta(hours=2), None, now=now)
    with pytest.raises(ValidationFailedError, match="ended"):
        check_in_window(now - timedelta(hours=3), now - timedelta(hours=1), now=now)


def test_check_in_distance():
    booking = SimpleNamespace(location_lat=17.9757, location_lng=102.6331)
    assert check_in_distance(booking, 17.9757, 102.6331) == 0
    with pytest.raises(ValidationFailedError, match="away from the booking location"):
        check_in_distance(booking, 17.9857, 102.6331)
    assert check_in_distance(SimpleNamespace(location_lat=None, location_lng=None), 0, 0) is None


def test_can_cancel_respects_cutoff():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert can_cancel(now + timedelta(hours=5), now=now)
    assert not can_cancel(now + timedelta(hours=1), now=now)
    assert can_cancel(None, now=now)


def test_completion_tokens_are_unique():
    tokens = {generate_completion_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(t.startswith("xao_") for t in tokens)
