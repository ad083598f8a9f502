"""
Integration tests for the REST API endpoints.

Runs the FastAPI app over ``ASGITransport`` against the per-test SQLite
store; callers are identified through the ``X-Caller-*`` headers.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from tests.conftest import (
    ADMIN_ID,
    CAR,
    DRIVER_ID,
    EXPECTED_FARE,
    INACTIVE_RIDER_ID,
    MOTOR_DRIVER_ID,
    OTHER_RIDER_ID,
    RIDER_ID,
    RIVAL_DRIVER_ID,
    caller,
)

RIDER = caller(RIDER_ID, "rider")
OTHER_RIDER = caller(OTHER_RIDER_ID, "rider")
DRIVER = caller(DRIVER_ID, "driver")
RIVAL = caller(RIVAL_DRIVER_ID, "driver")
MOTOR = caller(MOTOR_DRIVER_ID, "driver")
ADMIN = caller(ADMIN_ID, "admin")

BOOKING = {
    "pickup_location": "KL Sentral",
    "dropoff_location": "KLCC",
    "requested_vehicle_type": CAR,
}


async def _book(client: AsyncClient, headers=RIDER, body=BOOKING) -> int:
    resp = await client.post("/api/v1/users/booking", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


async def _accepted_ride(client: AsyncClient) -> int:
    booking_id = await _book(client)
    resp = await client.patch(
        f"/api/v1/drivers/booking/{booking_id}/accept", headers=DRIVER
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["ride"]["id"]


async def _completed_ride(client: AsyncClient, clock) -> int:
    ride_id = await _accepted_ride(client)
    await client.patch(f"/api/v1/drivers/ride/{ride_id}/start", headers=DRIVER)
    clock.advance(900)
    resp = await client.patch(f"/api/v1/drivers/ride/{ride_id}/complete", headers=DRIVER)
    assert resp.status_code == 200, resp.text
    return ride_id


# ── Health & identity ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admins/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_caller_is_401(client: AsyncClient):
    resp = await client.post("/api/v1/users/booking", json=BOOKING)
    assert resp.status_code == 401
    assert "error" in resp.json()


@pytest.mark.asyncio
async def test_unknown_account_is_401(client: AsyncClient):
    resp = await client.post(
        "/api/v1/users/booking", json=BOOKING, headers=caller(999, "rider")
    )
    assert resp.status_code == 401
    assert resp.json() == {"error": "Account not found."}


@pytest.mark.asyncio
async def test_inactive_account_is_403(client: AsyncClient):
    resp = await client.post(
        "/api/v1/users/booking", json=BOOKING, headers=caller(INACTIVE_RIDER_ID, "rider")
    )
    assert resp.status_code == 403
    assert resp.json() == {"error": "Account not active."}


@pytest.mark.asyncio
async def test_wrong_role_is_403(client: AsyncClient):
    resp = await client.post("/api/v1/users/booking", json=BOOKING, headers=DRIVER)
    assert resp.status_code == 403
    resp = await client.get("/api/v1/admins/ride", headers=RIDER)
    assert resp.status_code == 403


# ── Rider endpoints ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_booking_returns_201(client: AsyncClient):
    resp = await client.post("/api/v1/users/booking", json=BOOKING, headers=RIDER)
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "requested"
    assert data["rider_id"] == RIDER_ID
    assert data["requested_vehicle_type"] == CAR
    assert data["estimated_fare"] == EXPECTED_FARE


@pytest.mark.asyncio
async def test_create_booking_missing_field(client: AsyncClient):
    resp = await client.post(
        "/api/v1/users/booking",
        json={"pickup_location": "KL Sentral", "requested_vehicle_type": CAR},
        headers=RIDER,
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing information."}


@pytest.mark.asyncio
async def test_malformed_body_is_400(client: AsyncClient):
    resp = await client.post(
        "/api/v1/users/booking",
        content="not json",
        headers={**RIDER, "Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request body."}


@pytest.mark.asyncio
async def test_view_and_update_booking(client: AsyncClient):
    booking_id = await _book(client)

    resp = await client.get(f"/api/v1/users/booking/{booking_id}", headers=RIDER)
    assert resp.status_code == 200
    assert resp.json()["pickup_location"] == "KL Sentral"

    resp = await client.patch(
        f"/api/v1/users/booking/{booking_id}",
        json={"pickup_location": "Mid Valley"},
        headers=RIDER,
    )
    assert resp.status_code == 200
    assert resp.json()["pickup_location"] == "Mid Valley"
    assert resp.json()["dropoff_location"] == "KLCC"

    resp = await client.patch(
        f"/api/v1/users/booking/{booking_id}", json={}, headers=RIDER
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_booking_invisible_to_other_rider(client: AsyncClient):
    booking_id = await _book(client)
    resp = await client.get(f"/api/v1/users/booking/{booking_id}", headers=OTHER_RIDER)
    assert resp.status_code == 404
    missing = await client.get("/api/v1/users/booking/9999", headers=RIDER)
    assert missing.json() == resp.json()


@pytest.mark.asyncio
async def test_cancel_booking(client: AsyncClient):
    booking_id = await _book(client)
    resp = await client.patch(f"/api/v1/users/booking/{booking_id}/cancel", headers=RIDER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancelled_at"] is not None

    resp = await client.patch(f"/api/v1/users/booking/{booking_id}/cancel", headers=RIDER)
    assert resp.status_code == 404


# ── Driver endpoints ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_open_bookings_listing(client: AsyncClient):
    resp = await client.get("/api/v1/drivers/booking", headers=DRIVER)
    assert resp.status_code == 200
    assert resp.json() == []

    await _book(client)
    await _book(client, body={**BOOKING, "requested_vehicle_type": "motor"})

    resp = await client.get("/api/v1/drivers/booking", headers=DRIVER)
    assert len(resp.json()) == 2
    assert "rider_id" not in resp.json()[0]

    resp = await client.get(
        "/api/v1/drivers/booking", params={"matching_vehicle": "true"}, headers=MOTOR
    )
    assert [b["requested_vehicle_type"] for b in resp.json()] == ["motor"]


@pytest.mark.asyncio
async def test_accept_booking(client: AsyncClient):
    booking_id = await _book(client)
    resp = await client.patch(f"/api/v1/drivers/booking/{booking_id}/accept", headers=DRIVER)
    assert resp.status_code == 200
    data = resp.json()
    assert data["ride"]["status"] == "accepted"
    assert data["ride"]["booking_id"] == booking_id
    assert data["ride"]["fare"] == EXPECTED_FARE
    assert data["payment"]["status"] == "pending"
    assert data["payment"]["amount"] == EXPECTED_FARE


@pytest.mark.asyncio
async def test_second_accept_is_404(client: AsyncClient):
    booking_id = await _book(client)
    await client.patch(f"/api/v1/drivers/booking/{booking_id}/accept", headers=DRIVER)
    resp = await client.patch(f"/api/v1/drivers/booking/{booking_id}/accept", headers=RIVAL)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Booking not found or already accepted/cancelled."}


@pytest.mark.asyncio
async def test_accept_with_wrong_vehicle_is_400(client: AsyncClient):
    booking_id = await _book(client)
    resp = await client.patch(f"/api/v1/drivers/booking/{booking_id}/accept", headers=MOTOR)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_start_and_complete(client: AsyncClient, clock):
    ride_id = await _accepted_ride(client)

    resp = await client.patch(f"/api/v1/drivers/ride/{ride_id}/start", headers=DRIVER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "ongoing"
    assert resp.json()["started_at"] is not None

    clock.advance(900)
    resp = await client.patch(f"/api/v1/drivers/ride/{ride_id}/complete", headers=DRIVER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert resp.json()["duration"] == 900

    resp = await client.patch(f"/api/v1/drivers/ride/{ride_id}/start", headers=DRIVER)
    assert resp.status_code == 404


# ── Shared ride endpoints ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_ride_detail_for_parties_only(client: AsyncClient):
    ride_id = await _accepted_ride(client)

    for headers in (RIDER, DRIVER):
        resp = await client.get(f"/api/v1/rides/{ride_id}", headers=headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["rider"]["username"] == "aisyah"
        assert data["driver"]["username"] == "hafiz"
        assert data["vehicle"]["plate_number"] == "WXY 1234"

    resp = await client.get(f"/api/v1/rides/{ride_id}", headers=OTHER_RIDER)
    assert resp.status_code == 404
    resp = await client.get(f"/api/v1/rides/{ride_id}", headers=ADMIN)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_cancel_ride_records_who(client: AsyncClient):
    ride_id = await _accepted_ride(client)
    resp = await client.patch(f"/api/v1/rides/{ride_id}/cancel", headers=DRIVER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancelled_by"] == "driver"


# ── Payment & rating ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_pay_then_pay_again(client: AsyncClient, clock):
    ride_id = await _completed_ride(client, clock)
    url = f"/api/v1/users/ride/{ride_id}/payment"

    resp = await client.patch(url, json={"payment_method": "bank"}, headers=RIDER)
    assert resp.status_code == 400

    resp = await client.patch(
        url,
        json={"payment_method": "bank", "transaction_reference": "FPX-42"},
        headers=RIDER,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "success"
    assert resp.json()["amount"] == EXPECTED_FARE

    resp = await client.patch(url, json={"payment_method": "cash"}, headers=RIDER)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Payment not found."}


@pytest.mark.asyncio
async def test_rate_ride(client: AsyncClient, clock):
    ride_id = await _completed_ride(client, clock)
    url = f"/api/v1/users/ride/{ride_id}/rating"

    resp = await client.post(url, json={"rating": 4.5}, headers=RIDER)
    assert resp.status_code == 400

    resp = await client.post(url, json={"rating": 5, "comment": "Great"}, headers=RIDER)
    assert resp.status_code == 201
    assert resp.json()["rating"] == 5

    resp = await client.post(url, json={"rating": 5}, headers=RIDER)
    assert resp.status_code == 400
    assert resp.json() == {"error": "This ride has already been rated."}

    detail = await client.get(f"/api/v1/rides/{ride_id}", headers=RIDER)
    assert detail.json()["driver"]["rating"] == 5.0


# ── Admin endpoints ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_admin_lists_and_force_cancels(client: AsyncClient):
    ride_id = await _accepted_ride(client)
    await client.patch(f"/api/v1/drivers/ride/{ride_id}/start", headers=DRIVER)

    resp = await client.get("/api/v1/admins/ride", headers=ADMIN)
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [ride_id]

    resp = await client.get(f"/api/v1/admins/ride/{ride_id}", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["status"] == "ongoing"

    resp = await client.patch(f"/api/v1/admins/ride/{ride_id}/cancel", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["cancelled_by"] == "admin"

    resp = await client.patch(f"/api/v1/admins/ride/{ride_id}/cancel", headers=ADMIN)
    assert resp.status_code == 404


# ── Out-of-range ids ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_id_beyond_key_range_is_404(client: AsyncClient, caplog):
    too_big = 2**63
    resp = await client.get(f"/api/v1/rides/{too_big}", headers=RIDER)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not found."}

    resp = await client.patch(f"/api/v1/drivers/booking/{too_big}/accept", headers=DRIVER)
    assert resp.status_code == 404
    resp = await client.get(f"/api/v1/users/booking/{2**31}", headers=RIDER)
    assert resp.status_code == 404
    resp = await client.patch("/api/v1/admins/ride/0/cancel", headers=ADMIN)
    assert resp.status_code == 404

    assert "Unhandled error" not in caplog.text


@pytest.mark.asyncio
async def test_caller_id_beyond_key_range_is_401(client: AsyncClient):
    resp = await client.post(
        "/api/v1/users/booking", json=BOOKING, headers=caller(2**63, "rider")
    )
    assert resp.status_code == 401
    assert resp.json() == {"error": "Account not found."}
