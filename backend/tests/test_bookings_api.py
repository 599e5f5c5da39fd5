"""
Clutch Backend — Booking API Tests
====================================

What:  The booking lifecycle end to end through HTTP.
How:   Requests go through the full middleware and exception-handler stack
       via ASGITransport; the app runs over a fresh memory store.

What we test:
    ✅ Create → 201 envelope with reference, status pending, owner
    ✅ Referenced mechanic must be active; vehicle must belong to the caller
    ✅ Status transitions stamp timestamps; completion defaults actualCost
    ✅ Cancel only from pending / confirmed
    ✅ Pending list ordering, mechanic list, filters, stats
    ✅ 401 without token, 403 for a non-owner, 404 for an unknown id
    ✅ DELETE of an unknown id → 404, never 200
"""

import uuid

import pytest

BOOKING_DATE = "2030-06-01T09:00:00Z"


async def _create(client, token, caller, path, payload):
    response = await client.post(path, json=payload, headers=token(caller))
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def setup(client, token, user, admin):
    """Returns a coroutine that creates a mechanic and the user's vehicle."""

    async def _setup():
        mechanic = await _create(
            client, token, admin, "/api/mechanics", {"name": "Sam Wrench", "specialization": "engine"}
        )
        vehicle = await _create(
            client, token, user, "/api/vehicles", {"make": "Toyota", "model": "Corolla", "year": 2019}
        )
        return mechanic, vehicle

    return _setup


def _booking(mechanic, vehicle, **overrides):
    payload = {
        "mechanicId": mechanic["id"],
        "vehicleId": vehicle["id"],
        "serviceType": "oil_change",
        "bookingDate": BOOKING_DATE,
        "estimatedCost": "80",
    }
    payload.update(overrides)
    return payload


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_create_returns_envelope(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        response = await client.post("/api/bookings", json=_booking(mechanic, vehicle), headers=token(user))

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Booking created successfully"
        booking = body["data"]
        assert booking["status"] == "pending"
        assert booking["ownerId"] == user.id
        assert booking["estimatedCost"] == 80.0
        assert booking["bookingReference"].startswith("BK-")
        assert booking["bookingDate"] == "2030-06-01T09:00:00+00:00"
        assert booking["createdAt"] == booking["updatedAt"]
        assert booking["createdAt"].endswith("+00:00")
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_missing_fields(self, client, token, user):
        response = await client.post("/api/bookings", json={"serviceType": "oil_change"}, headers=token(user))
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "MISSING_REQUIRED_FIELDS"
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_inactive_mechanic(self, client, token, user, admin, setup):
        mechanic, vehicle = await setup()
        await client.patch(
            f"/api/mechanics/{mechanic['id']}/status", json={"status": "suspended"}, headers=token(admin)
        )
        response = await client.post("/api/bookings", json=_booking(mechanic, vehicle), headers=token(user))
        assert response.status_code == 400
        assert response.json()["error"] == "MECHANIC_NOT_AVAILABLE"

    @pytest.mark.asyncio
    async def test_someone_elses_vehicle(self, client, token, other, setup):
        mechanic, vehicle = await setup()
        response = await client.post("/api/bookings", json=_booking(mechanic, vehicle), headers=token(other))
        assert response.status_code == 400
        assert response.json()["error"] == "VEHICLE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_malformed_reference_id(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        payload = _booking(mechanic, vehicle, mechanicId="mechanic-1")
        response = await client.post("/api/bookings", json=payload, headers=token(user))
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_ID"

    @pytest.mark.asyncio
    async def test_non_object_body(self, client, token, user):
        response = await client.post("/api/bookings", json=["not", "an", "object"], headers=token(user))
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestBookingLifecycle:
    @pytest.mark.asyncio
    async def test_confirm_start_complete(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        booking = await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))
        url = f"/api/bookings/{booking['id']}/status"

        confirmed = await client.patch(url, json={"status": "confirmed"}, headers=token(user))
        assert confirmed.status_code == 200
        assert confirmed.json()["message"] == "Booking status updated to confirmed"
        assert confirmed.json()["data"]["confirmedAt"]

        started = (await client.patch(url, json={"status": "in_progress"}, headers=token(user))).json()["data"]
        assert started["startedAt"]

        completed = await client.patch(url, json={"status": "completed", "notes": "done"}, headers=token(user))
        data = completed.json()["data"]
        assert data["status"] == "completed"
        assert data["completedAt"]
        assert data["actualCost"] == 0
        assert data["notes"] == "done"

    @pytest.mark.asyncio
    async def test_completion_records_actual_cost(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        booking = await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))
        response = await client.patch(
            f"/api/bookings/{booking['id']}/status",
            json={"status": "completed", "actualCost": "95.5"},
            headers=token(user),
        )
        assert response.json()["data"]["actualCost"] == 95.5

    @pytest.mark.asyncio
    async def test_invalid_status(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        booking = await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))
        response = await client.patch(
            f"/api/bookings/{booking['id']}/status", json={"status": "teleported"}, headers=token(user)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_STATUS"

    @pytest.mark.asyncio
    async def test_cancel(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        booking = await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))

        response = await client.post(
            f"/api/bookings/{booking['id']}/cancel", json={"reason": "Car sold"}, headers=token(user)
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Booking cancelled successfully"
        assert body["data"]["status"] == "cancelled"
        assert body["data"]["cancellationReason"] == "Car sold"
        assert body["data"]["cancelledBy"] == user.id

        again = await client.post(f"/api/bookings/{booking['id']}/cancel", headers=token(user))
        assert again.status_code == 400
        assert again.json()["error"] == "INVALID_BOOKING_STATUS"

    @pytest.mark.asyncio
    async def test_delete_is_soft(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        booking = await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))

        response = await client.delete(f"/api/bookings/{booking['id']}", headers=token(user))
        assert response.status_code == 200
        assert response.json()["message"] == "Booking deleted successfully"

        fetched = await client.get(f"/api/bookings/{booking['id']}", headers=token(user))
        assert fetched.json()["data"]["status"] == "cancelled"
        assert fetched.json()["data"]["cancellationReason"] == "Deleted by user"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("resource, code", [("bookings", "BOOKING_NOT_FOUND"), ("vehicles", "VEHICLE_NOT_FOUND")])
    async def test_delete_unknown_id_is_404(self, client, token, user, resource, code):
        response = await client.delete(f"/api/{resource}/{uuid.uuid4()}", headers=token(user))
        assert response.status_code == 404
        assert response.json()["error"] == code


class TestBookingAccess:
    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.get("/api/bookings")
        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_REQUIRED"

    @pytest.mark.asyncio
    async def test_rejects_bad_token(self, client):
        response = await client.get("/api/bookings", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_non_owner_cannot_update(self, client, token, user, other, setup):
        mechanic, vehicle = await setup()
        booking = await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))

        response = await client.put(
            f"/api/bookings/{booking['id']}", json={"description": "hijacked"}, headers=token(other)
        )
        assert response.status_code == 403
        assert response.json()["error"] == "UNAUTHORIZED"

        fetched = (await client.get(f"/api/bookings/{booking['id']}", headers=token(user))).json()["data"]
        assert fetched["description"] == ""
        assert fetched["updatedAt"] == booking["updatedAt"]

    @pytest.mark.asyncio
    async def test_unknown_booking(self, client, token, user):
        response = await client.get(f"/api/bookings/{uuid.uuid4()}", headers=token(user))
        assert response.status_code == 404
        assert response.json()["error"] == "BOOKING_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_malformed_id(self, client, token, user):
        response = await client.get("/api/bookings/12345", headers=token(user))
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_ID"


class TestBookingLists:
    @pytest.mark.asyncio
    async def test_pending_list_earliest_first(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        for day in ("2030-06-03", "2030-06-01", "2030-06-02"):
            await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle, bookingDate=day))
        confirmed = await _create(
            client, token, user, "/api/bookings", _booking(mechanic, vehicle, bookingDate="2030-05-01")
        )
        await client.patch(
            f"/api/bookings/{confirmed['id']}/status", json={"status": "confirmed"}, headers=token(user)
        )

        body = (await client.get("/api/bookings/pending/list", headers=token(user))).json()
        assert [b["bookingDate"][:10] for b in body["data"]] == ["2030-06-01", "2030-06-02", "2030-06-03"]
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 3, "pages": 1}

    @pytest.mark.asyncio
    async def test_list_filters_and_empty_page(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))
        await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle, serviceType="brakes"))

        brakes = (await client.get("/api/bookings?serviceType=brakes", headers=token(user))).json()
        assert [b["serviceType"] for b in brakes["data"]] == ["brakes"]

        none = (await client.get("/api/bookings?status=completed", headers=token(user))).json()
        assert none["success"] is True
        assert none["data"] == []
        assert none["pagination"]["total"] == 0
        assert none["pagination"]["pages"] == 0

    @pytest.mark.asyncio
    async def test_by_user_status_and_mechanic(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))

        by_user = (await client.get(f"/api/bookings/user/{user.id}", headers=token(user))).json()
        by_status = (await client.get("/api/bookings/status/pending", headers=token(user))).json()
        by_mechanic = (await client.get(f"/api/bookings/mechanic/{mechanic['id']}", headers=token(user))).json()
        assert by_user["pagination"]["total"] == 1
        assert by_status["pagination"]["total"] == 1
        assert by_mechanic["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_stats_overview(self, client, token, user, setup):
        mechanic, vehicle = await setup()
        first = await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle))
        await _create(client, token, user, "/api/bookings", _booking(mechanic, vehicle, serviceType="brakes"))
        await client.patch(
            f"/api/bookings/{first['id']}/status",
            json={"status": "completed", "actualCost": 120},
            headers=token(user),
        )

        stats = (await client.get("/api/bookings/stats/overview", headers=token(user))).json()["data"]
        assert stats["totalBookings"] == 2
        assert stats["completedBookings"] == 1
        assert stats["totalRevenue"] == 120
        assert stats["bookingsByStatus"] == {"completed": 1, "pending": 1}
        assert stats["bookingsByServiceType"] == {"brakes": 1, "oil_change": 1}
