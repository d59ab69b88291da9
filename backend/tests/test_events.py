"""
Tests for event endpoints and their capacity summary.
"""

import pytest
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient):
    """A new event has no capacity until it is configured."""
    future_date = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    response = await client.post(
        "/api/v1/events/",
        json={
            "title": "Python Conference 2026",
            "description": "Annual Python gathering",
            "date": future_date,
            "location": "Convention Center",
            "organizer_id": 1,
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Python Conference 2026"
    assert data["total_capacity"] is None


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient):
    """Event with past date returns 400."""
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post(
        "/api/v1/events/",
        json={"title": "Past Event", "date": past_date, "organizer_id": 1},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_event_date_without_offset_is_utc(client: AsyncClient):
    """A date without a UTC offset is accepted and stored as UTC."""
    response = await client.post(
        "/api/v1/events/",
        json={"title": "Local Time Event", "date": "2099-01-01T10:00:00", "organizer_id": 1},
    )
    assert response.status_code == 201
    returned = datetime.fromisoformat(response.json()["date"].replace("Z", "+00:00"))
    assert returned == datetime(2099, 1, 1, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_create_event_past_date_without_offset(client: AsyncClient):
    response = await client.post(
        "/api/v1/events/",
        json={"title": "Old Local Event", "date": "2000-01-01T10:00:00", "organizer_id": 1},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_configure_capacity_for_new_event(client: AsyncClient):
    future_date = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    event = (await client.post(
        "/api/v1/events/",
        json={"title": "Workshop", "date": future_date, "organizer_id": 1},
    )).json()

    response = await client.put(
        f"/api/v1/capacity/events/{event['id']}",
        json={"total_capacity": 40, "overbooking_enabled": True, "overbooking_percentage": 25},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["ceiling"] == 50
    assert data["available_capacity"] == 40
    assert data["alert_thresholds"] == {"low": 80, "medium": 90, "high": 95}

    response = await client.get(f"/api/v1/events/{event['id']}")
    assert response.json()["total_capacity"] == 40


@pytest.mark.asyncio
async def test_configure_capacity_validation(client: AsyncClient, test_event):
    url = f"/api/v1/capacity/events/{test_event.id}"
    assert (await client.put(url, json={"total_capacity": 0})).status_code == 422
    assert (await client.put(url, json={"total_capacity": 10, "lock_timeout_minutes": 2})).status_code == 422
    assert (await client.put(url, json={"total_capacity": 10, "overbooking_percentage": 60})).status_code == 422
    response = await client.put(
        url,
        json={"total_capacity": 10, "alert_thresholds": {"low": 90, "medium": 80, "high": 95}},
    )
    assert response.status_code == 422

    assert (await client.put("/api/v1/capacity/events/99999", json={"total_capacity": 10})).status_code == 404


@pytest.mark.asyncio
async def test_validate_endpoint(client: AsyncClient, test_event):
    response = await client.get(
        f"/api/v1/capacity/events/{test_event.id}/validate", params={"quantity": 101}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is False
    assert data["available_spots"] == 100


@pytest.mark.asyncio
async def test_deactivate_capacity(client: AsyncClient, test_event):
    response = await client.delete(f"/api/v1/capacity/events/{test_event.id}")
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    response = await client.get(f"/api/v1/capacity/events/{test_event.id}")
    assert response.status_code == 404
    assert response.json()["code"] == "CAPACITY_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_list_events(client: AsyncClient, test_event):
    """List events returns paginated results with capacity counters."""
    response = await client.get("/api/v1/events/")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["page"] == 1
    assert data["events"][0]["available_capacity"] == 100
    assert data["cached"] is False


@pytest.mark.asyncio
async def test_list_events_pagination(client: AsyncClient, test_event):
    """Pagination parameters work correctly."""
    response = await client.get("/api/v1/events/?page=1&page_size=5")
    assert response.status_code == 200
    data = response.json()
    assert data["page_size"] == 5


@pytest.mark.asyncio
async def test_get_event_reflects_reservations(client: AsyncClient, test_event):
    await client.post(
        "/api/v1/reservations/",
        json={"event_id": test_event.id, "quantity": 12, "organizer_id": 2},
    )
    response = await client.get(f"/api/v1/events/{test_event.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == test_event.id
    assert data["available_capacity"] == 88
    assert data["blocked_capacity"] == 12


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    """Non-existent event returns 404."""
    response = await client.get("/api/v1/events/99999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_and_metrics(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["cache"] == {"status": "disabled"}

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "reservation_attempts_total" in response.text
