"""Tests for the queue endpoints."""

from __future__ import annotations

import pytest

from stream_audit.lifecycle import Outcome, Status


@pytest.mark.asyncio
async def test_list_queue_returns_merged_view(api_client, make_container, make_object):
    container = make_container(durable=True)
    await container.queue_durable.put(make_object("1", minutes=0))
    await container.queue_durable.put(make_object("2", minutes=1))
    await container.queue_fast.put(make_object("1", status=Status.PROCESSING, minutes=2))

    async with api_client(container) as client:
        response = await client.get("/api/queue", params={"limit": 10})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 2
    assert [(row["objectId"], row["status"]) for row in body["data"]] == [
        ("1", "PROCESSING"),
        ("2", "RECEIVED"),
    ]
    assert set(body["data"][0]) >= {"objectId", "objectType", "created", "updated", "records"}


@pytest.mark.asyncio
async def test_list_queue_validates_limit(api_client, make_container):
    async with api_client(make_container()) as client:
        response = await client.get("/api/queue", params={"limit": 0})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_queue_stats(api_client, make_container, make_object):
    container = make_container()
    await container.queue_fast.put(make_object("a", records=2))
    await container.queue_fast.put(
        make_object("b", status=Status.COMPLETE, outcome=Outcome.SUCCESS, records=3)
    )

    async with api_client(container) as client:
        response = await client.get("/api/queue/stats")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 2
    assert data["byStatus"] == {"RECEIVED": 1, "COMPLETE": 1}
    assert data["byOutcome"] == {"SUCCESS": 1}
    assert data["totalRecords"] == 5


@pytest.mark.asyncio
async def test_clear_succeeds_in_cache_mode(api_client, make_container, make_object):
    container = make_container()
    await container.queue_fast.put(make_object("a"))

    async with api_client(container) as client:
        response = await client.delete("/api/queue/clear")
        follow_up = await client.get("/api/queue")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Queue cleared successfully"}
    assert follow_up.json()["count"] == 0


@pytest.mark.asyncio
async def test_clear_is_refused_in_durable_mode(api_client, make_container, make_object):
    container = make_container(durable=True)
    await container.queue_fast.put(make_object("a"))

    async with api_client(container) as client:
        response = await client.delete("/api/queue/clear")

    assert response.status_code == 405
    body = response.json()
    assert body["success"] is False
    assert body["error_type"] == "OperationNotSupportedError"
    assert await container.queue_fast.count() == 1


@pytest.mark.asyncio
async def test_unreachable_store_maps_to_503(api_client, make_container):
    container = make_container()
    container.queue_fast.fail_with = ConnectionError("refused")

    async with api_client(container) as client:
        response = await client.get("/api/queue")

    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert "redis" in body["message"]


@pytest.mark.asyncio
async def test_unknown_api_route_returns_json_404(api_client, make_container):
    async with api_client(make_container()) as client:
        response = await client.get("/api/nope")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "API route not found"}


@pytest.mark.asyncio
async def test_plain_health_check(api_client, make_container):
    async with api_client(make_container()) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["service"] == "stream_audit"
    assert "timestamp" in body
