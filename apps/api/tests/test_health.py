"""Tests for Health endpoint and request-id propagation."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient, db):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "env" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient, db):
    response = await client.get("/health", headers={"X-Request-ID": "cron-run.42"})
    assert response.headers["X-Request-ID"] == "cron-run.42"


@pytest.mark.asyncio
async def test_unsafe_request_id_is_replaced(client: AsyncClient, db):
    response = await client.get("/health", headers={"X-Request-ID": "bad id\twith spaces"})
    assert response.headers["X-Request-ID"] != "bad id\twith spaces"
    assert len(response.headers["X-Request-ID"]) == 32
