"""Tests for health endpoint and error envelope."""

import pytest
from httpx import ASGITransport, AsyncClient

from salecompass.main import app


@pytest.fixture
async def client():
    """Create test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health endpoint returns ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_request_validation_stays_422(client: AsyncClient):
    response = await client.post("/v1/csv-import/csv-json", json={"filename": "x.csv"})
    assert response.status_code == 422
