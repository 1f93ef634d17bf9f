"""Route tests against the SQLite catalog (services not patched)."""

from decimal import Decimal
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from salecompass.main import app
from salecompass.models import Sale, SpreadsheetImport
from salecompass.stores.postgres import get_session


@pytest.fixture
async def client():
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def _count(model) -> int:
    async with get_session() as session:
        return int(await session.scalar(select(func.count()).select_from(model)))


@pytest.mark.asyncio
async def test_put_product_price_updates_existing_row(client: AsyncClient, catalog):
    body = {"productId": catalog["milk"], "storeId": catalog["downtown"], "price": "3.79"}

    r = await client.put("/v1/catalog/product-prices", json=body)
    assert r.status_code == 200
    data = r.json()
    assert data["price"] == "3.79"
    assert data["updatedAt"] is not None

    r = await client.put("/v1/catalog/product-prices", json={**body, "price": "3.59"})
    assert r.status_code == 200
    assert r.json()["id"] == data["id"]
    assert Decimal(r.json()["price"]) == Decimal("3.59")


@pytest.mark.asyncio
async def test_put_product_price_creates_row(client: AsyncClient, catalog):
    r = await client.put(
        "/v1/catalog/product-prices",
        json={"productId": catalog["bananas"], "storeId": catalog["riverside"], "price": "0.69"},
    )
    assert r.status_code == 200
    assert r.json()["updatedAt"] is not None


@pytest.mark.asyncio
async def test_resent_single_chunk_upload_stores_sales_once(client: AsyncClient, catalog):
    body = {
        "filename": "week42.csv",
        "contentType": "text/csv",
        "fileContent": f"Product,Store ID,Sale Price\nMilk,{catalog['downtown']},3.49\n",
        "weekOf": "2026-10-12T00:00:00Z",
        "chunkData": {"chunkIndex": 0, "totalChunks": 1, "isLastChunk": True, "uploadId": uuid.uuid4().hex},
    }

    first = await client.post("/v1/csv-import/csv-json", json=body)
    retry = await client.post("/v1/csv-import/csv-json", json=body)

    assert first.status_code == 200
    assert first.json()["processedItems"] == 1
    assert retry.status_code == 200
    assert retry.json()["status"] == "already-imported"
    assert retry.json()["importId"] == first.json()["importId"]
    assert await _count(Sale) == 1
    assert await _count(SpreadsheetImport) == 1
