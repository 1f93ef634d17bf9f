import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from salecompass import client as client_module
from salecompass.client import SalesImportClient, UploadFailedError

WEEK = datetime(2026, 10, 12, tzinfo=timezone.utc)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record backoff delays instead of sleeping."""
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr(client_module.asyncio, "sleep", fake_sleep)
    return delays


def _client(handler, **kwargs) -> SalesImportClient:
    return SalesImportClient(
        "http://api.test",
        transport=httpx.MockTransport(handler),
        max_attempts=kwargs.pop("max_attempts", 3),
        backoff_seconds=kwargs.pop("backoff_seconds", 1.0),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_upload_sends_indexed_chunks_with_one_upload_id(sleeps):
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        chunk = body["chunkData"]
        if chunk["chunkIndex"] < chunk["totalChunks"] - 1:
            return httpx.Response(200, json={"status": "chunk-received", "receivedChunks": chunk["chunkIndex"] + 1})
        return httpx.Response(200, json={"importId": 1, "processedItems": 2, "summary": {}})

    content = "Product,Store ID,Sale Price\nMilk,1,2.99\n"
    async with _client(handler, chunk_size=10) as client:
        result = await client.upload_csv(content, filename="week42.csv", week_of=WEEK)

    assert result["importId"] == 1
    assert "".join(b["fileContent"] for b in bodies) == content
    assert [b["chunkData"]["chunkIndex"] for b in bodies] == list(range(len(bodies)))
    assert len({b["chunkData"]["uploadId"] for b in bodies}) == 1
    assert bodies[-1]["chunkData"]["isLastChunk"] is True
    assert not any(b["chunkData"]["isLastChunk"] for b in bodies[:-1])
    assert bodies[0]["weekOf"] == "2026-10-12T00:00:00+00:00"
    assert sleeps == []


@pytest.mark.asyncio
async def test_retries_transport_errors_and_5xx_with_backoff(sleeps):
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        if calls["n"] == 2:
            return httpx.Response(503, json={"error": {"code": "INTERNAL_ERROR"}})
        return httpx.Response(200, json={"importId": 3, "processedItems": 0})

    async with _client(handler) as client:
        result = await client.upload_csv("a,b\n", filename="w.csv", week_of=WEEK)

    assert result["importId"] == 3
    assert calls["n"] == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"code": "INTERNAL_ERROR"}})

    async with _client(handler) as client:
        with pytest.raises(UploadFailedError) as exc:
            await client.upload_csv("a,b\n", filename="w.csv", week_of=WEEK)

    assert exc.value.status_code == 500
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": "MISSING_COLUMN", "message": "x", "detail": {}}})

    async with _client(handler) as client:
        with pytest.raises(UploadFailedError) as exc:
            await client.upload_csv("a,b\n", filename="w.csv", week_of=WEEK)

    assert exc.value.status_code == 400
    assert exc.value.body["error"]["code"] == "MISSING_COLUMN"
    assert sleeps == []


@pytest.mark.asyncio
async def test_incomplete_upload_is_an_error(sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "chunk-received", "receivedChunks": 1, "totalChunks": 2})

    async with _client(handler) as client:
        with pytest.raises(UploadFailedError):
            await client.upload_csv("a,b\n", filename="w.csv", week_of=WEEK)


@pytest.mark.asyncio
async def test_missing_products_and_add_products(sleeps):
    seen: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content)))
        if request.url.path.endswith("check-missing-products"):
            return httpx.Response(200, json={"missingProducts": [], "totalProducts": 1})
        return httpx.Response(200, json={"success": True, "addedProducts": [], "count": 0})

    async with _client(handler) as client:
        await client.check_missing_products("a,b\n", filename="w.csv")
        await client.add_products(
            [{"name": "Eggs", "categoryId": 1, "storeId": 2, "price": Decimal("3.49")}]
        )

    assert seen[0] == (
        "/v1/csv-import/check-missing-products",
        {"filename": "w.csv", "contentType": "text/csv", "fileContent": "a,b\n"},
    )
    assert seen[1][0] == "/v1/csv-import/add-products"
    assert seen[1][1]["products"][0]["price"] == "3.49"
