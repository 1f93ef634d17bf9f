"""HTTP client for the sale-sheet import API.

Upload flow:
- The sheet is split into ~50,000 character chunks (`split_into_chunks`)
- Every chunk of one upload carries the same `uploadId`, so the server can
  deduplicate retried chunks and reassemble them by index
- Each request is retried on network errors and 5xx responses with
  exponential backoff (1s, 2s, 4s by default)

4xx responses are not retried: they describe a problem with the sheet or the
request itself.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

from salecompass.services.chunks import split_into_chunks
from salecompass.settings import get_settings

logger = logging.getLogger("uvicorn.error")


class UploadFailedError(Exception):
    """A request to the import API failed after all retries, or was rejected."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SalesImportClient:
    """Client for /v1/csv-import endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        chunk_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.max_attempts = max_attempts or settings.upload_max_attempts
        self.backoff_seconds = settings.upload_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.chunk_size = chunk_size or settings.csv_chunk_size
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=60.0,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "SalesImportClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def upload_csv(
        self,
        content: str,
        *,
        filename: str,
        week_of: datetime,
        content_type: str = "text/csv",
        upload_id: str | None = None,
    ) -> dict[str, Any]:
        """Upload a sheet in chunks and return the import result.

        Args:
            content: Full CSV text.
            filename: Original file name (stored on the import batch).
            week_of: Week the sales apply to.
            content_type: MIME type reported to the server.
            upload_id: Idempotency key of the upload; generated when omitted.

        Returns:
            The server's import response (`importId`, `processedItems`, ...).

        Raises:
            UploadFailedError: A chunk was rejected or kept failing.
        """
        upload_id = upload_id or uuid.uuid4().hex
        chunks = split_into_chunks(content, self.chunk_size)
        total = len(chunks)
        logger.info(f"[upload] start upload_id={upload_id} filename={filename} chunks={total}")

        result: dict[str, Any] = {}
        for index, chunk in enumerate(chunks):
            result = await self._post_json(
                "/v1/csv-import/csv-json",
                {
                    "filename": filename,
                    "contentType": content_type,
                    "fileContent": chunk,
                    "weekOf": week_of.isoformat(),
                    "chunkData": {
                        "chunkIndex": index,
                        "totalChunks": total,
                        "isLastChunk": index == total - 1,
                        "uploadId": upload_id,
                    },
                },
            )

        if result.get("status") == "already-imported":
            logger.warning(
                f"[upload] upload_id={upload_id} was already imported import_id={result.get('importId')}"
            )
            return result
        if result.get("status") == "chunk-received":
            raise UploadFailedError(
                f"Server did not complete upload {upload_id} after the last chunk",
                body=result,
            )

        logger.info(
            f"[upload] done upload_id={upload_id} import_id={result.get('importId')} "
            f"processed={result.get('processedItems')}"
        )
        return result

    async def check_missing_products(
        self,
        content: str,
        *,
        filename: str,
        content_type: str = "text/csv",
    ) -> dict[str, Any]:
        """Ask which sheet products are missing from the catalog."""
        return await self._post_json(
            "/v1/csv-import/check-missing-products",
            {"filename": filename, "contentType": content_type, "fileContent": content},
        )

    async def add_products(self, products: list[dict[str, Any]]) -> dict[str, Any]:
        """Add admin-confirmed products.

        Each item: {"name", "size", "categoryId", "storeId", "price"?}.
        """
        payload = [
            {k: (str(v) if isinstance(v, Decimal) else v) for k, v in product.items()}
            for product in products
        ]
        return await self._post_json("/v1/csv-import/add-products", {"products": payload})

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST with retry on transport errors and 5xx responses."""
        client = await self._get_client()
        delay = self.backoff_seconds

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await client.post(path, json=payload)
            except httpx.TransportError as e:
                if attempt == self.max_attempts:
                    raise UploadFailedError(f"POST {path} failed after {attempt} attempts: {e}") from e
                logger.warning(f"[upload] POST {path} attempt {attempt} failed: {e}; retrying in {delay}s")
            else:
                if response.status_code < 500:
                    if response.is_error:
                        raise UploadFailedError(
                            f"POST {path} rejected with {response.status_code}",
                            status_code=response.status_code,
                            body=_safe_json(response),
                        )
                    return response.json()
                if attempt == self.max_attempts:
                    raise UploadFailedError(
                        f"POST {path} failed after {attempt} attempts with {response.status_code}",
                        status_code=response.status_code,
                        body=_safe_json(response),
                    )
                logger.warning(
                    f"[upload] POST {path} attempt {attempt} got {response.status_code}; retrying in {delay}s"
                )

            await asyncio.sleep(delay)
            delay *= 2

        # max_attempts < 1
        raise UploadFailedError(f"POST {path} was not attempted")


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
