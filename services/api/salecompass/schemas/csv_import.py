"""Schemas for the CSV import endpoints (/v1/csv-import)."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class ChunkData(BaseModel):
    """Position of one chunk within a chunked upload."""

    chunk_index: int = Field(alias="chunkIndex", ge=0)
    total_chunks: int = Field(alias="totalChunks", ge=1)
    is_last_chunk: bool = Field(alias="isLastChunk", default=False)
    # Idempotency key shared by all chunks of one upload
    upload_id: str | None = Field(alias="uploadId", default=None, max_length=200)

    model_config = {"populate_by_name": True}


class CsvUploadRequest(BaseModel):
    """Request body for POST /v1/csv-import/csv-json."""

    filename: str = Field(min_length=1, max_length=300)
    content_type: str | None = Field(alias="contentType", default=None)
    file_content: str = Field(alias="fileContent")
    week_of: datetime = Field(alias="weekOf")
    chunk_data: ChunkData = Field(
        alias="chunkData",
        default_factory=lambda: ChunkData(chunk_index=0, total_chunks=1, is_last_chunk=True),
    )

    model_config = {"populate_by_name": True}


class ChunkReceivedResponse(BaseModel):
    """Acknowledgement of a non-final chunk, or of a chunk re-sent after the
    upload was already imported (`status` "already-imported", `importId` set
    when known).
    """

    status: Literal["chunk-received", "already-imported"] = "chunk-received"
    message: str
    upload_id: str = Field(alias="uploadId")
    received_chunks: int = Field(alias="receivedChunks", ge=0)
    total_chunks: int = Field(alias="totalChunks", ge=1)
    duplicate: bool = False
    import_id: int | None = Field(alias="importId", default=None)

    model_config = {"populate_by_name": True}


class AnalyzedItemOut(BaseModel):
    """One imported sale row with its market comparison.

    averagePrice / marketSavingsPercent are null when the product has no
    store price data; null means "no data", not 0% savings.
    """

    item_name: str = Field(alias="itemName")
    product_id: int = Field(alias="productId")
    category_id: int = Field(alias="categoryId")
    store_id: int = Field(alias="storeId")
    store_name: str = Field(alias="storeName")
    regular_price: Decimal = Field(alias="regularPrice")
    sale_price: Decimal = Field(alias="salePrice")
    average_price: Decimal | None = Field(alias="averagePrice", default=None)
    market_savings_percent: int | None = Field(alias="marketSavingsPercent", default=None)
    line_number: int = Field(alias="lineNumber")

    model_config = {"populate_by_name": True}


class RowErrorOut(BaseModel):
    line_number: int = Field(alias="lineNumber")
    code: str
    message: str

    model_config = {"populate_by_name": True}


class ImportSummaryOut(BaseModel):
    total_rows: int = Field(alias="totalRows", ge=0)
    processed_items: int = Field(alias="processedItems", ge=0)
    failed_rows: int = Field(alias="failedRows", ge=0)
    store_not_found: int = Field(alias="storeNotFound", ge=0)
    missing_products: int = Field(alias="missingProducts", ge=0)
    errors: list[RowErrorOut] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class ImportResponse(BaseModel):
    """Response of the request that completes an upload."""

    import_id: int = Field(alias="importId")
    processed_items: int = Field(alias="processedItems", ge=0)
    analyzed_items: list[AnalyzedItemOut] = Field(alias="analyzedItems", default_factory=list)
    summary: ImportSummaryOut

    model_config = {"populate_by_name": True}


class MissingProductsRequest(BaseModel):
    """Request body for POST /v1/csv-import/check-missing-products."""

    filename: str = Field(min_length=1, max_length=300)
    content_type: str | None = Field(alias="contentType", default=None)
    file_content: str = Field(alias="fileContent")

    model_config = {"populate_by_name": True}


class MissingProductOut(BaseModel):
    name: str
    category: str
    category_id: int | None = Field(alias="categoryId", default=None)
    size: str | None = None
    store_id: int = Field(alias="storeId")

    model_config = {"populate_by_name": True}


class MissingProductsResponse(BaseModel):
    missing_products: list[MissingProductOut] = Field(alias="missingProducts", default_factory=list)
    total_products: int = Field(alias="totalProducts", ge=0)
    failed_rows: int = Field(alias="failedRows", ge=0, default=0)
    store_not_found: int = Field(alias="storeNotFound", ge=0, default=0)
    notice: str | None = None

    model_config = {"populate_by_name": True}


class AddProductItem(BaseModel):
    """One admin-confirmed product."""

    name: str = Field(min_length=1, max_length=300)
    size: str | None = Field(default=None, max_length=50)
    category_id: int = Field(alias="categoryId")
    store_id: int = Field(alias="storeId")
    price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)

    model_config = {"populate_by_name": True}


class AddProductsRequest(BaseModel):
    products: list[AddProductItem] = Field(min_length=1)


class ProductOut(BaseModel):
    id: int
    name: str
    size: str | None = None
    category_id: int = Field(alias="categoryId")

    model_config = {"populate_by_name": True}


class AddProductsResponse(BaseModel):
    success: bool
    added_products: list[ProductOut] = Field(alias="addedProducts", default_factory=list)
    count: int = Field(ge=0)

    model_config = {"populate_by_name": True}
