"""Pydantic schemas for API request/response validation."""

from salecompass.schemas.catalog import (
    CategoryOut,
    ImportBatchOut,
    ImportDetailResponse,
    ImportListResponse,
    SaleOut,
    StoreOut,
    StorePriceOut,
    StorePriceUpsertRequest,
)
from salecompass.schemas.common import ErrorDetail, ErrorResponse
from salecompass.schemas.csv_import import (
    AddProductItem,
    AddProductsRequest,
    AddProductsResponse,
    AnalyzedItemOut,
    ChunkData,
    ChunkReceivedResponse,
    CsvUploadRequest,
    ImportResponse,
    ImportSummaryOut,
    MissingProductOut,
    MissingProductsRequest,
    MissingProductsResponse,
    ProductOut,
    RowErrorOut,
)

__all__ = [
    "AddProductItem",
    "AddProductsRequest",
    "AddProductsResponse",
    "AnalyzedItemOut",
    "CategoryOut",
    "ChunkData",
    "ChunkReceivedResponse",
    "CsvUploadRequest",
    "ErrorDetail",
    "ErrorResponse",
    "ImportBatchOut",
    "ImportDetailResponse",
    "ImportListResponse",
    "ImportResponse",
    "ImportSummaryOut",
    "MissingProductOut",
    "MissingProductsRequest",
    "MissingProductsResponse",
    "ProductOut",
    "RowErrorOut",
    "SaleOut",
    "StoreOut",
    "StorePriceOut",
    "StorePriceUpsertRequest",
]
