"""Schemas for catalog and import-history endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class StoreOut(BaseModel):
    id: int
    name: str
    location: str
    phone: str | None = None


class CategoryOut(BaseModel):
    id: int
    name: str


class StorePriceUpsertRequest(BaseModel):
    product_id: int = Field(alias="productId")
    store_id: int = Field(alias="storeId")
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)

    model_config = {"populate_by_name": True}


class StorePriceOut(BaseModel):
    id: int
    product_id: int = Field(alias="productId")
    store_id: int = Field(alias="storeId")
    price: Decimal
    updated_at: datetime | None = Field(alias="updatedAt", default=None)

    model_config = {"populate_by_name": True}


class ImportBatchOut(BaseModel):
    id: int
    filename: str
    week_of: datetime = Field(alias="weekOf")
    imported_at: datetime | None = Field(alias="importedAt", default=None)
    processed_items: int = Field(alias="processedItems", ge=0)
    failed_items: int = Field(alias="failedItems", ge=0)
    status: str
    error_message: str | None = Field(alias="errorMessage", default=None)
    sales_count: int = Field(alias="salesCount", ge=0, default=0)

    model_config = {"populate_by_name": True}


class ImportListResponse(BaseModel):
    count: int
    imports: list[ImportBatchOut]


class SaleOut(BaseModel):
    id: int
    item_name: str = Field(alias="itemName")
    category_id: int = Field(alias="categoryId")
    store_id: int = Field(alias="storeId")
    regular_price: Decimal = Field(alias="regularPrice")
    sale_price: Decimal = Field(alias="salePrice")
    end_date: datetime | None = Field(alias="endDate", default=None)
    created_at: datetime | None = Field(alias="createdAt", default=None)

    model_config = {"populate_by_name": True}


class ImportDetailResponse(BaseModel):
    batch: ImportBatchOut = Field(alias="import")
    sales: list[SaleOut]

    model_config = {"populate_by_name": True}
