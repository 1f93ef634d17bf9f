"""Catalog endpoints used by the import screens.

GET /v1/catalog/stores          - Stores (for the missing-products form)
GET /v1/catalog/categories      - Categories (for the missing-products form)
PUT /v1/catalog/product-prices  - Upsert a product's regular price at a store
"""

from fastapi import APIRouter

from salecompass.schemas import CategoryOut, StoreOut, StorePriceOut, StorePriceUpsertRequest
from salecompass.services.catalog import list_categories, list_stores, upsert_store_price

router = APIRouter()


@router.get("/stores", response_model=list[StoreOut])
async def get_stores() -> list[StoreOut]:
    stores = await list_stores()
    return [StoreOut(id=s.id, name=s.name, location=s.location, phone=s.phone) for s in stores]


@router.get("/categories", response_model=list[CategoryOut])
async def get_categories() -> list[CategoryOut]:
    categories = await list_categories()
    return [CategoryOut(id=c.id, name=c.name) for c in categories]


@router.put("/product-prices", response_model=StorePriceOut)
async def put_product_price(request: StorePriceUpsertRequest) -> StorePriceOut:
    """Create or update the regular price of a product at a store."""
    store_price = await upsert_store_price(
        product_id=request.product_id,
        store_id=request.store_id,
        price=request.price,
    )
    return StorePriceOut(
        id=store_price.id,
        product_id=store_price.product_id,
        store_id=store_price.store_id,
        price=store_price.price,
        updated_at=store_price.updated_at,
    )
