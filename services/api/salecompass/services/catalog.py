"""Catalog writes: confirmed missing products and store price upserts.

`add_missing_products` is the second phase of the two-phase add: it only
receives the products an admin explicitly selected after a missing-products
check. All inserts of one request share a transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from salecompass.models import Category, Product, Store, StorePrice
from salecompass.services.csv_parser import CsvImportError
from salecompass.services.reconciliation import NoCategoryAvailableError, StoreNotFoundError
from salecompass.stores.postgres import get_session

logger = logging.getLogger("uvicorn.error")

PLACEHOLDER_PRICE = Decimal("0.00")


class CategoryNotFoundError(CsvImportError):
    """Requested category id does not exist."""

    code = "CATEGORY_NOT_FOUND"
    status_code = 404


class ProductNotFoundError(CsvImportError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404


@dataclass(frozen=True)
class NewProduct:
    """One admin-confirmed missing product."""

    name: str
    category_id: int
    store_id: int
    size: str | None = None
    price: Decimal | None = None


async def add_missing_products(items: list[NewProduct]) -> list[Product]:
    """Insert confirmed products and their store prices.

    A product whose name already exists (case-insensitive) is reused and only
    its store price is upserted. Products added without a price get a 0.00
    placeholder, which the market comparator ignores.

    Raises:
        NoCategoryAvailableError: If the catalog has no categories at all.
        CategoryNotFoundError: If a category id does not exist.
        StoreNotFoundError: If a store id does not exist.
    """
    if not items:
        return []

    async with get_session() as session:
        category_count = await session.scalar(select(func.count()).select_from(Category))
        if not category_count:
            raise NoCategoryAvailableError(
                "No categories exist; create a category before adding products"
            )

        category_ids = set((await session.execute(select(Category.id))).scalars().all())
        store_ids = set((await session.execute(select(Store.id))).scalars().all())

        for item in items:
            if item.category_id not in category_ids:
                raise CategoryNotFoundError(
                    f"Category {item.category_id} not found",
                    detail={"category_id": item.category_id, "name": item.name},
                )
            if item.store_id not in store_ids:
                raise StoreNotFoundError(
                    f"Store {item.store_id} not found",
                    detail={"store_id": item.store_id, "name": item.name},
                )

        added: list[Product] = []
        for item in items:
            product = await _find_product_by_name(session, item.name)
            if product is None:
                product = Product(
                    name=item.name.strip(),
                    size=(item.size or None),
                    category_id=item.category_id,
                )
                session.add(product)
                await session.flush()
            elif item.size and not product.size:
                product.size = item.size

            await _upsert_store_price(
                session,
                product_id=product.id,
                store_id=item.store_id,
                price=item.price,
            )
            added.append(product)

    logger.info(f"[catalog] added products count={len(added)}")
    return added


async def upsert_store_price(*, product_id: int, store_id: int, price: Decimal) -> StorePrice:
    """Create or update the regular price of a product at a store.

    Raises:
        ProductNotFoundError / StoreNotFoundError: For unknown ids.
    """
    async with get_session() as session:
        if await session.get(Product, product_id) is None:
            raise ProductNotFoundError(f"Product {product_id} not found", detail={"product_id": product_id})
        if await session.get(Store, store_id) is None:
            raise StoreNotFoundError(f"Store {store_id} not found", detail={"store_id": store_id})
        store_price = await _upsert_store_price(
            session, product_id=product_id, store_id=store_id, price=price
        )
    return store_price


async def list_stores() -> list[Store]:
    async with get_session() as session:
        return list((await session.execute(select(Store).order_by(Store.id))).scalars().all())


async def list_categories() -> list[Category]:
    async with get_session() as session:
        return list((await session.execute(select(Category).order_by(Category.id))).scalars().all())


async def _find_product_by_name(session: AsyncSession, name: str) -> Product | None:
    res = await session.execute(
        select(Product).where(func.lower(Product.name) == name.strip().lower())
    )
    return res.scalars().first()


async def _upsert_store_price(
    session: AsyncSession,
    *,
    product_id: int,
    store_id: int,
    price: Decimal | None,
) -> StorePrice:
    res = await session.execute(
        select(StorePrice)
        .where(StorePrice.product_id == product_id)
        .where(StorePrice.store_id == store_id)
    )
    existing = res.scalar_one_or_none()
    if existing:
        if price is not None and existing.price != price:
            existing.price = price
            await session.flush()
        return existing

    store_price = StorePrice(
        product_id=product_id,
        store_id=store_id,
        price=price if price is not None else PLACEHOLDER_PRICE,
    )
    session.add(store_price)
    await session.flush()
    return store_price
