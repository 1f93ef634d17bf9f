"""Shared fixtures: a throwaway SQLite database and a small catalog."""

from decimal import Decimal

import pytest

from salecompass.models import Category, Product, Store, StorePrice
from salecompass.stores.postgres import close_db, create_tables, get_session, init_db


@pytest.fixture
async def db(tmp_path):
    """Initialize the app's session factory against a fresh SQLite file."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables()
    yield
    await close_db()


@pytest.fixture
async def catalog(db) -> dict[str, int]:
    """Two stores, two categories, Milk at both stores, Bananas at store 1.

    Milk regular prices: 4.00 and 6.00 (market average 5.00).
    """
    async with get_session() as session:
        downtown = Store(name="Downtown Market", location="120 Main St", phone="555-0101")
        riverside = Store(name="Riverside Grocery", location="48 River Rd")
        dairy = Category(name="Dairy")
        produce = Category(name="Produce")
        session.add_all([downtown, riverside, dairy, produce])
        await session.flush()

        milk = Product(name="Milk", size="1 gal", category_id=dairy.id)
        bananas = Product(name="Bananas", size="1 lb", category_id=produce.id)
        session.add_all([milk, bananas])
        await session.flush()

        session.add_all(
            [
                StorePrice(product_id=milk.id, store_id=downtown.id, price=Decimal("4.00")),
                StorePrice(product_id=milk.id, store_id=riverside.id, price=Decimal("6.00")),
                StorePrice(product_id=bananas.id, store_id=downtown.id, price=Decimal("0.59")),
            ]
        )

        return {
            "downtown": downtown.id,
            "riverside": riverside.id,
            "dairy": dairy.id,
            "produce": produce.id,
            "milk": milk.id,
            "bananas": bananas.id,
        }
