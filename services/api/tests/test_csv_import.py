from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from salecompass.models import ImportStatus, Sale, SpreadsheetImport
from salecompass.services.csv_import import process_csv_import, resolve_regular_price
from salecompass.services.csv_parser import MalformedSheetError, MissingColumnError, ParsedRow
from salecompass.services.reconciliation import CatalogProduct, KnownRow
from salecompass.stores.postgres import get_session

WEEK = datetime(2026, 10, 12, tzinfo=timezone.utc)


def _known(regular_price: Decimal | None) -> KnownRow:
    row = ParsedRow(
        item_name="Milk",
        store_id=1,
        sale_price=Decimal("3.49"),
        regular_price=regular_price,
        line_number=2,
    )
    return KnownRow(row=row, product=CatalogProduct(id=1, name="Milk", size=None, category_id=1))


def test_regular_price_prefers_sheet_then_store_then_sale():
    assert resolve_regular_price(_known(Decimal("4.29")), Decimal("4.00")) == Decimal("4.29")
    assert resolve_regular_price(_known(None), Decimal("4.00")) == Decimal("4.00")
    assert resolve_regular_price(_known(None), Decimal("0.00")) == Decimal("3.49")
    assert resolve_regular_price(_known(None), None) == Decimal("3.49")


@pytest.mark.asyncio
async def test_import_persists_known_rows_with_market_comparison(catalog):
    content = (
        "Product,Store ID,Sale Price,Regular Price\n"
        f"Milk,{catalog['downtown']},4.00,\n"
        f"Bananas,{catalog['riverside']},0.49,\n"
        f"Eggs,{catalog['downtown']},2.99,3.49\n"
        f"Milk,{catalog['downtown']},N/A,\n"
        f"Milk,99,3.00,\n"
    )

    result = await process_csv_import(content, "week42.csv", WEEK)

    assert result.processed_items == 1
    [item] = result.analyzed_items
    assert item.product_id == catalog["milk"]
    assert item.store_name == "Downtown Market"
    assert item.sale_price == Decimal("4.00")
    assert item.regular_price == Decimal("4.00")
    assert item.comparison.average_price == Decimal("5.00")
    assert item.comparison.market_savings_percent == 20
    assert item.line_number == 2

    summary = result.summary
    assert summary.total_rows == 5
    assert summary.failed_rows == 1
    assert summary.store_not_found == 1
    assert summary.missing_products == 2
    assert {e.code for e in summary.error_samples} == {"PRICE_PARSE_ERROR", "STORE_NOT_FOUND"}

    async with get_session() as session:
        batch = await session.get(SpreadsheetImport, result.import_id)
        sales = (await session.execute(select(Sale))).scalars().all()
    assert batch.status == ImportStatus.COMPLETED
    assert batch.processed_items == 1
    assert batch.failed_items == 2
    assert [(s.item_name, s.store_id, s.import_id) for s in sales] == [
        ("Milk", catalog["downtown"], result.import_id)
    ]


@pytest.mark.asyncio
async def test_missing_product_is_not_persisted(catalog):
    result = await process_csv_import(
        f"Product,Store ID,Sale Price\nMilk,{catalog['riverside']},2.99\nEggs,{catalog['riverside']},1.99\n",
        "week42.csv",
        WEEK,
    )
    assert result.processed_items == 1
    assert result.summary.missing_products == 1

    async with get_session() as session:
        names = (await session.execute(select(Sale.item_name))).scalars().all()
    assert names == ["Milk"]


@pytest.mark.asyncio
async def test_product_without_prices_has_no_comparison(catalog):
    from salecompass.services.catalog import NewProduct, add_missing_products

    await add_missing_products(
        [NewProduct(name="Eggs", category_id=catalog["dairy"], store_id=catalog["downtown"])]
    )
    result = await process_csv_import(
        f"Product,Store ID,Sale Price\nEggs,{catalog['downtown']},1.99\n", "week42.csv", WEEK
    )

    [item] = result.analyzed_items
    assert item.comparison.average_price is None
    assert item.comparison.market_savings_percent is None
    assert item.regular_price == Decimal("1.99")


@pytest.mark.asyncio
async def test_rejected_sheet_marks_batch_failed(catalog):
    with pytest.raises(MissingColumnError):
        await process_csv_import("Product,Sale Price\nMilk,2.99\n", "bad.csv", WEEK)

    async with get_session() as session:
        batch = (await session.execute(select(SpreadsheetImport))).scalar_one()
        sale_count = len((await session.execute(select(Sale))).scalars().all())
    assert batch.status == ImportStatus.FAILED
    assert "store" in batch.error_message
    assert sale_count == 0


async def _only_batch() -> SpreadsheetImport:
    async with get_session() as session:
        return (await session.execute(select(SpreadsheetImport))).scalar_one()


@pytest.mark.asyncio
async def test_oversized_cell_marks_batch_failed(catalog):
    huge = "x" * 200_000
    content = (
        "Product,Store ID,Sale Price\n"
        f"Milk,{catalog['downtown']},3.49\n"
        f"\"{huge}\",{catalog['downtown']},1.00\n"
    )

    with pytest.raises(MalformedSheetError):
        await process_csv_import(content, "huge.csv", WEEK)

    batch = await _only_batch()
    assert batch.status == ImportStatus.FAILED
    assert "line" in batch.error_message
    async with get_session() as session:
        assert (await session.execute(select(Sale))).scalars().all() == []


@pytest.mark.asyncio
async def test_unexpected_error_during_rows_marks_batch_failed(catalog, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("comparator exploded")

    monkeypatch.setattr("salecompass.services.csv_import.compare_to_market", boom)
    content = f"Product,Store ID,Sale Price\nMilk,{catalog['downtown']},3.49\n"

    with pytest.raises(RuntimeError):
        await process_csv_import(content, "week.csv", WEEK)

    batch = await _only_batch()
    assert batch.status == ImportStatus.FAILED
    assert batch.error_message == "RuntimeError: comparator exploded"
