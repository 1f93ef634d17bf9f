from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from salecompass.models import ImportStatus, Sale, SpreadsheetImport
from salecompass.services.persistence import (
    ImportPersistenceError,
    SaleRecord,
    create_import_batch,
    get_import_batch,
    list_import_batches,
    mark_import_failed,
    persist_sales,
)
from salecompass.stores.postgres import get_session

WEEK = datetime(2026, 10, 12, tzinfo=timezone.utc)


def _sale(catalog: dict[str, int], name: str = "Milk", **overrides) -> SaleRecord:
    values = dict(
        item_name=name,
        category_id=catalog["dairy"],
        store_id=catalog["downtown"],
        regular_price=Decimal("4.00"),
        sale_price=Decimal("3.49"),
    )
    values.update(overrides)
    return SaleRecord(**values)


async def _batch(batch_id: int) -> SpreadsheetImport:
    async with get_session() as session:
        return await session.get(SpreadsheetImport, batch_id)


async def _sales(batch_id: int) -> list[Sale]:
    async with get_session() as session:
        res = await session.execute(select(Sale).where(Sale.import_id == batch_id))
        return list(res.scalars().all())


@pytest.mark.asyncio
async def test_batch_lifecycle_pending_to_completed(catalog):
    batch_id = await create_import_batch(filename="week42.csv", week_of=WEEK)
    assert (await _batch(batch_id)).status == ImportStatus.PENDING

    processed = await persist_sales(
        batch_id=batch_id,
        sales=[_sale(catalog), _sale(catalog, "Milk", store_id=catalog["riverside"])],
        failed_items=3,
    )

    batch = await _batch(batch_id)
    assert processed == 2
    assert batch.status == ImportStatus.COMPLETED
    assert batch.processed_items == 2
    assert batch.failed_items == 3
    assert len(await _sales(batch_id)) == 2


@pytest.mark.asyncio
async def test_failed_write_stores_no_sales_and_marks_batch_failed(catalog):
    batch_id = await create_import_batch(filename="broken.csv", week_of=WEEK)

    # item_name is NOT NULL: the second insert fails the whole transaction.
    with pytest.raises(ImportPersistenceError) as exc:
        await persist_sales(batch_id=batch_id, sales=[_sale(catalog), _sale(catalog, None)])

    assert exc.value.status_code == 500
    assert exc.value.detail == {"import_id": batch_id}
    batch = await _batch(batch_id)
    assert batch.status == ImportStatus.FAILED
    assert batch.error_message
    assert await _sales(batch_id) == []


@pytest.mark.asyncio
async def test_mark_import_failed_unknown_batch_is_noop(db):
    await mark_import_failed(12345, "boom")


@pytest.mark.asyncio
async def test_import_history(catalog):
    first = await create_import_batch(filename="a.csv", week_of=WEEK)
    await persist_sales(batch_id=first, sales=[_sale(catalog)])
    second = await create_import_batch(filename="b.csv", week_of=WEEK)
    await mark_import_failed(second, "MissingColumnError: no store column")

    summaries = await list_import_batches(limit=10)
    assert [s.batch.id for s in summaries] == [second, first]
    assert [s.sales_count for s in summaries] == [0, 1]

    found = await get_import_batch(first)
    assert found is not None
    batch, sales = found
    assert batch.filename == "a.csv"
    assert [s.item_name for s in sales] == ["Milk"]

    assert await get_import_batch(999) is None
