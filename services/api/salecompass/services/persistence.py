"""Persistence sink for import batches and sales.

Lifecycle of one batch:
1. `create_import_batch` commits a `pending` SpreadsheetImport row.
2. `persist_sales` inserts every Sale and flips the batch to `completed` in a
   single transaction: either all sales of the import are stored or none.
3. On a database error the transaction rolls back and `mark_import_failed`
   records `failed` in a separate session, so the failure stays visible.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from salecompass.models import ImportStatus, Sale, SpreadsheetImport
from salecompass.services.csv_parser import CsvImportError
from salecompass.stores.postgres import get_session

logger = logging.getLogger("uvicorn.error")


class ImportPersistenceError(CsvImportError):
    """Writing an import batch failed; the batch is marked failed."""

    code = "IMPORT_FAILED"
    status_code = 500


@dataclass(frozen=True)
class SaleRecord:
    """Values of one Sale row to insert."""

    item_name: str
    category_id: int
    store_id: int
    regular_price: Decimal
    sale_price: Decimal
    end_date: datetime | None = None
    notes: str | None = None


async def create_import_batch(*, filename: str, week_of: datetime) -> int:
    """Insert a pending import batch and return its id."""
    async with get_session() as session:
        batch = SpreadsheetImport(
            filename=filename,
            week_of=week_of,
            status=ImportStatus.PENDING,
            processed_items=0,
            failed_items=0,
        )
        session.add(batch)
        await session.flush()
        batch_id = batch.id

    logger.info(f"[csv-import] batch created import_id={batch_id} filename={filename}")
    return batch_id


async def persist_sales(
    *,
    batch_id: int,
    sales: Sequence[SaleRecord],
    failed_items: int = 0,
) -> int:
    """Insert all sales of a batch and mark it completed, atomically.

    Args:
        batch_id: Pending batch created by create_import_batch.
        sales: Sales to insert (Known, successfully parsed rows).
        failed_items: Rows skipped before persistence, for the batch record.

    Returns:
        Number of sales persisted.

    Raises:
        ImportPersistenceError: On any database error. Nothing of this batch's
            sales is kept and the batch is marked failed.
    """
    try:
        async with get_session() as session:
            session.add_all(
                [
                    Sale(
                        import_id=batch_id,
                        item_name=s.item_name,
                        category_id=s.category_id,
                        store_id=s.store_id,
                        regular_price=s.regular_price,
                        sale_price=s.sale_price,
                        end_date=s.end_date,
                        notes=s.notes,
                    )
                    for s in sales
                ]
            )
            batch = await session.get(SpreadsheetImport, batch_id)
            if batch is None:
                raise ImportPersistenceError(f"Import batch {batch_id} not found")
            batch.status = ImportStatus.COMPLETED
            batch.processed_items = len(sales)
            batch.failed_items = failed_items
            await session.flush()
    except SQLAlchemyError as e:
        logger.exception(f"[csv-import] persisting sales failed import_id={batch_id}")
        await mark_import_failed(batch_id, f"{type(e).__name__}: {e}")
        raise ImportPersistenceError(
            "Failed to save imported sales; no sales from this file were stored",
            detail={"import_id": batch_id},
        ) from e

    logger.info(f"[csv-import] batch completed import_id={batch_id} sales={len(sales)} failed={failed_items}")
    return len(sales)


async def mark_import_failed(batch_id: int, message: str) -> None:
    """Flip a batch to failed. Logs instead of raising if the DB is still down."""
    try:
        async with get_session() as session:
            batch = await session.get(SpreadsheetImport, batch_id)
            if batch is None:
                return
            batch.status = ImportStatus.FAILED
            batch.error_message = message[:2000]
    except SQLAlchemyError:
        logger.exception(f"[csv-import] could not mark batch failed import_id={batch_id}")


# ============================================================
# Import history
# ============================================================


@dataclass(frozen=True)
class ImportBatchSummary:
    batch: SpreadsheetImport
    sales_count: int


async def list_import_batches(limit: int = 50) -> list[ImportBatchSummary]:
    """Most recent import batches with their stored sales count."""
    async with get_session() as session:
        res = await session.execute(
            select(SpreadsheetImport, func.count(Sale.id))
            .outerjoin(Sale, Sale.import_id == SpreadsheetImport.id)
            .group_by(SpreadsheetImport.id)
            .order_by(SpreadsheetImport.imported_at.desc(), SpreadsheetImport.id.desc())
            .limit(limit)
        )
        return [ImportBatchSummary(batch=batch, sales_count=int(count)) for batch, count in res.all()]


async def get_import_batch(batch_id: int) -> tuple[SpreadsheetImport, list[Sale]] | None:
    """One import batch with its sales, or None."""
    async with get_session() as session:
        batch = await session.get(SpreadsheetImport, batch_id)
        if batch is None:
            return None
        res = await session.execute(select(Sale).where(Sale.import_id == batch_id).order_by(Sale.id))
        return batch, list(res.scalars().all())
