"""Sale-sheet import pipeline: CSV -> reconcile -> compare -> DB.

Flow:
1. Create a pending import batch
2. Read the sheet (column detection rejects the batch up front)
3. Load one catalog snapshot
4. Classify each row as Known / Missing (unknown stores are skipped)
5. Compare Known rows with the market average of their product
6. Persist all Known rows as sales in one transaction; batch -> completed

Row-level failures (unparseable prices, unknown stores) are counted and the
batch still completes. Missing products are reported, never persisted here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from salecompass.services.comparator import MarketComparison, compare_to_market
from salecompass.services.csv_parser import CsvImportError, ParsedRow, ParseStats, RowError, read_sheet
from salecompass.services.persistence import (
    ImportPersistenceError,
    SaleRecord,
    create_import_batch,
    mark_import_failed,
    persist_sales,
)
from salecompass.services.reconciliation import (
    KnownRow,
    MissingRow,
    StoreNotFoundError,
    classify_row,
    load_catalog_snapshot,
)
from salecompass.stores.postgres import get_session

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class AnalyzedItem:
    """A persisted sale row together with its market comparison."""

    item_name: str
    product_id: int
    category_id: int
    store_id: int
    store_name: str
    regular_price: Decimal
    sale_price: Decimal
    line_number: int
    comparison: MarketComparison


@dataclass
class ImportSummary:
    total_rows: int = 0
    processed_items: int = 0
    failed_rows: int = 0
    store_not_found: int = 0
    missing_products: int = 0
    error_samples: list[RowError] = field(default_factory=list)


@dataclass
class ImportResult:
    import_id: int
    processed_items: int
    analyzed_items: list[AnalyzedItem]
    summary: ImportSummary


def resolve_regular_price(known: KnownRow, store_price: Decimal | None) -> Decimal:
    """Regular price for the Sale row.

    The sheet value wins; otherwise the store's catalog price; otherwise the
    sale price itself (a zero placeholder price is not a regular price).
    """
    if known.row.regular_price is not None:
        return known.row.regular_price
    if store_price is not None and store_price > 0:
        return store_price
    return known.row.sale_price


async def process_csv_import(content: str, filename: str, week_of: datetime) -> ImportResult:
    """Run the full import for one sheet.

    Any failure after the batch is created leaves it `failed`, never `pending`.

    Raises:
        MissingColumnError: Sheet lacks a required column (batch marked failed).
        MalformedSheetError: Sheet text cannot be tokenized (batch marked failed).
        ImportPersistenceError: Database write failed (batch marked failed).
    """
    import_id = await create_import_batch(filename=filename, week_of=week_of)
    logger.info(f"[csv-import] start import_id={import_id} filename={filename} chars={len(content)}")

    try:
        result = await _run_import(import_id, content)
    except ImportPersistenceError:
        # persist_sales marks the batch itself
        raise
    except CsvImportError as e:
        await mark_import_failed(import_id, e.message)
        raise
    except Exception as e:
        logger.exception(f"[csv-import] failed import_id={import_id}")
        await mark_import_failed(import_id, f"{type(e).__name__}: {e}")
        raise

    summary = result.summary
    logger.info(
        "[csv-import] done import_id=%s rows=%s processed=%s failed=%s store_not_found=%s missing=%s",
        import_id,
        summary.total_rows,
        summary.processed_items,
        summary.failed_rows,
        summary.store_not_found,
        summary.missing_products,
    )
    return result


async def _run_import(import_id: int, content: str) -> ImportResult:
    reader = read_sheet(content)
    async with get_session() as session:
        snapshot = await load_catalog_snapshot(session)

    summary = ImportSummary()
    analyzed: list[AnalyzedItem] = []
    missing_names: set[str] = set()

    for row in reader:
        try:
            result = classify_row(row, snapshot)
        except StoreNotFoundError as e:
            summary.store_not_found += 1
            _sample_error(summary, row, e)
            continue

        if isinstance(result, MissingRow):
            missing_names.add(result.name.strip().casefold())
            continue

        product = result.product
        regular_price = resolve_regular_price(result, snapshot.store_prices.get((product.id, row.store_id)))
        analyzed.append(
            AnalyzedItem(
                item_name=row.item_name,
                product_id=product.id,
                category_id=product.category_id,
                store_id=row.store_id,
                store_name=snapshot.stores.get(row.store_id, ""),
                regular_price=regular_price,
                sale_price=row.sale_price,
                line_number=row.line_number,
                comparison=compare_to_market(row.sale_price, snapshot.prices_for(product.id)),
            )
        )

    stats: ParseStats = reader.stats
    summary.total_rows = stats.total_rows
    summary.failed_rows = stats.failed_rows
    summary.missing_products = len(missing_names)
    summary.error_samples = list(stats.error_samples) + summary.error_samples

    processed = await persist_sales(
        batch_id=import_id,
        sales=[
            SaleRecord(
                item_name=item.item_name,
                category_id=item.category_id,
                store_id=item.store_id,
                regular_price=item.regular_price,
                sale_price=item.sale_price,
            )
            for item in analyzed
        ],
        failed_items=stats.failed_rows + summary.store_not_found,
    )
    summary.processed_items = processed

    return ImportResult(
        import_id=import_id,
        processed_items=processed,
        analyzed_items=analyzed,
        summary=summary,
    )


def _sample_error(summary: ImportSummary, row: ParsedRow, error: CsvImportError, limit: int = 25) -> None:
    if len(summary.error_samples) < limit:
        summary.error_samples.append(
            RowError(line_number=row.line_number, code=error.code, message=error.message)
        )
