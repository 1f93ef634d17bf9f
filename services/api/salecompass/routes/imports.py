"""Import history endpoints.

GET /v1/imports       - Recent import batches
GET /v1/imports/{id}  - One batch with its sales
"""

from fastapi import APIRouter, HTTPException, Query

from salecompass.models import SpreadsheetImport
from salecompass.schemas import ImportBatchOut, ImportDetailResponse, ImportListResponse, SaleOut
from salecompass.services.persistence import get_import_batch, list_import_batches

router = APIRouter()


def _batch_out(batch: SpreadsheetImport, sales_count: int) -> ImportBatchOut:
    return ImportBatchOut(
        id=batch.id,
        filename=batch.filename,
        week_of=batch.week_of,
        imported_at=batch.imported_at,
        processed_items=batch.processed_items,
        failed_items=batch.failed_items,
        status=batch.status.value,
        error_message=batch.error_message,
        sales_count=sales_count,
    )


@router.get("", response_model=ImportListResponse)
async def list_imports(limit: int = Query(default=50, ge=1, le=200)) -> ImportListResponse:
    """List recent import batches, newest first."""
    summaries = await list_import_batches(limit=limit)
    return ImportListResponse(
        count=len(summaries),
        imports=[_batch_out(s.batch, s.sales_count) for s in summaries],
    )


@router.get("/{import_id}", response_model=ImportDetailResponse)
async def get_import(import_id: int) -> ImportDetailResponse:
    """Get one import batch and the sales it stored."""
    found = await get_import_batch(import_id)
    if not found:
        raise HTTPException(status_code=404, detail=f"Import not found: {import_id}")

    batch, sales = found
    return ImportDetailResponse(
        batch=_batch_out(batch, len(sales)),
        sales=[
            SaleOut(
                id=s.id,
                item_name=s.item_name,
                category_id=s.category_id,
                store_id=s.store_id,
                regular_price=s.regular_price,
                sale_price=s.sale_price,
                end_date=s.end_date,
                created_at=s.created_at,
            )
            for s in sales
        ],
    )
