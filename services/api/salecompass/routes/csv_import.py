"""CSV import endpoints.

POST /v1/csv-import/csv-json               - Chunked sale-sheet upload + import
POST /v1/csv-import/check-missing-products - Products the catalog lacks
POST /v1/csv-import/add-products           - Insert admin-confirmed products

Routers are thin: call services for business logic. Pipeline errors
(CsvImportError) are rendered by the app-level exception handler.
"""

import logging

from fastapi import APIRouter

from salecompass.schemas import (
    AddProductsRequest,
    AddProductsResponse,
    AnalyzedItemOut,
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
from salecompass.services.catalog import NewProduct, add_missing_products
from salecompass.services.chunks import get_chunk_assembler
from salecompass.services.csv_import import AnalyzedItem, ImportResult, process_csv_import
from salecompass.services.reconciliation import find_missing_products

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.post("/csv-json", response_model=ImportResponse | ChunkReceivedResponse)
async def upload_csv_json(request: CsvUploadRequest) -> ImportResponse | ChunkReceivedResponse:
    """Receive one chunk of a sale sheet; import once every chunk has arrived.

    Chunks are buffered by `chunkIndex`, so they may arrive in any order.
    Re-sent chunks (same upload id and index) are ignored. With an explicit
    `uploadId` a chunk re-sent after the import answers "already-imported"
    instead of importing again. Without one the session key is
    `filename-weekOf` and a later upload of the same file is a new import.
    """
    chunk = request.chunk_data
    upload_id = chunk.upload_id or f"{request.filename}-{request.week_of.isoformat()}"
    remember_completion = chunk.upload_id is not None

    logger.info(
        f"[csv-import] chunk {chunk.chunk_index + 1}/{chunk.total_chunks} upload_id={upload_id} "
        f"chars={len(request.file_content)}"
    )

    assembler = get_chunk_assembler()
    progress = await assembler.add_chunk(
        upload_id=upload_id,
        chunk_index=chunk.chunk_index,
        total_chunks=chunk.total_chunks,
        content=request.file_content,
        remember_completion=remember_completion,
    )

    if progress.already_imported:
        return ChunkReceivedResponse(
            status="already-imported",
            message=f"Upload {upload_id} was already imported",
            upload_id=upload_id,
            received_chunks=progress.received_chunks,
            total_chunks=progress.total_chunks,
            duplicate=True,
            import_id=progress.import_id,
        )

    if not progress.is_complete:
        return ChunkReceivedResponse(
            message=f"Chunk {chunk.chunk_index + 1}/{chunk.total_chunks} received successfully",
            upload_id=upload_id,
            received_chunks=progress.received_chunks,
            total_chunks=progress.total_chunks,
            duplicate=progress.duplicate,
        )

    try:
        result = await process_csv_import(progress.content or "", request.filename, request.week_of)
    except Exception:
        if remember_completion:
            await assembler.release_completion(upload_id)
        raise

    if remember_completion:
        await assembler.record_import(upload_id, result.import_id)
    return _to_import_response(result)


@router.post("/check-missing-products", response_model=MissingProductsResponse)
async def check_missing_products(request: MissingProductsRequest) -> MissingProductsResponse:
    """List products in the sheet that the catalog does not carry yet.

    Read-only: nothing is inserted until /add-products is called.
    """
    result = await find_missing_products(request.file_content)
    return MissingProductsResponse(
        missing_products=[
            MissingProductOut(
                name=m.name,
                category=m.category,
                category_id=m.category_id,
                size=m.size,
                store_id=m.row.store_id,
            )
            for m in result.missing_products
        ],
        total_products=result.total_products,
        failed_rows=result.stats.failed_rows,
        store_not_found=result.store_not_found,
        notice=result.notice,
    )


@router.post("/add-products", response_model=AddProductsResponse)
async def add_products(request: AddProductsRequest) -> AddProductsResponse:
    """Insert the products an admin selected from a missing-products check."""
    products = await add_missing_products(
        [
            NewProduct(
                name=p.name,
                size=p.size,
                category_id=p.category_id,
                store_id=p.store_id,
                price=p.price,
            )
            for p in request.products
        ]
    )
    return AddProductsResponse(
        success=True,
        added_products=[
            ProductOut(id=p.id, name=p.name, size=p.size, category_id=p.category_id) for p in products
        ],
        count=len(products),
    )


def _to_analyzed_item_out(item: AnalyzedItem) -> AnalyzedItemOut:
    comparison = item.comparison
    return AnalyzedItemOut(
        item_name=item.item_name,
        product_id=item.product_id,
        category_id=item.category_id,
        store_id=item.store_id,
        store_name=item.store_name,
        regular_price=item.regular_price,
        sale_price=item.sale_price,
        average_price=comparison.average_price,
        market_savings_percent=comparison.market_savings_percent,
        line_number=item.line_number,
    )


def _to_import_response(result: ImportResult) -> ImportResponse:
    summary = result.summary
    return ImportResponse(
        import_id=result.import_id,
        processed_items=result.processed_items,
        analyzed_items=[_to_analyzed_item_out(item) for item in result.analyzed_items],
        summary=ImportSummaryOut(
            total_rows=summary.total_rows,
            processed_items=summary.processed_items,
            failed_rows=summary.failed_rows,
            store_not_found=summary.store_not_found,
            missing_products=summary.missing_products,
            errors=[
                RowErrorOut(line_number=e.line_number, code=e.code, message=e.message)
                for e in summary.error_samples
            ],
        ),
    )
