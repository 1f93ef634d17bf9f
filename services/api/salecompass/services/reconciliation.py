"""Catalog reconciliation: ParsedRow -> Known / Missing.

A row is Known when a catalog product with the same name (trimmed,
case-insensitive, exact; no fuzzy matching) is carried by the row's store,
i.e. has a store price there. Everything else is Missing.

Missing rows are never written to the catalog here. They are surfaced as a
batch for human confirmation (`find_missing_products`); only the products an
admin explicitly selects are inserted later by `catalog.add_missing_products`.

Notes:
- The catalog is loaded once per import into a CatalogSnapshot; the data
  volume of a small multi-store business makes this cheap.
- Category inference for Missing rows matches the sheet's category token
  against category names, then falls back to the first category when the
  fallback is enabled.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salecompass.models import Category, Product, Store, StorePrice
from salecompass.services.csv_parser import CsvImportError, ParsedRow, ParseStats, read_sheet
from salecompass.settings import get_settings
from salecompass.stores.postgres import get_session

logger = logging.getLogger("uvicorn.error")


class StoreNotFoundError(CsvImportError):
    """A row or request references a store id absent from the catalog."""

    code = "STORE_NOT_FOUND"
    status_code = 404


class NoCategoryAvailableError(CsvImportError):
    """The catalog has no categories to assign a missing product to."""

    code = "NO_CATEGORY_AVAILABLE"
    status_code = 409


# ============================================================
# Catalog snapshot
# ============================================================


@dataclass(frozen=True)
class CategoryRef:
    id: int
    name: str


@dataclass(frozen=True)
class CatalogProduct:
    id: int
    name: str
    size: str | None
    category_id: int


@dataclass
class CatalogSnapshot:
    """Point-in-time view of the catalog used for one import."""

    stores: dict[int, str] = field(default_factory=dict)  # id -> name
    categories: list[CategoryRef] = field(default_factory=list)  # ordered by id
    products_by_name: dict[str, CatalogProduct] = field(default_factory=dict)
    store_prices: dict[tuple[int, int], Decimal] = field(default_factory=dict)  # (product_id, store_id)

    def find_product(self, name: str) -> CatalogProduct | None:
        return self.products_by_name.get(normalize_product_name(name))

    def carries(self, product_id: int, store_id: int) -> bool:
        return (product_id, store_id) in self.store_prices

    def prices_for(self, product_id: int) -> list[Decimal]:
        """Regular prices of a product at every store carrying it."""
        return [price for (pid, _), price in self.store_prices.items() if pid == product_id]


def normalize_product_name(name: str) -> str:
    """Matching key for product names: trimmed and case-folded."""
    return name.strip().casefold()


async def load_catalog_snapshot(session: AsyncSession) -> CatalogSnapshot:
    """Load stores, categories, products and store prices in four queries."""
    snapshot = CatalogSnapshot()

    stores = (await session.execute(select(Store.id, Store.name))).all()
    snapshot.stores = {store_id: name for store_id, name in stores}

    categories = (await session.execute(select(Category.id, Category.name).order_by(Category.id))).all()
    snapshot.categories = [CategoryRef(id=cid, name=name) for cid, name in categories]

    products = (await session.execute(select(Product))).scalars().all()
    for product in products:
        snapshot.products_by_name[normalize_product_name(product.name)] = CatalogProduct(
            id=product.id,
            name=product.name,
            size=product.size,
            category_id=product.category_id,
        )

    prices = (
        await session.execute(select(StorePrice.product_id, StorePrice.store_id, StorePrice.price))
    ).all()
    snapshot.store_prices = {(pid, sid): Decimal(price) for pid, sid, price in prices}

    logger.info(
        f"[catalog] snapshot stores={len(snapshot.stores)} categories={len(snapshot.categories)} "
        f"products={len(snapshot.products_by_name)} prices={len(snapshot.store_prices)}"
    )
    return snapshot


# ============================================================
# Classification
# ============================================================


@dataclass(frozen=True)
class KnownRow:
    """Row whose (name, store) pair exists in the catalog."""

    row: ParsedRow
    product: CatalogProduct


@dataclass(frozen=True)
class MissingRow:
    """Row whose product is not carried by its store yet."""

    row: ParsedRow
    name: str
    category: str  # sheet token or inferred category name ("" when unknown)
    category_id: int | None
    size: str | None


_SIZE_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(fl\.?\s*oz|oz|lbs?|kg|g|ml|l|ct|pk|pack|gal|qt|pt|dozen|doz)\b",
    re.IGNORECASE,
)


def infer_size(name: str, hint: str | None = None) -> str | None:
    """Size from the sheet's size column, else a size token in the item name.

    >>> infer_size("Whole Milk 1 gal")
    '1 gal'
    """
    if hint and hint.strip():
        return hint.strip()
    match = _SIZE_PATTERN.search(name)
    if not match:
        return None
    unit = re.sub(r"\s+", " ", match.group(2).lower())
    return f"{match.group(1)} {unit}"


def infer_category(
    hint: str | None,
    categories: list[CategoryRef],
    *,
    allow_fallback: bool = True,
) -> CategoryRef | None:
    """Resolve a sheet category token to a catalog category.

    Args:
        hint: Category token from the sheet, if present.
        categories: Catalog categories ordered by id.
        allow_fallback: Return the first category when nothing matches.

    Returns:
        Matching category, the fallback category, or None when the fallback
        is disabled and nothing matched.

    Raises:
        NoCategoryAvailableError: If the catalog has no categories.
    """
    if not categories:
        raise NoCategoryAvailableError(
            "No categories exist; create a category before adding products"
        )

    if hint:
        key = hint.strip().casefold()
        for category in categories:
            if category.name.strip().casefold() == key:
                return category

    if allow_fallback:
        return categories[0]
    return None


def classify_row(
    row: ParsedRow,
    snapshot: CatalogSnapshot,
    *,
    allow_category_fallback: bool = True,
) -> KnownRow | MissingRow:
    """Classify one parsed row against the catalog.

    Raises:
        StoreNotFoundError: If the row's store id is not in the catalog.
    """
    if row.store_id not in snapshot.stores:
        raise StoreNotFoundError(
            f"Store {row.store_id} not found",
            detail={"store_id": row.store_id, "line_number": row.line_number},
        )

    product = snapshot.find_product(row.item_name)
    if product is not None and snapshot.carries(product.id, row.store_id):
        return KnownRow(row=row, product=product)

    try:
        category = infer_category(
            row.category_hint,
            snapshot.categories,
            allow_fallback=allow_category_fallback,
        )
    except NoCategoryAvailableError:
        category = None

    return MissingRow(
        row=row,
        name=row.item_name,
        category=category.name if category else (row.category_hint or ""),
        category_id=category.id if category else None,
        size=infer_size(row.item_name, row.size_hint),
    )


# ============================================================
# Missing products check (phase one of the two-phase add)
# ============================================================


@dataclass
class MissingProductsResult:
    missing_products: list[MissingRow]
    total_products: int
    stats: ParseStats
    store_not_found: int = 0
    notice: str | None = None


async def find_missing_products(content: str) -> MissingProductsResult:
    """List sheet products that the catalog does not carry at the row's store.

    Never mutates the catalog. Products are de-duplicated by matching key,
    keeping the first occurrence.

    Raises:
        MissingColumnError: If the sheet lacks a required column.
    """
    settings = get_settings()
    reader = read_sheet(content)

    async with get_session() as session:
        snapshot = await load_catalog_snapshot(session)

    missing: dict[str, MissingRow] = {}
    seen_names: set[str] = set()
    store_not_found = 0

    for row in reader:
        key = normalize_product_name(row.item_name)
        seen_names.add(key)
        try:
            result = classify_row(
                row,
                snapshot,
                allow_category_fallback=settings.missing_product_category_fallback,
            )
        except StoreNotFoundError:
            store_not_found += 1
            continue
        if isinstance(result, MissingRow) and key not in missing:
            missing[key] = result

    notice = None
    if missing and not snapshot.categories:
        notice = NoCategoryAvailableError.code

    logger.info(
        f"[csv-import] missing-products check total={len(seen_names)} missing={len(missing)} "
        f"store_not_found={store_not_found} failed_rows={reader.stats.failed_rows}"
    )
    return MissingProductsResult(
        missing_products=list(missing.values()),
        total_products=len(seen_names),
        stats=reader.stats,
        store_not_found=store_not_found,
        notice=notice,
    )
