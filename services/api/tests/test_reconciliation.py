from decimal import Decimal

import pytest

from salecompass.services import reconciliation
from salecompass.services.csv_parser import ParsedRow
from salecompass.services.reconciliation import (
    CatalogProduct,
    CatalogSnapshot,
    CategoryRef,
    KnownRow,
    MissingRow,
    NoCategoryAvailableError,
    StoreNotFoundError,
    classify_row,
    find_missing_products,
    infer_category,
    infer_size,
    load_catalog_snapshot,
)
from salecompass.stores.postgres import get_session


def _row(name: str, store_id: int = 1, *, category: str | None = None, size: str | None = None) -> ParsedRow:
    return ParsedRow(
        item_name=name,
        store_id=store_id,
        sale_price=Decimal("2.99"),
        regular_price=None,
        line_number=2,
        category_hint=category,
        size_hint=size,
    )


@pytest.fixture
def snapshot() -> CatalogSnapshot:
    milk = CatalogProduct(id=10, name="Milk", size="1 gal", category_id=1)
    return CatalogSnapshot(
        stores={1: "Downtown Market", 2: "Riverside Grocery"},
        categories=[CategoryRef(id=1, name="Dairy"), CategoryRef(id=2, name="Produce")],
        products_by_name={"milk": milk},
        store_prices={(10, 1): Decimal("4.00")},
    )


def test_known_row_matches_trimmed_case_insensitive_name(snapshot):
    result = classify_row(_row("  MILK "), snapshot)
    assert isinstance(result, KnownRow)
    assert result.product.id == 10


def test_product_not_carried_at_store_is_missing(snapshot):
    result = classify_row(_row("Milk", store_id=2), snapshot)
    assert isinstance(result, MissingRow)
    assert result.category_id == 1


def test_no_fuzzy_matching(snapshot):
    assert isinstance(classify_row(_row("Whole Milk"), snapshot), MissingRow)


def test_unknown_store_raises(snapshot):
    with pytest.raises(StoreNotFoundError) as exc:
        classify_row(_row("Milk", store_id=99), snapshot)
    assert exc.value.detail["store_id"] == 99


def test_missing_row_uses_sheet_category_and_size(snapshot):
    result = classify_row(_row("Bananas", category="produce", size="3 lb"), snapshot)
    assert isinstance(result, MissingRow)
    assert result.category == "Produce"
    assert result.category_id == 2
    assert result.size == "3 lb"


def test_missing_row_falls_back_to_first_category(snapshot):
    result = classify_row(_row("Paper Towels", category="Household"), snapshot)
    assert result.category_id == 1


def test_missing_row_without_fallback_keeps_sheet_token(snapshot):
    result = classify_row(
        _row("Paper Towels", category="Household"),
        snapshot,
        allow_category_fallback=False,
    )
    assert result.category_id is None
    assert result.category == "Household"


def test_missing_row_with_empty_category_table(snapshot):
    snapshot.categories = []
    result = classify_row(_row("Eggs"), snapshot)
    assert isinstance(result, MissingRow)
    assert result.category_id is None


def test_infer_category_raises_without_categories():
    with pytest.raises(NoCategoryAvailableError):
        infer_category("Dairy", [])


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Whole Milk 1 gal", "1 gal"),
        ("Orange Juice 52 FL OZ", "52 fl oz"),
        ("Eggs 12ct", "12 ct"),
        ("Bananas", None),
    ],
)
def test_infer_size_from_name(name, expected):
    assert infer_size(name) == expected


# ============================================================
# Against the database
# ============================================================


@pytest.mark.asyncio
async def test_load_catalog_snapshot(catalog):
    async with get_session() as session:
        snapshot = await load_catalog_snapshot(session)

    assert set(snapshot.stores) == {catalog["downtown"], catalog["riverside"]}
    assert [c.name for c in snapshot.categories] == ["Dairy", "Produce"]
    assert snapshot.find_product("milk").id == catalog["milk"]
    assert sorted(snapshot.prices_for(catalog["milk"])) == [Decimal("4.00"), Decimal("6.00")]
    assert snapshot.carries(catalog["bananas"], catalog["downtown"])
    assert not snapshot.carries(catalog["bananas"], catalog["riverside"])


@pytest.mark.asyncio
async def test_find_missing_products_does_not_touch_catalog(catalog):
    content = (
        "Product,Store ID,Sale Price,Category\n"
        f"Milk,{catalog['downtown']},3.99,Dairy\n"
        f"Eggs,{catalog['downtown']},2.49,Dairy\n"
        f"eggs,{catalog['riverside']},2.59,Dairy\n"
        f"Bananas,{catalog['riverside']},0.49,Produce\n"
        f"Bread,99,2.00,Bakery\n"
        f"Butter,{catalog['downtown']},N/A,Dairy\n"
    )
    result = await find_missing_products(content)

    assert [m.name for m in result.missing_products] == ["Eggs", "Bananas"]
    assert result.missing_products[0].category_id == catalog["dairy"]
    assert result.missing_products[1].category_id == catalog["produce"]
    assert result.total_products == 4
    assert result.store_not_found == 1
    assert result.stats.failed_rows == 1
    assert result.notice is None

    async with get_session() as session:
        snapshot = await load_catalog_snapshot(session)
    assert snapshot.find_product("Eggs") is None


@pytest.mark.asyncio
async def test_find_missing_products_reports_no_category_notice(db):
    from salecompass.models import Store

    async with get_session() as session:
        store = Store(name="Solo", location="1 Only St")
        session.add(store)
        await session.flush()
        store_id = store.id

    result = await find_missing_products(f"Product,Store ID,Sale Price\nMilk,{store_id},2.99\n")
    assert len(result.missing_products) == 1
    assert result.missing_products[0].category_id is None
    assert result.notice == NoCategoryAvailableError.code


@pytest.mark.asyncio
async def test_find_missing_products_honours_fallback_setting(catalog, monkeypatch: pytest.MonkeyPatch):
    class NoFallback:
        missing_product_category_fallback = False

    monkeypatch.setattr(reconciliation, "get_settings", lambda: NoFallback())
    content = f"Product,Store ID,Sale Price,Category\nSoap,{catalog['downtown']},1.99,Household\n"

    result = await find_missing_products(content)
    assert result.missing_products[0].category_id is None
    assert result.missing_products[0].category == "Household"
