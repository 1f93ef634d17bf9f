"""Spreadsheet ingestor: sale-sheet CSV text -> ParsedRow.

Flow:
1. Detect columns from the header row (name based, case/spacing tolerant)
2. Normalize price strings ("3.99", "$3.99", "2/$5") into a unit price
3. Yield one ParsedRow per data line, lazily and exactly once

Column detection happens eagerly when the reader is created, so a sheet
without a recognizable name, store or sale-price column is rejected before
any row is processed. Row-level failures never abort the batch: the row is
skipped and counted in ParseStats.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")


# ============================================================
# Errors
# ============================================================


class CsvImportError(Exception):
    """Base error for the sale-sheet import pipeline.

    Carries a stable machine-readable `code` and the HTTP status the API
    answers with when the error reaches a route.
    """

    code = "CSV_IMPORT_ERROR"
    status_code = 400

    def __init__(self, message: str, *, detail: dict | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class MissingColumnError(CsvImportError):
    """Sheet lacks a required column; the whole batch is rejected."""

    code = "MISSING_COLUMN"


class MalformedSheetError(CsvImportError):
    """CSV text cannot be tokenized (oversized field, stray NUL); the batch is rejected."""

    code = "MALFORMED_CSV"


class RowParseError(CsvImportError):
    """One data row cannot be parsed; the row is skipped."""

    code = "INVALID_ROW"


class PriceParseError(RowParseError):
    """A price cell is not in a supported format."""

    code = "PRICE_PARSE_ERROR"


# ============================================================
# Column detection
# ============================================================

# Header aliases, compared after stripping everything but [a-z0-9]
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("product", "productname", "item", "itemname", "name", "description", "itemdescription"),
    "store": ("storeid", "store", "storenumber", "storeno", "storenum"),
    "sale_price": ("saleprice", "sale", "saleprices", "promoprice"),
    "regular_price": ("regularprice", "regprice", "regular", "retailprice", "reg"),
    "category": ("category", "department", "dept"),
    "size": ("size", "packsize", "unitsize"),
}

REQUIRED_COLUMNS = ("name", "store", "sale_price")


def normalize_header(header: str) -> str:
    """Normalize a header cell for alias matching ("Store ID" -> "storeid")."""
    return re.sub(r"[^a-z0-9]", "", header.lower())


@dataclass(frozen=True)
class ColumnMap:
    """Indices of recognized columns in the header row."""

    name: int
    store: int
    sale_price: int
    regular_price: int | None = None
    category: int | None = None
    size: int | None = None


def detect_columns(header: list[str]) -> ColumnMap:
    """Map header cells to the fields the importer understands.

    The leftmost header matching an alias wins.

    Raises:
        MissingColumnError: If no name, store or sale-price column is found.
    """
    found: dict[str, int] = {}
    for index, cell in enumerate(header):
        key = normalize_header(cell)
        if not key:
            continue
        for field_name, aliases in COLUMN_ALIASES.items():
            if field_name not in found and key in aliases:
                found[field_name] = index
                break

    missing = [c for c in REQUIRED_COLUMNS if c not in found]
    if missing:
        raise MissingColumnError(
            f"Missing required column(s): {', '.join(missing)}. "
            "Expected Product/Item Name, Store ID and Sale Price columns.",
            detail={"missing": missing, "headers": [h.strip() for h in header]},
        )

    return ColumnMap(**found)


# ============================================================
# Price normalization
# ============================================================

_PLAIN_PRICE = re.compile(r"^\$?\s*(\d+(?:\.\d+)?|\.\d+)$")
_MULTI_UNIT_PRICE = re.compile(r"^(\d+)\s*/\s*\$?\s*(\d+(?:\.\d+)?|\.\d+)$")


def parse_price(raw: str) -> Decimal:
    """Parse a price cell into a unit price rounded to cents.

    Supported formats:
    - plain decimal: "3.99"
    - currency-prefixed: "$3.99"
    - multi-unit: "2/$5" or "2/5" (unit price = 5 / 2 = 2.50)

    Raises:
        PriceParseError: For any other format (including blanks and "N/A").
    """
    text = (raw or "").strip()

    match = _PLAIN_PRICE.match(text)
    if match:
        return _to_cents(match.group(1), raw)

    match = _MULTI_UNIT_PRICE.match(text)
    if match:
        quantity = int(match.group(1))
        if quantity == 0:
            raise PriceParseError(f"Invalid multi-unit price (zero quantity): {raw!r}")
        total = _to_decimal(match.group(2), raw)
        return (total / quantity).quantize(CENT, rounding=ROUND_HALF_UP)

    raise PriceParseError(f"Unsupported price format: {raw!r}")


def _to_decimal(value: str, raw: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise PriceParseError(f"Unsupported price format: {raw!r}") from e


def _to_cents(value: str, raw: str) -> Decimal:
    return _to_decimal(value, raw).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_store_id(raw: str) -> int:
    """Parse a store reference cell ("1", "#1", "1.0")."""
    text = (raw or "").strip().lstrip("#").strip()
    if text.endswith(".0"):
        text = text[:-2]
    if not text.isdigit():
        raise RowParseError(f"Invalid store id: {raw!r}")
    return int(text)


# ============================================================
# Rows
# ============================================================


@dataclass(frozen=True)
class ParsedRow:
    """One data line of a sale sheet. Transient, never persisted as-is."""

    item_name: str
    store_id: int
    sale_price: Decimal
    regular_price: Decimal | None
    line_number: int
    category_hint: str | None = None
    size_hint: str | None = None


@dataclass(frozen=True)
class RowError:
    """Sampled row failure for the import summary."""

    line_number: int
    code: str
    message: str


@dataclass
class ParseStats:
    """Counters collected while a sheet is read."""

    total_rows: int = 0
    parsed_rows: int = 0
    skipped_blank: int = 0
    price_errors: int = 0
    invalid_rows: int = 0
    error_samples: list[RowError] = field(default_factory=list)

    @property
    def failed_rows(self) -> int:
        return self.price_errors + self.invalid_rows


class SheetReader:
    """Lazy, single-pass iterator of ParsedRow over CSV text.

    Columns are detected in the constructor. Iterating a second time
    yields nothing: the underlying csv reader is consumed exactly once.
    Text the csv module cannot tokenize raises MalformedSheetError
    mid-iteration.
    """

    def __init__(self, content: str, *, error_sample_limit: int = 25):
        self.stats = ParseStats()
        self._error_sample_limit = error_sample_limit
        if content.startswith("\ufeff"):
            content = content[1:]
        self._reader = csv.reader(io.StringIO(content, newline=""))
        self.columns = self._read_header()
        self._rows = self._iter_rows()

    def __iter__(self) -> SheetReader:
        return self

    def __next__(self) -> ParsedRow:
        return next(self._rows)

    def _read_header(self) -> ColumnMap:
        for cells in self._cells():
            if any(c.strip() for c in cells):
                return detect_columns(cells)
        raise MissingColumnError("Spreadsheet is empty: no header row found")

    def _cells(self) -> Iterator[list[str]]:
        while True:
            try:
                cells = next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                line_number = self._reader.line_num
                raise MalformedSheetError(
                    f"Malformed CSV near line {line_number}: {e}",
                    detail={"lineNumber": line_number},
                ) from e
            yield cells

    def _iter_rows(self) -> Iterator[ParsedRow]:
        for cells in self._cells():
            line_number = self._reader.line_num
            if not any(c.strip() for c in cells):
                self.stats.skipped_blank += 1
                continue

            self.stats.total_rows += 1
            try:
                row = self._parse_cells(cells, line_number)
            except PriceParseError as e:
                self.stats.price_errors += 1
                self._record_error(line_number, e)
                continue
            except RowParseError as e:
                self.stats.invalid_rows += 1
                self._record_error(line_number, e)
                continue

            self.stats.parsed_rows += 1
            yield row

    def _parse_cells(self, cells: list[str], line_number: int) -> ParsedRow:
        cols = self.columns

        name = _cell(cells, cols.name)
        if not name:
            raise RowParseError("Missing item name")

        store_id = parse_store_id(_cell(cells, cols.store))
        sale_price = parse_price(_cell(cells, cols.sale_price))

        regular_price: Decimal | None = None
        regular_raw = _cell(cells, cols.regular_price)
        if regular_raw:
            regular_price = parse_price(regular_raw)

        return ParsedRow(
            item_name=name,
            store_id=store_id,
            sale_price=sale_price,
            regular_price=regular_price,
            line_number=line_number,
            category_hint=_cell(cells, cols.category) or None,
            size_hint=_cell(cells, cols.size) or None,
        )

    def _record_error(self, line_number: int, error: CsvImportError) -> None:
        if len(self.stats.error_samples) < self._error_sample_limit:
            self.stats.error_samples.append(
                RowError(line_number=line_number, code=error.code, message=error.message)
            )


def _cell(cells: list[str], index: int | None) -> str:
    if index is None or index >= len(cells):
        return ""
    return cells[index].strip()


def read_sheet(content: str) -> SheetReader:
    """Open a sale sheet for reading.

    Raises:
        MissingColumnError: If the header lacks a required column.
        MalformedSheetError: If the header row cannot be tokenized.
    """
    return SheetReader(content)


def parse_sheet(content: str) -> tuple[list[ParsedRow], ParseStats]:
    """Read a whole sheet eagerly. Convenience for callers that need a list."""
    reader = read_sheet(content)
    rows = list(reader)
    return rows, reader.stats
