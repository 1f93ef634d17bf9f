"""SQLAlchemy ORM models.

Models represent database tables:
- stores: Stores whose sale sheets are imported
- categories: Product categories
- products: Catalog products, unique by name
- product_prices: Regular price of a product per store
- sales: Reconciled sale rows (append-only)
- spreadsheet_imports: One row per import batch
"""

from salecompass.models.category import Category
from salecompass.models.product import Product
from salecompass.models.sale import Sale
from salecompass.models.spreadsheet_import import ImportStatus, SpreadsheetImport
from salecompass.models.store import Store
from salecompass.models.store_price import StorePrice

__all__ = ["Category", "ImportStatus", "Product", "Sale", "SpreadsheetImport", "Store", "StorePrice"]
