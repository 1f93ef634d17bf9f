"""Sale model.

One reconciled spreadsheet row. Append-only: rows are written by the
import pipeline and never updated.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from salecompass.stores.postgres import Base


class Sale(Base):
    """Sale price of an item at a store for one import week."""

    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Relations (FKs enforce the category/store invariant at write time)
    import_id: Mapped[int | None] = mapped_column(ForeignKey("spreadsheet_imports.id"), index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"))
    store_id: Mapped[int] = mapped_column(ForeignKey("stores.id"), index=True)

    item_name: Mapped[str] = mapped_column(String(300))

    # Pricing
    regular_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    sale_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Sale {self.item_name} store={self.store_id} ${self.sale_price}>"
