"""Catalog product model.

A product is keyed by its name: the unique constraint on `name` is what
keeps two concurrent imports from inserting the same missing product twice.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from salecompass.stores.postgres import Base


class Product(Base):
    """Catalog product (name, size, category)."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(300), unique=True, index=True)
    size: Mapped[str | None] = mapped_column(String(50))  # e.g. "12 oz", "6 ct"
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product {self.name}>"
