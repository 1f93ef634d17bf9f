"""Store price model.

Regular (non-sale) price of a product at one store. One row per
(product, store) pair, upserted whenever the price changes. The market
average used for sale comparison is computed over these rows.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from salecompass.stores.postgres import Base


class StorePrice(Base):
    """Regular price of a product at a store."""

    __tablename__ = "product_prices"
    __table_args__ = (
        UniqueConstraint("product_id", "store_id", name="uq_product_prices_product_store"),
    )
    # Load updated_at on flush; callers read it after the session closes.
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(primary_key=True)

    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    store_id: Mapped[int] = mapped_column(ForeignKey("stores.id"), index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<StorePrice product={self.product_id} store={self.store_id} ${self.price}>"
