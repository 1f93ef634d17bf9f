"""Category model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from salecompass.stores.postgres import Base


class Category(Base):
    """Product category (Dairy, Produce, Meat, ...)."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)

    def __repr__(self) -> str:
        return f"<Category {self.name}>"
