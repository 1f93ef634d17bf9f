"""Spreadsheet import (import batch) model.

Created as `pending` when an upload is processed, then flipped to
`completed` or `failed`. Never deleted by the pipeline.
"""

from datetime import datetime
import enum

from sqlalchemy import DateTime, Enum, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from salecompass.stores.postgres import Base


class ImportStatus(str, enum.Enum):
    """Lifecycle of an import batch."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SpreadsheetImport(Base):
    """One upload-and-process cycle of a sales CSV."""

    __tablename__ = "spreadsheet_imports"

    id: Mapped[int] = mapped_column(primary_key=True)

    filename: Mapped[str] = mapped_column(String(300))
    week_of: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    # Outcome
    processed_items: Mapped[int] = mapped_column(default=0)
    failed_items: Mapped[int] = mapped_column(default=0)
    status: Mapped[ImportStatus] = mapped_column(
        Enum(ImportStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=ImportStatus.PENDING,
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text)

    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<SpreadsheetImport {self.id} {self.filename} ({self.status.value})>"
