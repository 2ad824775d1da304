from __future__ import annotations

import uuid
import datetime as dt
from typing import Optional

from sqlalchemy import JSON, Date, Text, Uuid, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import Base, UUIDPkMixin, TimestampMixin


class ProductionRun(UUIDPkMixin, TimestampMixin, Base):
    """
    Production run header with its material-out and produced item lines embedded.

    The stock effect lives in the ledger (source_type='production', source_id=id);
    this row is the document the screens edit.
    """
    __tablename__ = "production_runs"

    production_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    output_store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False
    )
    material_out: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="posted")  # posted / cancelled
