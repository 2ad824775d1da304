from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.core.enums import StoreStatus
from stock_ledger.db.base import Amount, Base, TimestampMixin, UUIDPkMixin


class Product(UUIDPkMixin, TimestampMixin, Base):
    """
    Product master record (paper reel or board).

    Owned by the master-data screens; the ledger only reads it. Dimensions feed
    the unit-weight formula and may be missing (stored as NULL).
    """
    __tablename__ = "products"

    item: Mapped[str] = mapped_column(Text, nullable=False, unique=True)  # item code
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Reel / Board
    length: Mapped[Optional[Decimal]] = mapped_column(Amount, nullable=True)
    width: Mapped[Optional[Decimal]] = mapped_column(Amount, nullable=True)
    grams: Mapped[Optional[Decimal]] = mapped_column(Amount, nullable=True)
    packing: Mapped[Optional[Decimal]] = mapped_column(Amount, nullable=True)
    cost_rate_qty: Mapped[Optional[Decimal]] = mapped_column(Amount, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Store(UUIDPkMixin, TimestampMixin, Base):
    """Physical store / godown holding stock."""
    __tablename__ = "stores"

    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=StoreStatus.ACTIVE.value)

    @property
    def is_active(self) -> bool:
        return self.status == StoreStatus.ACTIVE.value
