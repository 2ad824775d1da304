from __future__ import annotations

import uuid
import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import Amount, Base, Money, TimestampMixin, UUIDPkMixin, utcnow

# BIGINT identity on PostgreSQL, INTEGER PRIMARY KEY (rowid) on SQLite.
LedgerId = BigInteger().with_variant(Integer(), "sqlite")


class StockBalance(UUIDPkMixin, TimestampMixin, Base):
    """
    Current quantity and weight per (store, product, lot).

    lot_no is '' when the balance is not lot-tracked so that the unique key holds.
    Weight is independent state and is never recomputed from quantity here.
    """
    __tablename__ = "stock_balances"
    __table_args__ = (
        UniqueConstraint("store_id", "product_id", "lot_no", name="uq_stock_balances_key"),
    )

    store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    lot_no: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity_packets: Mapped[Decimal] = mapped_column(Amount, nullable=False, default=Decimal("0"))
    weight_kg: Mapped[Decimal] = mapped_column(Amount, nullable=False, default=Decimal("0"))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class StockTransaction(Base):
    """
    Immutable ledger entry for one stock-affecting event on one balance key.

    Rows are only ever inserted. Corrections are new rows with reverses_id set
    to the entry they offset; reverses_id is unique so an entry is offset at
    most once.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        Index("ix_stock_transactions_key", "store_id", "product_id", "lot_no"),
        Index("ix_stock_transactions_order", "occurred_at", "id"),
        Index("ix_stock_transactions_source", "source_type", "source_id"),
    )

    id: Mapped[int] = mapped_column(LedgerId, primary_key=True, autoincrement=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    lot_no: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity_delta: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    weight_delta: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    unit_rate: Mapped[Optional[Decimal]] = mapped_column(Amount, nullable=True)
    rate_basis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Weight / Quantity
    value: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    source_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # production/document/manual
    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    source_document: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # e.g. PR-000001
    reverses_id: Mapped[Optional[int]] = mapped_column(
        LedgerId, ForeignKey("stock_transactions.id", ondelete="RESTRICT"), nullable=True, index=True, unique=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class StockDocument(UUIDPkMixin, TimestampMixin, Base):
    """Header of a purchase/sale/store-in/return document whose lines post to the ledger."""
    __tablename__ = "stock_documents"
    __table_args__ = (
        UniqueConstraint("kind", "document_no", name="uq_stock_documents_kind_no"),
    )

    kind: Mapped[str] = mapped_column(Text, nullable=False)
    document_no: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="posted")  # posted / cancelled
    lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
