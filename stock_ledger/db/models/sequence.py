from __future__ import annotations

from sqlalchemy import BigInteger, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import Base


class SequenceCounter(Base):
    """
    Named counter for human-readable numbers (production, invoices).

    Incremented in place by an atomic upsert; the value is consumed only when
    the surrounding transaction commits.
    """
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
