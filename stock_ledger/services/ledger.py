from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import AsyncIterator, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.enums import RateBasis, TransactionKind
from stock_ledger.core.errors import LedgerValidationError
from stock_ledger.core.settings import AppSettings
from stock_ledger.db.base import utcnow
from stock_ledger.db.models.inventory import StockTransaction
from stock_ledger.repositories.inventory import StockTransactionRepository
from stock_ledger.services.balances import BalanceDelta, BalanceKey, balance_key
from stock_ledger.services.base import BaseService
from stock_ledger.services.units import round_weight

logger = logging.getLogger(__name__)


def business_time(day: date) -> datetime:
    """Ledger timestamp of a document dated `day`; same-day ties fall back to insertion order."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


@dataclass
class LedgerEntry:
    """A ledger row waiting to be appended. Deltas are signed."""

    kind: TransactionKind
    store_id: UUID
    product_id: UUID
    quantity_delta: Decimal
    weight_delta: Decimal
    lot_no: str = ""
    occurred_at: Optional[datetime] = None
    unit_rate: Optional[Decimal] = None
    rate_basis: Optional[RateBasis] = None
    value: Optional[Decimal] = None
    source_type: Optional[str] = None
    source_id: Optional[UUID] = None
    source_document: Optional[str] = None
    reverses_id: Optional[int] = None
    notes: Optional[str] = None
    transaction_id: Optional[int] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        # Stored precision; ledger rows, balance deltas and reversals all see these values.
        self.quantity_delta = round_weight(self.quantity_delta)
        self.weight_delta = round_weight(self.weight_delta)

    @property
    def key(self) -> BalanceKey:
        return balance_key(self.store_id, self.product_id, self.lot_no)

    def as_delta(self) -> BalanceDelta:
        return BalanceDelta(self.store_id, self.product_id, self.lot_no or "", self.quantity_delta, self.weight_delta)

    def stamped(self, *, source_id: Optional[UUID], source_document: Optional[str]) -> "LedgerEntry":
        return replace(self, source_id=source_id, source_document=source_document)


def _check_direction(entry: LedgerEntry) -> None:
    """Original entries move stock in the direction of their kind; reversals the opposite way."""
    sign = TransactionKind(entry.kind).direction
    if entry.reverses_id is not None:
        sign = -sign
    if entry.quantity_delta * sign < 0:
        raise LedgerValidationError(
            "quantity_delta", f"{entry.kind} entry cannot have quantity delta {entry.quantity_delta}"
        )
    if entry.weight_delta * sign < 0:
        raise LedgerValidationError("weight_delta", f"{entry.kind} entry cannot have weight delta {entry.weight_delta}")


class TransactionLedger(BaseService):
    """
    Append-only record of every stock-affecting event.

    Entries are inserted and never updated or deleted; a correction is a new
    entry with reverses_id pointing at the entry it offsets. append/append_many
    flush but do not commit; they run inside StockPostingService's unit of work
    together with the matching balance deltas.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.repo = StockTransactionRepository(session)

    # PUBLIC_INTERFACE
    async def append(self, entry: LedgerEntry) -> int:
        """Append one entry and return its id."""
        ids = await self.append_many([entry])
        return ids[0]

    # PUBLIC_INTERFACE
    async def append_many(self, entries: Sequence[LedgerEntry]) -> List[int]:
        """Append entries in order and return their ids (insertion order)."""
        rows: List[StockTransaction] = []
        now = utcnow()
        for entry in entries:
            _check_direction(entry)
            rows.append(
                StockTransaction(
                    occurred_at=entry.occurred_at or now,
                    kind=TransactionKind(entry.kind).value,
                    store_id=entry.store_id,
                    product_id=entry.product_id,
                    lot_no=entry.lot_no or "",
                    quantity_delta=entry.quantity_delta,
                    weight_delta=entry.weight_delta,
                    unit_rate=entry.unit_rate,
                    rate_basis=RateBasis(entry.rate_basis).value if entry.rate_basis else None,
                    value=entry.value,
                    source_type=entry.source_type,
                    source_id=entry.source_id,
                    source_document=entry.source_document,
                    reverses_id=entry.reverses_id,
                    notes=entry.notes,
                    created_at=now,
                )
            )
        ids = await self.repo.insert_many(rows)
        logger.debug("Appended %d ledger entries", len(ids))
        for entry, transaction_id in zip(entries, ids):
            entry.transaction_id = transaction_id
        return ids

    # PUBLIC_INTERFACE
    async def list_for(
        self,
        store_id: Optional[UUID] = None,
        product_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        *,
        after: Optional[Tuple[datetime, int]] = None,
        batch_size: int = 500,
    ) -> AsyncIterator[StockTransaction]:
        """
        Lazily iterate entries ordered by (occurred_at, id).

        Rows are fetched in keyset batches, so the sequence is finite and can
        be restarted from any (occurred_at, id) position with `after`.
        `date_to` is exclusive.
        """
        cursor = after
        while True:
            batch = await self.repo.list_page(
                store_id=store_id,
                product_id=product_id,
                date_from=date_from,
                date_to=date_to,
                after=cursor,
                limit=batch_size,
            )
            for row in batch:
                yield row
            if len(batch) < batch_size:
                return
            last = batch[-1]
            cursor = (last.occurred_at, last.id)

    # PUBLIC_INTERFACE
    async def reverse_entries(
        self,
        source_type: str,
        source_id: UUID,
        *,
        notes: Optional[str] = None,
    ) -> List[LedgerEntry]:
        """
        Offsetting entries for every active entry of a source document.

        The entries are returned, not appended: the caller appends them in the
        same unit of work as the balance deltas they carry.
        """
        active = await self.repo.list_active_for_source(source_type, source_id)
        now = utcnow()
        return [
            LedgerEntry(
                kind=TransactionKind(row.kind),
                store_id=row.store_id,
                product_id=row.product_id,
                lot_no=row.lot_no,
                quantity_delta=-Decimal(row.quantity_delta),
                weight_delta=-Decimal(row.weight_delta),
                occurred_at=now,
                source_type=row.source_type,
                source_id=row.source_id,
                source_document=row.source_document,
                reverses_id=row.id,
                notes=notes,
            )
            for row in active
        ]
