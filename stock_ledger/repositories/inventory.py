from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from stock_ledger.core.enums import TransactionKind
from stock_ledger.db.base import utcnow
from stock_ledger.db.models.inventory import StockBalance, StockDocument, StockTransaction
from stock_ledger.db.models.master_data import Product, Store
from .base import BaseRepository

COST_BEARING_KINDS = [k.value for k in TransactionKind if k.is_cost_bearing]


def _not_reversed():
    """Criterion excluding entries that a later reversal entry offsets."""
    rev = aliased(StockTransaction)
    reversed_ids = select(rev.reverses_id).where(rev.reverses_id.is_not(None))
    return StockTransaction.id.not_in(reversed_ids)


class StockBalanceRepository(BaseRepository):
    """
    Repository for per-key stock balances.

    Reads select plain columns so a stale ORM instance in the identity map can
    never mask a concurrent increment.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_amounts(self, store_id: UUID, product_id: UUID, lot_no: str) -> Optional[Tuple[Decimal, Decimal]]:
        stmt = select(StockBalance.quantity_packets, StockBalance.weight_kg).where(
            StockBalance.store_id == store_id,
            StockBalance.product_id == product_id,
            StockBalance.lot_no == lot_no,
        )
        row = (await self.execute(stmt)).one_or_none()
        if row is None:
            return None
        return Decimal(row[0]), Decimal(row[1])

    async def increment(
        self,
        store_id: UUID,
        product_id: UUID,
        lot_no: str,
        quantity_delta: Decimal,
        weight_delta: Decimal,
    ) -> Tuple[Decimal, Decimal]:
        """
        Atomically add deltas to a balance row, creating it on first use, and
        return the resulting (quantity, weight).
        """
        now = utcnow()
        insert = self.dialect_insert(StockBalance)
        stmt = insert.values(
            id=uuid4(),
            store_id=store_id,
            product_id=product_id,
            lot_no=lot_no,
            quantity_packets=quantity_delta,
            weight_kg=weight_delta,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[StockBalance.store_id, StockBalance.product_id, StockBalance.lot_no],
            set_={
                "quantity_packets": StockBalance.quantity_packets + stmt.excluded.quantity_packets,
                "weight_kg": StockBalance.weight_kg + stmt.excluded.weight_kg,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        stmt = stmt.returning(StockBalance.quantity_packets, StockBalance.weight_kg)
        row = (await self.execute(stmt)).one()
        return Decimal(row[0]), Decimal(row[1])

    async def list_for_store(
        self, store_id: UUID, *, product_id: Optional[UUID] = None, limit: int = 500, offset: int = 0
    ) -> List[StockBalance]:
        stmt = select(StockBalance).where(StockBalance.store_id == store_id)
        if product_id:
            stmt = stmt.where(StockBalance.product_id == product_id)
        stmt = (
            stmt.order_by(StockBalance.product_id, StockBalance.lot_no)
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        res = await self.scalars(stmt)
        return list(res)

    def _valuation_filter(self, stmt, store_ids: Optional[Sequence[UUID]], product_ids: Optional[Sequence[UUID]]):
        if store_ids is not None:
            stmt = stmt.where(StockBalance.store_id.in_(list(store_ids)))
        if product_ids is not None:
            stmt = stmt.where(StockBalance.product_id.in_(list(product_ids)))
        return stmt

    async def list_for_valuation(
        self,
        *,
        store_ids: Optional[Sequence[UUID]],
        product_ids: Optional[Sequence[UUID]],
        limit: Optional[int],
        offset: int,
    ) -> List[Tuple[StockBalance, Product, Store]]:
        """Balances joined to their product and store, ordered for reporting."""
        stmt = (
            select(StockBalance, Product, Store)
            .join(Product, Product.id == StockBalance.product_id)
            .join(Store, Store.id == StockBalance.store_id)
        )
        stmt = self._valuation_filter(stmt, store_ids, product_ids)
        stmt = stmt.order_by(Product.item, Store.name, StockBalance.lot_no).offset(offset).execution_options(
            populate_existing=True
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.execute(stmt)
        return [tuple(row) for row in res.all()]

    async def list_all_amounts(self) -> List[Tuple[UUID, UUID, str, Decimal, Decimal]]:
        stmt = select(
            StockBalance.store_id,
            StockBalance.product_id,
            StockBalance.lot_no,
            StockBalance.quantity_packets,
            StockBalance.weight_kg,
        )
        res = await self.execute(stmt)
        return [tuple(r) for r in res.all()]


class StockTransactionRepository(BaseRepository):
    """Repository for the append-only stock ledger."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def insert_many(self, entries: Sequence[StockTransaction]) -> List[int]:
        await self.add_all(entries)
        await self.flush()
        return [e.id for e in entries]

    async def list_page(
        self,
        *,
        store_id: Optional[UUID],
        product_id: Optional[UUID],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
        after: Optional[Tuple[datetime, int]],
        limit: int,
    ) -> List[StockTransaction]:
        """
        One keyset page ordered by (occurred_at, id) ascending.

        date_to is exclusive; `after` is the (occurred_at, id) of the last row
        of the previous page.
        """
        stmt = select(StockTransaction)
        if store_id:
            stmt = stmt.where(StockTransaction.store_id == store_id)
        if product_id:
            stmt = stmt.where(StockTransaction.product_id == product_id)
        if date_from:
            stmt = stmt.where(StockTransaction.occurred_at >= date_from)
        if date_to:
            stmt = stmt.where(StockTransaction.occurred_at < date_to)
        if after is not None:
            last_at, last_id = after
            stmt = stmt.where(
                or_(
                    StockTransaction.occurred_at > last_at,
                    and_(StockTransaction.occurred_at == last_at, StockTransaction.id > last_id),
                )
            )
        stmt = stmt.order_by(StockTransaction.occurred_at.asc(), StockTransaction.id.asc()).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def list_active_for_source(self, source_type: str, source_id: UUID) -> List[StockTransaction]:
        """Original (non-reversal) entries of a source document that are not yet reversed."""
        stmt = (
            select(StockTransaction)
            .where(
                StockTransaction.source_type == source_type,
                StockTransaction.source_id == source_id,
                StockTransaction.reverses_id.is_(None),
                _not_reversed(),
            )
            .order_by(StockTransaction.id.asc())
        )
        res = await self.scalars(stmt)
        return list(res)

    async def list_cost_bearing(
        self,
        product_ids: Sequence[UUID],
        *,
        date_from: Optional[datetime],
        date_to: Optional[datetime],
    ) -> List[StockTransaction]:
        """
        Cost-bearing entries (purchase receipts, production output) carrying a
        rate or a positive value, for the given products, excluding reversals
        and reversed entries, ordered by product then ledger order.
        """
        if not product_ids:
            return []
        stmt = select(StockTransaction).where(
            StockTransaction.product_id.in_(list(product_ids)),
            StockTransaction.kind.in_(COST_BEARING_KINDS),
            or_(StockTransaction.unit_rate.is_not(None), StockTransaction.value > 0),
            StockTransaction.reverses_id.is_(None),
            _not_reversed(),
        )
        if date_from:
            stmt = stmt.where(StockTransaction.occurred_at >= date_from)
        if date_to:
            stmt = stmt.where(StockTransaction.occurred_at < date_to)
        stmt = stmt.order_by(
            StockTransaction.product_id, StockTransaction.occurred_at.asc(), StockTransaction.id.asc()
        )
        res = await self.scalars(stmt)
        return list(res)

    async def sum_by_key(self) -> List[Tuple[UUID, UUID, str, Decimal, Decimal]]:
        stmt = select(
            StockTransaction.store_id,
            StockTransaction.product_id,
            StockTransaction.lot_no,
            func.sum(StockTransaction.quantity_delta),
            func.sum(StockTransaction.weight_delta),
        ).group_by(StockTransaction.store_id, StockTransaction.product_id, StockTransaction.lot_no)
        res = await self.execute(stmt)
        return [tuple(r) for r in res.all()]


class StockDocumentRepository(BaseRepository):
    """Repository for purchase/sale/store-in/return document headers."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get(self, document_id: UUID) -> Optional[StockDocument]:
        return await self.session.get(StockDocument, document_id, populate_existing=True)

    async def exists(self, kind: str, document_no: str) -> bool:
        stmt = select(StockDocument.id).where(
            StockDocument.kind == kind, StockDocument.document_no == document_no
        )
        return (await self.scalar_one_or_none(stmt)) is not None
