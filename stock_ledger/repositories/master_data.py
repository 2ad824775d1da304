from __future__ import annotations

from typing import Any, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.db.models.master_data import Product, Store
from .base import BaseRepository


class ProductRepository(BaseRepository):
    """Read access to the product master, plus inserts for seeding."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get(self, product_id: UUID) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def get_by_item(self, item: str) -> Optional[Product]:
        stmt = select(Product).where(Product.item == item)
        return await self.scalar_one_or_none(stmt)

    async def get_many(self, product_ids: Iterable[UUID]) -> dict[UUID, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        res = await self.scalars(select(Product).where(Product.id.in_(ids)))
        return {p.id: p for p in res}

    async def search_ids(self, text: str) -> List[UUID]:
        """Ids of products whose item code or description contains text (case-insensitive)."""
        like = f"%{text}%"
        stmt = select(Product.id).where(or_(Product.item.ilike(like), Product.description.ilike(like)))
        res = await self.scalars(stmt)
        return list(res)

    async def create_product(self, **fields: Any) -> Product:
        row = Product(**fields)
        await self.add(row)
        await self.flush()
        return row


class StoreRepository(BaseRepository):
    """Read access to the store master, plus inserts for seeding."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get(self, store_id: UUID) -> Optional[Store]:
        return await self.session.get(Store, store_id)

    async def get_by_name(self, name: str) -> Optional[Store]:
        stmt = select(Store).where(Store.name == name)
        return await self.scalar_one_or_none(stmt)

    async def get_many(self, store_ids: Iterable[UUID]) -> dict[UUID, Store]:
        ids = list(set(store_ids))
        if not ids:
            return {}
        res = await self.scalars(select(Store).where(Store.id.in_(ids)))
        return {s.id: s for s in res}

    async def create_store(self, **fields: Any) -> Store:
        row = Store(**fields)
        await self.add(row)
        await self.flush()
        return row
