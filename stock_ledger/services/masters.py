from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.errors import UnknownReferenceError
from stock_ledger.db.models.master_data import Product, Store
from stock_ledger.repositories.master_data import ProductRepository, StoreRepository


def _ordered_unique(ids: Iterable[Optional[UUID]]) -> list[UUID]:
    seen: Dict[UUID, None] = {}
    for value in ids:
        if value is not None:
            seen.setdefault(value, None)
    return list(seen)


class MasterDataReader:
    """
    Read-only view of the store and product masters used by the writers.

    Stores and products must exist and be active to receive new stock
    movements; anything else is an UnknownReferenceError raised before any
    write.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.stores = StoreRepository(session)
        self.products = ProductRepository(session)

    # PUBLIC_INTERFACE
    async def resolve(
        self, store_ids: Iterable[Optional[UUID]], product_ids: Iterable[Optional[UUID]]
    ) -> Tuple[Dict[UUID, Store], Dict[UUID, Product]]:
        """Load the referenced stores and products, failing on the first unresolvable id."""
        store_order = _ordered_unique(store_ids)
        product_order = _ordered_unique(product_ids)

        stores = await self.stores.get_many(store_order)
        for store_id in store_order:
            store = stores.get(store_id)
            if store is None:
                raise UnknownReferenceError("store", store_id)
            if not store.is_active:
                raise UnknownReferenceError("store", store_id, "is inactive")

        products = await self.products.get_many(product_order)
        for product_id in product_order:
            product = products.get(product_id)
            if product is None:
                raise UnknownReferenceError("product", product_id)
            if not product.is_active:
                raise UnknownReferenceError("product", product_id, "is inactive")
        return stores, products

    async def product(self, product_id: UUID) -> Product:
        product = await self.products.get(product_id)
        if product is None:
            raise UnknownReferenceError("product", product_id)
        return product
