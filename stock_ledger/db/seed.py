"""
Database seeding utilities for minimal reference data.

Seeds:
- Stores: Main Godown, Production Floor
- Products: one Reel and one Board paper product with dimensions

Usage:
  python -m stock_ledger.db.run_migrations upgrade head
  python -m stock_ledger.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.enums import ProductType
from stock_ledger.db.session import get_session_maker
from stock_ledger.repositories.master_data import ProductRepository, StoreRepository

logger = logging.getLogger(__name__)

SEED_STORES = [
    {"name": "Main Godown", "description": "Primary receiving store"},
    {"name": "Production Floor", "description": "Output store for production runs"},
]

SEED_PRODUCTS = [
    {
        "item": "RL-120-0.6",
        "description": "Kraft reel 120 gsm",
        "brand": "Sample",
        "type": ProductType.REEL.value,
        "length": Decimal("1"),
        "width": Decimal("0.6"),
        "grams": Decimal("120"),
        "packing": Decimal("1"),
    },
    {
        "item": "BD-23x36-300",
        "description": "Board 23x36 300 gsm",
        "brand": "Sample",
        "type": ProductType.BOARD.value,
        "length": Decimal("23"),
        "width": Decimal("36"),
        "grams": Decimal("300"),
        "packing": Decimal("100"),
        "cost_rate_qty": Decimal("4500"),
    },
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data. Existing rows (matched by
    store name / product item code) are left untouched.
    """
    maker = get_session_maker()
    async with maker() as session:
        await _seed_stores(session)
        await _seed_products(session)
        await session.commit()


async def _seed_stores(session: AsyncSession) -> None:
    repo = StoreRepository(session)
    for row in SEED_STORES:
        if await repo.get_by_name(row["name"]) is None:
            await repo.create_store(**row)
            logger.info("Seeded store %s", row["name"])


async def _seed_products(session: AsyncSession) -> None:
    repo = ProductRepository(session)
    for row in SEED_PRODUCTS:
        if await repo.get_by_item(row["item"]) is None:
            await repo.create_product(**row)
            logger.info("Seeded product %s", row["item"])


if __name__ == "__main__":
    asyncio.run(seed_all())
