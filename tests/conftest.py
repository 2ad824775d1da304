"""
Pytest fixtures for the stock ledger test suite.

Provides:
- A fresh aiosqlite file database per test, tables created from ORM metadata
- Session factory and a default session bound to it
- Seeded stores and products
- Application settings tuned for fast retries
- An httpx AsyncClient over the FastAPI app with the DB session overridden
"""

from decimal import Decimal
from typing import AsyncGenerator, Dict

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stock_ledger.core.settings import AppSettings
from stock_ledger.db.base import Base
from stock_ledger.db import models  # noqa: F401
from stock_ledger.db.models.master_data import Product, Store
from stock_ledger.services.locking import KeyLockManager
from stock_ledger.services.realtime import StockEventHub


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    """Async engine on a throwaway SQLite file with the full schema."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}"
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, autocommit=False)


@pytest.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as s:
        yield s


@pytest.fixture
def settings() -> AppSettings:
    """Settings with no backoff so retry paths run instantly."""
    return AppSettings(
        RUN_MIGRATIONS_ON_STARTUP=False,
        AUTO_SEED=False,
        LOCK_TIMEOUT_SECONDS=5.0,
        WRITE_RETRY_ATTEMPTS=5,
        WRITE_RETRY_BACKOFF_SECONDS=0,
        REJECT_NEGATIVE_BALANCE=False,
    )


@pytest.fixture
def locks() -> KeyLockManager:
    return KeyLockManager()


@pytest.fixture
def events() -> StockEventHub:
    return StockEventHub()


# =============================================================================
# Master data
# =============================================================================


@pytest.fixture
async def stores(session_maker) -> Dict[str, Store]:
    """Three stores: main and floor are active, old is inactive."""
    rows = {
        "main": Store(name="Main Godown"),
        "floor": Store(name="Production Floor"),
        "old": Store(name="Old Godown", status="Inactive"),
    }
    async with session_maker() as s:
        s.add_all(rows.values())
        await s.commit()
    return rows


@pytest.fixture
async def products(session_maker) -> Dict[str, Product]:
    """
    reel:   1 x 0.6 x 120            -> 72 kg per packet
    board:  1 x 1 x 20000 / 15500    -> 1.2903... kg per packet, master cost 50 per packet
    sheet:  no dimensions            -> weight cannot be derived
    retired: inactive product
    """
    rows = {
        "reel": Product(
            item="RL-120", description="Kraft reel 120 gsm", type="Reel",
            length=Decimal("1"), width=Decimal("0.6"), grams=Decimal("120"),
        ),
        "board": Product(
            item="BD-20000", description="Duplex board", type="Board",
            length=Decimal("1"), width=Decimal("1"), grams=Decimal("20000"),
            cost_rate_qty=Decimal("50"),
        ),
        "sheet": Product(item="SH-1", description="Loose sheet", type="Reel"),
        "retired": Product(item="OLD-1", description="Retired item", type="Reel", is_active=False),
    }
    async with session_maker() as s:
        s.add_all(rows.values())
        await s.commit()
    return rows


# =============================================================================
# API client
# =============================================================================


@pytest.fixture
async def client(monkeypatch, session_maker, stores, products) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    AsyncClient over the ASGI app. Lifespan events are not run, so no
    migrations or seeding happen; every request gets a session on the test DB.
    """
    monkeypatch.setenv("RUN_MIGRATIONS_ON_STARTUP", "false")
    monkeypatch.setenv("WRITE_RETRY_BACKOFF_SECONDS", "0")

    from stock_ledger.api.main import app
    from stock_ledger.core.deps import get_db_session

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as s:
            yield s

    app.dependency_overrides[get_db_session] = _session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()
