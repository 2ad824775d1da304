"""Alembic environment for the stock ledger schema (async engine online, sync URL offline)."""

from __future__ import annotations

import asyncio

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from stock_ledger.db import models  # noqa: F401
from stock_ledger.db.base import Base
from stock_ledger.db.config import get_settings

settings = get_settings()
target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL for the configured URL without connecting."""
    url = settings.sync_database_url
    _configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )


def _run_on_connection(sync_conn) -> None:
    _configure(connection=sync_conn, render_as_batch=sync_conn.dialect.name == "sqlite")


async def run_migrations_online() -> None:
    """Apply migrations over a short-lived async engine."""
    engine = create_async_engine(settings.async_database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
