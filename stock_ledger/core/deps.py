from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.db.session import get_async_session


# PUBLIC_INTERFACE
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a request-scoped AsyncSession.

    Services own commit/rollback of their units of work; the session is closed
    when the request finishes. Tests override this dependency to point at their
    own database.
    """
    async for session in get_async_session():
        yield session
