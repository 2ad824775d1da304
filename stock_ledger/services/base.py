from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.settings import AppSettings, get_app_settings


class BaseService:
    """
    Base class for services. Holds a session shared by the repositories the
    service uses, and the application settings that tune the write path.

    Services keep business logic and orchestration, delegating data access
    to repositories.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        self.session = session
        self.settings = settings or get_app_settings()
