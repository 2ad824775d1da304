"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each domain area. They flush
but never commit; the posting service owns the unit of work.
"""
from .base import BaseRepository
from .inventory import StockBalanceRepository, StockDocumentRepository, StockTransactionRepository
from .master_data import ProductRepository, StoreRepository
from .production import ProductionRunRepository
from .sequence import SequenceRepository

__all__ = [
    "BaseRepository",
    "ProductRepository",
    "ProductionRunRepository",
    "SequenceRepository",
    "StockBalanceRepository",
    "StockDocumentRepository",
    "StockTransactionRepository",
    "StoreRepository",
]
