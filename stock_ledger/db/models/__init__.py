"""
ORM models for the stock ledger: master data read by the ledger, balances,
ledger entries, stock documents, production runs and number series.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .master_data import (  # noqa: F401
    Product,
    Store,
)
from .inventory import (  # noqa: F401
    StockBalance,
    StockTransaction,
    StockDocument,
)
from .production import (  # noqa: F401
    ProductionRun,
)
from .sequence import (  # noqa: F401
    SequenceCounter,
)
