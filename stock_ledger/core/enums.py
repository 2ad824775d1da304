from __future__ import annotations

from enum import Enum


class TransactionKind(str, Enum):
    """Stock-affecting event recorded in the ledger."""

    PURCHASE_RECEIPT = "PurchaseReceipt"
    MANUAL_STORE_IN = "ManualStoreIn"
    PRODUCTION_CONSUME = "ProductionConsume"
    PRODUCTION_PRODUCE = "ProductionProduce"
    SALE_ISSUE = "SaleIssue"
    PURCHASE_RETURN = "PurchaseReturn"
    SALE_RETURN = "SaleReturn"

    @property
    def direction(self) -> int:
        """+1 for kinds that bring stock in, -1 for kinds that take it out."""
        if self in _OUTBOUND:
            return -1
        return 1

    @property
    def is_cost_bearing(self) -> bool:
        return self in _COST_BEARING


_OUTBOUND = frozenset(
    {
        TransactionKind.PRODUCTION_CONSUME,
        TransactionKind.SALE_ISSUE,
        TransactionKind.PURCHASE_RETURN,
    }
)
_COST_BEARING = frozenset(
    {
        TransactionKind.PURCHASE_RECEIPT,
        TransactionKind.PRODUCTION_PRODUCE,
    }
)

# Kinds that may be posted through a stock document (production has its own flow).
DOCUMENT_KINDS = frozenset(
    {
        TransactionKind.PURCHASE_RECEIPT,
        TransactionKind.MANUAL_STORE_IN,
        TransactionKind.SALE_ISSUE,
        TransactionKind.PURCHASE_RETURN,
        TransactionKind.SALE_RETURN,
    }
)

# Number series prefix per document kind.
DOCUMENT_PREFIXES = {
    TransactionKind.PURCHASE_RECEIPT: "PI-",
    TransactionKind.MANUAL_STORE_IN: "SIN-",
    TransactionKind.SALE_ISSUE: "SI-",
    TransactionKind.PURCHASE_RETURN: "PRT-",
    TransactionKind.SALE_RETURN: "SRT-",
}


class RateBasis(str, Enum):
    """Extent a rate applies to: per kilogram or per packet."""

    WEIGHT = "Weight"
    QUANTITY = "Quantity"


class CostMode(str, Enum):
    """Inventory valuation strategy."""

    LATEST = "latest"
    WEIGHTED_AVERAGE = "wac"


class ProductType(str, Enum):
    REEL = "Reel"
    BOARD = "Board"


class StoreStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class SourceType(str, Enum):
    """What produced a ledger entry."""

    PRODUCTION = "production"
    DOCUMENT = "document"
    MANUAL = "manual"
