"""
Typed exceptions for the stock ledger.

Every class carries a machine-readable ``code`` and the HTTP status the API
layer renders it with. Callers catch by type, never by message.

    StockLedgerError
    +-- LedgerValidationError        missing/invalid field, raised before any write
    |   +-- InsufficientStockError   only when REJECT_NEGATIVE_BALANCE is enabled
    +-- UnknownReferenceError        store/product id does not resolve
    +-- ConcurrencyError             lock or transaction contention after retries
    +-- DuplicateError               unique business number already taken
    +-- LedgerIntegrityError         ledger/balance reconciliation mismatch
    +-- ProductionNotFoundError
    +-- DocumentNotFoundError
"""

from __future__ import annotations

from typing import Any, Optional


class StockLedgerError(Exception):
    """Base exception for all stock ledger errors."""

    code: str = "STOCK_LEDGER_ERROR"
    http_status: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class LedgerValidationError(StockLedgerError):
    """A required field is missing or a value is out of range."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, field: str, message: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is required", {"field": field})


class InsufficientStockError(LedgerValidationError):
    """A write would leave a negative balance while strict mode is enabled."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, store_id: Any, product_id: Any, lot_no: str, quantity: Any, weight: Any) -> None:
        super().__init__(
            "quantity_packets",
            f"Insufficient stock for product {product_id} in store {store_id}",
        )
        self.details.update(
            {
                "store_id": str(store_id),
                "product_id": str(product_id),
                "lot_no": lot_no or None,
                "resulting_quantity": str(quantity),
                "resulting_weight": str(weight),
            }
        )


class UnknownReferenceError(StockLedgerError):
    """A store or product id does not resolve against the master data."""

    code: str = "REFERENCE_ERROR"
    http_status: int = 404

    def __init__(self, entity: str, reference: Any, reason: str = "not found") -> None:
        self.entity = entity
        self.reference = reference
        super().__init__(
            f"{entity.capitalize()} {reference} {reason}",
            {"entity": entity, "reference": str(reference), "reason": reason},
        )


class ConcurrencyError(StockLedgerError):
    """Contention on balances did not clear within the retry budget; the caller may retry."""

    code: str = "CONCURRENCY_ERROR"
    http_status: int = 503
    retryable: bool = True

    def __init__(self, attempts: int, cause: Optional[str] = None) -> None:
        self.attempts = attempts
        super().__init__(
            "Stock is being updated by another entry, please retry",
            {"attempts": attempts, "cause": cause},
        )


class DuplicateError(StockLedgerError):
    """A unique business number (production, invoice) is already in use."""

    code: str = "DUPLICATE_ERROR"
    http_status: int = 409

    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Duplicate {field}: {value}", {"field": field, "value": str(value)})


class LedgerIntegrityError(StockLedgerError):
    """Balances no longer equal the sum of their ledger deltas."""

    code: str = "LEDGER_INTEGRITY_ERROR"
    http_status: int = 500

    def __init__(self, mismatches: list[dict[str, Any]]) -> None:
        self.mismatches = mismatches
        super().__init__(
            f"{len(mismatches)} stock balance(s) disagree with the ledger",
            {"mismatches": mismatches},
        )


class ProductionNotFoundError(StockLedgerError):
    """Production run with the given id does not exist."""

    code: str = "PRODUCTION_NOT_FOUND"
    http_status: int = 404

    def __init__(self, production_id: Any) -> None:
        self.production_id = production_id
        super().__init__(f"Production not found: {production_id}")


class DocumentNotFoundError(StockLedgerError):
    """Stock document with the given id does not exist."""

    code: str = "DOCUMENT_NOT_FOUND"
    http_status: int = 404

    def __init__(self, document_id: Any) -> None:
        self.document_id = document_id
        super().__init__(f"Stock document not found: {document_id}")
