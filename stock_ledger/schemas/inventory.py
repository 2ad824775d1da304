from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from stock_ledger.core.enums import RateBasis, TransactionKind


class BalanceRead(BaseModel):
    """Current stock for one (store, product, lot) key."""
    store_id: UUID = Field(..., description="Store ID")
    product_id: UUID = Field(..., description="Product ID")
    lot_no: Optional[str] = Field(None, description="Lot / reel number, if lot-tracked")
    quantity_packets: float = Field(..., description="Quantity in packets")
    weight_kg: float = Field(..., description="Weight in kilograms")
    updated_at: Optional[datetime] = Field(None, description="Last change (UTC)")

    @field_validator("lot_no", mode="before")
    @classmethod
    def blank_lot_is_none(cls, v):
        return v or None

    class Config:
        from_attributes = True


class StockTransactionRead(BaseModel):
    """Read model for a ledger entry."""
    id: int = Field(..., description="Ledger entry id (insertion order)")
    occurred_at: datetime = Field(..., description="Business timestamp (UTC)")
    kind: TransactionKind = Field(..., description="Stock-affecting event kind")
    store_id: UUID = Field(..., description="Store ID")
    product_id: UUID = Field(..., description="Product ID")
    lot_no: Optional[str] = Field(None, description="Lot / reel number")
    quantity_delta: float = Field(..., description="Signed quantity change")
    weight_delta: float = Field(..., description="Signed weight change (kg)")
    unit_rate: Optional[float] = Field(None, description="Rate for cost-bearing entries")
    rate_basis: Optional[RateBasis] = Field(None, description="Extent the rate applies to")
    value: Optional[float] = Field(None, description="rate x extent, 2 decimals")
    source_type: Optional[str] = Field(None, description="production / document / manual")
    source_id: Optional[UUID] = Field(None, description="Source document id")
    source_document: Optional[str] = Field(None, description="Source document number")
    reverses_id: Optional[int] = Field(None, description="Entry offset by this reversal")
    notes: Optional[str] = Field(None)
    created_at: datetime = Field(..., description="Insert timestamp (UTC)")

    @field_validator("lot_no", mode="before")
    @classmethod
    def blank_lot_is_none(cls, v):
        return v or None

    class Config:
        from_attributes = True


class StockTransactionPage(BaseModel):
    """One page of ledger entries plus the cursor for the next page."""
    items: List[StockTransactionRead] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(None, description="Pass as `cursor` to continue; null at the end")


class StockEntryCreate(BaseModel):
    """Manual store-in of a single product into a store."""
    date: Optional[dt.date] = Field(None, description="Entry date")
    store_id: Optional[UUID] = Field(None, description="Receiving store")
    product_id: Optional[UUID] = Field(None, description="Product")
    lot_no: Optional[str] = Field(None, description="Lot / reel number")
    quantity_packets: Decimal = Field(Decimal("0"), ge=0, description="Packets received")
    weight_kg: Optional[Decimal] = Field(None, ge=0, description="Weight override; derived from dimensions when omitted")
    notes: Optional[str] = Field(None)


class StockDocumentLine(BaseModel):
    """Line of a purchase/sale/store-in/return document."""
    store_id: Optional[UUID] = Field(None)
    product_id: Optional[UUID] = Field(None)
    lot_no: Optional[str] = Field(None)
    quantity_packets: Decimal = Field(Decimal("0"), ge=0, description="Unsigned packets; direction comes from the kind")
    weight_kg: Optional[Decimal] = Field(None, ge=0, description="Unsigned weight; derived when omitted")
    rate: Optional[Decimal] = Field(None, ge=0)
    rate_on: Optional[RateBasis] = Field(None, description="Defaults to Weight when a rate is given")
    value: Optional[Decimal] = Field(None, description="Defaults to rate x extent")


class StockDocumentCreate(BaseModel):
    """Multi-line stock document posted atomically."""
    kind: TransactionKind = Field(..., description="PurchaseReceipt, ManualStoreIn, SaleIssue, PurchaseReturn or SaleReturn")
    document_no: Optional[str] = Field(None, description="Allocated from the kind's series when omitted")
    date: Optional[dt.date] = Field(None)
    remarks: Optional[str] = Field(None)
    lines: List[StockDocumentLine] = Field(default_factory=list)


class StockDocumentRead(BaseModel):
    """Stored stock document with its line snapshot."""
    id: UUID
    kind: TransactionKind
    document_no: str
    date: dt.date
    remarks: Optional[str] = None
    status: str
    lines: List[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PostingResult(BaseModel):
    """Outcome of a committed stock write."""
    source_document: Optional[str] = Field(None, description="Document number, when the write has one")
    transaction_ids: List[int] = Field(default_factory=list, description="Ledger entries appended")
    balances: List[BalanceRead] = Field(default_factory=list, description="Resulting balances of touched keys")


class StockDocumentResult(PostingResult):
    document: StockDocumentRead


class UnitWeightPreview(BaseModel):
    """Weight preview for a product and packet count."""
    product_id: UUID
    type: Optional[str] = None
    unit_weight: float = Field(..., description="Weight per packet; 0 when dimensions are missing")
    quantity_packets: float
    row_weight: float = Field(..., description="quantity x unit weight, 4 decimals")


class ReconciliationMismatch(BaseModel):
    store_id: UUID
    product_id: UUID
    lot_no: Optional[str] = None
    ledger_quantity: float
    ledger_weight: float
    balance_quantity: float
    balance_weight: float


class ReconciliationReport(BaseModel):
    """Result of comparing balances with the sum of ledger deltas."""
    checked_keys: int
    consistent: bool
    mismatches: List[ReconciliationMismatch] = Field(default_factory=list)
