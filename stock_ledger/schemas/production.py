from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from stock_ledger.core.enums import RateBasis
from .inventory import BalanceRead


class MaterialOutLine(BaseModel):
    """Stock consumed by a production run."""
    store_id: Optional[UUID] = Field(None, description="Store the material leaves")
    product_id: Optional[UUID] = Field(None, description="Product consumed")
    reel_no: Optional[str] = Field(None, description="Reel / lot number")
    quantity_packets: Decimal = Field(Decimal("0"), ge=0, description="Packets consumed")
    weight_kg: Optional[Decimal] = Field(None, ge=0, description="Weight override; derived when omitted")
    # Snapshot of product details as shown on the form
    description: Optional[str] = Field(None)
    brand: Optional[str] = Field(None)
    length: Optional[Decimal] = Field(None)
    width: Optional[Decimal] = Field(None)
    grams: Optional[Decimal] = Field(None)


class ProductionItemLine(BaseModel):
    """Product made by a production run, received into the output store."""
    product_id: Optional[UUID] = Field(None, description="Product produced")
    lot_no: Optional[str] = Field(None, description="Lot number of the output")
    quantity_packets: Decimal = Field(Decimal("0"), ge=0, description="Packets produced")
    weight_kg: Optional[Decimal] = Field(None, ge=0, description="Weight override; derived when omitted")
    rate: Optional[Decimal] = Field(None, ge=0, description="Cost rate of the output")
    rate_on: Optional[RateBasis] = Field(None, description="Rate basis; Weight when omitted")
    value: Optional[Decimal] = Field(None, description="Defaults to rate x extent, 2 decimals")


class ProductionRunUpdate(BaseModel):
    """Editable content of a production run."""
    date: Optional[dt.date] = Field(None, description="Production date")
    output_store_id: Optional[UUID] = Field(None, description="Store receiving the produced items")
    remarks: Optional[str] = Field(None)
    material_out: List[MaterialOutLine] = Field(default_factory=list)
    items: List[ProductionItemLine] = Field(default_factory=list)


class ProductionRunCreate(ProductionRunUpdate):
    """New production run; the number is allocated when omitted."""
    production_number: Optional[str] = Field(None, description="e.g. PR-000001")


class ProductionRunRead(BaseModel):
    """Stored production run with the lines as posted (derived weights filled in)."""
    id: UUID
    production_number: str
    date: dt.date
    remarks: Optional[str] = None
    output_store_id: UUID
    material_out: List[dict[str, Any]] = Field(default_factory=list)
    items: List[dict[str, Any]] = Field(default_factory=list)
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductionResult(BaseModel):
    """Production run plus the balances its posting left behind."""
    production_number: str
    production: ProductionRunRead
    transaction_ids: List[int] = Field(default_factory=list)
    resulting_balances: List[BalanceRead] = Field(default_factory=list)


class ProductionList(BaseModel):
    items: List[ProductionRunRead] = Field(default_factory=list)
    total: int = Field(0, description="Rows matching the filter")
    limit: int
    offset: int
