from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from stock_ledger.core.enums import CostMode, RateBasis


class ValuationRow(BaseModel):
    """One valued balance row, rounded for presentation."""
    store_id: UUID
    store_name: str
    product_id: UUID
    item: str
    description: Optional[str] = None
    type: Optional[str] = None
    lot_no: Optional[str] = None
    quantity_packets: float
    weight_kg: float
    unit_cost: Optional[float] = Field(None, description="Cost per packet or per kg, per the basis")
    total_value: float = Field(0.0, description="unit cost x balance extent")
    cost_source: str = Field(..., description="latest, wac, fallback or none")


class ValuationTotals(BaseModel):
    """Totals over the full filtered set, independent of paging."""
    rows: int
    quantity_packets: float
    weight_kg: float
    total_value: float


class ValuationPage(BaseModel):
    cost: CostMode
    basis: RateBasis
    page: int
    limit: int
    rows: List[ValuationRow] = Field(default_factory=list)
    totals: ValuationTotals
