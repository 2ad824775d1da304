from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WsEnvelope(BaseModel):
    """Envelope for WebSocket messages."""
    type: str = Field(..., description="Message type (e.g., 'stock.balance_changed').")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Message payload.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp (UTC).")
    channel: Optional[str] = Field(default=None, description="Optional sub-channel (store id).")


class BalanceChangedEvent(BaseModel):
    """A committed write changed the balance of one key."""
    store_id: UUID = Field(..., description="Store whose stock changed.")
    product_id: UUID = Field(..., description="Product whose stock changed.")
    lot_no: Optional[str] = Field(default=None, description="Lot / reel number, if any.")
    quantity_packets: float = Field(..., description="Balance after the write.")
    weight_kg: float = Field(..., description="Balance after the write.")
    source_document: Optional[str] = Field(default=None, description="Document that caused the change.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Commit time (UTC).")
