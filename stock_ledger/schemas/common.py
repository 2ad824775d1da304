from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Plain acknowledgement, used by the health check."""
    message: str = Field(..., description="Status text")
    details: Optional[Dict[str, Any]] = Field(default=None)


class ErrorInfo(BaseModel):
    """
    What went wrong.

    `type` is the StockLedgerError code (e.g. VALIDATION_ERROR, REFERENCE_ERROR,
    CONCURRENCY_ERROR) or one of http_error / validation_error / internal_error.
    `details` carries the offending field or reference, or the list of
    request-body validation issues.
    """
    type: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable message")
    details: Optional[Any] = Field(default=None, description="Field, reference or validation issues")


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    status: int = Field(..., description="HTTP status code")
    error: ErrorInfo
    correlation_id: Optional[str] = Field(default=None, description="Echo of X-Correlation-ID / X-Request-ID")
    path: Optional[str] = Field(default=None)
    method: Optional[str] = Field(default=None)
    timestamp: datetime = Field(..., description="UTC time the error was rendered")
