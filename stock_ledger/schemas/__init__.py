"""
Pydantic schemas used by FastAPI routes, services, and tests.

Grouped by area: inventory (balances, ledger entries, stock documents),
production runs, valuation reports, realtime envelopes, and the common
error/message envelopes.
"""

from .common import ErrorResponse, MessageResponse  # noqa: F401
