"""
API route modules.

This package contains subrouters for:
- Stock: manual store-in, balances, stock documents, ledger browse, reconciliation
- Production: production run execute / edit / delete / list
- Reports: inventory valuation

Routers are included from stock_ledger.api.main (under the /api/v1 prefix).
"""
