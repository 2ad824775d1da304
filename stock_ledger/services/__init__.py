"""
Service layer: business rules and units of work over the repositories.

    units           unit weight / row weight / rounding (pure)
    balances        per-key balance store
    ledger          append-only transaction ledger
    posting         locked, retried, all-or-nothing unit of work
    production      production runs (material out -> items in)
    movements       store-in and purchase/sale/return documents
    valuation       latest-cost and weighted-average valuation
    reconciliation  ledger vs balance audit
    realtime        balance-changed notifications and WebSocket fan-out
"""
