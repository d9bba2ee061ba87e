"""Local persistence: the append-only operation ledger."""
