"""HTTP API for the workforce ledger."""
