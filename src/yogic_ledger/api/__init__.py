"""HTTP API for the Yogic Ledger service."""
