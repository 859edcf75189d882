"""Yogic Ledger: step rewards and abuse-resistance engine."""

__version__ = "0.1.0"
