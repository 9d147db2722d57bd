"""Memo Ledger: Horizon query client, SEP-10 style challenges and memo history."""

__version__ = "0.1.0"
