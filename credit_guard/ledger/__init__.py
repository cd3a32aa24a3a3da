"""Ledger access: JSON-RPC client, in-memory paper ledger, payload parsing."""
from .client import LedgerClient
from .paper import PaperLedger

__all__ = ["LedgerClient", "PaperLedger"]
