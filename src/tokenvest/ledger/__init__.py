"""Storage contract and ledger service."""

from .service import LedgerService
from .store import Account, InMemoryLedgerStore, LedgerStore, load_ledger

__all__ = [
    "Account",
    "InMemoryLedgerStore",
    "LedgerService",
    "LedgerStore",
    "load_ledger",
]
