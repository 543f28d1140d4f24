"""Sanity checks for ledger records."""

from .sanity_checks import LedgerSanityChecker, ValidationWarning, validate_account

__all__ = [
    "LedgerSanityChecker",
    "ValidationWarning",
    "validate_account"
]
