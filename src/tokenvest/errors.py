"""Exception hierarchy for grant, lockup and balance accounting."""


class TokenVestError(Exception):
    """Base class for all tokenvest errors."""


class MalformedRecordError(TokenVestError):
    """A grant, lockup or transfer record fails validation at construction."""


class MalformedGrantError(MalformedRecordError):
    """Grant parameters are inconsistent (dates out of order, bad amount)."""


class UnsupportedCurrencyError(TokenVestError, ValueError):
    """Currency symbol is not in the configured set."""

    def __init__(self, currency: str):
        super().__init__(f"{currency} is not a supported currency")
        self.currency = currency


class BalanceError(TokenVestError, ArithmeticError):
    """Base class for balance range violations."""


class NegativeBalanceError(BalanceError):
    """A computed balance came out below zero.

    Signals an accounting inconsistency upstream (e.g. withdrawn exceeds
    vested) and is never clamped to zero.
    """


class InsufficientBalanceError(BalanceError):
    """A requested amount exceeds the balance available for it."""


class UserNotFoundError(TokenVestError, LookupError):
    """No account exists for the requested user id."""


class LockupRejectedError(TokenVestError):
    """A lockup request cannot be accepted under the current configuration."""
