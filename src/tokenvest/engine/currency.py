"""Per-currency totals over the configured set of supported tokens.

Token amounts can be far wider than Decimal's default 28 significant
digits. Every sum, product and difference in the engine runs inside
``engine_context()`` so whole-token arithmetic never rounds.
"""

from decimal import Decimal, getcontext, localcontext
from typing import Dict, Iterable

from ..errors import UnsupportedCurrencyError

CurrencyAmounts = Dict[str, Decimal]

# Working precision for token arithmetic, wider than any token amount
DECIMAL_PRECISION = 80


def engine_context():
    """Context manager running Decimal arithmetic at ``DECIMAL_PRECISION``."""
    context = getcontext().copy()
    context.prec = DECIMAL_PRECISION
    return localcontext(context)


def exact_sum(values: Iterable[Decimal]) -> Decimal:
    """Sum Decimals without rounding to the ambient context."""
    with engine_context():
        return sum(values, Decimal(0))


def currency_amounts(currencies: Iterable[str]) -> CurrencyAmounts:
    """
    Build a fresh zero-initialised mapping for every supported currency.

    Callers never see a missing key for a currency the user holds none of.

    Args:
        currencies: Supported currency symbols

    Returns:
        New dict of symbol -> Decimal(0)
    """
    return {symbol: Decimal(0) for symbol in sorted(currencies)}


def require_supported(currency: str, currencies: Iterable[str]) -> str:
    """Return ``currency`` unchanged, raising if it is not configured."""
    if currency not in set(currencies):
        raise UnsupportedCurrencyError(currency)
    return currency


def add_to(totals: CurrencyAmounts, currency: str, amount: Decimal) -> CurrencyAmounts:
    """Add ``amount`` to ``totals[currency]`` in place and return ``totals``."""
    if currency not in totals:
        raise UnsupportedCurrencyError(currency)
    with engine_context():
        totals[currency] += amount
    return totals
