"""Balance aggregation - per-currency totals over grants, lockups and transfers.

Every fold returns a fresh mapping seeded with zero for each supported
currency. A record in a currency outside that set raises
UnsupportedCurrencyError rather than being dropped.

Available balance:
    available = vested + unlocked_earnings - withdrawn - locked

Early lockups (lockups carrying a ``data.vest`` snapshot) claim tokens from
a vest that has not happened yet. Until that vest date they are reported by
``calculate_next_vest_locked`` instead of ``calculate_locked``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Optional

from ..config.schema import VestingSettings
from ..errors import NegativeBalanceError
from .currency import CurrencyAmounts, add_to, currency_amounts, engine_context, require_supported
from .models import (
    PENDING_OR_COMPLETE_STATUSES,
    Grant,
    Lockup,
    Transfer,
    TransferStatus,
    User,
    VestEvent,
    as_utc,
    utcnow,
)
from .next_vest import get_next_vest
from .vesting import vested_amount


def _now(now: Optional[datetime]) -> datetime:
    return utcnow() if now is None else as_utc(now)


def lockup_earnings(lockup: Lockup) -> Decimal:
    """Bonus earned by a lockup, rounded half-up to a whole token."""
    with engine_context():
        return (lockup.amount * lockup.bonus_rate / Decimal(100)).quantize(Decimal(1), rounding=ROUND_HALF_UP)


def is_early_lockup(lockup: Lockup) -> bool:
    """An early lockup claims a specific, possibly future, vest."""
    vest = lockup.data.vest
    return vest is not None and bool(vest.grant_ids)


def _early_vest_pending(lockup: Lockup, now: datetime) -> bool:
    return is_early_lockup(lockup) and lockup.data.vest.date > now


def transfer_has_expired(transfer: Transfer, timeout_minutes: int, now: Optional[datetime] = None) -> bool:
    """The user did not click the email confirmation link in time."""
    return _now(now) - transfer.created_at >= timedelta(minutes=timeout_minutes)


def lockup_has_expired(lockup: Lockup, timeout_minutes: int, now: Optional[datetime] = None) -> bool:
    """The user did not confirm the lockup in time."""
    if lockup.created_at is None:
        return False
    return _now(now) - lockup.created_at >= timedelta(minutes=timeout_minutes)


def calculate_granted(grants: Iterable[Grant], currencies: Iterable[str]) -> CurrencyAmounts:
    """Total granted per currency, regardless of vesting or cancellation."""
    totals = currency_amounts(currencies)
    for grant in grants:
        add_to(totals, grant.currency, grant.amount)
    return totals


def calculate_vested(
    user: User,
    grants: Iterable[Grant],
    currencies: Iterable[str],
    now: Optional[datetime] = None,
    settings: Optional[VestingSettings] = None,
) -> CurrencyAmounts:
    """Total vested per currency as of ``now``."""
    now = _now(now)
    totals = currency_amounts(currencies)
    for grant in grants:
        add_to(totals, grant.currency, vested_amount(user, grant, now=now, settings=settings))
    return totals


def calculate_earnings(lockups: Iterable[Lockup], currencies: Iterable[str]) -> CurrencyAmounts:
    """
    Total bonus earned by confirmed lockups.

    Earnings count immediately, whether or not the lockup period is over.
    """
    totals = currency_amounts(currencies)
    for lockup in lockups:
        if lockup.confirmed:
            add_to(totals, lockup.currency, lockup_earnings(lockup))
    return totals


def calculate_unlocked_earnings(
    lockups: Iterable[Lockup],
    currencies: Iterable[str],
    now: Optional[datetime] = None,
) -> CurrencyAmounts:
    """Bonus from confirmed lockups whose period has ended, i.e. withdrawable."""
    now = _now(now)
    totals = currency_amounts(currencies)
    for lockup in lockups:
        if lockup.confirmed and lockup.end <= now:
            add_to(totals, lockup.currency, lockup_earnings(lockup))
    return totals


def calculate_locked(
    lockups: Iterable[Lockup],
    currencies: Iterable[str],
    now: Optional[datetime] = None,
) -> CurrencyAmounts:
    """
    Principal currently held in lockups (``start <= now < end``).

    Early lockups whose vest date is still ahead are excluded; those tokens
    have not been received yet and are reported by calculate_next_vest_locked.
    """
    now = _now(now)
    totals = currency_amounts(currencies)
    for lockup in lockups:
        if _early_vest_pending(lockup, now):
            continue
        if lockup.start <= now < lockup.end:
            add_to(totals, lockup.currency, lockup.amount)
    return totals


def calculate_next_vest_locked(
    lockups: Iterable[Lockup],
    currencies: Iterable[str],
    now: Optional[datetime] = None,
) -> CurrencyAmounts:
    """Tokens pre-claimed by early lockups from vests that have not happened yet."""
    now = _now(now)
    totals = currency_amounts(currencies)
    for lockup in lockups:
        # Every early lockup with a future vest date is attributed to the next vest
        if _early_vest_pending(lockup, now):
            add_to(totals, lockup.currency, lockup.amount)
    return totals


def calculate_withdrawn(
    transfers: Iterable[Transfer],
    currencies: Iterable[str],
    confirmation_timeout_minutes: int,
    now: Optional[datetime] = None,
) -> CurrencyAmounts:
    """
    Amount withdrawn or in flight per currency.

    Transfers still waiting for email confirmation count until the
    confirmation window closes; after that they are ignored.
    """
    now = _now(now)
    totals = currency_amounts(currencies)
    for transfer in transfers:
        if transfer.status not in PENDING_OR_COMPLETE_STATUSES:
            continue
        if (
            transfer.status is TransferStatus.WAITING_EMAIL_CONFIRM and
            transfer_has_expired(transfer, confirmation_timeout_minutes, now)
        ):
            continue
        add_to(totals, transfer.currency, transfer.amount)
    return totals


def available_balance(
    vested: Decimal,
    unlocked_earnings: Decimal,
    withdrawn: Decimal,
    locked: Decimal,
    currency: str = "",
) -> Decimal:
    """
    Tokens free to withdraw or lock.

    Raises:
        NegativeBalanceError: If the result is below zero
    """
    with engine_context():
        available = vested + unlocked_earnings - withdrawn - locked
    if available < 0:
        raise NegativeBalanceError(
            f"Amount of available {currency or 'tokens'} is below 0: "
            f"vested={vested}, unlocked_earnings={unlocked_earnings}, "
            f"withdrawn={withdrawn}, locked={locked}"
        )
    return available


def next_vest_balance(next_vest: Optional[VestEvent], next_vest_locked: Decimal) -> Decimal:
    """
    Tokens of the next vest not yet claimed by early lockups.

    Raises:
        NegativeBalanceError: If early lockups claim more than the next vest
    """
    if next_vest is None:
        return Decimal(0)
    with engine_context():
        remaining = next_vest.amount - next_vest_locked
    if remaining < 0:
        raise NegativeBalanceError(
            f"Early lockups claim {next_vest_locked}, more than the next vest of {next_vest.amount}"
        )
    return remaining


@dataclass
class BalanceSummary:
    """All balance folds for one user, computed against a single instant."""
    as_of: datetime
    granted: CurrencyAmounts
    vested: CurrencyAmounts
    earnings: CurrencyAmounts
    unlocked_earnings: CurrencyAmounts
    locked: CurrencyAmounts
    next_vest_locked: CurrencyAmounts
    withdrawn: CurrencyAmounts
    available: CurrencyAmounts = field(default_factory=dict)

    @property
    def currencies(self):
        return list(self.granted)

    def row(self, currency: str) -> Dict[str, Decimal]:
        """Every figure for one currency."""
        return {
            'granted': self.granted[currency],
            'vested': self.vested[currency],
            'earnings': self.earnings[currency],
            'unlocked_earnings': self.unlocked_earnings[currency],
            'locked': self.locked[currency],
            'next_vest_locked': self.next_vest_locked[currency],
            'withdrawn': self.withdrawn[currency],
            'available': self.available[currency],
        }


def summarize_balances(
    user: User,
    grants: Iterable[Grant],
    lockups: Iterable[Lockup],
    transfers: Iterable[Transfer],
    currencies: Iterable[str],
    confirmation_timeout_minutes: int,
    now: Optional[datetime] = None,
    settings: Optional[VestingSettings] = None,
) -> BalanceSummary:
    """
    Run every balance fold for a user against one sampled ``now``.

    Raises:
        UnsupportedCurrencyError: If any record uses an unconfigured currency
        NegativeBalanceError: If the available balance of any currency is negative
    """
    now = _now(now)
    currencies = list(currencies)
    grants = list(grants)
    lockups = list(lockups)

    summary = BalanceSummary(
        as_of=now,
        granted=calculate_granted(grants, currencies),
        vested=calculate_vested(user, grants, currencies, now=now, settings=settings),
        earnings=calculate_earnings(lockups, currencies),
        unlocked_earnings=calculate_unlocked_earnings(lockups, currencies, now=now),
        locked=calculate_locked(lockups, currencies, now=now),
        next_vest_locked=calculate_next_vest_locked(lockups, currencies, now=now),
        withdrawn=calculate_withdrawn(transfers, currencies, confirmation_timeout_minutes, now=now),
    )
    for currency in summary.currencies:
        summary.available[currency] = available_balance(
            summary.vested[currency],
            summary.unlocked_earnings[currency],
            summary.withdrawn[currency],
            summary.locked[currency],
            currency=currency,
        )
    return summary


def resolve_next_vest_balance(
    user: User,
    grants: Iterable[Grant],
    lockups: Iterable[Lockup],
    currency: str,
    currencies: Iterable[str],
    now: Optional[datetime] = None,
    settings: Optional[VestingSettings] = None,
) -> Decimal:
    """Next vest amount in ``currency`` minus what early lockups already claim."""
    require_supported(currency, currencies)
    now = _now(now)
    next_vest = get_next_vest(grants, user, now=now, currency=currency, settings=settings)
    locked = calculate_next_vest_locked(lockups, currencies, now=now)
    return next_vest_balance(next_vest, locked[currency])
