"""Vesting schedule engine - deterministic vest events for a grant.

A grant's schedule is a pure function of the grant, the holder's vesting
regime and the instant used to mark events as vested. Every per-period
release is floored to a whole token; the last event of a schedule absorbs
the accumulated rounding shortfall so the events always sum to the grant
amount exactly.

Regimes:
- Employee with cliff: lump sum at the cliff for the months elapsed since
  start, then equal monthly releases up to and including ``end``.
- Employee without cliff: equal monthly releases from one month after
  ``start`` up to and including ``end``.
- Investor: an initial release at ``start``, then fixed periodic releases
  (quarterly, first one four months in) until the grant is exhausted.

Cancellation: events dated at or after ``grant.cancelled`` are flagged
cancelled and never count as vested.
"""

from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from ..config.schema import VestingSettings
from .currency import engine_context, exact_sum
from .models import Grant, User, VestEvent, as_utc, utcnow

DEFAULT_VESTING_SETTINGS = VestingSettings()


class VestingRegime(Enum):
    """How a grant releases tokens."""
    EMPLOYEE_CLIFF = "employee_cliff"
    EMPLOYEE_MONTHLY = "employee_monthly"
    INVESTOR = "investor"


def resolve_regime(user: User, grant: Grant) -> VestingRegime:
    """
    Resolve the vesting regime for a grant held by a user.

    Args:
        user: Grant holder (only ``employee`` is consulted)
        grant: Grant being scheduled

    Returns:
        VestingRegime
    """
    if not user.employee:
        return VestingRegime.INVESTOR
    if grant.has_cliff:
        return VestingRegime.EMPLOYEE_CLIFF
    return VestingRegime.EMPLOYEE_MONTHLY


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months from ``start`` to ``end`` (truncated)."""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def add_months(anchor: datetime, months: int) -> datetime:
    """Offset from a fixed anchor so month-end dates do not drift."""
    return anchor + relativedelta(months=months)


def _floor(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def _monthly_releases(anchor: datetime, end: datetime, per_month: Decimal) -> List[Tuple[datetime, Decimal]]:
    releases = []
    month = 1
    date = add_months(anchor, month)
    while date <= end:
        releases.append((date, per_month))
        month += 1
        date = add_months(anchor, month)
    return releases


def _employee_releases(grant: Grant, with_cliff: bool) -> List[Tuple[datetime, Decimal]]:
    total_months = months_between(grant.start, grant.end)
    if total_months < 1:
        # Shorter than one calendar month: a single release at end
        return [(grant.end, grant.amount)]

    per_month = _floor(grant.amount / total_months)
    if not with_cliff:
        return _monthly_releases(grant.start, grant.end, per_month)

    cliff_months = months_between(grant.start, grant.cliff)
    cliff_amount = _floor(grant.amount * cliff_months / total_months)
    return [(grant.cliff, cliff_amount)] + _monthly_releases(grant.cliff, grant.end, per_month)


def _investor_releases(grant: Grant, settings: VestingSettings) -> List[Tuple[datetime, Decimal]]:
    amount = grant.amount
    initial = _floor(amount * settings.investor_initial_percent / 100)
    periodic = _floor(amount * settings.investor_periodic_percent / 100)

    releases = [(grant.start, initial)]
    cumulative = initial
    period = 0
    while cumulative < amount:
        months = settings.investor_first_release_months + period * settings.investor_release_interval_months
        date = add_months(grant.start, months)
        if date > grant.end:
            break
        release = min(periodic, amount - cumulative)
        releases.append((date, release))
        cumulative += release
        period += 1
    return releases


def _absorb_residue(releases: List[Tuple[datetime, Decimal]], amount: Decimal) -> List[Tuple[datetime, Decimal]]:
    shortfall = amount - sum((release for _, release in releases), Decimal(0))
    if shortfall:
        last_date, last_amount = releases[-1]
        releases[-1] = (last_date, last_amount + shortfall)
    return releases


def vesting_schedule(
    user: User,
    grant: Grant,
    now: Optional[datetime] = None,
    settings: Optional[VestingSettings] = None,
) -> List[VestEvent]:
    """
    Compute the full, chronological vest event list for a grant.

    Args:
        user: Grant holder
        grant: Validated grant
        now: Instant events are marked against (defaults to current UTC time)
        settings: Investor regime parameters (defaults to the standard 6% / 11.75%)

    Returns:
        List of VestEvent whose amounts sum to ``grant.amount``
    """
    now = utcnow() if now is None else as_utc(now)
    settings = settings or DEFAULT_VESTING_SETTINGS
    regime = resolve_regime(user, grant)

    with engine_context():
        if regime is VestingRegime.EMPLOYEE_CLIFF:
            releases = _employee_releases(grant, with_cliff=True)
        elif regime is VestingRegime.EMPLOYEE_MONTHLY:
            releases = _employee_releases(grant, with_cliff=False)
        elif regime is VestingRegime.INVESTOR:
            releases = _investor_releases(grant, settings)
        else:
            raise ValueError(f"Unhandled vesting regime {regime}")
        releases = _absorb_residue(releases, grant.amount)

    events = []
    for date, amount in releases:
        cancelled = grant.cancelled is not None and date >= grant.cancelled
        events.append(VestEvent(
            date=date,
            amount=amount,
            vested=not cancelled and date <= now,
            cancelled=cancelled,
            grant_id=grant.id,
            currency=grant.currency,
        ))
    return events


def vested_amount(
    user: User,
    grant: Grant,
    now: Optional[datetime] = None,
    settings: Optional[VestingSettings] = None,
) -> Decimal:
    """
    Sum of the vest events of a grant that have vested by ``now``.

    Follows the discrete schedule (cliff lump sum, floored monthly
    releases), so it is not ``amount * elapsed / total``.
    """
    schedule = vesting_schedule(user, grant, now=now, settings=settings)
    return exact_sum(event.amount for event in schedule if event.vested)
