"""Next-vest resolver - the earliest unvested event across a user's grants."""

from datetime import datetime
from typing import Iterable, List, Optional

from ..config.schema import VestingSettings
from .currency import exact_sum
from .models import Grant, User, VestEvent, as_utc, utcnow
from .vesting import vesting_schedule


def get_next_vest(
    grants: Iterable[Grant],
    user: User,
    now: Optional[datetime] = None,
    currency: Optional[str] = None,
    settings: Optional[VestingSettings] = None,
) -> Optional[VestEvent]:
    """
    Find the next vest event for a user.

    Events from several grants that fall on the same UTC calendar day as the
    earliest unvested event are merged into one event so the lockup flow can
    lock "the next vest" as a single unit.

    Args:
        grants: The user's grants
        user: Grant holder
        now: Instant to resolve against (defaults to current UTC time)
        currency: Only consider grants in this currency
        settings: Investor regime parameters

    Returns:
        The next VestEvent, a merged VestEvent with a list ``grant_id``,
        or None when nothing remains to vest
    """
    now = utcnow() if now is None else as_utc(now)

    unvested: List[VestEvent] = []
    for grant in grants:
        if currency is not None and grant.currency != currency.upper():
            continue
        unvested.extend(
            event for event in vesting_schedule(user, grant, now=now, settings=settings)
            if not event.vested
        )
    # Cancelled events never vest, so they are not a "next" vest either
    unvested = [event for event in unvested if not event.cancelled]
    if not unvested:
        return None

    unvested.sort(key=lambda event: event.date)
    first = unvested[0]
    same_day = [event for event in unvested if event.date.date() == first.date.date()]
    if len(same_day) == 1:
        return first

    currencies = {event.currency for event in same_day}
    return VestEvent(
        date=first.date,
        amount=exact_sum(event.amount for event in same_day),
        vested=False,
        cancelled=False,
        grant_id=[event.grant_id for event in same_day],
        currency=first.currency if len(currencies) == 1 else None,
    )
