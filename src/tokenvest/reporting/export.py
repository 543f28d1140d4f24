"""Export functionality for vesting schedules and balances (CSV, JSON)."""

import json
from datetime import datetime
from typing import Iterable, Optional

import pandas as pd

from ..config.schema import VestingSettings
from ..engine.balance import BalanceSummary
from ..engine.currency import exact_sum
from ..engine.models import Grant, User, as_utc, utcnow
from ..engine.vesting import vesting_schedule

SCHEDULE_COLUMNS = ['grant_id', 'currency', 'date', 'amount', 'vested', 'cancelled']


def schedule_frame(user: User, grants: Iterable[Grant], now: Optional[datetime] = None,
                   settings: Optional[VestingSettings] = None) -> pd.DataFrame:
    """One row per vest event across all grants, sorted by date."""
    now = utcnow() if now is None else as_utc(now)
    data = []
    for grant in grants:
        for event in vesting_schedule(user, grant, now=now, settings=settings):
            data.append({
                'grant_id': event.grant_id,
                'currency': event.currency,
                'date': event.date,
                'amount': event.amount,
                'vested': event.vested,
                'cancelled': event.cancelled,
            })

    df = pd.DataFrame(data, columns=SCHEDULE_COLUMNS)
    if not df.empty:
        df = df.sort_values(['date', 'grant_id'], kind='stable').reset_index(drop=True)
    return df


def vesting_history(user: User, grants: Iterable[Grant], now: Optional[datetime] = None,
                    settings: Optional[VestingSettings] = None) -> pd.DataFrame:
    """
    Vest amounts summed per (date, currency), the way a history table lists them.

    Cancelled events are left out; status is "vested" or "unvested".
    """
    df = schedule_frame(user, grants, now=now, settings=settings)
    if df.empty:
        return pd.DataFrame(columns=['date', 'currency', 'amount', 'status'])

    df = df[~df['cancelled']]
    history = (
        df.groupby(['date', 'currency'], sort=True)
        .agg(amount=('amount', exact_sum), vested=('vested', 'all'))
        .reset_index()
    )
    history['status'] = history['vested'].map({True: 'vested', False: 'unvested'})
    return history.drop(columns=['vested'])


def balances_frame(summary: BalanceSummary) -> pd.DataFrame:
    """One row per currency with every balance figure."""
    data = []
    for currency in summary.currencies:
        row = {'currency': currency}
        row.update(summary.row(currency))
        data.append(row)
    return pd.DataFrame(data)


def export_csv(frame: pd.DataFrame, filepath: str):
    """Export a schedule, history or balances frame to CSV."""
    frame.to_csv(filepath, index=False)


def export_json(summary: BalanceSummary, filepath: str):
    """Export a balance summary to JSON; amounts are written as strings."""
    export_data = {
        'as_of': summary.as_of.isoformat(),
        'balances': {
            currency: {key: str(value) for key, value in summary.row(currency).items()}
            for currency in summary.currencies
        },
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)
