"""Vesting schedule, next-vest and balance accounting engine."""

from .balance import (
    BalanceSummary,
    available_balance,
    calculate_earnings,
    calculate_granted,
    calculate_locked,
    calculate_next_vest_locked,
    calculate_unlocked_earnings,
    calculate_vested,
    calculate_withdrawn,
    is_early_lockup,
    lockup_earnings,
    lockup_has_expired,
    next_vest_balance,
    resolve_next_vest_balance,
    summarize_balances,
    transfer_has_expired,
)
from .currency import currency_amounts, engine_context, exact_sum, require_supported
from .models import (
    Grant,
    Lockup,
    LockupData,
    Transfer,
    TransferStatus,
    User,
    VestEvent,
    VestSnapshot,
)
from .next_vest import get_next_vest
from .vesting import VestingRegime, resolve_regime, vested_amount, vesting_schedule

__all__ = [
    # Records
    "Grant",
    "Lockup",
    "LockupData",
    "Transfer",
    "TransferStatus",
    "User",
    "VestEvent",
    "VestSnapshot",
    # Vesting
    "VestingRegime",
    "resolve_regime",
    "vesting_schedule",
    "vested_amount",
    "get_next_vest",
    # Balances
    "BalanceSummary",
    "available_balance",
    "calculate_earnings",
    "calculate_granted",
    "calculate_locked",
    "calculate_next_vest_locked",
    "calculate_unlocked_earnings",
    "calculate_vested",
    "calculate_withdrawn",
    "currency_amounts",
    "engine_context",
    "exact_sum",
    "is_early_lockup",
    "lockup_earnings",
    "lockup_has_expired",
    "next_vest_balance",
    "require_supported",
    "resolve_next_vest_balance",
    "summarize_balances",
    "transfer_has_expired",
]
