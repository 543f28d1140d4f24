"""Ledger service - balance lookups and request checks over a LedgerStore.

The service is read-only: it loads an account, samples ``now`` once and
runs the engine folds. Callers that go on to persist a transfer or lockup
must serialize the check and the insert themselves (one transaction), or
two concurrent requests can both pass against the same balance.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from ..config.schema import Config
from ..engine.balance import (
    BalanceSummary,
    available_balance,
    calculate_locked,
    calculate_next_vest_locked,
    calculate_unlocked_earnings,
    calculate_vested,
    calculate_withdrawn,
    next_vest_balance,
    summarize_balances,
)
from ..engine.currency import require_supported
from ..engine.models import Lockup, LockupData, VestEvent, VestSnapshot, as_utc, utcnow
from ..engine.next_vest import get_next_vest
from ..errors import InsufficientBalanceError, LockupRejectedError
from .store import Account, LedgerStore

logger = logging.getLogger(__name__)

Amount = Union[Decimal, int, str]


class LedgerService:
    """Balance and request checks for the users in a LedgerStore."""

    def __init__(self, store: LedgerStore, config: Config):
        """
        Initialize ledger service.

        Args:
            store: Storage layer to read accounts from
            config: Currency, transfer, lockup and vesting configuration
        """
        self.store = store
        self.config = config

    @property
    def currencies(self):
        return self.config.supported_currencies()

    def _now(self, now: Optional[datetime]) -> datetime:
        return utcnow() if now is None else as_utc(now)

    def _account(self, user_id: int) -> Account:
        return self.store.get_account(user_id)

    def get_balance(self, user_id: int, currency: str, now: Optional[datetime] = None) -> Decimal:
        """
        Available balance of ``currency`` for a user.

        Raises:
            UserNotFoundError: If the user does not exist
            UnsupportedCurrencyError: If the currency is not configured
            NegativeBalanceError: If the computed balance is negative
        """
        currency = currency.upper()
        require_supported(currency, self.currencies)
        now = self._now(now)
        account = self._account(user_id)
        settings = self.config.vesting

        vested = calculate_vested(account.user, account.grants, self.currencies, now=now, settings=settings)
        logger.debug("User %s vested %s: %s", user_id, currency, vested[currency])

        earnings = calculate_unlocked_earnings(account.lockups, self.currencies, now=now)
        logger.debug("User %s unlocked %s from lockups: %s", user_id, currency, earnings[currency])

        withdrawn = calculate_withdrawn(
            account.transfers,
            self.currencies,
            self.config.transfers.confirmation_timeout_minutes,
            now=now,
        )
        logger.debug("User %s pending or withdrawn %s: %s", user_id, currency, withdrawn[currency])

        locked = calculate_locked(account.lockups, self.currencies, now=now)
        logger.debug("User %s %s in lockup: %s", user_id, currency, locked[currency])

        return available_balance(
            vested[currency],
            earnings[currency],
            withdrawn[currency],
            locked[currency],
            currency=currency,
        )

    def get_next_vest(self, user_id: int, currency: Optional[str] = None,
                      now: Optional[datetime] = None) -> Optional[VestEvent]:
        """Next vest for a user, optionally restricted to one currency."""
        account = self._account(user_id)
        if currency is not None:
            currency = require_supported(currency.upper(), self.currencies)
        return get_next_vest(
            account.grants,
            account.user,
            now=self._now(now),
            currency=currency,
            settings=self.config.vesting,
        )

    def get_next_vest_balance(self, user_id: int, currency: str, now: Optional[datetime] = None) -> Decimal:
        """
        Tokens of the user's next ``currency`` vest not yet claimed by early lockups.

        Returns zero when nothing remains to vest.
        """
        currency = currency.upper()
        require_supported(currency, self.currencies)
        now = self._now(now)
        account = self._account(user_id)

        next_vest = get_next_vest(
            account.grants, account.user, now=now, currency=currency, settings=self.config.vesting
        )
        if next_vest is None:
            logger.debug("No more vest events for user %s", user_id)
            return Decimal(0)

        locked = calculate_next_vest_locked(account.lockups, self.currencies, now=now)
        logger.debug("User %s %s from next vest in lockup: %s", user_id, currency, locked[currency])
        return next_vest_balance(next_vest, locked[currency])

    def summarize(self, user_id: int, now: Optional[datetime] = None) -> BalanceSummary:
        """Every balance figure for every configured currency."""
        account = self._account(user_id)
        return summarize_balances(
            account.user,
            account.grants,
            account.lockups,
            account.transfers,
            self.currencies,
            self.config.transfers.confirmation_timeout_minutes,
            now=self._now(now),
            settings=self.config.vesting,
        )

    def check_transfer(self, user_id: int, amount: Amount, currency: str,
                       now: Optional[datetime] = None) -> Decimal:
        """
        Check a withdrawal request against the available balance.

        Args:
            user_id: Requesting user
            amount: Tokens to withdraw
            currency: Token symbol
            now: Instant to check against

        Returns:
            The available balance the request was checked against

        Raises:
            UnsupportedCurrencyError: If the currency is not configured
            InsufficientBalanceError: If ``amount`` exceeds the balance
        """
        amount = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        currency = currency.upper()
        balance = self.get_balance(user_id, currency, now=now)
        if amount > balance:
            logger.warning(
                "Transfer of %s %s rejected for user %s: %s available", amount, currency, user_id, balance
            )
            raise InsufficientBalanceError(
                f"Amount of {amount} {currency} exceeds the {balance} available for transfer for user {user_id}"
            )
        if amount > self.config.transfers.large_transfer_threshold:
            logger.info(
                "Transfer of %s %s for user %s is above the large transfer threshold of %s",
                amount, currency, user_id, self.config.transfers.large_transfer_threshold,
            )
        return balance

    def propose_lockup(self, user_id: int, amount: Amount, currency: str, early: bool = False,
                       now: Optional[datetime] = None) -> Lockup:
        """
        Build an unconfirmed lockup for a user.

        Regular lockups draw on the available balance. Early lockups draw on
        the next vest (not yet vested) and record a snapshot of it, at the
        early bonus rate.

        Raises:
            LockupRejectedError: If lockups are disabled, early lockups are
                closed, or there is no next vest to lock
            InsufficientBalanceError: If ``amount`` exceeds the relevant balance
        """
        settings = self.config.lockups
        if not settings.enabled:
            raise LockupRejectedError("Lockups are not enabled")

        amount = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
        if amount <= 0:
            raise ValueError(f"Lockup amount must be positive, got {amount}")
        currency = currency.upper()
        now = self._now(now)

        data = LockupData()
        if early:
            if not settings.early_lockups_enabled(now.date()):
                raise LockupRejectedError("Early lockups are not enabled")
            next_vest = self.get_next_vest(user_id, currency=currency, now=now)
            if next_vest is None:
                raise LockupRejectedError(f"User {user_id} has no future {currency} vest to lock")
            balance = self.get_next_vest_balance(user_id, currency, now=now)
            data = LockupData(vest=VestSnapshot.from_event(next_vest))
            bonus_rate = settings.early_bonus_rate
        else:
            balance = self.get_balance(user_id, currency, now=now)
            bonus_rate = settings.bonus_rate

        if amount > balance:
            logger.warning(
                "Lockup of %s %s rejected for user %s: %s available", amount, currency, user_id, balance
            )
            raise InsufficientBalanceError(
                f"Amount of {amount} {currency} exceeds the {balance} available for lockup for user {user_id}"
            )

        lockup = Lockup(
            user_id=user_id,
            currency=currency,
            amount=amount,
            start=now,
            end=now + relativedelta(months=settings.duration_months),
            bonus_rate=bonus_rate,
            confirmed=False,
            created_at=now,
            data=data,
        )
        logger.info(
            "Proposed %slockup of %s %s for user %s at %s%%",
            "early " if early else "", amount, currency, user_id, bonus_rate,
        )
        return lockup
