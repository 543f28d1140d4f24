"""Sanity checks over a user's grants, lockups and transfers."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..config.schema import Config
from ..engine.balance import (
    calculate_locked,
    calculate_unlocked_earnings,
    calculate_vested,
    calculate_withdrawn,
    is_early_lockup,
    lockup_has_expired,
)
from ..engine.currency import engine_context
from ..engine.models import as_utc, utcnow
from ..ledger.store import Account


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "currency", "grant", "lockup", "balance"
    message: str
    details: Optional[str] = None


class LedgerSanityChecker:
    """Run sanity checks on an account without raising."""

    def __init__(self, config: Config):
        """Initialize with configuration."""
        self.config = config

    def check_account(self, account: Account, now: Optional[datetime] = None) -> List[ValidationWarning]:
        """
        Check an account for records the balance folds would reject or misreport.

        Args:
            account: User with grants, lockups and transfers
            now: Instant to check against

        Returns:
            List of validation warnings
        """
        now = utcnow() if now is None else as_utc(now)
        warnings = []
        warnings.extend(self.check_currencies(account))
        warnings.extend(self.check_grants(account))
        warnings.extend(self.check_early_lockups(account))
        warnings.extend(self.check_pending_lockups(account, now))

        # Balance check only makes sense when every record is in a known currency
        if not any(w.category == "currency" for w in warnings):
            warnings.extend(self.check_balances(account, now))
        return warnings

    def check_currencies(self, account: Account) -> List[ValidationWarning]:
        """Every record must use a configured currency."""
        warnings = []
        supported = self.config.supported_currencies()
        records = (
            [("Grant", r) for r in account.grants] +
            [("Lockup", r) for r in account.lockups] +
            [("Transfer", r) for r in account.transfers]
        )
        for kind, record in records:
            if record.currency not in supported:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="currency",
                    message=f"{kind} {record.id} uses unsupported currency {record.currency}",
                    details=f"Supported: {', '.join(sorted(supported))}"
                ))
        return warnings

    def check_grants(self, account: Account) -> List[ValidationWarning]:
        """Flag grants whose cancellation leaves nothing to vest."""
        warnings = []
        for grant in account.grants:
            if grant.cancelled is not None and grant.cancelled <= grant.start:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="grant",
                    message=f"Grant {grant.id} was cancelled before it started",
                    details=f"Start: {grant.start.isoformat()}, cancelled: {grant.cancelled.isoformat()}"
                ))
            elif grant.cancelled is not None and grant.has_cliff and grant.cancelled <= grant.cliff:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="grant",
                    message=f"Grant {grant.id} was cancelled before its cliff and will never vest",
                    details=f"Cliff: {grant.cliff.isoformat()}, cancelled: {grant.cancelled.isoformat()}"
                ))
        return warnings

    def check_early_lockups(self, account: Account) -> List[ValidationWarning]:
        """
        Early lockups keep the next-vest snapshot taken when they were made.

        Grants added or removed since then are not reconciled; report the
        cases where the snapshot no longer matches the account.
        """
        warnings = []
        grant_ids = {grant.id for grant in account.grants}
        for lockup in account.lockups:
            if not is_early_lockup(lockup):
                continue
            vest = lockup.data.vest
            missing = [gid for gid in vest.grant_ids if gid not in grant_ids]
            if missing:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="lockup",
                    message=f"Early lockup {lockup.id} references unknown grants {missing}",
                ))
            if lockup.amount > vest.amount:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="lockup",
                    message=f"Early lockup {lockup.id} locks more than the vest it claims",
                    details=f"Locked: {lockup.amount}, vest amount: {vest.amount}"
                ))
        return warnings

    def check_pending_lockups(self, account: Account, now: datetime) -> List[ValidationWarning]:
        """Flag unconfirmed lockups whose confirmation window has closed."""
        warnings = []
        timeout = self.config.lockups.confirmation_timeout_minutes
        for lockup in account.lockups:
            if lockup.confirmed or not lockup_has_expired(lockup, timeout, now=now):
                continue
            warnings.append(ValidationWarning(
                severity="warning",
                category="lockup",
                message=f"Lockup {lockup.id} was never confirmed and its confirmation window has closed",
                details=f"Created: {lockup.created_at.isoformat()}, timeout: {timeout} minutes"
            ))
        return warnings

    def check_balances(self, account: Account, now: datetime) -> List[ValidationWarning]:
        """Report negative available balances instead of raising."""
        warnings = []
        currencies = self.config.supported_currencies()
        vested = calculate_vested(account.user, account.grants, currencies, now=now,
                                  settings=self.config.vesting)
        earnings = calculate_unlocked_earnings(account.lockups, currencies, now=now)
        withdrawn = calculate_withdrawn(
            account.transfers, currencies, self.config.transfers.confirmation_timeout_minutes, now=now
        )
        locked = calculate_locked(account.lockups, currencies, now=now)
        for currency in sorted(currencies):
            with engine_context():
                available = vested[currency] + earnings[currency] - withdrawn[currency] - locked[currency]
            if available < 0:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="balance",
                    message=f"Available {currency} is negative: {available}",
                    details=(
                        f"vested={vested[currency]}, unlocked_earnings={earnings[currency]}, "
                        f"withdrawn={withdrawn[currency]}, locked={locked[currency]}"
                    )
                ))
        return warnings


def validate_account(account: Account, config: Config, now: Optional[datetime] = None) -> List[ValidationWarning]:
    """
    Convenience function to validate an account.

    Args:
        account: User with grants, lockups and transfers
        config: Configuration
        now: Instant to check against

    Returns:
        List of validation warnings
    """
    return LedgerSanityChecker(config).check_account(account, now=now)
