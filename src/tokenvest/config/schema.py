"""Pydantic schema for configuration validation."""

import hashlib
import json
from datetime import date
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class CurrencyContracts(BaseModel):
    """ERC20 contract addresses for a supported token."""
    mainnet: str = Field(default="", description="Mainnet token contract address")
    rinkeby: str = Field(default="", description="Rinkeby token contract address")


def _default_currencies() -> Dict[str, CurrencyContracts]:
    return {
        "OGN": CurrencyContracts(
            mainnet="0x8207c1ffc5b6804f6024322ccf34f29c3541ae26",
            rinkeby="0xa115e16ef6e217f7a327a57031f75ce0487aadb8",
        ),
        "OGV": CurrencyContracts(
            mainnet="0x9c354503C38481a7A7a51629142963F98eCC12D0",
        ),
    }


class TransferSettings(BaseModel):
    """Withdrawal transfer parameters."""
    confirmation_timeout_minutes: int = Field(
        default=5, gt=0,
        description="Minutes a user has to confirm a transfer by clicking the email link"
    )
    large_transfer_threshold: Decimal = Field(
        default=Decimal(100000), gt=0,
        description="Transfers above this amount are logged for review"
    )


class LockupSettings(BaseModel):
    """Lockup program parameters."""
    enabled: bool = Field(default=True, description="Whether lockups are accepted")
    confirmation_timeout_minutes: int = Field(
        default=10, gt=0,
        description="Minutes a user has to confirm a lockup by clicking the email link"
    )
    bonus_rate: Decimal = Field(default=Decimal("17.5"), ge=0, description="Lockup bonus rate (percent)")
    early_bonus_rate: Decimal = Field(
        default=Decimal(35), ge=0,
        description="Bonus rate for lockups of the next, not yet vested, vest (percent)"
    )
    duration_months: int = Field(default=12, gt=0, description="Lockup duration in months")
    early_lockups_enabled_until: Optional[date] = Field(
        default=None,
        description="Early lockups are accepted before this date; disabled when unset"
    )

    def early_lockups_enabled(self, today: date) -> bool:
        """Early lockups are open while today is before the cut-off date."""
        if self.early_lockups_enabled_until is None:
            return False
        return self.early_lockups_enabled_until > today


class VestingSettings(BaseModel):
    """Investor regime parameters: an initial release then fixed quarterly releases."""
    investor_initial_percent: Decimal = Field(
        default=Decimal(6), ge=0, le=100,
        description="Share of the grant released at start (percent)"
    )
    investor_periodic_percent: Decimal = Field(
        default=Decimal("11.75"), gt=0, le=100,
        description="Share of the grant released at each periodic vest (percent)"
    )
    investor_first_release_months: int = Field(
        default=4, ge=0,
        description="Months after start of the first periodic release"
    )
    investor_release_interval_months: int = Field(
        default=3, gt=0,
        description="Months between periodic releases"
    )


class LoggingSettings(BaseModel):
    """Logging parameters."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class Config(BaseModel):
    """Complete configuration for grant and balance accounting."""
    currencies: Dict[str, CurrencyContracts] = Field(default_factory=_default_currencies)
    transfers: TransferSettings = Field(default_factory=TransferSettings)
    lockups: LockupSettings = Field(default_factory=LockupSettings)
    vesting: VestingSettings = Field(default_factory=VestingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("currencies")
    @classmethod
    def validate_currency_symbols(cls, v):
        """Symbols are stored upper-case; at least one is required."""
        if not v:
            raise ValueError("At least one currency must be configured")
        return {symbol.upper(): contracts for symbol, contracts in v.items()}

    @model_validator(mode="after")
    def validate_bonus_rates(self):
        """Early lockups never pay less than regular lockups."""
        if self.lockups.early_bonus_rate < self.lockups.bonus_rate:
            raise ValueError(
                f"early_bonus_rate ({self.lockups.early_bonus_rate}) must be at least "
                f"bonus_rate ({self.lockups.bonus_rate})"
            )
        return self

    def supported_currencies(self) -> FrozenSet[str]:
        """Set of configured currency symbols."""
        return frozenset(self.currencies)

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump(mode="json")
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**(data or {}))

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
