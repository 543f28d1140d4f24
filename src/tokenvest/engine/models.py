"""Grant, lockup and transfer records plus derived vest events.

Records coming from the storage layer are pydantic models so malformed
input is rejected at construction, before it reaches the vesting engine.
Amounts are ``Decimal``; float input is refused because large integer
token amounts do not survive a round trip through binary floating point.
Instants are normalised to timezone-aware UTC.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import MalformedGrantError, MalformedRecordError

GrantRef = Union[int, List[int]]


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current wall-clock instant in UTC."""
    return datetime.now(timezone.utc)


def _reject_float(value: Any) -> Any:
    if isinstance(value, float):
        raise ValueError("amounts must be given as str, int or Decimal, not float")
    return value


class TransferStatus(str, Enum):
    """Lifecycle states of a withdrawal transfer."""
    WAITING_EMAIL_CONFIRM = "WaitingEmailConfirm"
    ENQUEUED = "Enqueued"
    PAUSED = "Paused"
    PROCESSING = "Processing"
    WAITING_CONFIRMATION = "WaitingConfirmation"
    SUCCESS = "Success"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


# Statuses whose amount has left, or is about to leave, the user's balance
PENDING_OR_COMPLETE_STATUSES = frozenset({
    TransferStatus.WAITING_EMAIL_CONFIRM,
    TransferStatus.ENQUEUED,
    TransferStatus.PAUSED,
    TransferStatus.PROCESSING,
    TransferStatus.WAITING_CONFIRMATION,
    TransferStatus.SUCCESS,
})


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)

    @field_validator("currency", mode="before", check_fields=False)
    @classmethod
    def normalize_currency(cls, v):
        """Currency symbols are compared upper-case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("amount", mode="before", check_fields=False)
    @classmethod
    def reject_float_amount(cls, v):
        """Refuse binary floating point amounts."""
        return _reject_float(v)


class User(BaseModel):
    """Account holder. Only ``employee`` affects vesting."""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    email: Optional[str] = None
    employee: bool = False


class Grant(_Record):
    """An award of tokens released over time.

    ``cliff`` equal to ``start`` (or absent) means monthly vesting with no
    lump sum. ``cancelled`` freezes the vesting horizon.
    """
    id: Optional[int] = None
    user_id: Optional[int] = None
    currency: str = "OGN"
    amount: Decimal
    start: datetime
    end: datetime
    cliff: Optional[datetime] = None
    cancelled: Optional[datetime] = None
    grant_type: Optional[str] = None

    @field_validator("start", "end", "cliff", "cancelled")
    @classmethod
    def normalize_instants(cls, v):
        return None if v is None else as_utc(v)

    @model_validator(mode="after")
    def validate_schedule(self):
        """Reject grants the vesting engine cannot schedule."""
        if self.amount <= 0:
            raise MalformedGrantError(f"Grant amount must be positive, got {self.amount}")
        if self.amount != self.amount.to_integral_value():
            raise MalformedGrantError(f"Grant amount must be a whole number of tokens, got {self.amount}")
        if self.start >= self.end:
            raise MalformedGrantError(
                f"Grant start {self.start.isoformat()} must be before end {self.end.isoformat()}"
            )
        if self.cliff is not None and not (self.start <= self.cliff <= self.end):
            raise MalformedGrantError(
                f"Grant cliff {self.cliff.isoformat()} must fall within "
                f"[{self.start.isoformat()}, {self.end.isoformat()}]"
            )
        return self

    @property
    def has_cliff(self) -> bool:
        return self.cliff is not None and self.cliff != self.start


@dataclass
class VestEvent:
    """One scheduled release of tokens.

    ``grant_id`` is a list when the next-vest resolver merges same-day
    events from several grants.
    """
    date: datetime
    amount: Decimal
    vested: bool = False
    cancelled: bool = False
    grant_id: Optional[GrantRef] = None
    currency: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'amount': str(self.amount),
            'vested': self.vested,
            'cancelled': self.cancelled,
            'grant_id': self.grant_id,
            'currency': self.currency,
        }


class VestSnapshot(BaseModel):
    """The next vest as recorded on an early lockup when it was requested."""
    model_config = ConfigDict(frozen=True)

    date: datetime
    amount: Decimal
    grant_id: Optional[GrantRef] = None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v):
        return as_utc(v)

    @field_validator("amount", mode="before")
    @classmethod
    def reject_float_amount(cls, v):
        return _reject_float(v)

    @classmethod
    def from_event(cls, event: VestEvent) -> 'VestSnapshot':
        """Snapshot a vest event; later schedule changes do not alter it."""
        grant_id = list(event.grant_id) if isinstance(event.grant_id, list) else event.grant_id
        return cls(date=event.date, amount=event.amount, grant_id=grant_id)

    @property
    def grant_ids(self) -> List[int]:
        if self.grant_id is None:
            return []
        if isinstance(self.grant_id, list):
            return list(self.grant_id)
        return [self.grant_id]


class LockupData(BaseModel):
    """Free-form lockup metadata; ``vest`` marks an early lockup."""
    model_config = ConfigDict(frozen=True, extra="allow")

    vest: Optional[VestSnapshot] = None


class Lockup(_Record):
    """Tokens committed for a fixed period in exchange for a bonus."""
    id: Optional[int] = None
    user_id: Optional[int] = None
    currency: str = "OGN"
    amount: Decimal = Field(gt=0)
    start: datetime
    end: datetime
    bonus_rate: Decimal = Field(ge=0)
    confirmed: bool = False
    created_at: Optional[datetime] = None
    data: LockupData = Field(default_factory=LockupData)

    @field_validator("bonus_rate", mode="before")
    @classmethod
    def coerce_bonus_rate(cls, v):
        # Rates such as 17.5 are exact in decimal; go through str so the
        # Decimal carries no binary expansion.
        if isinstance(v, float):
            return str(v)
        return v

    @field_validator("start", "end", "created_at")
    @classmethod
    def normalize_instants(cls, v):
        return None if v is None else as_utc(v)

    @model_validator(mode="after")
    def validate_period(self):
        if self.end <= self.start:
            raise MalformedRecordError(
                f"Lockup end {self.end.isoformat()} must be after start {self.start.isoformat()}"
            )
        return self


class Transfer(_Record):
    """A withdrawal of vested, unlocked tokens to an external address."""
    id: Optional[int] = None
    user_id: Optional[int] = None
    currency: str = "OGN"
    amount: Decimal = Field(gt=0)
    to_address: Optional[str] = None
    status: TransferStatus
    tx_hash: Optional[str] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v):
        return as_utc(v)
