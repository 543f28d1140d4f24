"""Storage contract for grant, lockup and transfer records.

Persistence is owned by the data-access layer. The service only needs one
read: a user together with all of their records. ``InMemoryLedgerStore``
satisfies the contract for tests and for the command line, where a ledger
is read from a YAML file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import yaml

from ..engine.models import Grant, Lockup, Transfer, User
from ..errors import MalformedRecordError, UserNotFoundError


@dataclass
class Account:
    """A user with every grant, lockup and transfer they own."""
    user: User
    grants: List[Grant] = field(default_factory=list)
    lockups: List[Lockup] = field(default_factory=list)
    transfers: List[Transfer] = field(default_factory=list)


class LedgerStore(Protocol):
    """Read access the ledger service needs from the storage layer."""

    def get_account(self, user_id: int) -> Account:
        """Load a user with their grants, lockups and transfers.

        Raises:
            UserNotFoundError: If no such user exists
        """
        ...


def _with_id(record, existing_ids, kind: str):
    """Give ``record`` the next free id, or check its explicit id is unused."""
    if record.id is None:
        return record.model_copy(update={'id': max(existing_ids, default=0) + 1})
    if record.id in existing_ids:
        raise MalformedRecordError(f"Duplicate {kind} id {record.id}")
    return record


class InMemoryLedgerStore:
    """Dict-backed LedgerStore.

    Records added without an id get one past the highest id in use; an
    explicit id that is already taken is rejected.
    """

    def __init__(self):
        self.users: Dict[int, User] = {}
        self.grants: List[Grant] = []
        self.lockups: List[Lockup] = []
        self.transfers: List[Transfer] = []

    def add_user(self, user: User) -> User:
        user = _with_id(user, set(self.users), "user")
        self.users[user.id] = user
        return user

    def add_grant(self, grant: Grant) -> Grant:
        grant = _with_id(grant, {g.id for g in self.grants}, "grant")
        self.grants.append(grant)
        return grant

    def add_lockup(self, lockup: Lockup) -> Lockup:
        lockup = _with_id(lockup, {l.id for l in self.lockups}, "lockup")
        self.lockups.append(lockup)
        return lockup

    def add_transfer(self, transfer: Transfer) -> Transfer:
        transfer = _with_id(transfer, {t.id for t in self.transfers}, "transfer")
        self.transfers.append(transfer)
        return transfer

    def get_account(self, user_id: int) -> Account:
        user = self.users.get(user_id)
        if user is None:
            raise UserNotFoundError(f"Could not find specified user id {user_id}")
        return Account(
            user=user,
            grants=[g for g in self.grants if g.user_id == user_id],
            lockups=[l for l in self.lockups if l.user_id == user_id],
            transfers=[t for t in self.transfers if t.user_id == user_id],
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'InMemoryLedgerStore':
        """
        Build a store from a mapping with ``users``, ``grants``, ``lockups``
        and ``transfers`` lists.

        Args:
            data: Ledger dictionary (missing sections are treated as empty)

        Returns:
            Populated InMemoryLedgerStore
        """
        data = data or {}
        store = cls()
        for row in data.get('users') or []:
            store.add_user(User(**row))
        for row in data.get('grants') or []:
            store.add_grant(Grant(**row))
        for row in data.get('lockups') or []:
            store.add_lockup(Lockup(**row))
        for row in data.get('transfers') or []:
            store.add_transfer(Transfer(**row))
        return store


def load_ledger(yaml_path: str) -> InMemoryLedgerStore:
    """
    Load a ledger from a YAML file.

    Args:
        yaml_path: Path to the ledger file

    Returns:
        InMemoryLedgerStore
    """
    with open(Path(yaml_path), 'r') as f:
        data = yaml.safe_load(f)
    return InMemoryLedgerStore.from_dict(data)
