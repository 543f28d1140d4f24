"""Tests for the ledger store, the ledger service and the command line."""

import logging
import pytest
import sys
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from dateutil.relativedelta import relativedelta

from tokenvest.cli import main
from tokenvest.config.loader import config_from_dict, load_config
from tokenvest.engine.models import Grant, Lockup, Transfer, TransferStatus, User
from tokenvest.errors import (
    InsufficientBalanceError,
    LockupRejectedError,
    MalformedRecordError,
    UnsupportedCurrencyError,
    UserNotFoundError,
)
from tokenvest.ledger.service import LedgerService
from tokenvest.ledger.store import InMemoryLedgerStore, load_ledger


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


NOW = utc(2024, 1, 1)

LEDGER_YAML = """
users:
  - id: 1
    email: user@example.com
    employee: true
  - id: 2
    email: investor@example.com
grants:
  - user_id: 1
    currency: OGN
    amount: 100000
    start: "2022-01-01T00:00:00Z"
    cliff: "2023-01-01T00:00:00Z"
    end: "2026-01-01T00:00:00Z"
  - user_id: 2
    currency: OGV
    amount: 10000
    start: "2023-12-01T00:00:00Z"
    end: "2025-12-01T00:00:00Z"
transfers:
  - user_id: 1
    currency: OGN
    amount: "1000"
    status: Success
    created_at: "2023-06-01T12:00:00Z"
"""


def build_store():
    store = InMemoryLedgerStore()
    store.add_user(User(email='user@example.com', employee=True))
    store.add_grant(Grant(
        user_id=1,
        start=utc(2022, 1, 1),
        cliff=utc(2023, 1, 1),
        end=utc(2026, 1, 1),
        currency='OGN',
        amount=100000,
    ))
    return store


@pytest.fixture
def store():
    return build_store()


@pytest.fixture
def service(store):
    return LedgerService(store, load_config())


@pytest.fixture
def early_service(store):
    config = config_from_dict({'lockups': {'early_lockups_enabled_until': '2030-01-01'}})
    return LedgerService(store, config)


class TestInMemoryStore:
    """Tests for the dict-backed store."""

    def test_assigns_sequential_ids(self, store):
        second = store.add_user(User(email='second@example.com'))
        assert second.id == 2
        assert store.grants[0].id == 1

    def test_keeps_explicit_ids(self):
        store = InMemoryLedgerStore()
        assert store.add_user(User(id=42)).id == 42

    def test_implicit_ids_skip_explicit_ones(self):
        store = InMemoryLedgerStore.from_dict({
            'users': [{'id': 2, 'employee': True}, {'employee': False}],
            'grants': [
                {'id': 2, 'user_id': 2, 'start': '2024-01-01T00:00:00Z', 'end': '2025-01-01T00:00:00Z',
                 'amount': 100},
                {'user_id': 3, 'start': '2024-01-01T00:00:00Z', 'end': '2025-01-01T00:00:00Z',
                 'amount': 100},
            ],
        })
        assert store.users[2].employee is True
        assert store.users[3].employee is False
        assert [g.id for g in store.grants] == [2, 3]

    def test_duplicate_explicit_id_rejected(self, store):
        with pytest.raises(MalformedRecordError, match="Duplicate user id 1"):
            store.add_user(User(id=1, employee=False))
        assert store.users[1].employee is True
        with pytest.raises(MalformedRecordError, match="Duplicate grant id 1"):
            store.add_grant(store.grants[0])
        assert len(store.grants) == 1

    def test_get_account(self, store):
        account = store.get_account(1)
        assert account.user.employee is True
        assert len(account.grants) == 1
        assert account.lockups == []
        assert account.transfers == []

    def test_get_account_filters_by_user(self, store):
        store.add_user(User(email='other@example.com'))
        store.add_grant(Grant(user_id=2, start=NOW, end=NOW + relativedelta(years=1), amount=10))
        assert [g.user_id for g in store.get_account(2).grants] == [2]
        assert len(store.get_account(1).grants) == 1

    def test_unknown_user(self, store):
        with pytest.raises(UserNotFoundError, match="Could not find specified user id 99"):
            store.get_account(99)

    def test_from_dict_empty(self):
        store = InMemoryLedgerStore.from_dict(None)
        assert store.users == {}

    def test_load_ledger(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text(LEDGER_YAML)
        store = load_ledger(str(path))
        account = store.get_account(1)
        assert account.grants[0].amount == 100000
        assert account.grants[0].start == utc(2022, 1, 1)
        assert account.transfers[0].status is TransferStatus.SUCCESS
        assert store.get_account(2).grants[0].currency == 'OGV'


class TestBalances:
    """Tests for balance lookups through the service."""

    def test_get_balance(self, service):
        assert service.get_balance(1, 'OGN', now=NOW) == 49996
        assert service.get_balance(1, 'OGV', now=NOW) == 0

    def test_currency_is_case_insensitive(self, service):
        assert service.get_balance(1, 'ogn', now=NOW) == 49996

    def test_balance_after_transfer(self, store, service):
        store.add_transfer(Transfer(
            user_id=1, currency='OGN', amount=1000, status=TransferStatus.SUCCESS,
            created_at=NOW - timedelta(days=1),
        ))
        assert service.get_balance(1, 'OGN', now=NOW) == 48996

    def test_balance_after_lockup(self, store, service):
        store.add_lockup(Lockup(
            user_id=1, currency='OGN', amount=10000, start=NOW - relativedelta(years=1),
            end=NOW - timedelta(days=1), bonus_rate=10, confirmed=True,
        ))
        store.add_lockup(Lockup(
            user_id=1, currency='OGN', amount=5000, start=NOW - timedelta(days=1),
            end=NOW + relativedelta(years=1), bonus_rate=10, confirmed=True,
        ))
        # First lockup has ended and paid out 1000, second holds 5000
        assert service.get_balance(1, 'OGN', now=NOW) == 49996 + 1000 - 5000

    def test_unknown_user(self, service):
        with pytest.raises(UserNotFoundError):
            service.get_balance(99, 'OGN', now=NOW)

    def test_unsupported_currency(self, service):
        with pytest.raises(UnsupportedCurrencyError, match="BTC is not a supported currency"):
            service.get_balance(1, 'BTC', now=NOW)

    def test_summarize(self, service):
        summary = service.summarize(1, now=NOW)
        assert summary.currencies == ['OGN', 'OGV']
        assert summary.available['OGN'] == 49996
        assert summary.granted['OGN'] == 100000

    def test_next_vest(self, service):
        next_vest = service.get_next_vest(1, currency='OGN', now=NOW)
        assert next_vest.date == utc(2024, 2, 1)
        assert next_vest.amount == 2083
        assert service.get_next_vest(1, currency='OGV', now=NOW) is None

    def test_next_vest_balance(self, service):
        assert service.get_next_vest_balance(1, 'OGN', now=NOW) == 2083
        assert service.get_next_vest_balance(1, 'OGV', now=NOW) == 0


class TestTransferChecks:
    """Tests for withdrawal request checks."""

    def test_accepts_full_balance(self, service):
        assert service.check_transfer(1, 49996, 'OGN', now=NOW) == 49996

    def test_rejects_more_than_balance(self, service, caplog):
        caplog.set_level(logging.WARNING, logger='tokenvest.ledger.service')
        with pytest.raises(InsufficientBalanceError):
            service.check_transfer(1, '49997', 'OGN', now=NOW)
        assert "rejected" in caplog.text

    def test_rejects_non_positive(self, service):
        with pytest.raises(ValueError):
            service.check_transfer(1, 0, 'OGN', now=NOW)

    def test_large_transfer_logged(self, store, service, caplog):
        caplog.set_level(logging.INFO, logger='tokenvest.ledger.service')
        service.check_transfer(1, 100000, 'OGN', now=utc(2026, 1, 1))
        assert "large transfer threshold" not in caplog.text

        store.add_grant(Grant(user_id=1, start=utc(2020, 1, 1), end=utc(2021, 1, 1), amount=50000))
        service.check_transfer(1, 100001, 'OGN', now=utc(2026, 1, 1))
        assert "large transfer threshold of 100000" in caplog.text


class TestLockupProposals:
    """Tests for regular and early lockup requests."""

    def test_regular_lockup(self, service):
        lockup = service.propose_lockup(1, 1000, 'OGN', now=NOW)
        assert lockup.amount == 1000
        assert lockup.bonus_rate == Decimal('17.5')
        assert lockup.confirmed is False
        assert lockup.start == NOW
        assert lockup.end == utc(2025, 1, 1)
        assert lockup.created_at == NOW
        assert lockup.data.vest is None

    def test_regular_lockup_insufficient(self, service):
        with pytest.raises(InsufficientBalanceError):
            service.propose_lockup(1, 49997, 'OGN', now=NOW)

    def test_lockups_disabled(self, store):
        service = LedgerService(store, config_from_dict({'lockups': {'enabled': False}}))
        with pytest.raises(LockupRejectedError):
            service.propose_lockup(1, 1000, 'OGN', now=NOW)

    def test_early_lockups_closed_by_default(self, service):
        with pytest.raises(LockupRejectedError):
            service.propose_lockup(1, 1000, 'OGN', early=True, now=NOW)

    def test_early_lockups_closed_on_cutoff_date(self, store):
        config = config_from_dict({'lockups': {'early_lockups_enabled_until': '2024-01-01'}})
        assert not config.lockups.early_lockups_enabled(date(2024, 1, 1))
        assert config.lockups.early_lockups_enabled(date(2023, 12, 31))
        with pytest.raises(LockupRejectedError):
            LedgerService(store, config).propose_lockup(1, 1000, 'OGN', early=True, now=NOW)

    def test_early_lockup(self, early_service):
        lockup = early_service.propose_lockup(1, 2083, 'OGN', early=True, now=NOW)
        assert lockup.bonus_rate == 35
        assert lockup.data.vest.date == utc(2024, 2, 1)
        assert lockup.data.vest.amount == 2083
        assert lockup.data.vest.grant_id == 1

    def test_early_lockup_exceeding_next_vest(self, early_service):
        with pytest.raises(InsufficientBalanceError):
            early_service.propose_lockup(1, 2084, 'OGN', early=True, now=NOW)

    def test_early_lockup_claims_next_vest(self, store, early_service):
        lockup = early_service.propose_lockup(1, 2000, 'OGN', early=True, now=NOW)
        store.add_lockup(lockup.model_copy(update={'confirmed': True}))

        assert early_service.get_next_vest_balance(1, 'OGN', now=NOW) == 83
        # Not vested yet, so the regular balance is untouched
        assert early_service.get_balance(1, 'OGN', now=NOW) == 49996
        with pytest.raises(InsufficientBalanceError):
            early_service.propose_lockup(1, 84, 'OGN', early=True, now=NOW)

        after_vest = utc(2024, 2, 1, 0, 0, 1)
        assert early_service.get_balance(1, 'OGN', now=after_vest) == 49996 + 2083 - 2000

    def test_early_lockup_without_future_vest(self, early_service):
        with pytest.raises(LockupRejectedError):
            early_service.propose_lockup(1, 10, 'OGN', early=True, now=utc(2027, 1, 1))


class TestCommandLine:
    """Tests for the tokenvest command."""

    @pytest.fixture
    def ledger_path(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text(LEDGER_YAML)
        return str(path)

    def test_balance(self, ledger_path, capsys):
        assert main(['--now', '2024-01-01T00:00:00', 'balance', ledger_path, '--user', '1']) == 0
        out = capsys.readouterr().out
        assert 'OGN' in out
        assert '48996' in out

    def test_next_vest(self, ledger_path, capsys):
        assert main(['--now', '2024-01-01T00:00:00', 'next-vest', ledger_path, '--user', '1']) == 0
        out = capsys.readouterr().out
        assert out.startswith('2024-02-01T00:00:00+00:00 2083 OGN')
        assert 'unclaimed: 2083' in out

    def test_no_future_vests(self, ledger_path, capsys):
        assert main(['--now', '2030-01-01T00:00:00', 'next-vest', ledger_path, '--user', '1']) == 0
        assert 'No future vests' in capsys.readouterr().out

    def test_schedule_csv(self, ledger_path, tmp_path):
        csv_path = tmp_path / "schedule.csv"
        args = ['--now', '2024-01-01T00:00:00', 'schedule', ledger_path, '--user', '2', '--csv', str(csv_path)]
        assert main(args) == 0
        lines = csv_path.read_text().strip().splitlines()
        assert lines[0] == 'grant_id,currency,date,amount,vested,cancelled'
        assert len(lines) == 1 + 8

    def test_check_ok(self, ledger_path, capsys):
        assert main(['--now', '2024-01-01T00:00:00', 'check', ledger_path, '--user', '1']) == 0
        assert 'OK' in capsys.readouterr().out

    def test_unknown_user(self, ledger_path):
        assert main(['balance', ledger_path, '--user', '99']) == 2

    def test_missing_ledger(self, tmp_path):
        assert main(['balance', str(tmp_path / 'missing.yaml'), '--user', '1']) == 2

    def test_missing_config(self, ledger_path, tmp_path):
        args = ['--config', str(tmp_path / 'missing.yaml'), 'balance', ledger_path, '--user', '1']
        assert main(args) == 2

    def test_invalid_config(self, ledger_path, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("lockups:\n  bonus_rate: '50'\n  early_bonus_rate: '10'\n")
        assert main(['--config', str(config_path), 'balance', ledger_path, '--user', '1']) == 2

    def test_unparseable_ledger(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("users: [\n")
        assert main(['balance', str(path), '--user', '1']) == 2

    def test_duplicate_ids_in_ledger(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("users:\n  - id: 1\n  - id: 1\n")
        assert main(['balance', str(path), '--user', '1']) == 2
