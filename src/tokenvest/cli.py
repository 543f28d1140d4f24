"""Command line interface over a YAML ledger file.

Examples:
    tokenvest schedule ledger.yaml --user 1
    tokenvest --now 2024-01-01T00:00:00 balance ledger.yaml --user 1
    tokenvest next-vest ledger.yaml --user 1 --currency OGN
    tokenvest check ledger.yaml --user 1
"""

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

import pandas as pd
import yaml

from .config.loader import load_config
from .engine.models import as_utc, utcnow
from .errors import TokenVestError
from .ledger.service import LedgerService
from .ledger.store import load_ledger
from .reporting.export import balances_frame, export_csv, schedule_frame, vesting_history
from .validation.sanity_checks import validate_account

logger = logging.getLogger(__name__)


def _parse_now(value: Optional[str]) -> datetime:
    if value is None:
        return utcnow()
    return as_utc(datetime.fromisoformat(value))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tokenvest", description="Token grant vesting and balances")
    parser.add_argument("--config", help="Path to a YAML config (defaults to the packaged defaults)")
    parser.add_argument("--now", help="ISO-8601 instant to evaluate at (defaults to current UTC time)")

    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p):
        p.add_argument("ledger", help="Path to a YAML ledger file")
        p.add_argument("--user", type=int, required=True, help="User id")

    p = sub.add_parser("schedule", help="Print the vesting schedule of every grant")
    add_common(p)
    p.add_argument("--history", action="store_true", help="Sum events per date and currency")
    p.add_argument("--csv", help="Write the table to this CSV file instead of stdout")

    p = sub.add_parser("balance", help="Print balances for every currency")
    add_common(p)
    p.add_argument("--csv", help="Write the table to this CSV file instead of stdout")

    p = sub.add_parser("next-vest", help="Print the next vest and how much of it is unclaimed")
    add_common(p)
    p.add_argument("--currency", default="OGN")

    p = sub.add_parser("check", help="Run sanity checks on the user's records")
    add_common(p)

    return parser


def _print_frame(frame: pd.DataFrame, csv_path: Optional[str]):
    if csv_path:
        export_csv(frame, csv_path)
        logger.info("Wrote %d rows to %s", len(frame), csv_path)
    else:
        print(frame.to_string(index=False))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = load_config(args.config)
        logging.getLogger("tokenvest").setLevel(config.logging.level)
        now = _parse_now(args.now)
        store = load_ledger(args.ledger)
        service = LedgerService(store, config)
        account = store.get_account(args.user)

        if args.command == "schedule":
            builder = vesting_history if args.history else schedule_frame
            _print_frame(builder(account.user, account.grants, now=now, settings=config.vesting), args.csv)
        elif args.command == "balance":
            _print_frame(balances_frame(service.summarize(args.user, now=now)), args.csv)
        elif args.command == "next-vest":
            next_vest = service.get_next_vest(args.user, currency=args.currency, now=now)
            if next_vest is None:
                print("No future vests")
            else:
                unclaimed = service.get_next_vest_balance(args.user, args.currency, now=now)
                print(f"{next_vest.date.isoformat()} {next_vest.amount} {args.currency.upper()} "
                      f"(grants: {next_vest.grant_id}, unclaimed: {unclaimed})")
        elif args.command == "check":
            warnings = validate_account(account, config, now=now)
            for w in warnings:
                print(f"[{w.severity}] {w.category}: {w.message}" + (f" ({w.details})" if w.details else ""))
            if any(w.severity == "error" for w in warnings):
                return 1
            if not warnings:
                print("OK")
    except (TokenVestError, ValueError, OSError, yaml.YAMLError) as e:
        logger.error("%s", e)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
