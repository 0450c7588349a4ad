"""
Driver Balance Reconciler - Command Line

Maintenance commands for driver wallets.

Commands:
    reconcile [--apply] [--limit=N] [--workers=N]
        Compare stored balance/debt of every driver with the values rebuilt
        from their finished rides. Dry run unless --apply is given.

    backfill <driverId|email> [--apply]
        Rebuild one driver's balance/debt and show the per-ride trail.

    inspect [driverId|email]
        Show a driver's raw motoristaData, latest transactions and rides.
        Without an argument, list up to 20 users with motoristaData.

Exit codes:
    0 - run completed (mismatches included)
    1 - Firestore unavailable or drivers could not be listed
    2 - driver not found

Usage:
    python cli.py reconcile --limit=50
    python cli.py backfill driver@example.com --apply
"""

import argparse
import json
import logging
import sys

from google.api_core.exceptions import GoogleAPIError

from drivers import find_driver, get_recent_transactions, list_drivers_with_data
from ledger import fold_rides
from reconciler import (
    FatalDiscoveryError,
    apply_if_mismatched,
    reconcile,
    reconcile_all,
)
from report import render_ledger, render_summary
from rides import get_finalized_rides, get_recent_rides

logger = logging.getLogger("reconciler.cli")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_NOT_FOUND = 2


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="driver-balance",
        description="Reconcile driver balance/debt with their ride history."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("reconcile", help="Check every driver")
    run.add_argument("--apply", action="store_true", help="Write corrected values")
    run.add_argument("--limit", type=_positive_int, default=None, help="Max drivers to check")
    run.add_argument("--workers", type=_positive_int, default=1, help="Parallel drivers")

    backfill = sub.add_parser("backfill", help="Rebuild one driver")
    backfill.add_argument("driver", help="Driver uid or email")
    backfill.add_argument("--apply", action="store_true", help="Write corrected values")

    inspect = sub.add_parser("inspect", help="Show raw driver data")
    inspect.add_argument("driver", nargs="?", default=None, help="Driver uid or email")

    return parser


def _dump(data) -> str:
    return json.dumps(data, indent=2, default=str, ensure_ascii=False)


def cmd_reconcile(args) -> int:
    print("Scanning users for motorista profiles...")
    try:
        report = reconcile_all(apply=args.apply, limit=args.limit, workers=args.workers)
    except FatalDiscoveryError as e:
        logger.error("%s", e)
        return EXIT_FATAL

    print()
    for line in render_summary(report):
        print(line)
    return EXIT_OK


def cmd_backfill(args) -> int:
    driver = find_driver(args.driver)
    if driver is None:
        logger.error("User not found for %s", args.driver)
        return EXIT_NOT_FOUND

    print(f"Found driver: {driver.driver_id}")
    print(f"Existing motoristaData: {_dump(driver.motorista_data)}")

    rides = get_finalized_rides(driver.driver_id)
    print("\nComputed from rides:")
    for line in render_ledger(fold_rides(rides)):
        print(line)

    record = reconcile(driver, rides)
    print("\nCurrent stored:")
    print(f"  balance: {record.stored_balance:.2f}")
    print(f"  debt: {record.stored_debt:.2f}")

    if not record.is_mismatched:
        print("\nNo update required - stored values match computed values.")
        return EXIT_OK

    print("\nDifference detected:")
    print(f"  balance diff: {record.balance_diff:.2f}")
    print(f"  debt diff: {record.debt_diff:.2f}")

    if not args.apply:
        print("\nDry-run mode. To apply the computed values to the user document run with --apply.")
        return EXIT_OK

    apply_if_mismatched(record, write_enabled=True)
    print("\nApplied update to user document: motoristaData.balance and motoristaData.debt set.")
    return EXIT_OK


def cmd_inspect(args) -> int:
    if not args.driver:
        print("No driver given. Listing up to 20 users with motoristaData present...")
        drivers = list_drivers_with_data(limit=20)
        if not drivers:
            print("No users with motoristaData found.")
        for driver in drivers:
            data = driver.motorista_data
            print("---")
            print(f"uid: {driver.driver_id}")
            print(f"balance (raw): {data.get('balance')!r} type: {type(data.get('balance')).__name__}")
            print(f"debt (raw): {data.get('debt')!r} type: {type(data.get('debt')).__name__}")
            print(f"consecutiveCashDays: {data.get('consecutiveCashDays')}")
        return EXIT_OK

    driver = find_driver(args.driver)
    if driver is None:
        logger.error("User not found: %s", args.driver)
        return EXIT_NOT_FOUND

    print(f"Inspecting driver: {driver.driver_id}")
    print(f"motoristaData (raw): {_dump(driver.motorista_data)}")

    print("\nLast transactions (up to 10):")
    transactions = get_recent_transactions(driver.driver_id)
    if not transactions:
        print("  none")
    for tx in transactions:
        print(
            f"  id: {tx['id']} type: {tx.get('type')} amount: {tx.get('amount')} "
            f"balanceBefore: {tx.get('balanceBefore')} balanceAfter: {tx.get('balanceAfter')} "
            f"createdAt: {tx.get('createdAt')}"
        )

    print("\nLast rides (up to 10):")
    rides = get_recent_rides(driver.driver_id)
    if not rides:
        print("  none")
    for ride in rides:
        print(
            f"  id: {ride['id']} horaFim: {ride.get('horaFim')} valor_total: {ride.get('valor_total')} "
            f"valor_taxa: {ride.get('valor_taxa')} valor_motorista: {ride.get('valor_motorista')}"
        )
    return EXIT_OK


COMMANDS = {
    "reconcile": cmd_reconcile,
    "backfill": cmd_backfill,
    "inspect": cmd_inspect,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        return COMMANDS[args.command](args)
    except (RuntimeError, GoogleAPIError) as e:
        logger.error("Error: %s", e)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
