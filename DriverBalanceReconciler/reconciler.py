"""
Reconciler Module

Compares the balance/debt stored on each driver with the values rebuilt
from their ride history and optionally writes the corrections.

Flow per driver:
    finished rides -> ledger.fold_rides -> ReconciliationRecord
        -> save_driver_balance (only with apply=True and a mismatch)

A run is read-only unless apply is set, and can be repeated at any time:
after an apply the stored values equal the computed ones, so the next run
finds no mismatch and writes nothing.

Errors:
    TransientStoreError: a query/write for one driver failed. The driver is
        skipped and reported; the run continues.
    FatalDiscoveryError: the drivers could not be listed at all. The run
        stops.

Functions:
    is_mismatched: Classify a pair of differences.
    reconcile: Build the record for one driver (pure).
    apply_if_mismatched: Persist a record's computed values when needed.
    reconcile_driver: Full pipeline for one driver.
    reconcile_all: Full run over every discovered driver.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError

from config.finance_config import MISMATCH_EPSILON
from drivers import Driver, discover_drivers
from firebase_store import save_driver_balance
from ledger import fold_rides
from money import round2
from rides import Ride, get_finalized_rides

logger = logging.getLogger(__name__)


class ReconciliationError(RuntimeError):
    pass


class TransientStoreError(ReconciliationError):
    def __init__(self, driver_id: str, message: str):
        super().__init__(f"{driver_id}: {message}")
        self.driver_id = driver_id
        self.message = message


class FatalDiscoveryError(ReconciliationError):
    pass


@dataclass
class ReconciliationRecord:
    """Stored vs computed money position of one driver for one run."""
    driver_id: str
    stored_balance: float
    stored_debt: float
    computed_balance: float
    computed_debt: float
    balance_diff: float
    debt_diff: float
    ride_count: int
    email: Optional[str] = None
    applied: bool = False

    @property
    def is_mismatched(self) -> bool:
        return is_mismatched(self.balance_diff, self.debt_diff)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mismatched"] = self.is_mismatched
        return data


@dataclass
class ReconciliationReport:
    """Outcome of a run over many drivers, in discovery order."""
    records: list = field(default_factory=list)
    failures: list = field(default_factory=list)
    apply: bool = False

    @property
    def mismatches(self) -> list:
        return [record for record in self.records if record.is_mismatched]

    @property
    def applied(self) -> list:
        return [record for record in self.records if record.applied]


def is_mismatched(balance_diff: float, debt_diff: float, eps: float = MISMATCH_EPSILON) -> bool:
    """
    True when either difference is above one cent of tolerance.
    """
    return abs(balance_diff) > eps or abs(debt_diff) > eps


def reconcile(driver: Driver, rides: list[Ride]) -> ReconciliationRecord:
    """
    Build the reconciliation record for one driver.

    Args:
        driver: Driver with the stored balance/debt snapshot.
        rides: The driver's finished rides, oldest first.

    Returns:
        ReconciliationRecord: Stored and computed values with their diffs.
    """
    result = fold_rides(rides)

    return ReconciliationRecord(
        driver_id=driver.driver_id,
        email=driver.email,
        stored_balance=driver.stored_balance,
        stored_debt=driver.stored_debt,
        computed_balance=result.balance,
        computed_debt=result.debt,
        balance_diff=round2(result.balance - driver.stored_balance),
        debt_diff=round2(result.debt - driver.stored_debt),
        ride_count=result.ride_count
    )


def apply_if_mismatched(record: ReconciliationRecord, write_enabled: bool, db=None) -> bool:
    """
    Write the computed balance/debt when writes are enabled and the record
    is mismatched.

    Args:
        record: Record produced by reconcile().
        write_enabled: False for a dry run.
        db: Firestore client (defaults to the shared client).

    Returns:
        bool: True if a write was performed.
    """
    if not write_enabled or not record.is_mismatched:
        return False

    save_driver_balance(
        record.driver_id,
        record.computed_balance,
        record.computed_debt,
        db=db
    )
    record.applied = True

    logger.info(
        "Applied update for %s: balance %.2f -> %.2f, debt %.2f -> %.2f",
        record.driver_id,
        record.stored_balance, record.computed_balance,
        record.stored_debt, record.computed_debt
    )
    return True


def reconcile_driver(driver: Driver, apply: bool = False, db=None) -> ReconciliationRecord:
    """
    Query, fold, compare and (optionally) fix one driver.

    Raises:
        TransientStoreError: If anything failed for this driver (store
            errors, auth refresh errors, unexpected document shapes).
    """
    try:
        rides = get_finalized_rides(driver.driver_id, db=db)
        record = reconcile(driver, rides)
        apply_if_mismatched(record, apply, db=db)
    except Exception as e:
        raise TransientStoreError(driver.driver_id, f"{type(e).__name__}: {e}") from e

    return record


def reconcile_all(
    apply: bool = False,
    limit: Optional[int] = None,
    workers: int = 1,
    db=None
) -> ReconciliationReport:
    """
    Reconcile every discovered driver.

    Drivers are independent, so with workers > 1 they are processed by a
    bounded thread pool. Records keep discovery order either way.

    Args:
        apply: Write corrections for mismatched drivers.
        limit: Optional cap on the number of drivers.
        workers: Size of the worker pool.
        db: Firestore client (defaults to the shared client).

    Returns:
        ReconciliationReport: Records of the drivers that succeeded and
        (driver_id, error) pairs for the ones that failed.

    Raises:
        FatalDiscoveryError: If the drivers could not be listed.
        ValueError: If workers < 1.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got: {workers}")

    try:
        drivers = discover_drivers(limit=limit, db=db)
    except (GoogleAPIError, GoogleAuthError, RuntimeError) as e:
        raise FatalDiscoveryError(f"Could not list drivers: {e}") from e

    report = ReconciliationReport(apply=apply)

    def _run(driver: Driver):
        try:
            return reconcile_driver(driver, apply=apply, db=db)
        except TransientStoreError as e:
            logger.error("Skipping driver %s: %s", e.driver_id, e.message)
            return e

    if workers == 1 or len(drivers) <= 1:
        outcomes = [_run(driver) for driver in drivers]
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_run, drivers))

    for outcome in outcomes:
        if isinstance(outcome, TransientStoreError):
            report.failures.append((outcome.driver_id, outcome.message))
        else:
            report.records.append(outcome)

    return report
