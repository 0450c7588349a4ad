"""
Drivers Module

This module finds the drivers to reconcile and reads their stored money
snapshot from the users collection.

Features:
    - Driver discovery by profile role, with a registration-flag fallback
    - Lookup by uid or by email
    - Listing of users carrying motoristaData (inspection)
    - Latest wallet transactions of a driver (inspection)

Data Model:
    Driver stored at: users/{uid}
    Fields read:
        - perfil: string ('motorista' for drivers)
        - email: string
        - motoristaData.isRegistered: bool
        - motoristaData.balance: money owed to the driver
        - motoristaData.debt: money owed by the driver

Functions:
    list_by_role: Users whose profile role matches.
    list_by_flag: Users whose (nested) field equals a value.
    discover_drivers: Candidate drivers for a reconciliation run.
    find_driver: Look a driver up by uid or email.
    list_drivers_with_data: Users that have motoristaData.
    get_recent_transactions: Latest wallet transactions of a driver.
"""

import logging
from typing import Optional

from google.api_core.exceptions import FailedPrecondition
from google.cloud.firestore_v1.base_query import FieldFilter

from config.firebase_config import get_db
from config.finance_config import (
    DRIVER_REGISTERED_FLAG,
    DRIVER_ROLE,
    DRIVER_ROLE_FIELD,
    TRANSACTIONS_COLLECTION,
    USERS_COLLECTION,
)
from money import parse_money

logger = logging.getLogger(__name__)


class Driver:
    """
    A driver and the money snapshot stored on their user document.

    Attributes:
        driver_id (str): User document ID (auth uid).
        email (str | None): Email address, if any.
        stored_balance (float): motoristaData.balance, normalised.
        stored_debt (float): motoristaData.debt, normalised.
        motorista_data (dict): Raw motoristaData map.
    """

    def __init__(
        self,
        driver_id: str,
        email: Optional[str] = None,
        stored_balance: float = 0.0,
        stored_debt: float = 0.0,
        motorista_data: Optional[dict] = None
    ):
        self.driver_id = driver_id
        self.email = email
        self.stored_balance = stored_balance
        self.stored_debt = stored_debt
        self.motorista_data = motorista_data or {}

    @classmethod
    def from_document(cls, driver_id: str, data: Optional[dict]) -> "Driver":
        """Create a Driver from a raw users/{uid} document."""
        data = data or {}
        motorista_data = data.get("motoristaData")
        # Legacy documents may hold a string or list here
        if not isinstance(motorista_data, dict):
            motorista_data = {}
        return cls(
            driver_id=driver_id,
            email=data.get("email"),
            stored_balance=parse_money(motorista_data.get("balance") or 0),
            stored_debt=parse_money(motorista_data.get("debt") or 0),
            motorista_data=motorista_data
        )

    def __repr__(self) -> str:
        return (
            f"Driver(id='{self.driver_id}', balance={self.stored_balance}, "
            f"debt={self.stored_debt})"
        )


def _require_db(db):
    db = db or get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")
    return db


def list_by_role(role: str, db=None) -> list[Driver]:
    """
    Get users whose profile role ('perfil') equals role.

    Raises:
        RuntimeError: If Firestore is not available.
    """
    db = _require_db(db)
    query = db.collection(USERS_COLLECTION) \
              .where(filter=FieldFilter(DRIVER_ROLE_FIELD, "==", role))
    return [Driver.from_document(doc.id, doc.to_dict()) for doc in query.stream()]


def list_by_flag(path: str, value, db=None) -> list[Driver]:
    """
    Get users whose field at a (dotted) path equals value.

    Raises:
        RuntimeError: If Firestore is not available.
    """
    db = _require_db(db)
    query = db.collection(USERS_COLLECTION).where(filter=FieldFilter(path, "==", value))
    return [Driver.from_document(doc.id, doc.to_dict()) for doc in query.stream()]


def discover_drivers(limit: Optional[int] = None, db=None) -> list[Driver]:
    """
    Find the drivers a reconciliation run should check.

    Strategy:
        1. Users with perfil == 'motorista'
        2. Only if (1) finds nobody: users with motoristaData.isRegistered == true
        3. Keep the first `limit` drivers when a limit is given

    Args:
        limit: Optional cap on the number of drivers.
        db: Firestore client (defaults to the shared client).

    Returns:
        list[Driver]: Candidate drivers (possibly empty).

    Raises:
        ValueError: If limit is not a positive integer.
        RuntimeError: If Firestore is not available.
    """
    if limit is not None and (not isinstance(limit, int) or limit <= 0):
        raise ValueError(f"limit must be a positive integer, got: {limit}")

    db = _require_db(db)

    drivers = list_by_role(DRIVER_ROLE, db=db)
    if not drivers:
        logger.info(
            "No users with %s==%s. Falling back to %s==true",
            DRIVER_ROLE_FIELD, DRIVER_ROLE, DRIVER_REGISTERED_FLAG
        )
        drivers = list_by_flag(DRIVER_REGISTERED_FLAG, True, db=db)

    logger.info("Found %d driver candidates", len(drivers))

    if limit:
        drivers = drivers[:limit]

    return drivers


def find_driver(identifier: str, db=None) -> Optional[Driver]:
    """
    Look a driver up by uid, or by email when the identifier contains '@'.

    Args:
        identifier: User document ID or email address.
        db: Firestore client (defaults to the shared client).

    Returns:
        Driver | None: The driver, or None if no user matches.

    Raises:
        ValueError: If identifier is empty.
        RuntimeError: If Firestore is not available.
    """
    if not isinstance(identifier, str) or not identifier.strip():
        raise ValueError("identifier must be a non-empty string")

    db = _require_db(db)
    identifier = identifier.strip()

    if "@" in identifier:
        docs = list(
            db.collection(USERS_COLLECTION)
              .where(filter=FieldFilter("email", "==", identifier))
              .limit(1)
              .stream()
        )
        if not docs:
            return None
        return Driver.from_document(docs[0].id, docs[0].to_dict())

    snap = db.collection(USERS_COLLECTION).document(identifier).get()
    if not snap.exists:
        return None
    return Driver.from_document(snap.id, snap.to_dict())


def list_drivers_with_data(limit: int = 20, db=None) -> list[Driver]:
    """
    Get up to `limit` users that carry a motoristaData map.

    Raises:
        RuntimeError: If Firestore is not available.
    """
    db = _require_db(db)
    query = db.collection(USERS_COLLECTION) \
              .where(filter=FieldFilter("motoristaData", "!=", None)) \
              .limit(limit)
    return [Driver.from_document(doc.id, doc.to_dict()) for doc in query.stream()]


def get_recent_transactions(driver_id: str, limit: int = 10, db=None) -> list[dict]:
    """
    Get the latest wallet transactions of a driver, newest first.

    Ordering by createdAt needs a composite index; when Firestore rejects
    the ordered query the transactions are fetched unordered.

    Returns:
        list[dict]: Raw transaction documents with an added 'id' key.

    Raises:
        RuntimeError: If Firestore is not available.
    """
    db = _require_db(db)
    query = db.collection(TRANSACTIONS_COLLECTION) \
              .where(filter=FieldFilter("driverId", "==", driver_id))

    try:
        docs = list(query.order_by("createdAt", direction="DESCENDING").limit(limit).stream())
    except FailedPrecondition as e:
        logger.warning(
            "Ordered transactions query failed (index). Falling back to unordered query: %s", e
        )
        docs = list(query.limit(limit).stream())

    return [{"id": doc.id, **(doc.to_dict() or {})} for doc in docs]
