"""
Rides Module

This module reads finished rides from Firestore and turns the raw documents
into Ride objects the ledger can fold.

Features:
    - Legacy field aliases for the ride total
    - Payment type inferred from the 'pago' flag on old documents
    - Completion time with updatedAt / epoch fallbacks
    - Stable chronological ordering

Data Model:
    Ride stored at: rides/{ride_id}
    Fields read:
        - motoristaId: string (driver uid)
        - status: string (only 'finalizada' is reconciled)
        - valor_total | valorTotal | preçoEstimado | precoEstimado: money
        - tipo_pagamento | paymentType: 'digital' or 'cash'
        - pago: bool (legacy, used when no payment type is stored)
        - horaFim: ISO string, timestamp or epoch millis
        - updatedAt: Firestore timestamp

Functions:
    sort_rides: Order rides by completion time (stable).
    get_finalized_rides: Fetch a driver's finished rides, oldest first.
    get_recent_rides: Fetch the latest finished rides for inspection.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from google.api_core.exceptions import FailedPrecondition
from google.cloud.firestore_v1.base_query import FieldFilter

from config.firebase_config import get_db
from config.finance_config import (
    FINALIZED_STATUS,
    PAYMENT_CASH,
    PAYMENT_DIGITAL,
    RIDES_COLLECTION,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Checked in order, first non-null wins
TOTAL_VALUE_FIELDS = ("valor_total", "valorTotal", "preçoEstimado", "precoEstimado")


def _to_datetime(value) -> Optional[datetime]:
    """
    Convert a stored timestamp into an aware datetime.

    Accepts datetimes (Firestore returns DatetimeWithNanoseconds), ISO
    strings and epoch milliseconds. Anything else returns None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    # Objects exposing to_datetime() (protobuf Timestamp wrappers)
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        return _to_datetime(to_datetime())

    return None


def resolve_payment_type(data: dict) -> str:
    """
    Work out how a ride was paid.

    Explicit 'tipo_pagamento' or 'paymentType' wins. Documents written before
    those fields existed only carry a 'pago' flag: True means the platform
    collected the money (digital), anything else means cash.

    Args:
        data: Raw ride document.

    Returns:
        str: The stored payment type, or 'digital' / 'cash' when inferred.
    """
    explicit = data.get("tipo_pagamento") or data.get("paymentType")
    if explicit:
        return explicit
    return PAYMENT_DIGITAL if data.get("pago") is True else PAYMENT_CASH


def resolve_total_value(data: dict):
    """Return the raw gross fare from the first populated alias field."""
    for field in TOTAL_VALUE_FIELDS:
        if data.get(field) is not None:
            return data[field]
    return 0


def resolve_completion_time(data: dict) -> datetime:
    """
    Ordering key for a ride: horaFim, else updatedAt, else the epoch.
    """
    if data.get("horaFim"):
        finished = _to_datetime(data["horaFim"])
        return finished if finished is not None else EPOCH

    updated = _to_datetime(data.get("updatedAt"))
    return updated if updated is not None else EPOCH


@dataclass(frozen=True)
class Ride:
    """
    A finished ride as seen by the reconciliation. Read-only.

    Attributes:
        ride_id (str): Firestore document ID.
        driver_id (str): UID of the driver (motoristaId).
        status (str): Ride lifecycle status.
        total_value: Raw gross fare, normalised later by parse_money.
        payment_type (str): 'digital', 'cash' or a legacy value (folds as cash).
        completion_time (datetime): Ordering key.
    """

    ride_id: str
    driver_id: Optional[str]
    total_value: Any = 0
    payment_type: str = PAYMENT_CASH
    completion_time: datetime = EPOCH
    status: Optional[str] = FINALIZED_STATUS

    @property
    def is_digital(self) -> bool:
        return self.payment_type == PAYMENT_DIGITAL

    @classmethod
    def from_document(cls, ride_id: str, data: dict) -> "Ride":
        """Create a Ride from a raw Firestore document."""
        data = data or {}
        return cls(
            ride_id=ride_id,
            driver_id=data.get("motoristaId"),
            status=data.get("status"),
            total_value=resolve_total_value(data),
            payment_type=resolve_payment_type(data),
            completion_time=resolve_completion_time(data)
        )

    def to_dict(self) -> dict:
        return {
            "ride_id": self.ride_id,
            "driver_id": self.driver_id,
            "status": self.status,
            "total_value": self.total_value,
            "payment_type": self.payment_type,
            "completion_time": self.completion_time.isoformat()
        }

    def __repr__(self) -> str:
        return (
            f"Ride(id='{self.ride_id}', total={self.total_value!r}, "
            f"payment='{self.payment_type}', finished={self.completion_time.isoformat()})"
        )


def sort_rides(rides: list[Ride]) -> list[Ride]:
    """
    Order rides oldest first.

    sorted() is stable, so rides with the same completion time keep the
    order in which Firestore returned them.
    """
    return sorted(rides, key=lambda ride: ride.completion_time)


def _validate_driver_id(driver_id: str) -> None:
    if not isinstance(driver_id, str) or not driver_id.strip():
        raise ValueError("driver_id must be a non-empty string")


def get_finalized_rides(driver_id: str, db=None) -> list[Ride]:
    """
    Fetch every finished ride of a driver, oldest first.

    Args:
        driver_id: UID of the driver.
        db: Firestore client (defaults to the shared client).

    Returns:
        list[Ride]: Finished rides sorted by completion time.

    Raises:
        ValueError: If driver_id is invalid.
        RuntimeError: If Firestore is not available.
    """
    _validate_driver_id(driver_id)

    db = db or get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")

    query = db.collection(RIDES_COLLECTION) \
              .where(filter=FieldFilter("motoristaId", "==", driver_id)) \
              .where(filter=FieldFilter("status", "==", FINALIZED_STATUS))

    rides = [Ride.from_document(doc.id, doc.to_dict()) for doc in query.stream()]
    logger.debug("Driver %s has %d finished rides", driver_id, len(rides))

    return sort_rides(rides)


def get_recent_rides(driver_id: str, limit: int = 10, db=None) -> list[dict]:
    """
    Fetch the latest finished rides of a driver as raw dicts.

    Ordering by horaFim needs a composite index. When Firestore rejects the
    ordered query the rides are fetched unordered instead.

    Args:
        driver_id: UID of the driver.
        limit: Maximum number of rides.
        db: Firestore client (defaults to the shared client).

    Returns:
        list[dict]: Raw ride documents with an added 'id' key.

    Raises:
        ValueError: If driver_id is invalid.
        RuntimeError: If Firestore is not available.
    """
    _validate_driver_id(driver_id)

    db = db or get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")

    query = db.collection(RIDES_COLLECTION) \
              .where(filter=FieldFilter("motoristaId", "==", driver_id)) \
              .where(filter=FieldFilter("status", "==", FINALIZED_STATUS))

    try:
        docs = list(query.order_by("horaFim", direction="DESCENDING").limit(limit).stream())
    except FailedPrecondition as e:
        logger.warning("Ordered rides query failed (index). Falling back to unordered query: %s", e)
        docs = list(query.limit(limit).stream())

    return [{"id": doc.id, **(doc.to_dict() or {})} for doc in docs]
