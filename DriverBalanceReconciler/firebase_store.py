"""
Firebase Store Module

This module writes corrected money snapshots back to Firestore.

Features:
    - Partial update of a driver's balance and debt
    - Server-assigned updatedAt timestamp
    - Safe to repeat (same values, same result)

Firestore Structure:
    users/{uid}
        - motoristaData.balance: float
        - motoristaData.debt: float
        - updatedAt: server timestamp
        (every other field is left untouched)

Functions:
    save_driver_balance: Overwrite a driver's stored balance and debt.
"""

import logging

from firebase_admin import firestore

from config.firebase_config import get_db
from config.finance_config import USERS_COLLECTION

logger = logging.getLogger(__name__)


def _validate_driver_id(driver_id: str) -> None:
    """
    Validate that driver_id is a non-empty string.

    Raises:
        ValueError: If driver_id is invalid.
    """
    if not isinstance(driver_id, str) or not driver_id.strip():
        raise ValueError("driver_id must be a non-empty string")


def save_driver_balance(driver_id: str, balance: float, debt: float, db=None) -> dict:
    """
    Overwrite the stored balance and debt of a driver.

    Uses update() with field paths so only motoristaData.balance,
    motoristaData.debt and updatedAt change; the rest of the user document
    and the rest of motoristaData are kept.

    Args:
        driver_id: UID of the driver.
        balance: New balance.
        debt: New debt.
        db: Firestore client (defaults to the shared client).

    Returns:
        dict: The written values with the document path.

    Raises:
        ValueError: If driver_id is invalid or an amount is negative.
        RuntimeError: If Firestore is not available.
    """
    _validate_driver_id(driver_id)
    if balance < 0 or debt < 0:
        raise ValueError(f"balance and debt must be non-negative, got: {balance}, {debt}")

    db = db or get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")

    doc_ref = db.collection(USERS_COLLECTION).document(driver_id)
    doc_ref.update({
        "motoristaData.balance": balance,
        "motoristaData.debt": debt,
        "updatedAt": firestore.SERVER_TIMESTAMP
    })

    logger.debug("Saved balance=%.2f debt=%.2f for %s", balance, debt, driver_id)

    return {
        "path": f"{USERS_COLLECTION}/{driver_id}",
        "balance": balance,
        "debt": debt
    }
