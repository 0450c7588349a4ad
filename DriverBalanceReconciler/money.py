"""
Money Module

Normalises the monetary values found in ride and user documents and rounds
them to cents.

Ride documents were written by several app versions, so the same field can
hold a number, a formatted string ("R$ 25,50") or garbage. Reconciliation
must never abort on one bad record, so parsing degrades to zero instead of
raising.

Functions:
    parse_money: Convert any stored monetary value into a float.
    round2: Round a float to 2 decimal places (cent precision).
"""

import math
import re
import sys
from decimal import Decimal

# Everything except digits, comma, period and minus
_NON_NUMERIC = re.compile(r"[^0-9,.\-]+")


def parse_money(value) -> float:
    """
    Convert a stored monetary value into a float.

    Rules:
        - None -> 0
        - int / float / Decimal -> returned as float (NaN and inf -> 0)
        - str -> strip everything except digits, ',', '.', '-', turn commas
          into periods and parse; unparseable -> 0
        - anything else (bool, dict, list, ...) -> 0

    Args:
        value: Raw value read from Firestore.

    Returns:
        float: Parsed amount, never raises.
    """
    if value is None:
        return 0.0

    # bool is an int subclass but never a monetary amount
    if isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float, Decimal)):
        try:
            amount = float(value)
        except OverflowError:
            return 0.0
        return amount if math.isfinite(amount) else 0.0

    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value).replace(",", ".")
        if not cleaned:
            return 0.0
        try:
            amount = float(cleaned)
        except ValueError:
            return 0.0
        # "9" * 400 parses to inf
        return amount if math.isfinite(amount) else 0.0

    return 0.0


def round2(x: float) -> float:
    """
    Round to 2 decimal places.

    A machine-epsilon bias is added before rounding at the hundredths place
    so float artifacts like 1.005 -> 1.00499999... still round up to 1.01.
    Halves round toward positive infinity. Non-finite input, or input
    whose cent value overflows, comes back as 0.

    Args:
        x: Amount to round.

    Returns:
        float: Amount with cent precision.
    """
    scaled = (x + sys.float_info.epsilon) * 100 + 0.5
    if not math.isfinite(scaled):
        return 0.0
    return math.floor(scaled) / 100
