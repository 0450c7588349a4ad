"""
Ledger Module

Rebuilds a driver's balance and debt from their history of finished rides.

Settlement rules per ride (platform fee = PLATFORM_FEE_PERCENTAGE):
    - fee = round2(total * fee_rate)
    - driver_gross = round2(max(0, total - fee))
    - Digital payment: the platform holds the money and owes the driver
      driver_gross. Outstanding debt is paid off first, whatever is left
      goes to the balance.
    - Cash payment: the driver kept the whole fare and now owes the
      platform its fee, which is added to the debt.

Because digital earnings pay off debt accrued by earlier cash rides, the
result depends on ride order. Rides must be folded oldest first.

Data Model:
    DriverMoneyState: (balance, debt), both non-negative
    LedgerStep: what one ride did to the state
        - action: credit | debt_cleared | debt_partial | debt_increase
    LedgerResult: final balance/debt, ride count and the step trail

Functions:
    compute_platform_fee: Platform commission for a ride total.
    compute_driver_gross: Driver share of a ride total.
    apply_ride: Fold a single ride into a state.
    fold_rides: Fold an ordered ride sequence from a zero state.
"""

from typing import NamedTuple, Optional

from config.finance_config import PLATFORM_FEE_PERCENTAGE
from money import parse_money, round2
from rides import Ride

ACTION_CREDIT = "credit"
ACTION_DEBT_CLEARED = "debt_cleared"
ACTION_DEBT_PARTIAL = "debt_partial"
ACTION_DEBT_INCREASE = "debt_increase"


class DriverMoneyState(NamedTuple):
    """Running money position of a driver."""
    balance: float = 0.0
    debt: float = 0.0


class LedgerStep(NamedTuple):
    """Effect of one ride on the driver's money position."""
    ride_id: str
    action: str
    amount: float
    credit_to_balance: Optional[float] = None
    balance_after: float = 0.0
    debt_after: float = 0.0

    def to_dict(self) -> dict:
        return self._asdict()


class LedgerResult(NamedTuple):
    balance: float
    debt: float
    ride_count: int
    steps: list

    def to_dict(self) -> dict:
        return {
            "balance": self.balance,
            "debt": self.debt,
            "ride_count": self.ride_count,
            "steps": [step.to_dict() for step in self.steps]
        }


def compute_platform_fee(total: float, fee_rate: float = PLATFORM_FEE_PERCENTAGE) -> float:
    """Platform commission on a ride total, rounded to cents."""
    return round2(total * fee_rate)


def compute_driver_gross(total: float, fee_rate: float = PLATFORM_FEE_PERCENTAGE) -> float:
    """Driver share of a ride total, never negative."""
    fee = compute_platform_fee(total, fee_rate)
    return round2(max(0.0, total - fee))


def apply_ride(
    state: DriverMoneyState,
    ride: Ride,
    fee_rate: float = PLATFORM_FEE_PERCENTAGE
) -> tuple[DriverMoneyState, LedgerStep]:
    """
    Fold one ride into the driver's money position.

    Args:
        state: Position before the ride.
        ride: The finished ride.
        fee_rate: Platform commission rate.

    Returns:
        tuple: (new DriverMoneyState, LedgerStep describing the change).

    Notes:
        - Does NOT mutate state or ride
        - Rides with total <= 0 leave balance and debt unchanged
    """
    total = parse_money(ride.total_value)
    fee = max(0.0, compute_platform_fee(total, fee_rate))
    driver_gross = compute_driver_gross(total, fee_rate)

    balance, debt = state.balance, state.debt

    if ride.is_digital:
        if debt > 0:
            if driver_gross >= debt:
                remaining = round2(driver_gross - debt)
                cleared = debt
                if remaining > 0:
                    balance = round2(balance + remaining)
                debt = 0.0
                action, amount, credit = ACTION_DEBT_CLEARED, cleared, remaining
            else:
                debt = round2(debt - driver_gross)
                action, amount, credit = ACTION_DEBT_PARTIAL, driver_gross, None
        else:
            balance = round2(balance + driver_gross)
            action, amount, credit = ACTION_CREDIT, driver_gross, None
    else:
        # Cash (or any unknown payment type): fee becomes debt
        debt = round2(debt + fee)
        action, amount, credit = ACTION_DEBT_INCREASE, fee, None

    step = LedgerStep(
        ride_id=ride.ride_id,
        action=action,
        amount=amount,
        credit_to_balance=credit,
        balance_after=balance,
        debt_after=debt
    )
    return DriverMoneyState(balance=balance, debt=debt), step


def fold_rides(rides: list[Ride], fee_rate: float = PLATFORM_FEE_PERCENTAGE) -> LedgerResult:
    """
    Rebuild balance and debt from an ordered ride history.

    Args:
        rides: Finished rides of ONE driver, oldest first
               (see rides.sort_rides).
        fee_rate: Platform commission rate.

    Returns:
        LedgerResult: Final balance, debt, number of rides folded and the
        per-ride step trail.
    """
    state = DriverMoneyState()
    steps = []

    for ride in rides:
        state, step = apply_ride(state, ride, fee_rate)
        steps.append(step)

    return LedgerResult(
        balance=state.balance,
        debt=state.debt,
        ride_count=len(steps),
        steps=steps
    )
