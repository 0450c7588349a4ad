"""
Tests for the balance/debt fold over a driver's ride history.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger import (
    ACTION_CREDIT,
    ACTION_DEBT_CLEARED,
    ACTION_DEBT_INCREASE,
    ACTION_DEBT_PARTIAL,
    DriverMoneyState,
    apply_ride,
    compute_driver_gross,
    compute_platform_fee,
    fold_rides,
)
from rides import Ride


def ride(total, payment="cash", ride_id=None):
    return Ride(ride_id or f"r-{total}-{payment}", "driver-1", total_value=total, payment_type=payment)


class TestFees:
    def test_platform_fee_is_twenty_percent(self):
        assert compute_platform_fee(100) == 20.0
        assert compute_platform_fee(33.33) == 6.67

    def test_driver_gross(self):
        assert compute_driver_gross(100) == 80.0
        assert compute_driver_gross(33.33) == 26.66

    def test_gross_never_negative(self):
        assert compute_driver_gross(-50) == 0.0


class TestFoldScenarios:
    """Reference scenarios for the settlement rules."""

    def test_no_rides(self):
        result = fold_rides([])
        assert (result.balance, result.debt, result.ride_count) == (0, 0, 0)
        assert result.steps == []

    def test_digital_only(self):
        result = fold_rides([ride(100, "digital")])
        assert result.balance == pytest.approx(80)
        assert result.debt == 0
        assert result.ride_count == 1

    def test_cash_only(self):
        result = fold_rides([ride(100, "cash")])
        assert result.balance == 0
        assert result.debt == pytest.approx(20)

    def test_digital_clears_debt_then_credits(self):
        result = fold_rides([ride(100, "cash", "r1"), ride(100, "digital", "r2")])

        assert result.steps[0].debt_after == pytest.approx(20)
        assert result.debt == 0
        assert result.balance == pytest.approx(60)
        assert result.steps[1].action == ACTION_DEBT_CLEARED
        assert result.steps[1].amount == pytest.approx(20)
        assert result.steps[1].credit_to_balance == pytest.approx(60)

    def test_digital_exactly_clears_debt(self):
        result = fold_rides([
            ride(100, "cash", "r1"),
            ride(100, "cash", "r2"),
            ride(50, "digital", "r3"),
        ])

        assert result.steps[1].debt_after == pytest.approx(40)
        assert result.debt == 0
        assert result.balance == 0
        assert result.ride_count == 3

    def test_digital_partially_pays_debt(self):
        result = fold_rides([
            ride(100, "cash", "r1"),
            ride(100, "cash", "r2"),
            ride(25, "digital", "r3"),
        ])

        # gross 20 against debt 40
        assert result.debt == pytest.approx(20)
        assert result.balance == 0
        assert result.steps[2].action == ACTION_DEBT_PARTIAL
        assert result.steps[2].amount == pytest.approx(20)

    def test_order_matters(self):
        chronological = fold_rides([
            ride(100, "cash", "r1"),
            ride(100, "cash", "r2"),
            ride(50, "digital", "r3"),
        ])
        digital_first = fold_rides([
            ride(50, "digital", "r3"),
            ride(100, "cash", "r1"),
            ride(100, "cash", "r2"),
        ])

        assert (digital_first.balance, digital_first.debt) == pytest.approx((40, 40))
        assert (chronological.balance, chronological.debt) != (digital_first.balance, digital_first.debt)

    def test_unknown_payment_type_folds_as_cash(self):
        result = fold_rides([ride(100, "voucher")])
        assert result.debt == pytest.approx(20)
        assert result.steps[0].action == ACTION_DEBT_INCREASE

    def test_string_totals_are_parsed(self):
        result = fold_rides([ride("R$ 50,00", "digital")])
        assert result.balance == pytest.approx(40)

    def test_malformed_total_contributes_nothing(self):
        result = fold_rides([ride("n/a", "digital"), ride(None, "cash")])
        assert (result.balance, result.debt, result.ride_count) == (0, 0, 2)

    def test_overflowing_totals_contribute_nothing(self):
        result = fold_rides([
            ride("9" * 400, "cash", "r1"),
            ride(1e307, "digital", "r2"),
            ride(100, "cash", "r3"),
        ])
        assert result.ride_count == 3
        assert result.balance == 0
        assert result.debt == pytest.approx(20)

    def test_cent_values_accumulate_without_drift(self):
        rides = [ride(0.1, "digital", f"r{i}") for i in range(30)]
        # each ride: fee 0.02, gross 0.08
        assert fold_rides(rides).balance == pytest.approx(2.4)


class TestApplyRide:
    def test_does_not_mutate_state(self):
        state = DriverMoneyState(balance=10.0, debt=0.0)
        new_state, step = apply_ride(state, ride(100, "digital"))

        assert state == DriverMoneyState(10.0, 0.0)
        assert new_state.balance == pytest.approx(90)
        assert step.action == ACTION_CREDIT

    def test_credit_with_existing_balance(self):
        new_state, _ = apply_ride(DriverMoneyState(5.0, 0.0), ride(10, "digital"))
        assert new_state == DriverMoneyState(13.0, 0.0)


money_amounts = st.integers(min_value=-5_000, max_value=500_000).map(lambda c: c / 100)
payment_types = st.sampled_from(["digital", "cash"])
ride_lists = st.lists(st.tuples(money_amounts, payment_types), max_size=30)


class TestFoldProperties:
    """Invariants over arbitrary ride histories."""

    @given(ride_lists)
    def test_balance_and_debt_non_negative(self, history):
        result = fold_rides([ride(total, payment, f"r{i}") for i, (total, payment) in enumerate(history)])
        assert result.balance >= 0
        assert result.debt >= 0
        assert result.ride_count == len(history)

    @given(ride_lists)
    def test_debt_is_zero_after_clearing_or_credit(self, history):
        rides = [ride(total, payment, f"r{i}") for i, (total, payment) in enumerate(history)]
        result = fold_rides(rides)
        for step in result.steps:
            if step.action in (ACTION_DEBT_CLEARED, ACTION_CREDIT):
                assert step.debt_after == 0

    @given(ride_lists, st.integers(min_value=-10_000, max_value=0).map(lambda c: c / 100), payment_types)
    def test_non_positive_rides_change_nothing(self, history, total, payment):
        rides = [ride(t, p, f"r{i}") for i, (t, p) in enumerate(history)]
        base = fold_rides(rides)
        with_zero = fold_rides(rides + [ride(total, payment, "zero")])
        assert (with_zero.balance, with_zero.debt) == (base.balance, base.debt)

    @given(ride_lists)
    def test_results_are_whole_cents(self, history):
        result = fold_rides([ride(total, payment, f"r{i}") for i, (total, payment) in enumerate(history)])
        assert result.balance == pytest.approx(round(result.balance, 2), abs=1e-9)
        assert result.debt == pytest.approx(round(result.debt, 2), abs=1e-9)
