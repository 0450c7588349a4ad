"""
Report Module

Turns reconciliation results into summaries and console lines.

Features:
    - Run summary (drivers checked, mismatches, applied writes, failures)
    - One line per mismatched driver
    - Per-ride ledger trail for single-driver backfills

Functions:
    format_currency: Format an amount with the currency symbol.
    summarize: Aggregate counts and totals of a run.
    render_summary: Console lines for a run.
    render_ledger: Console lines for one driver's ledger trail.
"""

from ledger import (
    ACTION_CREDIT,
    ACTION_DEBT_CLEARED,
    ACTION_DEBT_INCREASE,
    ACTION_DEBT_PARTIAL,
    LedgerResult,
)
from money import round2


def format_currency(amount: float, symbol: str = "R$") -> str:
    """
    Format a monetary amount with the currency symbol.

    Returns:
        str: Formatted string like "R$1,234.56" (negatives as "-R$12.00").
    """
    if amount < 0:
        return f"-{symbol}{abs(amount):,.2f}"
    return f"{symbol}{amount:,.2f}"


def summarize(report) -> dict:
    """
    Aggregate a ReconciliationReport.

    Returns:
        dict: Contains:
            - drivers_checked: int
            - mismatch_count: int
            - applied_count: int
            - failed_count: int
            - total_computed_balance: float
            - total_computed_debt: float
            - mismatched_driver_ids: list[str]
            - failed_driver_ids: list[str]
    """
    total_balance = 0.0
    total_debt = 0.0
    for record in report.records:
        total_balance += record.computed_balance
        total_debt += record.computed_debt

    return {
        "drivers_checked": len(report.records),
        "mismatch_count": len(report.mismatches),
        "applied_count": len(report.applied),
        "failed_count": len(report.failures),
        "total_computed_balance": round2(total_balance),
        "total_computed_debt": round2(total_debt),
        "mismatched_driver_ids": [record.driver_id for record in report.mismatches],
        "failed_driver_ids": [driver_id for driver_id, _ in report.failures]
    }


def render_summary(report) -> list[str]:
    """
    Console lines for a run: mismatched drivers, failures, totals.
    """
    lines = ["Summary:"]

    for record in report.mismatches:
        lines.append(
            f"- {record.driver_id} ({record.email or 'no-email'}): rides={record.ride_count} "
            f"storedBalance={record.stored_balance:.2f} computed={record.computed_balance:.2f} "
            f"diff={record.balance_diff:.2f} storedDebt={record.stored_debt:.2f} "
            f"computedDebt={record.computed_debt:.2f} debtDiff={record.debt_diff:.2f}"
        )

    for driver_id, message in report.failures:
        lines.append(f"! {driver_id}: skipped ({message})")

    summary = summarize(report)
    lines.append("")
    lines.append(f"Drivers checked: {summary['drivers_checked']}")
    lines.append(f"Drivers with mismatch: {summary['mismatch_count']}")
    if summary["failed_count"]:
        lines.append(f"Drivers skipped after errors: {summary['failed_count']}")

    if report.apply:
        lines.append(f"Updates applied: {summary['applied_count']}")
    else:
        lines.append("")
        lines.append("Dry-run complete. Re-run with --apply to update mismatched users.")

    return lines


_ACTION_LABELS = {
    ACTION_CREDIT: "credit",
    ACTION_DEBT_CLEARED: "debt cleared",
    ACTION_DEBT_PARTIAL: "debt partially paid",
    ACTION_DEBT_INCREASE: "debt increase",
}


def render_ledger(result: LedgerResult) -> list[str]:
    """
    Console lines explaining how each ride moved balance and debt.
    """
    lines = []
    for step in result.steps:
        label = _ACTION_LABELS.get(step.action, step.action)
        line = f"  {step.ride_id}: {label} {format_currency(step.amount)}"
        if step.action == ACTION_DEBT_CLEARED:
            line += f" (credit to balance {format_currency(step.credit_to_balance or 0)})"
        line += (
            f" -> balance {format_currency(step.balance_after)},"
            f" debt {format_currency(step.debt_after)}"
        )
        lines.append(line)

    lines.append(f"  rides processed: {result.ride_count}")
    lines.append(f"  computed balance: {result.balance:.2f}")
    lines.append(f"  computed debt: {result.debt:.2f}")
    return lines
