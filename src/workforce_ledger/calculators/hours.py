"""Derived hours for timesheet entries."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from workforce_ledger.calculators.types import HoursResult
from workforce_ledger.config import LedgerPolicy

HOURS_QUANTUM = Decimal("0.01")
SECONDS_PER_HOUR = Decimal("3600")
ZERO = Decimal("0")


def quantize_hours(value: Decimal) -> Decimal:
    """Round hours to the stored precision."""
    return value.quantize(HOURS_QUANTUM, rounding=ROUND_HALF_UP)


def exact_hours(check_in: datetime, check_out: datetime) -> Decimal:
    """Unrounded hour difference between two instants."""
    delta = check_out - check_in
    seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(
        1_000_000
    )
    return seconds / SECONDS_PER_HOUR


def overtime_for(total_hours: Decimal, policy: LedgerPolicy) -> Decimal:
    """Overtime is clamp(total - standard, 0, cap)."""
    if total_hours <= policy.standard_hours_per_day:
        return ZERO
    return min(total_hours - policy.standard_hours_per_day, policy.max_overtime_hours_per_day)


def compute_hours(
    check_in: datetime,
    check_out: datetime | None,
    policy: LedgerPolicy | None = None,
) -> HoursResult:
    """Compute total and overtime hours for a check-in/check-out pair.

    An open entry (no check-out) has zero hours. The ceiling check uses the
    unrounded difference so rounding can never let an over-long day through.
    """
    policy = policy or LedgerPolicy()
    if check_out is None:
        return HoursResult(total_hours=ZERO, overtime_hours=ZERO)

    raw = exact_hours(check_in, check_out)
    total = quantize_hours(raw)
    return HoursResult(
        total_hours=total,
        overtime_hours=quantize_hours(overtime_for(total, policy)),
        exceeds_ceiling=raw > policy.max_hours_per_day,
    )
