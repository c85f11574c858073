"""Subtotal, tax and invoice number arithmetic for monthly summaries."""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from workforce_ledger.calculators.types import Financials, PaymentType, SummaryMetrics
from workforce_ledger.config import LedgerPolicy

CENTS = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

INVOICE_PATTERN = re.compile(r"^INV-(\d{4})-(\d{2})-(\d{4,})$")


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_tax(subtotal: Decimal, tax_percentage: Decimal) -> Financials:
    """Apply a tax percentage to a subtotal.

    tax_amount = round(subtotal * pct / 100, 2) and
    total_amount = round(subtotal + tax_amount, 2), so the total always
    equals subtotal + tax exactly once both are in cents.
    """
    if subtotal < 0:
        raise ValueError("subtotal cannot be negative")
    if not ZERO <= tax_percentage <= HUNDRED:
        raise ValueError("tax_percentage must be between 0 and 100")

    subtotal = round_money(subtotal)
    tax_amount = round_money(subtotal * tax_percentage / HUNDRED)
    return Financials(
        subtotal=subtotal,
        tax_percentage=tax_percentage,
        tax_amount=tax_amount,
        total_amount=round_money(subtotal + tax_amount),
    )


def compute_subtotal(
    payment_type: str | None,
    metrics: SummaryMetrics,
    working_days_in_month: int,
    *,
    hourly_rate: Decimal | None = None,
    daily_rate: Decimal | None = None,
    monthly_rate: Decimal | None = None,
    contract_rate: Decimal | None = None,
    policy: LedgerPolicy | None = None,
) -> Decimal:
    """Derive a subtotal from the employee's pay basis.

    - hourly: worked hours at rate plus approved OT at rate * multiplier
    - daily: worked days at rate
    - monthly: rate pro-rated by worked days over working days in month
    - contract: fixed rate

    A missing pay basis or rate yields zero.
    """
    policy = policy or LedgerPolicy()

    if payment_type == PaymentType.HOURLY and hourly_rate is not None:
        amount = metrics.total_worked_hours * hourly_rate + (
            metrics.total_ot_hours * hourly_rate * policy.overtime_multiplier
        )
    elif payment_type == PaymentType.DAILY and daily_rate is not None:
        amount = Decimal(metrics.total_working_days) * daily_rate
    elif payment_type == PaymentType.MONTHLY and monthly_rate is not None:
        if working_days_in_month <= 0:
            amount = ZERO
        else:
            amount = Decimal(metrics.total_working_days) / Decimal(working_days_in_month) * monthly_rate
    elif payment_type == PaymentType.CONTRACT and contract_rate is not None:
        amount = contract_rate
    else:
        amount = ZERO

    return round_money(amount)


def format_invoice_number(year: int, month: int, sequence: int) -> str:
    """Format INV-YYYY-MM-####."""
    return f"INV-{year:04d}-{month:02d}-{sequence:04d}"


def parse_invoice_sequence(invoice_number: str) -> int | None:
    """Extract the sequence from an invoice number, None if malformed."""
    match = INVOICE_PATTERN.match(invoice_number)
    if match is None:
        return None
    return int(match.group(3))


def next_invoice_number(year: int, month: int, existing: list[str]) -> str:
    """Next unused invoice number for a month given the numbers already issued."""
    sequences = [seq for seq in (parse_invoice_sequence(n) for n in existing) if seq is not None]
    return format_invoice_number(year, month, max(sequences, default=0) + 1)
