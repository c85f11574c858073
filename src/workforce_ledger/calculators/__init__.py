"""Pure ledger calculations."""

from workforce_ledger.calculators.financials import (
    compute_subtotal,
    compute_tax,
    format_invoice_number,
    next_invoice_number,
)
from workforce_ledger.calculators.hours import compute_hours
from workforce_ledger.calculators.types import (
    Financials,
    HoursResult,
    PaymentType,
    ProjectBreakdownRow,
    SummaryMetrics,
)
from workforce_ledger.calculators.working_days import (
    count_working_days,
    month_bounds,
    working_days_in_month,
)

__all__ = [
    "Financials",
    "HoursResult",
    "PaymentType",
    "ProjectBreakdownRow",
    "SummaryMetrics",
    "compute_hours",
    "compute_subtotal",
    "compute_tax",
    "count_working_days",
    "format_invoice_number",
    "month_bounds",
    "next_invoice_number",
    "working_days_in_month",
]
