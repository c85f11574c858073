"""Type definitions for ledger calculations."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class PaymentType(str, Enum):
    """Employee pay basis."""

    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"
    CONTRACT = "contract"


@dataclass(frozen=True)
class HoursResult:
    """Derived hours for one timesheet entry."""

    total_hours: Decimal
    overtime_hours: Decimal
    exceeds_ceiling: bool = False

    @property
    def regular_hours(self) -> Decimal:
        return self.total_hours - self.overtime_hours


@dataclass
class ProjectBreakdownRow:
    """Hours booked against one project in a month."""

    project_id: UUID | None
    project_name: str
    days_worked: int = 0
    total_hours: Decimal = Decimal("0")
    ot_hours: Decimal = Decimal("0")

    def to_json(self) -> dict[str, Any]:
        """JSON-safe form stored on the summary."""
        return {
            "project_id": str(self.project_id) if self.project_id else None,
            "project_name": self.project_name,
            "days_worked": self.days_worked,
            "total_hours": str(self.total_hours),
            "ot_hours": str(self.ot_hours),
        }


@dataclass
class SummaryMetrics:
    """Aggregated month of work for one employee."""

    total_working_days: int = 0
    total_worked_hours: Decimal = Decimal("0")
    total_ot_hours: Decimal = Decimal("0")
    approved_leaves: Decimal = Decimal("0")
    absent_days: int = 0
    project_breakdown: list[ProjectBreakdownRow] = field(default_factory=list)


@dataclass(frozen=True)
class Financials:
    """Invoice amounts for a summary."""

    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
