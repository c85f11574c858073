"""Monthly summary model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from workforce_ledger.models.base import Base, JSONType, TimestampMixin

METRIC_FIELDS = (
    "total_working_days",
    "total_worked_hours",
    "total_ot_hours",
    "approved_leaves",
    "absent_days",
    "project_breakdown",
)

FINANCIAL_FIELDS = (
    "subtotal",
    "tax_percentage",
    "tax_amount",
    "total_amount",
    "invoice_number",
    "payment_type",
    "subtotal_overridden",
)


class MonthlySummary(Base, TimestampMixin):
    """One employee's month of work, signed by staff then approved by admin."""

    __tablename__ = "monthly_summary"

    monthly_summary_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Metrics
    total_working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_worked_hours: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    total_ot_hours: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    approved_leaves: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    absent_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    project_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")

    # Staff sign-off
    staff_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    staff_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    staff_signed_by: Mapped[UUID | None] = mapped_column(nullable=True)

    # Admin approval
    admin_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    admin_approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    admin_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Financials
    payment_type: Mapped[str | None] = mapped_column(String, nullable=True)
    subtotal: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    tax_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    tax_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    # Set when an admin supplied the subtotal instead of deriving it
    subtotal_overridden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by: Mapped[UUID | None] = mapped_column(nullable=True)
    regeneration_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="monthly_summary_identity_unique"),
        CheckConstraint("month >= 1 AND month <= 12", name="monthly_summary_month_check"),
        CheckConstraint("year >= 2020 AND year <= 2100", name="monthly_summary_year_check"),
        CheckConstraint(
            "status IN ('DRAFT', 'SIGNED_BY_STAFF', 'APPROVED', 'REJECTED')",
            name="monthly_summary_status_check",
        ),
        CheckConstraint(
            "status != 'SIGNED_BY_STAFF' OR "
            "(staff_signature IS NOT NULL AND staff_signed_at IS NOT NULL)",
            name="monthly_summary_staff_signature_check",
        ),
        CheckConstraint(
            "status NOT IN ('APPROVED', 'REJECTED') OR "
            "(admin_signature IS NOT NULL AND admin_approved_at IS NOT NULL)",
            name="monthly_summary_admin_signature_check",
        ),
        CheckConstraint(
            "tax_percentage IS NULL OR (tax_percentage >= 0 AND tax_percentage <= 100)",
            name="monthly_summary_tax_percentage_check",
        ),
        Index("ix_monthly_summary_month_year", "month", "year"),
    )

    def metrics_snapshot(self) -> dict[str, Any]:
        """Current values of the aggregated metric fields."""
        return {name: getattr(self, name) for name in METRIC_FIELDS}
