"""Timesheet entry model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_ledger.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from workforce_ledger.models.employee import Employee, Project


class TimesheetEntry(Base, TimestampMixin):
    """One employee's check-in/check-out for one work date."""

    __tablename__ = "timesheet_entry"

    timesheet_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_in: Mapped[datetime] = mapped_column(nullable=False)
    check_out: Mapped[datetime | None] = mapped_column(nullable=True)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    overtime_hours: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    project_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("project.project_id", ondelete="SET NULL"),
        nullable=True,
    )
    task_type: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="Present")
    approval_status: Mapped[str] = mapped_column(String, nullable=False, default="Draft")
    ot_approval_status: Mapped[str | None] = mapped_column(String, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    ot_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ot_approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    ot_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ot_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="timesheet_employee_date_unique"),
        CheckConstraint(
            "status IN ('Present', 'Absent', 'Half-Day')",
            name="timesheet_status_check",
        ),
        CheckConstraint(
            "approval_status IN ('Draft', 'Submitted', 'Approved', 'Rejected')",
            name="timesheet_approval_status_check",
        ),
        CheckConstraint(
            "ot_approval_status IS NULL OR ot_approval_status IN ('Pending', 'Approved', 'Rejected')",
            name="timesheet_ot_approval_status_check",
        ),
        CheckConstraint(
            "check_out IS NULL OR check_out > check_in",
            name="timesheet_checkout_after_checkin",
        ),
        CheckConstraint("total_hours <= 12", name="timesheet_max_hours"),
        Index("ix_timesheet_employee_check_in", "employee_id", "check_in"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="timesheets")
    project: Mapped[Project | None] = relationship()

    @property
    def is_open(self) -> bool:
        """Entry has a check-in but no check-out yet."""
        return self.check_out is None
