"""Leave type, balance, and request models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_ledger.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from workforce_ledger.models.employee import Employee


class LeaveType(Base, TimestampMixin):
    """Leave category reference data."""

    __tablename__ = "leave_type"

    leave_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_days_per_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    auto_reset_annually: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def is_capped(self) -> bool:
        """Capped types draw down a balance; uncapped ones only track usage."""
        return self.max_days_per_year is not None


class LeaveBalance(Base, TimestampMixin):
    """Per employee, leave type and year day counter."""

    __tablename__ = "leave_balance"

    leave_balance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_type.leave_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    used_days: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    last_reset_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "leave_type_id", "year", name="leave_balance_identity_unique"
        ),
        CheckConstraint("used_days >= 0", name="leave_balance_used_non_negative"),
        CheckConstraint("total_days >= 0", name="leave_balance_total_non_negative"),
    )

    # Relationships
    leave_type: Mapped[LeaveType] = relationship()

    @property
    def remaining_days(self) -> Decimal:
        """Always derived, never stored."""
        return Decimal(self.total_days) - Decimal(self.used_days)


class LeaveRequest(Base, TimestampMixin):
    """A date range of leave against one leave type."""

    __tablename__ = "leave_request"

    leave_request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_type.leave_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    number_of_days: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("project.project_id", ondelete="SET NULL"),
        nullable=True,
    )
    mc_document_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    stand_in_employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="SET NULL"),
        nullable=True,
    )
    balance_deducted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="leave_request_dates_check"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="leave_request_status_check",
        ),
        Index("ix_leave_request_employee_dates", "employee_id", "start_date", "end_date"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id])
    leave_type: Mapped[LeaveType] = relationship()

    @property
    def year(self) -> int:
        """Balance year the request draws against."""
        return self.start_date.year
