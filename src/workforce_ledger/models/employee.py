"""Employee and project reference models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_ledger.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from workforce_ledger.models.timesheet import TimesheetEntry


class Employee(Base, TimestampMixin):
    """Employee record with the pay basis used for monthly subtotals."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    payment_type: Mapped[str | None] = mapped_column(String, nullable=True)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    daily_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    monthly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    contract_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive')",
            name="employee_status_check",
        ),
        CheckConstraint(
            "payment_type IS NULL OR payment_type IN ('hourly', 'daily', 'monthly', 'contract')",
            name="employee_payment_type_check",
        ),
    )

    # Relationships
    timesheets: Mapped[list[TimesheetEntry]] = relationship(back_populates="employee")


class Project(Base, TimestampMixin):
    """Client project that timesheet hours are booked against."""

    __tablename__ = "project"

    project_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
