"""Read-only reporting over the ledger, plus the last-work-date projection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from workforce_ledger.calculators.hours import quantize_hours
from workforce_ledger.models import (
    EmployeeLastWorkDate,
    LeaveRequest,
    LeaveType,
    TimesheetEntry,
)
from workforce_ledger.services.base import LedgerService
from workforce_ledger.services.state_machine import (
    LeaveRequestStatus,
    OvertimeStatus,
    TimesheetStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class LeaveTypeUsage:
    leave_type_id: UUID
    name: str
    request_count: int = 0
    total_days: Decimal = Decimal("0")


@dataclass
class LeaveStatistics:
    """Leave activity for one year."""

    year: int
    pending_requests: int = 0
    by_type: list[LeaveTypeUsage] = field(default_factory=list)
    # Approved days keyed by the month the leave starts in
    by_month: dict[int, Decimal] = field(default_factory=dict)


@dataclass
class TimesheetStatistics:
    """Timesheet activity for one day."""

    on_date: date
    approved_ot_hours: Decimal = Decimal("0")
    awaiting_approval: int = 0
    pending_ot_approvals: int = 0


class ReportingService(LedgerService):
    """Aggregates for dashboards. Nothing here changes ledger state,
    except the EmployeeLastWorkDate projection rebuilt on request."""

    entity_type = "report"

    async def leave_statistics(self, year: int) -> LeaveStatistics:
        first, last = date(year, 1, 1), date(year, 12, 31)
        in_year = (LeaveRequest.start_date >= first, LeaveRequest.start_date <= last)
        stats = LeaveStatistics(year=year)

        stats.pending_requests = (
            await self.session.execute(
                select(func.count())
                .select_from(LeaveRequest)
                .where(LeaveRequest.status == LeaveRequestStatus.PENDING.value, *in_year)
            )
        ).scalar_one()

        usage_rows = await self.session.execute(
            select(
                LeaveType.leave_type_id,
                LeaveType.name,
                func.count(LeaveRequest.leave_request_id),
                func.coalesce(func.sum(LeaveRequest.number_of_days), 0),
            )
            .join(LeaveRequest, LeaveRequest.leave_type_id == LeaveType.leave_type_id)
            .where(LeaveRequest.status == LeaveRequestStatus.APPROVED.value, *in_year)
            .group_by(LeaveType.leave_type_id, LeaveType.name)
            .order_by(LeaveType.name)
        )
        stats.by_type = [
            LeaveTypeUsage(type_id, name, count, Decimal(str(days)))
            for type_id, name, count, days in usage_rows
        ]

        approved = await self.session.execute(
            select(LeaveRequest.start_date, LeaveRequest.number_of_days).where(
                LeaveRequest.status == LeaveRequestStatus.APPROVED.value, *in_year
            )
        )
        for start_date, days in approved:
            stats.by_month[start_date.month] = (
                stats.by_month.get(start_date.month, Decimal("0")) + Decimal(days)
            )
        stats.by_month = dict(sorted(stats.by_month.items()))
        return stats

    async def timesheet_statistics(self, on_date: date) -> TimesheetStatistics:
        stats = TimesheetStatistics(on_date=on_date)

        approved_ot = (
            await self.session.execute(
                select(TimesheetEntry.overtime_hours).where(
                    TimesheetEntry.work_date == on_date,
                    TimesheetEntry.ot_approval_status == OvertimeStatus.APPROVED.value,
                )
            )
        ).scalars().all()
        stats.approved_ot_hours = quantize_hours(sum((Decimal(h) for h in approved_ot), Decimal("0")))

        stats.awaiting_approval = (
            await self.session.execute(
                select(func.count())
                .select_from(TimesheetEntry)
                .where(
                    TimesheetEntry.work_date == on_date,
                    TimesheetEntry.approval_status.in_(
                        [TimesheetStatus.DRAFT.value, TimesheetStatus.SUBMITTED.value]
                    ),
                )
            )
        ).scalar_one()

        # Overtime on a rejected entry will never be decided
        stats.pending_ot_approvals = (
            await self.session.execute(
                select(func.count())
                .select_from(TimesheetEntry)
                .where(
                    TimesheetEntry.work_date == on_date,
                    TimesheetEntry.overtime_hours > 0,
                    TimesheetEntry.ot_approval_status == OvertimeStatus.PENDING.value,
                    TimesheetEntry.approval_status != TimesheetStatus.REJECTED.value,
                )
            )
        ).scalar_one()
        return stats

    async def refresh_last_work_dates(self) -> int:
        """Rebuild the latest check-out per employee. Returns rows written."""
        latest = await self.session.execute(
            select(TimesheetEntry.employee_id, func.max(TimesheetEntry.check_out))
            .where(TimesheetEntry.check_out.is_not(None))
            .group_by(TimesheetEntry.employee_id)
        )
        refreshed_at = self.clock()
        count = 0
        for employee_id, last_check_out in latest.all():
            row = await self.session.get(EmployeeLastWorkDate, employee_id)
            if row is None:
                row = EmployeeLastWorkDate(employee_id=employee_id)
                self.session.add(row)
            row.last_check_out = last_check_out
            row.refreshed_at = refreshed_at
            count += 1
        await self.session.flush()
        logger.info("Refreshed last work date for %d employee(s)", count)
        return count

    async def last_work_date(self, employee_id: UUID) -> datetime | None:
        row = await self.session.get(EmployeeLastWorkDate, employee_id)
        return row.last_check_out if row is not None else None

