"""Collaborator-facing facade over the ledger services.

Every call runs in its own transaction: commit on success, rollback on
any error. Domain events collected during the call are handed to the
emitter only after the commit, so listeners never see work that was
rolled back.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workforce_ledger.actor import Actor, Role
from workforce_ledger.config import LedgerPolicy
from workforce_ledger.errors import PermissionDeniedError
from workforce_ledger.events import AsyncEventEmitter
from workforce_ledger.models import LeaveBalance, LeaveRequest, LeaveType, MonthlySummary, TimesheetEntry
from workforce_ledger.services import (
    AllocationResult,
    BulkApproveResult,
    BulkLeaveApprovalResult,
    GenerateAllResult,
    LeaveBalanceService,
    LeaveService,
    MonthlySummaryService,
    ReportingService,
    TimesheetService,
    visible_fields,
)
from workforce_ledger.services.base import LedgerService
from workforce_ledger.services.reporting_service import LeaveStatistics, TimesheetStatistics

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=LedgerService)

__all__ = ["Actor", "LedgerGateway", "Role"]


def require_admin(actor: Actor, operation: str) -> None:
    if not actor.is_admin:
        logger.warning("Denied %s to %s %s", operation, actor.role.value, actor.user_id)
        raise PermissionDeniedError(f"Only admins may {operation}")


def require_self_or_admin(actor: Actor, employee_id: UUID, operation: str) -> None:
    """Staff act only on their own records; admins act on anyone's."""
    if actor.is_admin or actor.owns(employee_id):
        return
    logger.warning("Denied %s on employee %s to %s", operation, employee_id, actor.user_id)
    raise PermissionDeniedError(f"You can only {operation} your own records")


class LedgerGateway:
    """Role-checked entry point for every ledger operation.

    Example:
        gateway = LedgerGateway(session_factory, emitter=emitter)
        entry = await gateway.timesheet_create(actor, employee_id, work_date, check_in)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: LedgerPolicy | None = None,
        emitter: AsyncEventEmitter | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session_factory = session_factory
        self.policy = policy or LedgerPolicy()
        self.emitter = emitter
        self.clock = clock

    @asynccontextmanager
    async def _transaction(self, service_cls: type[S]) -> AsyncIterator[S]:
        async with self.session_factory() as session:
            service = service_cls(session, self.policy, self.clock)
            try:
                yield service
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        if self.emitter is not None and service.events:
            await self.emitter.emit_all(service.events)

    # ------------------------------------------------------------------
    # Timesheets
    # ------------------------------------------------------------------

    async def timesheet_create(
        self,
        actor: Actor,
        employee_id: UUID,
        work_date: date,
        check_in: datetime,
        **fields: Any,
    ) -> TimesheetEntry:
        require_self_or_admin(actor, employee_id, "create timesheets for")
        async with self._transaction(TimesheetService) as service:
            return await service.create(actor, employee_id, work_date, check_in, **fields)

    async def timesheet_update(self, actor: Actor, entry_id: UUID, **fields: Any) -> TimesheetEntry:
        async with self._transaction(TimesheetService) as service:
            entry = await service.get(entry_id)
            require_self_or_admin(actor, entry.employee_id, "update timesheets of")
            return await service.update(actor, entry_id, **fields)

    async def timesheet_submit(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        async with self._transaction(TimesheetService) as service:
            entry = await service.get(entry_id)
            require_self_or_admin(actor, entry.employee_id, "submit timesheets of")
            return await service.submit(actor, entry_id)

    async def timesheet_approve(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        require_admin(actor, "approve timesheets")
        async with self._transaction(TimesheetService) as service:
            return await service.approve(actor, entry_id)

    async def timesheet_reject(self, actor: Actor, entry_id: UUID, reason: str) -> TimesheetEntry:
        require_admin(actor, "reject timesheets")
        async with self._transaction(TimesheetService) as service:
            return await service.reject(actor, entry_id, reason)

    async def timesheet_reopen(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        async with self._transaction(TimesheetService) as service:
            entry = await service.get(entry_id)
            require_self_or_admin(actor, entry.employee_id, "reopen timesheets of")
            return await service.reopen(actor, entry_id)

    async def timesheet_approve_overtime(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        require_admin(actor, "approve overtime")
        async with self._transaction(TimesheetService) as service:
            return await service.approve_overtime(actor, entry_id)

    async def timesheet_reject_overtime(
        self, actor: Actor, entry_id: UUID, reason: str
    ) -> TimesheetEntry:
        require_admin(actor, "reject overtime")
        async with self._transaction(TimesheetService) as service:
            return await service.reject_overtime(actor, entry_id, reason)

    async def timesheet_bulk_approve(
        self, actor: Actor, entry_ids: Sequence[UUID]
    ) -> BulkApproveResult:
        require_admin(actor, "bulk approve timesheets")
        async with self._transaction(TimesheetService) as service:
            return await service.bulk_approve(actor, entry_ids)

    async def timesheet_get(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        async with self._transaction(TimesheetService) as service:
            entry = await service.get(entry_id)
            require_self_or_admin(actor, entry.employee_id, "view timesheets of")
            return entry

    async def timesheet_list(
        self,
        actor: Actor,
        employee_id: UUID,
        start: date,
        end: date,
        approval_status: str | None = None,
    ) -> Sequence[TimesheetEntry]:
        require_self_or_admin(actor, employee_id, "list timesheets of")
        async with self._transaction(TimesheetService) as service:
            return await service.list_for_employee(employee_id, start, end, approval_status)

    # ------------------------------------------------------------------
    # Leave
    # ------------------------------------------------------------------

    async def leave_create_request(
        self,
        actor: Actor,
        employee_id: UUID,
        leave_type_id: UUID,
        start_date: date,
        end_date: date,
        **fields: Any,
    ) -> LeaveRequest:
        require_self_or_admin(actor, employee_id, "request leave for")
        async with self._transaction(LeaveService) as service:
            return await service.create_request(
                actor, employee_id, leave_type_id, start_date, end_date, **fields
            )

    async def leave_approve_request(self, actor: Actor, request_id: UUID) -> LeaveRequest:
        require_admin(actor, "approve leave")
        async with self._transaction(LeaveService) as service:
            return await service.approve_request(actor, request_id)

    async def leave_reject_request(
        self, actor: Actor, request_id: UUID, reason: str
    ) -> LeaveRequest:
        require_admin(actor, "reject leave")
        async with self._transaction(LeaveService) as service:
            return await service.reject_request(actor, request_id, reason)

    async def leave_cancel_request(self, actor: Actor, request_id: UUID) -> LeaveRequest:
        async with self._transaction(LeaveService) as service:
            request = await service.get(request_id)
            require_self_or_admin(actor, request.employee_id, "cancel leave of")
            return await service.cancel_request(actor, request_id)

    async def leave_bulk_approve(
        self, actor: Actor, request_ids: Sequence[UUID]
    ) -> BulkLeaveApprovalResult:
        require_admin(actor, "bulk approve leave")
        async with self._transaction(LeaveService) as service:
            return await service.bulk_approve(actor, request_ids)

    async def leave_list_requests(
        self,
        actor: Actor,
        employee_id: UUID | None = None,
        status: str | None = None,
        year: int | None = None,
    ) -> Sequence[LeaveRequest]:
        if not actor.is_admin:
            # Staff listings are always scoped to themselves
            if employee_id is not None and not actor.owns(employee_id):
                raise PermissionDeniedError("You can only list your own leave requests")
            employee_id = actor.employee_id
        async with self._transaction(LeaveService) as service:
            return await service.list_requests(employee_id, status, year)

    async def leave_types(self, actor: Actor) -> Sequence[LeaveType]:
        async with self._transaction(LeaveService) as service:
            return await service.list_leave_types()

    async def leave_seed_types(self, actor: Actor) -> list[LeaveType]:
        require_admin(actor, "configure leave types")
        async with self._transaction(LeaveService) as service:
            return await service.ensure_default_leave_types()

    async def leave_allocate_balance(
        self,
        actor: Actor,
        employee_id: UUID,
        leave_type_id: UUID,
        year: int,
        total_days: Decimal | None = None,
    ) -> LeaveBalance:
        require_admin(actor, "allocate leave balances")
        async with self._transaction(LeaveBalanceService) as service:
            return await service.allocate(actor, employee_id, leave_type_id, year, total_days)

    async def leave_allocate_annual(
        self, actor: Actor, year: int, total_days: Decimal | None = None
    ) -> AllocationResult:
        require_admin(actor, "allocate leave balances")
        async with self._transaction(LeaveBalanceService) as service:
            return await service.allocate_annual_for_all(actor, year, total_days)

    async def leave_get_balance(
        self, actor: Actor, employee_id: UUID, leave_type_id: UUID, year: int
    ) -> LeaveBalance | None:
        require_self_or_admin(actor, employee_id, "view leave balances of")
        async with self._transaction(LeaveBalanceService) as service:
            return await service.get_balance(employee_id, leave_type_id, year)

    async def leave_list_balances(
        self, actor: Actor, employee_id: UUID, year: int
    ) -> Sequence[LeaveBalance]:
        require_self_or_admin(actor, employee_id, "view leave balances of")
        async with self._transaction(LeaveBalanceService) as service:
            return await service.list_balances(employee_id, year)

    # ------------------------------------------------------------------
    # Monthly summaries
    # ------------------------------------------------------------------

    async def summary_generate(
        self,
        actor: Actor,
        employee_id: UUID,
        month: int,
        year: int,
        tax_percentage: Decimal | None = None,
    ) -> MonthlySummary:
        require_admin(actor, "generate monthly summaries")
        async with self._transaction(MonthlySummaryService) as service:
            return await service.generate(actor, employee_id, month, year, tax_percentage)

    async def summary_generate_for_all(
        self,
        actor: Actor,
        month: int,
        year: int,
        tax_percentage: Decimal | None = None,
    ) -> GenerateAllResult:
        require_admin(actor, "generate monthly summaries")
        async with self._transaction(MonthlySummaryService) as service:
            return await service.generate_for_all(actor, month, year, tax_percentage)

    async def summary_sign_by_staff(
        self, actor: Actor, summary_id: UUID, signature_ref: str
    ) -> MonthlySummary:
        async with self._transaction(MonthlySummaryService) as service:
            return await service.sign_by_staff(actor, summary_id, signature_ref)

    async def summary_approve(
        self,
        actor: Actor,
        summary_id: UUID,
        signature_ref: str,
        remarks: str | None = None,
    ) -> MonthlySummary:
        require_admin(actor, "approve monthly summaries")
        async with self._transaction(MonthlySummaryService) as service:
            return await service.approve(actor, summary_id, signature_ref, remarks)

    async def summary_reject(
        self, actor: Actor, summary_id: UUID, signature_ref: str, remarks: str
    ) -> MonthlySummary:
        require_admin(actor, "reject monthly summaries")
        async with self._transaction(MonthlySummaryService) as service:
            return await service.reject(actor, summary_id, signature_ref, remarks)

    async def summary_regenerate(self, actor: Actor, summary_id: UUID) -> MonthlySummary:
        require_admin(actor, "regenerate monthly summaries")
        async with self._transaction(MonthlySummaryService) as service:
            return await service.regenerate(actor, summary_id)

    async def summary_compute_financials(
        self,
        actor: Actor,
        summary_id: UUID,
        *,
        subtotal: Decimal | None = None,
        tax_percentage: Decimal | None = None,
    ) -> MonthlySummary:
        require_admin(actor, "compute financials")
        async with self._transaction(MonthlySummaryService) as service:
            return await service.compute_financials(
                actor, summary_id, tax_percentage=tax_percentage, subtotal=subtotal
            )

    async def summary_bulk_approve(
        self,
        actor: Actor,
        summary_ids: Sequence[UUID],
        signature_ref: str,
        remarks: str | None = None,
    ) -> list[MonthlySummary]:
        require_admin(actor, "bulk approve monthly summaries")
        async with self._transaction(MonthlySummaryService) as service:
            return await service.bulk_approve(actor, summary_ids, signature_ref, remarks)

    async def summary_get(self, actor: Actor, summary_id: UUID) -> dict[str, Any]:
        """A summary as the caller may see it."""
        async with self._transaction(MonthlySummaryService) as service:
            summary = await service.get(summary_id)
            require_self_or_admin(actor, summary.employee_id, "view summaries of")
            return visible_fields(summary, actor.role)

    async def summary_list(
        self,
        actor: Actor,
        month: int | None = None,
        year: int | None = None,
        status: str | None = None,
        employee_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        if not actor.is_admin:
            if employee_id is not None and not actor.owns(employee_id):
                raise PermissionDeniedError("You can only list your own summaries")
            employee_id = actor.employee_id
        async with self._transaction(MonthlySummaryService) as service:
            summaries = await service.list_summaries(month, year, status, employee_id)
            return [visible_fields(s, actor.role) for s in summaries]

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def report_leave_statistics(self, actor: Actor, year: int) -> LeaveStatistics:
        require_admin(actor, "view leave statistics")
        async with self._transaction(ReportingService) as service:
            return await service.leave_statistics(year)

    async def report_timesheet_statistics(
        self, actor: Actor, on_date: date
    ) -> TimesheetStatistics:
        require_admin(actor, "view timesheet statistics")
        async with self._transaction(ReportingService) as service:
            return await service.timesheet_statistics(on_date)

    async def report_refresh_last_work_dates(self, actor: Actor) -> int:
        require_admin(actor, "refresh reporting projections")
        async with self._transaction(ReportingService) as service:
            return await service.refresh_last_work_dates()

    async def report_last_work_date(self, actor: Actor, employee_id: UUID) -> datetime | None:
        require_self_or_admin(actor, employee_id, "view the last work date of")
        async with self._transaction(ReportingService) as service:
            return await service.last_work_date(employee_id)
