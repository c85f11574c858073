"""Leave request service - filing, approval and balance deduction."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_ledger.actor import Actor
from workforce_ledger.calculators import count_working_days
from workforce_ledger.config import LedgerPolicy
from workforce_ledger.errors import LedgerError, NotFoundError, OverlapError, ValidationError
from workforce_ledger.events import LeaveRequested, LeaveRequestStatusChanged
from workforce_ledger.models import Employee, LeaveRequest, LeaveType, Project, TimesheetEntry
from workforce_ledger.services.base import LedgerService
from workforce_ledger.services.leave_balance_service import LeaveBalanceService
from workforce_ledger.services.state_machine import (
    AttendanceStatus,
    LeaveRequestStateMachine,
    LeaveRequestStatus,
    TimesheetStateMachine,
)

logger = logging.getLogger(__name__)

# Reference leave types every installation starts with
DEFAULT_LEAVE_TYPES: tuple[dict[str, Any], ...] = (
    {
        "name": "Annual Leave",
        "code": "ANNUAL",
        "description": "Paid annual leave drawn from a yearly allowance",
        "requires_approval": True,
        "max_days_per_year": 12,
        "auto_reset_annually": True,
    },
    {
        "name": "Sick Leave",
        "code": "SICK",
        "description": "Medical leave, a certificate reference may be attached",
        "requires_approval": True,
        "max_days_per_year": None,
        "auto_reset_annually": False,
    },
    {
        "name": "Unpaid Leave",
        "code": "UNPAID",
        "description": "Leave without pay",
        "requires_approval": True,
        "max_days_per_year": None,
        "auto_reset_annually": False,
    },
)


@dataclass
class BulkLeaveApprovalResult:
    """Outcome of approving a batch of leave requests."""

    approved: list[UUID] = field(default_factory=list)
    failed: dict[UUID, dict[str, Any]] = field(default_factory=dict)

    @property
    def approved_count(self) -> int:
        return len(self.approved)


class LeaveService(LedgerService):
    """Service for leave requests.

    Operations:
    - create_request: validate and file a pending request
    - approve_request: flip to approved and deduct the balance atomically
    - reject_request / cancel_request: close a pending request
    - bulk_approve: approve a batch, each request in its own savepoint
    """

    entity_type = "leave_request"

    def __init__(
        self,
        session: AsyncSession,
        policy: LedgerPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        correlation_id: UUID | None = None,
    ):
        super().__init__(session, policy, clock, correlation_id)
        self.balances = LeaveBalanceService(session, self.policy, self.clock, self.correlation_id)
        # Deduction events belong to the same unit of work
        self.balances.events = self.events

    async def ensure_default_leave_types(self) -> list[LeaveType]:
        """Insert the reference leave types that are missing. Returns the ones added."""
        existing = set((await self.session.execute(select(LeaveType.code))).scalars())
        added = []
        for attrs in DEFAULT_LEAVE_TYPES:
            if attrs["code"] in existing:
                continue
            leave_type = LeaveType(leave_type_id=uuid4(), **attrs)
            self.session.add(leave_type)
            added.append(leave_type)
        if added:
            await self._flush_unique("Leave type already exists")
            logger.info("Seeded leave types: %s", ", ".join(t.code for t in added))
        return added

    async def list_leave_types(self) -> Sequence[LeaveType]:
        result = await self.session.execute(select(LeaveType).order_by(LeaveType.name))
        return result.scalars().all()

    async def get(self, request_id: UUID, for_update: bool = False) -> LeaveRequest:
        """Load a request, raising NotFoundError if it does not exist."""
        stmt = select(LeaveRequest).where(LeaveRequest.leave_request_id == request_id)
        if for_update:
            stmt = stmt.with_for_update()
        request = (await self.session.execute(stmt)).scalar_one_or_none()
        if request is None:
            raise NotFoundError(f"Leave request {request_id} not found")
        return request

    async def list_requests(
        self,
        employee_id: UUID | None = None,
        status: str | None = None,
        year: int | None = None,
    ) -> Sequence[LeaveRequest]:
        stmt = select(LeaveRequest)
        if employee_id is not None:
            stmt = stmt.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(LeaveRequest.status == status)
        if year is not None:
            stmt = stmt.where(
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date <= date(year, 12, 31),
            )
        result = await self.session.execute(stmt.order_by(LeaveRequest.start_date))
        return result.scalars().all()

    async def create_request(
        self,
        actor: Actor,
        employee_id: UUID,
        leave_type_id: UUID,
        start_date: date,
        end_date: date,
        reason: str | None = None,
        project_id: UUID | None = None,
        mc_document_url: str | None = None,
        stand_in_employee_id: UUID | None = None,
    ) -> LeaveRequest:
        """File a pending request. number_of_days is fixed here for good.

        Capped types must have enough remaining balance now; approval checks
        again under the balance lock.
        """
        if end_date < start_date:
            raise ValidationError("end_date cannot be before start_date", field="end_date")
        number_of_days = count_working_days(start_date, end_date)
        if number_of_days <= 0:
            raise ValidationError("Date range contains no working days", field="end_date")

        if await self.session.get(Employee, employee_id) is None:
            raise ValidationError(f"Employee {employee_id} not found", field="employee_id")
        leave_type = await self.balances.get_leave_type(leave_type_id)
        if project_id is not None and await self.session.get(Project, project_id) is None:
            raise ValidationError(f"Project {project_id} not found", field="project_id")
        if stand_in_employee_id is not None:
            if stand_in_employee_id == employee_id:
                raise ValidationError(
                    "Stand-in cannot be the requesting employee", field="stand_in_employee_id"
                )
            if await self.session.get(Employee, stand_in_employee_id) is None:
                raise ValidationError("Invalid stand-in employee", field="stand_in_employee_id")

        await self._ensure_no_leave_overlap(employee_id, start_date, end_date)
        await self._ensure_no_timesheet_overlap(employee_id, start_date, end_date)
        balance = await self.balances.get_balance(employee_id, leave_type_id, start_date.year)
        self.balances.check_available(
            leave_type, employee_id, start_date.year, Decimal(number_of_days), balance
        )

        request = LeaveRequest(
            leave_request_id=uuid4(),
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
            number_of_days=Decimal(number_of_days),
            reason=reason,
            status=LeaveRequestStatus.PENDING.value,
            project_id=project_id,
            mc_document_url=mc_document_url,
            stand_in_employee_id=stand_in_employee_id,
            balance_deducted=False,
        )
        self.session.add(request)
        await self.session.flush()

        await self._record_audit(
            actor,
            request.leave_request_id,
            "created",
            after={
                "leave_type": leave_type.code,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "number_of_days": number_of_days,
            },
        )
        self._publish(
            LeaveRequested(
                metadata=self._metadata(actor),
                leave_request_id=request.leave_request_id,
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                start_date=start_date,
                end_date=end_date,
                number_of_days=request.number_of_days,
            )
        )
        logger.info(
            "Leave request %s filed: employee %s, %s, %s to %s (%d days)",
            request.leave_request_id,
            employee_id,
            leave_type.code,
            start_date,
            end_date,
            number_of_days,
        )
        return request

    async def approve_request(self, actor: Actor, request_id: UUID) -> LeaveRequest:
        """pending → approved, deducting the balance in the same transaction.

        Approving an approved request returns it unchanged, and the
        balance_deducted flag guarantees a request is drawn at most once.
        """
        request = await self.get(request_id, for_update=True)
        if request.status == LeaveRequestStatus.APPROVED:
            return request
        LeaveRequestStateMachine.validate_transition(
            request.status, LeaveRequestStatus.APPROVED.value
        )

        if not request.balance_deducted:
            await self.balances.deduct(
                actor,
                request.employee_id,
                request.leave_type_id,
                request.year,
                Decimal(request.number_of_days),
            )
            request.balance_deducted = True

        request.approved_by = actor.user_id
        request.approved_at = self.clock()
        request.rejection_reason = None
        return await self._transition(actor, request, LeaveRequestStatus.APPROVED.value)

    async def reject_request(self, actor: Actor, request_id: UUID, reason: str) -> LeaveRequest:
        """pending → rejected with a mandatory reason."""
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", field="reason")
        request = await self.get(request_id, for_update=True)
        LeaveRequestStateMachine.validate_transition(
            request.status, LeaveRequestStatus.REJECTED.value
        )
        request.approved_by = actor.user_id
        request.approved_at = self.clock()
        request.rejection_reason = reason
        return await self._transition(actor, request, LeaveRequestStatus.REJECTED.value, reason)

    async def cancel_request(self, actor: Actor, request_id: UUID) -> LeaveRequest:
        """pending → cancelled."""
        request = await self.get(request_id, for_update=True)
        LeaveRequestStateMachine.validate_transition(
            request.status, LeaveRequestStatus.CANCELLED.value
        )
        return await self._transition(actor, request, LeaveRequestStatus.CANCELLED.value)

    async def bulk_approve(
        self, actor: Actor, request_ids: Sequence[UUID]
    ) -> BulkLeaveApprovalResult:
        """Approve each request on its own; one failure does not undo the others."""
        if not request_ids:
            raise ValidationError("Provide at least one leave request id", field="request_ids")

        result = BulkLeaveApprovalResult()
        for request_id in dict.fromkeys(request_ids):
            published = len(self.events)
            try:
                async with self.session.begin_nested():
                    await self.approve_request(actor, request_id)
            except LedgerError as exc:
                del self.events[published:]
                result.failed[request_id] = exc.to_dict()
                logger.warning("Bulk leave approval skipped %s: %s", request_id, exc.code)
            else:
                result.approved.append(request_id)

        logger.info(
            "Bulk leave approval: %d approved, %d failed",
            result.approved_count,
            len(result.failed),
        )
        return result

    async def _transition(
        self,
        actor: Actor,
        request: LeaveRequest,
        to_status: str,
        reason: str | None = None,
    ) -> LeaveRequest:
        from_status = request.status
        request.status = to_status
        await self.session.flush()

        await self._record_audit(
            actor,
            request.leave_request_id,
            f"status_change:{from_status}:{to_status}",
            after={"reason": reason} if reason else None,
        )
        self._publish(
            LeaveRequestStatusChanged(
                metadata=self._metadata(actor),
                leave_request_id=request.leave_request_id,
                employee_id=request.employee_id,
                from_status=from_status,
                to_status=to_status,
                reason=reason,
            )
        )
        logger.info("Leave request %s: %s -> %s", request.leave_request_id, from_status, to_status)
        return request

    async def _ensure_no_leave_overlap(
        self, employee_id: UUID, start_date: date, end_date: date
    ) -> None:
        stmt = select(LeaveRequest.leave_request_id).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(sorted(LeaveRequestStateMachine.ACTIVE)),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        clash = (await self.session.execute(stmt.limit(1))).scalar_one_or_none()
        if clash is not None:
            raise OverlapError(
                "Leave overlaps an existing pending or approved request",
                conflicting_request_id=str(clash),
            )

    async def _ensure_no_timesheet_overlap(
        self, employee_id: UUID, start_date: date, end_date: date
    ) -> None:
        stmt = select(TimesheetEntry.work_date).where(
            TimesheetEntry.employee_id == employee_id,
            TimesheetEntry.status == AttendanceStatus.PRESENT.value,
            TimesheetEntry.approval_status.in_(sorted(TimesheetStateMachine.COMMITTED)),
            TimesheetEntry.work_date >= start_date,
            TimesheetEntry.work_date <= end_date,
        )
        worked = (await self.session.execute(stmt.limit(1))).scalar_one_or_none()
        if worked is not None:
            raise OverlapError(
                f"Employee has a submitted or approved timesheet on {worked.isoformat()}",
                work_date=worked.isoformat(),
            )
