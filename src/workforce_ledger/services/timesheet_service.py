"""Timesheet service - entry validation, derived hours and approval."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import or_, select

from workforce_ledger.actor import Actor
from workforce_ledger.calculators import HoursResult, compute_hours
from workforce_ledger.database import acquire_employee_lock
from workforce_ledger.errors import (
    DuplicateError,
    HoursCeilingError,
    InvalidStateTransitionError,
    NotFoundError,
    OverlapError,
    ValidationError,
)
from workforce_ledger.events import OvertimeDecided, TimesheetCreated, TimesheetStatusChanged
from workforce_ledger.models import Employee, Project, TimesheetEntry
from workforce_ledger.services.base import LedgerService, snapshot
from workforce_ledger.services.locking_service import LockingService
from workforce_ledger.services.state_machine import (
    AttendanceStatus,
    OvertimeStateMachine,
    OvertimeStatus,
    TimesheetStateMachine,
    TimesheetStatus,
)

logger = logging.getLogger(__name__)

LOCK_SCOPE = "timesheet"

# Fields a caller may set through update()
UPDATABLE_FIELDS = frozenset(
    {
        "work_date",
        "check_in",
        "check_out",
        "project_id",
        "task_type",
        "status",
        "remarks",
        "ot_justification",
    }
)

AUDIT_FIELDS = (
    "work_date",
    "check_in",
    "check_out",
    "total_hours",
    "overtime_hours",
    "project_id",
    "task_type",
    "status",
    "approval_status",
    "ot_approval_status",
    "remarks",
    "ot_justification",
)


@dataclass
class BulkApproveResult:
    """Outcome of approving a batch of timesheet entries."""

    approved: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)

    @property
    def approved_count(self) -> int:
        return len(self.approved)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def _as_utc(value: datetime, name: str) -> datetime:
    if value.tzinfo is None:
        raise ValidationError(f"{name} must be timezone-aware", field=name)
    return value.astimezone(timezone.utc)


class TimesheetService(LedgerService):
    """Service for timesheet entries.

    Operations:
    - create / update: validate the interval and derive hours
    - submit / approve / reject / reopen: approval workflow
    - approve_overtime / reject_overtime: overtime workflow
    - bulk_approve: approve a batch of submitted entries
    """

    entity_type = "timesheet_entry"

    async def get(self, entry_id: UUID, for_update: bool = False) -> TimesheetEntry:
        """Load an entry, raising NotFoundError if it does not exist."""
        stmt = select(TimesheetEntry).where(TimesheetEntry.timesheet_entry_id == entry_id)
        if for_update:
            stmt = stmt.with_for_update()
        entry = (await self.session.execute(stmt)).scalar_one_or_none()
        if entry is None:
            raise NotFoundError(f"Timesheet entry {entry_id} not found")
        return entry

    async def list_for_employee(
        self,
        employee_id: UUID,
        start: date,
        end: date,
        approval_status: str | None = None,
    ) -> Sequence[TimesheetEntry]:
        """Entries of one employee with work_date in [start, end]."""
        stmt = select(TimesheetEntry).where(
            TimesheetEntry.employee_id == employee_id,
            TimesheetEntry.work_date >= start,
            TimesheetEntry.work_date <= end,
        )
        if approval_status is not None:
            stmt = stmt.where(TimesheetEntry.approval_status == approval_status)
        result = await self.session.execute(stmt.order_by(TimesheetEntry.check_in))
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Entry mutation
    # ------------------------------------------------------------------

    async def create(
        self,
        actor: Actor,
        employee_id: UUID,
        work_date: date,
        check_in: datetime,
        check_out: datetime | None = None,
        project_id: UUID | None = None,
        task_type: str | None = None,
        status: str = AttendanceStatus.PRESENT.value,
        remarks: str | None = None,
        ot_justification: str | None = None,
    ) -> TimesheetEntry:
        """Record a new Draft entry with derived hours."""
        await acquire_employee_lock(self.session, LOCK_SCOPE, employee_id)

        await self._require_employee(employee_id)
        if project_id is not None:
            await self._require_project(project_id)
        status = self._validate_attendance(status)

        check_in = _as_utc(check_in, "check_in")
        check_out = _as_utc(check_out, "check_out") if check_out is not None else None
        self._validate_interval(work_date, check_in, check_out)
        hours = compute_hours(check_in, check_out, self.policy)
        self._check_ceiling(hours)

        await self._ensure_date_free(employee_id, work_date)
        await self._ensure_no_overlap(employee_id, check_in, check_out)

        entry = TimesheetEntry(
            timesheet_entry_id=uuid4(),
            employee_id=employee_id,
            work_date=work_date,
            check_in=check_in,
            check_out=check_out,
            total_hours=hours.total_hours,
            overtime_hours=hours.overtime_hours,
            project_id=project_id,
            task_type=task_type,
            status=status,
            approval_status=TimesheetStatus.DRAFT.value,
            ot_approval_status=OvertimeStatus.PENDING.value if hours.overtime_hours > 0 else None,
            remarks=remarks,
            ot_justification=ot_justification,
            created_by=actor.user_id,
        )
        self.session.add(entry)
        await self._flush_unique(
            "Timesheet already exists for this employee on this date",
            employee_id=str(employee_id),
            work_date=work_date.isoformat(),
        )

        await self._record_audit(
            actor, entry.timesheet_entry_id, "created", after=snapshot(entry, AUDIT_FIELDS)
        )
        self._publish(
            TimesheetCreated(
                metadata=self._metadata(actor),
                timesheet_entry_id=entry.timesheet_entry_id,
                employee_id=employee_id,
                work_date=work_date,
                total_hours=entry.total_hours,
                overtime_hours=entry.overtime_hours,
            )
        )
        logger.info(
            "Timesheet %s created for employee %s on %s (%s h, %s OT)",
            entry.timesheet_entry_id,
            employee_id,
            work_date,
            entry.total_hours,
            entry.overtime_hours,
        )
        return entry

    async def update(self, actor: Actor, entry_id: UUID, **fields: Any) -> TimesheetEntry:
        """Apply field changes, re-running every validation on the merged record.

        Only fields whose value actually changes count as mutations, so
        re-sending a locked field with its current value is accepted.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )

        entry = await self.get(entry_id, for_update=True)
        await acquire_employee_lock(self.session, LOCK_SCOPE, entry.employee_id)

        if entry.approval_status == TimesheetStatus.REJECTED:
            raise InvalidStateTransitionError(
                entry.approval_status,
                TimesheetStatus.DRAFT.value,
                "Rejected entries must be reopened before editing",
            )

        merged = {name: getattr(entry, name) for name in UPDATABLE_FIELDS}
        merged.update(fields)
        if merged["check_in"] is None:
            raise ValidationError("check_in is required", field="check_in")
        merged["check_in"] = _as_utc(merged["check_in"], "check_in")
        if merged["check_out"] is not None:
            merged["check_out"] = _as_utc(merged["check_out"], "check_out")

        hours = compute_hours(merged["check_in"], merged["check_out"], self.policy)
        merged["total_hours"] = hours.total_hours
        merged["overtime_hours"] = hours.overtime_hours

        changed = LockingService.changed_fields(entry, merged)
        if not changed:
            return entry
        LockingService.verify_timesheet_update(entry, merged)

        merged["status"] = self._validate_attendance(merged["status"])
        if "project_id" in changed and merged["project_id"] is not None:
            await self._require_project(merged["project_id"])
        self._validate_interval(merged["work_date"], merged["check_in"], merged["check_out"])
        self._check_ceiling(hours)
        if "work_date" in changed:
            await self._ensure_date_free(entry.employee_id, merged["work_date"], exclude_id=entry_id)
        if changed & {"check_in", "check_out"}:
            await self._ensure_no_overlap(
                entry.employee_id, merged["check_in"], merged["check_out"], exclude_id=entry_id
            )

        before = snapshot(entry, AUDIT_FIELDS)
        for name in changed:
            setattr(entry, name, merged[name])
        self._sync_overtime_status(entry)

        await self._flush_unique(
            "Timesheet already exists for this employee on this date",
            employee_id=str(entry.employee_id),
            work_date=entry.work_date.isoformat(),
        )
        await self._record_audit(
            actor, entry_id, "updated", before=before, after=snapshot(entry, AUDIT_FIELDS)
        )
        logger.info("Timesheet %s updated: %s", entry_id, ", ".join(sorted(changed)))
        return entry

    # ------------------------------------------------------------------
    # Approval workflow
    # ------------------------------------------------------------------

    async def submit(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        """Draft → Submitted. Only closed entries can be submitted."""
        entry = await self.get(entry_id, for_update=True)
        if entry.check_out is None:
            raise ValidationError("Check out before submitting the entry", field="check_out")
        return await self._transition(actor, entry, TimesheetStatus.SUBMITTED.value)

    async def approve(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        """Submitted → Approved. Approving an approved entry is a no-op."""
        entry = await self.get(entry_id, for_update=True)
        if entry.approval_status == TimesheetStatus.APPROVED:
            return entry
        return await self._transition(actor, entry, TimesheetStatus.APPROVED.value)

    async def reject(self, actor: Actor, entry_id: UUID, reason: str) -> TimesheetEntry:
        """Submitted → Rejected with a mandatory reason."""
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", field="reason")
        entry = await self.get(entry_id, for_update=True)
        return await self._transition(actor, entry, TimesheetStatus.REJECTED.value, reason)

    async def reopen(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        """Rejected → Draft, the only way back to an editable entry."""
        entry = await self.get(entry_id, for_update=True)
        return await self._transition(actor, entry, TimesheetStatus.DRAFT.value)

    async def bulk_approve(self, actor: Actor, entry_ids: Sequence[UUID]) -> BulkApproveResult:
        """Approve every Submitted entry in the batch, skipping the rest."""
        if not entry_ids:
            raise ValidationError("Provide at least one timesheet id", field="entry_ids")

        result = BulkApproveResult()
        stmt = (
            select(TimesheetEntry)
            .where(TimesheetEntry.timesheet_entry_id.in_(list(entry_ids)))
            .with_for_update()
        )
        entries = {e.timesheet_entry_id: e for e in (await self.session.execute(stmt)).scalars()}

        for entry_id in dict.fromkeys(entry_ids):
            entry = entries.get(entry_id)
            if entry is None or entry.approval_status != TimesheetStatus.SUBMITTED:
                result.skipped.append(entry_id)
                continue
            await self._transition(actor, entry, TimesheetStatus.APPROVED.value)
            result.approved.append(entry_id)

        logger.info(
            "Bulk timesheet approval: %d approved, %d skipped",
            result.approved_count,
            result.skipped_count,
        )
        return result

    async def _transition(
        self,
        actor: Actor,
        entry: TimesheetEntry,
        to_status: str,
        reason: str | None = None,
    ) -> TimesheetEntry:
        """Move an entry to a new approval status, handling side effects."""
        from_status = entry.approval_status
        TimesheetStateMachine.validate_transition(from_status, to_status)

        if to_status == TimesheetStatus.APPROVED:
            entry.approved_by = actor.user_id
            entry.approved_at = self.clock()
        elif to_status == TimesheetStatus.REJECTED:
            entry.rejection_reason = reason
        elif TimesheetStateMachine.is_reopen(from_status, to_status):
            entry.rejection_reason = None

        entry.approval_status = to_status
        await self.session.flush()

        await self._record_audit(
            actor,
            entry.timesheet_entry_id,
            f"status_change:{from_status}:{to_status}",
            after={"reason": reason} if reason else None,
        )
        self._publish(
            TimesheetStatusChanged(
                metadata=self._metadata(actor),
                timesheet_entry_id=entry.timesheet_entry_id,
                employee_id=entry.employee_id,
                from_status=from_status,
                to_status=to_status,
                reason=reason,
            )
        )
        logger.info("Timesheet %s: %s -> %s", entry.timesheet_entry_id, from_status, to_status)
        return entry

    # ------------------------------------------------------------------
    # Overtime workflow
    # ------------------------------------------------------------------

    async def approve_overtime(self, actor: Actor, entry_id: UUID) -> TimesheetEntry:
        """Pending → Approved for the entry's overtime. Idempotent."""
        entry = await self.get(entry_id, for_update=True)
        self._require_overtime(entry)
        if entry.ot_approval_status == OvertimeStatus.APPROVED:
            return entry
        return await self._decide_overtime(actor, entry, OvertimeStatus.APPROVED.value)

    async def reject_overtime(self, actor: Actor, entry_id: UUID, reason: str) -> TimesheetEntry:
        """Pending → Rejected for the entry's overtime."""
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", field="reason")
        entry = await self.get(entry_id, for_update=True)
        self._require_overtime(entry)
        return await self._decide_overtime(actor, entry, OvertimeStatus.REJECTED.value, reason)

    async def _decide_overtime(
        self,
        actor: Actor,
        entry: TimesheetEntry,
        to_status: str,
        reason: str | None = None,
    ) -> TimesheetEntry:
        from_status = entry.ot_approval_status or OvertimeStatus.PENDING.value
        OvertimeStateMachine.validate_transition(from_status, to_status)

        entry.ot_approval_status = to_status
        entry.ot_approved_by = actor.user_id
        entry.ot_approved_at = self.clock()
        entry.ot_rejection_reason = reason
        await self.session.flush()

        await self._record_audit(
            actor,
            entry.timesheet_entry_id,
            f"ot_status_change:{from_status}:{to_status}",
            after={"overtime_hours": str(entry.overtime_hours), "reason": reason},
        )
        self._publish(
            OvertimeDecided(
                metadata=self._metadata(actor),
                timesheet_entry_id=entry.timesheet_entry_id,
                employee_id=entry.employee_id,
                ot_approval_status=to_status,
                overtime_hours=entry.overtime_hours,
                reason=reason,
            )
        )
        logger.info("Timesheet %s overtime %s", entry.timesheet_entry_id, to_status)
        return entry

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _validate_interval(
        self, work_date: date, check_in: datetime, check_out: datetime | None
    ) -> None:
        if work_date > self.clock().date():
            raise ValidationError(
                "Cannot record a timesheet for a future date", work_date=work_date.isoformat()
            )
        if check_out is not None and check_out <= check_in:
            raise ValidationError("check_out must be after check_in", field="check_out")

    def _check_ceiling(self, hours: HoursResult) -> None:
        if hours.exceeds_ceiling:
            logger.warning("Timesheet rejected: %s h exceeds daily ceiling", hours.total_hours)
            raise HoursCeilingError(
                f"Maximum working hours per day is {self.policy.max_hours_per_day}",
                total_hours=str(hours.total_hours),
            )

    def _validate_attendance(self, status: str) -> str:
        try:
            return AttendanceStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown attendance status: {status!r}", field="status") from None

    def _require_overtime(self, entry: TimesheetEntry) -> None:
        if entry.overtime_hours <= 0:
            raise ValidationError(
                "No overtime hours on this entry",
                timesheet_entry_id=str(entry.timesheet_entry_id),
            )

    def _sync_overtime_status(self, entry: TimesheetEntry) -> None:
        """Keep ot_approval_status in step with the derived overtime."""
        if entry.overtime_hours > 0 and entry.ot_approval_status is None:
            entry.ot_approval_status = OvertimeStatus.PENDING.value
        elif entry.overtime_hours == 0 and entry.ot_approval_status is not None:
            entry.ot_approval_status = None
            entry.ot_approved_by = None
            entry.ot_approved_at = None
            entry.ot_rejection_reason = None

    async def _require_employee(self, employee_id: UUID) -> None:
        if await self.session.get(Employee, employee_id) is None:
            raise ValidationError(f"Employee {employee_id} not found", field="employee_id")

    async def _require_project(self, project_id: UUID) -> None:
        if await self.session.get(Project, project_id) is None:
            raise ValidationError(f"Project {project_id} not found", field="project_id")

    async def _ensure_date_free(
        self, employee_id: UUID, work_date: date, exclude_id: UUID | None = None
    ) -> None:
        stmt = select(TimesheetEntry.timesheet_entry_id).where(
            TimesheetEntry.employee_id == employee_id,
            TimesheetEntry.work_date == work_date,
        )
        if exclude_id is not None:
            stmt = stmt.where(TimesheetEntry.timesheet_entry_id != exclude_id)
        if (await self.session.execute(stmt.limit(1))).first() is not None:
            raise DuplicateError(
                "Timesheet already exists for this employee on this date",
                employee_id=str(employee_id),
                work_date=work_date.isoformat(),
            )

    async def _ensure_no_overlap(
        self,
        employee_id: UUID,
        check_in: datetime,
        check_out: datetime | None,
        exclude_id: UUID | None = None,
    ) -> None:
        """Reject an interval overlapping any other entry of the employee.

        Intervals are half-open [check_in, check_out); an open entry runs
        to infinity. Work dates are ignored since intervals carry instants.
        """
        stmt = select(TimesheetEntry.timesheet_entry_id).where(
            TimesheetEntry.employee_id == employee_id,
            or_(TimesheetEntry.check_out.is_(None), TimesheetEntry.check_out > check_in),
        )
        if check_out is not None:
            stmt = stmt.where(TimesheetEntry.check_in < check_out)
        if exclude_id is not None:
            stmt = stmt.where(TimesheetEntry.timesheet_entry_id != exclude_id)

        clash = (await self.session.execute(stmt.limit(1))).scalar_one_or_none()
        if clash is not None:
            logger.warning("Timesheet overlap for employee %s with entry %s", employee_id, clash)
            raise OverlapError(
                "Overlapping time entry exists for this employee",
                conflicting_entry_id=str(clash),
            )
