"""Field locking rules applied as ledger records pass through approval."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from workforce_ledger.errors import ImmutableFieldError, InvalidStateTransitionError
from workforce_ledger.services.state_machine import (
    OvertimeStatus,
    SummaryStateMachine,
    SummaryStatus,
    TimesheetStateMachine,
    status_value,
)

if TYPE_CHECKING:
    from workforce_ledger.models import MonthlySummary, TimesheetEntry


class LockingService:
    """Decides which fields of a record are frozen in its current state.

    Timesheet entries become partially immutable:
    1. approval_status Approved freezes the interval and its hours
    2. ot_approval_status Approved freezes overtime and its justification

    Monthly summaries freeze completely once APPROVED, and the staff
    signature stays fixed until a regeneration clears it.
    """

    APPROVAL_LOCKED_FIELDS = ("work_date", "check_in", "check_out", "total_hours")
    OVERTIME_LOCKED_FIELDS = ("overtime_hours", "ot_justification")

    @classmethod
    def locked_timesheet_fields(cls, entry: TimesheetEntry) -> set[str]:
        """Fields of the entry that may no longer change."""
        locked: set[str] = set()
        if status_value(entry.approval_status) not in TimesheetStateMachine.EDITABLE:
            locked.update(cls.APPROVAL_LOCKED_FIELDS)
        if entry.ot_approval_status == OvertimeStatus.APPROVED:
            locked.update(cls.OVERTIME_LOCKED_FIELDS)
        return locked

    @classmethod
    def changed_fields(cls, entry: TimesheetEntry, proposed: dict[str, Any]) -> set[str]:
        """Names whose proposed value differs from the stored one."""
        return {name for name, value in proposed.items() if getattr(entry, name) != value}

    @classmethod
    def verify_timesheet_update(cls, entry: TimesheetEntry, proposed: dict[str, Any]) -> None:
        """Reject an update touching any locked field.

        ``proposed`` holds the merged post-update values, derived hours
        included, so a check-out edit that would move approved overtime is
        caught as well.
        """
        violations = sorted(cls.changed_fields(entry, proposed) & cls.locked_timesheet_fields(entry))
        if violations:
            raise ImmutableFieldError(
                f"Fields locked by approval: {', '.join(violations)}",
                fields=violations,
                timesheet_entry_id=str(entry.timesheet_entry_id),
            )

    @classmethod
    def verify_summary_mutable(cls, summary: MonthlySummary, attempted: str) -> None:
        """Reject any change to an APPROVED summary."""
        if SummaryStateMachine.is_locked(summary.status):
            raise InvalidStateTransitionError(
                summary.status,
                attempted,
                "Approved summaries are locked",
            )

    @classmethod
    def verify_staff_signature_open(cls, summary: MonthlySummary) -> None:
        """The staff signature is write-once within a generation cycle."""
        if summary.staff_signature is not None:
            raise ImmutableFieldError(
                "Staff signature already recorded",
                fields=["staff_signature"],
                monthly_summary_id=str(summary.monthly_summary_id),
            )

    @classmethod
    def clear_signatures(cls, summary: MonthlySummary) -> None:
        """Drop both signatures, used only when a rejected summary is regenerated."""
        if not SummaryStateMachine.is_regeneration(summary.status, SummaryStatus.DRAFT):
            raise InvalidStateTransitionError(
                summary.status,
                SummaryStatus.DRAFT.value,
                "Signatures are cleared only by regeneration",
            )
        summary.staff_signature = None
        summary.staff_signed_at = None
        summary.staff_signed_by = None
        summary.admin_signature = None
        summary.admin_approved_at = None
        summary.admin_approved_by = None
        summary.admin_remarks = None
