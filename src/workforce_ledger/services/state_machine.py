"""Ledger state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from workforce_ledger.errors import InvalidStateTransitionError


def status_value(status: str) -> str:
    """Plain string form of a status, enum member or not."""
    return status.value if isinstance(status, Enum) else status


class AttendanceStatus(str, Enum):
    """Timesheet attendance status values."""

    PRESENT = "Present"
    ABSENT = "Absent"
    HALF_DAY = "Half-Day"


class TimesheetStatus(str, Enum):
    """Timesheet approval status values."""

    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class OvertimeStatus(str, Enum):
    """Overtime approval status values."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class LeaveRequestStatus(str, Enum):
    """Leave request status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class SummaryStatus(str, Enum):
    """Monthly summary status values."""

    DRAFT = "DRAFT"
    SIGNED_BY_STAFF = "SIGNED_BY_STAFF"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StateMachine:
    """Transition table shared by the ledger state machines."""

    VALID_TRANSITIONS: dict[str, list[str]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(status_value(from_status), [])
        return status_value(to_status) in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidStateTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                status_value(from_status), status_value(to_status), reason
            )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return list(cls.VALID_TRANSITIONS.get(status_value(current_status), []))

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """A status with no way out."""
        return not cls.VALID_TRANSITIONS.get(status_value(status))


class TimesheetStateMachine(StateMachine):
    """Timesheet approval transitions.

    Allowed transitions:
    - Draft → Submitted
    - Submitted → Approved
    - Submitted → Rejected
    - Rejected → Draft (reopen)
    """

    VALID_TRANSITIONS = {
        TimesheetStatus.DRAFT.value: [TimesheetStatus.SUBMITTED.value],
        TimesheetStatus.SUBMITTED.value: [
            TimesheetStatus.APPROVED.value,
            TimesheetStatus.REJECTED.value,
        ],
        TimesheetStatus.REJECTED.value: [TimesheetStatus.DRAFT.value],
        TimesheetStatus.APPROVED.value: [],  # Terminal state
    }

    # Statuses where check-in/check-out may still be edited
    EDITABLE = {TimesheetStatus.DRAFT.value, TimesheetStatus.SUBMITTED.value}

    # Statuses that count as claimed time for leave overlap checks
    COMMITTED = {TimesheetStatus.SUBMITTED.value, TimesheetStatus.APPROVED.value}

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen (Rejected → Draft)."""
        return (
            status_value(from_status) == TimesheetStatus.REJECTED
            and status_value(to_status) == TimesheetStatus.DRAFT
        )


class OvertimeStateMachine(StateMachine):
    """Overtime approval transitions, independent of the entry's approval status.

    Allowed transitions:
    - Pending → Approved
    - Pending → Rejected
    """

    VALID_TRANSITIONS = {
        OvertimeStatus.PENDING.value: [
            OvertimeStatus.APPROVED.value,
            OvertimeStatus.REJECTED.value,
        ],
        OvertimeStatus.APPROVED.value: [],
        OvertimeStatus.REJECTED.value: [],
    }


class LeaveRequestStateMachine(StateMachine):
    """Leave request transitions. Pending is the only non-terminal state."""

    VALID_TRANSITIONS = {
        LeaveRequestStatus.PENDING.value: [
            LeaveRequestStatus.APPROVED.value,
            LeaveRequestStatus.REJECTED.value,
            LeaveRequestStatus.CANCELLED.value,
        ],
        LeaveRequestStatus.APPROVED.value: [],
        LeaveRequestStatus.REJECTED.value: [],
        LeaveRequestStatus.CANCELLED.value: [],
    }

    # Statuses that block an overlapping request
    ACTIVE = {LeaveRequestStatus.PENDING.value, LeaveRequestStatus.APPROVED.value}


class SummaryStateMachine(StateMachine):
    """Monthly summary transitions.

    Allowed transitions:
    - DRAFT → SIGNED_BY_STAFF
    - SIGNED_BY_STAFF → APPROVED
    - SIGNED_BY_STAFF → REJECTED
    - REJECTED → DRAFT (regeneration)
    """

    VALID_TRANSITIONS = {
        SummaryStatus.DRAFT.value: [SummaryStatus.SIGNED_BY_STAFF.value],
        SummaryStatus.SIGNED_BY_STAFF.value: [
            SummaryStatus.APPROVED.value,
            SummaryStatus.REJECTED.value,
        ],
        SummaryStatus.REJECTED.value: [SummaryStatus.DRAFT.value],
        SummaryStatus.APPROVED.value: [],  # Terminal state
    }

    @classmethod
    def is_locked(cls, status: str) -> bool:
        """Check if the summary is locked against any further change."""
        return status_value(status) == SummaryStatus.APPROVED

    @classmethod
    def is_regeneration(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a regeneration (REJECTED → DRAFT)."""
        return (
            status_value(from_status) == SummaryStatus.REJECTED
            and status_value(to_status) == SummaryStatus.DRAFT
        )
