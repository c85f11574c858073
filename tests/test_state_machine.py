"""Tests for ledger state machines and field locking."""

from types import SimpleNamespace

import pytest

from workforce_ledger.errors import ImmutableFieldError, InvalidStateTransitionError
from workforce_ledger.services.locking_service import LockingService
from workforce_ledger.services.state_machine import (
    LeaveRequestStateMachine,
    OvertimeStateMachine,
    SummaryStateMachine,
    SummaryStatus,
    TimesheetStateMachine,
    TimesheetStatus,
)


class TestTimesheetStateMachine:
    """Test timesheet approval transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert TimesheetStateMachine.can_transition("Draft", "Submitted") is True
        assert TimesheetStateMachine.can_transition("Submitted", "Approved") is True
        assert TimesheetStateMachine.can_transition("Submitted", "Rejected") is True
        # Rejected → Draft (reopen)
        assert TimesheetStateMachine.can_transition("Rejected", "Draft") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip submission
        assert TimesheetStateMachine.can_transition("Draft", "Approved") is False
        # Approved is terminal
        assert TimesheetStateMachine.can_transition("Approved", "Draft") is False
        assert TimesheetStateMachine.can_transition("Approved", "Rejected") is False
        # Rejection does not reopen implicitly
        assert TimesheetStateMachine.can_transition("Rejected", "Submitted") is False

    def test_accepts_enum_members(self):
        assert TimesheetStateMachine.can_transition(TimesheetStatus.DRAFT, TimesheetStatus.SUBMITTED)

    def test_validate_transition_raises(self):
        """Test that validate_transition raises for invalid transitions."""
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            TimesheetStateMachine.validate_transition(TimesheetStatus.DRAFT, "Approved")

        assert exc_info.value.from_status == "Draft"
        assert exc_info.value.to_status == "Approved"
        assert exc_info.value.code == "INVALID_STATE_TRANSITION"

    def test_is_reopen(self):
        assert TimesheetStateMachine.is_reopen("Rejected", "Draft") is True
        assert TimesheetStateMachine.is_reopen("Submitted", "Draft") is False

    def test_terminal(self):
        assert TimesheetStateMachine.is_terminal("Approved") is True
        assert TimesheetStateMachine.is_terminal("Rejected") is False


class TestOvertimeAndLeaveStateMachines:
    """Test overtime and leave request transitions."""

    def test_overtime_decided_once(self):
        assert OvertimeStateMachine.can_transition("Pending", "Approved") is True
        assert OvertimeStateMachine.can_transition("Pending", "Rejected") is True
        assert OvertimeStateMachine.can_transition("Rejected", "Approved") is False

    def test_pending_is_only_open_leave_state(self):
        assert LeaveRequestStateMachine.get_next_statuses("pending") == [
            "approved",
            "rejected",
            "cancelled",
        ]
        for status in ("approved", "rejected", "cancelled"):
            assert LeaveRequestStateMachine.is_terminal(status) is True


class TestSummaryStateMachine:
    """Test monthly summary transitions."""

    def test_full_path(self):
        assert SummaryStateMachine.can_transition("DRAFT", "SIGNED_BY_STAFF") is True
        assert SummaryStateMachine.can_transition("SIGNED_BY_STAFF", "APPROVED") is True
        assert SummaryStateMachine.can_transition("SIGNED_BY_STAFF", "REJECTED") is True
        assert SummaryStateMachine.can_transition("REJECTED", "DRAFT") is True

    def test_cannot_approve_draft(self):
        with pytest.raises(InvalidStateTransitionError):
            SummaryStateMachine.validate_transition(SummaryStatus.DRAFT, SummaryStatus.APPROVED)

    def test_approved_is_locked(self):
        assert SummaryStateMachine.is_locked("APPROVED") is True
        assert SummaryStateMachine.is_terminal("APPROVED") is True
        assert SummaryStateMachine.is_locked("SIGNED_BY_STAFF") is False

    def test_is_regeneration(self):
        assert SummaryStateMachine.is_regeneration("REJECTED", "DRAFT") is True
        assert SummaryStateMachine.is_regeneration("DRAFT", "DRAFT") is False


class TestLockingService:
    """Test field locks applied by approval."""

    def entry(self, approval_status="Draft", ot_approval_status=None):
        return SimpleNamespace(
            timesheet_entry_id="entry-1",
            approval_status=approval_status,
            ot_approval_status=ot_approval_status,
            work_date="2025-01-06",
            check_in="09:00",
            check_out="17:00",
            total_hours=8,
            overtime_hours=0,
            ot_justification=None,
            remarks=None,
        )

    def test_draft_has_no_locks(self):
        assert LockingService.locked_timesheet_fields(self.entry()) == set()

    def test_submitted_is_still_editable(self):
        assert LockingService.locked_timesheet_fields(self.entry(approval_status="Submitted")) == set()
        assert LockingService.locked_timesheet_fields(
            self.entry(approval_status=TimesheetStatus.APPROVED)
        ) == {"work_date", "check_in", "check_out", "total_hours"}

    def test_approval_locks_interval(self):
        entry = self.entry(approval_status="Approved")
        with pytest.raises(ImmutableFieldError) as exc_info:
            LockingService.verify_timesheet_update(entry, {"check_out": "18:00", "total_hours": 9})
        assert exc_info.value.fields == ["check_out", "total_hours"]

    def test_unchanged_locked_value_is_accepted(self):
        entry = self.entry(approval_status="Approved")
        LockingService.verify_timesheet_update(entry, {"check_out": "17:00", "remarks": "late bus"})

    def test_overtime_approval_locks_overtime(self):
        entry = self.entry(ot_approval_status="Approved")
        with pytest.raises(ImmutableFieldError):
            LockingService.verify_timesheet_update(entry, {"ot_justification": "changed"})

    def test_clear_signatures_only_from_rejected(self):
        summary = SimpleNamespace(status="SIGNED_BY_STAFF", staff_signature="sig")
        with pytest.raises(InvalidStateTransitionError):
            LockingService.clear_signatures(summary)

    def test_clear_signatures_on_regeneration(self):
        summary = SimpleNamespace(
            status=SummaryStatus.REJECTED,
            staff_signature="sig",
            staff_signed_at="2025-02-01",
            staff_signed_by="alice",
            admin_signature="admin-sig",
            admin_approved_at="2025-02-02",
            admin_approved_by="admin",
            admin_remarks="wrong period",
        )
        LockingService.clear_signatures(summary)
        assert summary.staff_signature is None
        assert summary.admin_signature is None
        assert summary.admin_remarks is None
