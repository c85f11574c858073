"""Tests for timesheet entries: derived hours, overlap and approval locks."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from workforce_ledger.errors import (
    DuplicateError,
    HoursCeilingError,
    ImmutableFieldError,
    InvalidStateTransitionError,
    OverlapError,
    ValidationError,
)
from workforce_ledger.models import AuditEvent, TimesheetEntry
from workforce_ledger.services import TimesheetService

from .conftest import at

pytestmark = pytest.mark.asyncio

MONDAY = date(2025, 1, 6)
TUESDAY = date(2025, 1, 7)


async def entry_count(session, employee_id) -> int:
    result = await session.execute(
        select(TimesheetEntry).where(TimesheetEntry.employee_id == employee_id)
    )
    return len(result.scalars().all())


class TestCreate:
    """Test entry creation and its validations."""

    async def test_overtime_detected_and_pending(self, session, seed, admin):
        """09:00 to 19:00 gives 10 hours, 2 overtime, overtime Pending."""
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 19)
        )

        assert entry.total_hours == Decimal("10.00")
        assert entry.overtime_hours == Decimal("2.00")
        assert entry.ot_approval_status == "Pending"
        assert entry.approval_status == "Draft"
        assert [e.event_type for e in service.events] == ["TimesheetCreated"]

    async def test_no_overtime_leaves_status_unset(self, session, seed, admin):
        entry = await TimesheetService(session).create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        assert entry.overtime_hours == Decimal("0.00")
        assert entry.ot_approval_status is None

    async def test_hours_ceiling(self, session, seed, admin):
        """08:00 to 21:00 is rejected and nothing is stored."""
        with pytest.raises(HoursCeilingError):
            await TimesheetService(session).create(
                admin, seed.alice.employee_id, MONDAY, at(MONDAY, 8), at(MONDAY, 21)
            )
        assert await entry_count(session, seed.alice.employee_id) == 0

    async def test_overlap_rejected(self, session, seed, admin):
        """[09:00,17:00) then [16:00,18:00) for the same employee collide."""
        service = TimesheetService(session)
        await service.create(admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17))

        with pytest.raises(OverlapError):
            await service.create(
                admin, seed.alice.employee_id, TUESDAY, at(MONDAY, 16), at(MONDAY, 18)
            )
        assert await entry_count(session, seed.alice.employee_id) == 1

    async def test_adjacent_intervals_do_not_overlap(self, session, seed, admin):
        """Intervals are half-open, so 17:00 check-in after a 17:00 check-out is fine."""
        service = TimesheetService(session)
        await service.create(admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17))
        await service.create(admin, seed.alice.employee_id, TUESDAY, at(MONDAY, 17), at(MONDAY, 19))
        assert await entry_count(session, seed.alice.employee_id) == 2

    async def test_open_entry_blocks_later_intervals(self, session, seed, admin):
        service = TimesheetService(session)
        await service.create(admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9))
        with pytest.raises(OverlapError):
            await service.create(
                admin, seed.alice.employee_id, TUESDAY, at(TUESDAY, 9), at(TUESDAY, 17)
            )

    async def test_other_employee_may_overlap(self, session, seed, admin):
        service = TimesheetService(session)
        await service.create(admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17))
        await service.create(admin, seed.bob.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17))

    async def test_same_date_twice_is_duplicate(self, session, seed, admin):
        service = TimesheetService(session)
        await service.create(admin, seed.alice.employee_id, MONDAY, at(MONDAY, 6), at(MONDAY, 8))
        with pytest.raises(DuplicateError):
            await service.create(
                admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
            )

    async def test_future_date_rejected(self, session, seed, admin):
        tomorrow = date.today() + timedelta(days=2)
        with pytest.raises(ValidationError):
            await TimesheetService(session).create(
                admin, seed.alice.employee_id, tomorrow, at(tomorrow, 9), at(tomorrow, 17)
            )

    async def test_checkout_before_checkin_rejected(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await TimesheetService(session).create(
                admin, seed.alice.employee_id, MONDAY, at(MONDAY, 17), at(MONDAY, 9)
            )

    async def test_naive_datetime_rejected(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await TimesheetService(session).create(
                admin,
                seed.alice.employee_id,
                MONDAY,
                at(MONDAY, 9).replace(tzinfo=None),
                at(MONDAY, 17),
            )

    async def test_unknown_attendance_status(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await TimesheetService(session).create(
                admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17), status="Away"
            )

    async def test_audit_row_written(self, session, seed, admin):
        entry = await TimesheetService(session).create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        await session.flush()
        audit = (
            await session.execute(
                select(AuditEvent).where(AuditEvent.entity_id == entry.timesheet_entry_id)
            )
        ).scalars().all()
        assert [a.action for a in audit] == ["created"]
        assert audit[0].actor_role == "admin"


class TestUpdate:
    """Test updates against the merged record."""

    async def test_checkout_edit_recomputes_hours(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )

        entry = await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 20))
        assert entry.total_hours == Decimal("11.00")
        assert entry.overtime_hours == Decimal("3.00")
        assert entry.ot_approval_status == "Pending"

    async def test_dropping_overtime_clears_its_status(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 19)
        )
        entry = await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 16))
        assert entry.overtime_hours == Decimal("0.00")
        assert entry.ot_approval_status is None

    async def test_update_rechecks_ceiling(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        with pytest.raises(HoursCeilingError):
            await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 22))

    async def test_approved_interval_is_locked(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        await service.submit(admin, entry.timesheet_entry_id)
        await service.approve(admin, entry.timesheet_entry_id)

        with pytest.raises(ImmutableFieldError) as exc_info:
            await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 18))
        assert "check_out" in exc_info.value.fields
        assert entry.check_out == at(MONDAY, 17)

    async def test_approved_entry_accepts_remarks(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        await service.submit(admin, entry.timesheet_entry_id)
        await service.approve(admin, entry.timesheet_entry_id)

        entry = await service.update(admin, entry.timesheet_entry_id, remarks="client site")
        assert entry.remarks == "client site"

    async def test_approved_overtime_is_locked(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 19)
        )
        await service.approve_overtime(admin, entry.timesheet_entry_id)

        with pytest.raises(ImmutableFieldError):
            await service.update(admin, entry.timesheet_entry_id, ot_justification="other")
        with pytest.raises(ImmutableFieldError):
            await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 20))

    async def test_unknown_field_rejected(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        with pytest.raises(ValidationError):
            await service.update(admin, entry.timesheet_entry_id, approval_status="Approved")

    async def test_update_overlap_excludes_itself(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        entry = await service.update(admin, entry.timesheet_entry_id, check_in=at(MONDAY, 10))
        assert entry.total_hours == Decimal("7.00")


class TestApprovalWorkflow:
    """Test submit, approve, reject and reopen."""

    async def create(self, session, seed, admin):
        return await TimesheetService(session).create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )

    async def test_submit_then_approve(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await self.create(session, seed, admin)
        await service.submit(admin, entry.timesheet_entry_id)
        entry = await service.approve(admin, entry.timesheet_entry_id)

        assert entry.approval_status == "Approved"
        assert entry.approved_by == admin.user_id
        assert entry.approved_at is not None

    async def test_approve_is_idempotent(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await self.create(session, seed, admin)
        await service.submit(admin, entry.timesheet_entry_id)
        first = await service.approve(admin, entry.timesheet_entry_id)
        approved_at = first.approved_at
        second = await service.approve(admin, entry.timesheet_entry_id)

        assert second.approved_at == approved_at
        assert [e.event_type for e in service.events].count("TimesheetStatusChanged") == 2

    async def test_cannot_approve_draft(self, session, seed, admin):
        entry = await self.create(session, seed, admin)
        with pytest.raises(InvalidStateTransitionError):
            await TimesheetService(session).approve(admin, entry.timesheet_entry_id)

    async def test_submit_only_from_draft(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await self.create(session, seed, admin)
        await service.submit(admin, entry.timesheet_entry_id)
        with pytest.raises(InvalidStateTransitionError):
            await service.submit(admin, entry.timesheet_entry_id)

    async def test_open_entry_cannot_be_submitted(self, session, seed, admin):
        """An entry must be closed before approval can lock its check-out."""
        service = TimesheetService(session)
        entry = await service.create(admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9))

        with pytest.raises(ValidationError):
            await service.submit(admin, entry.timesheet_entry_id)
        assert entry.approval_status == "Draft"

        await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 17))
        await service.submit(admin, entry.timesheet_entry_id)
        entry = await service.approve(admin, entry.timesheet_entry_id)
        assert entry.approval_status == "Approved"

        tuesday = await service.create(
            admin, seed.alice.employee_id, TUESDAY, at(TUESDAY, 9), at(TUESDAY, 17)
        )
        assert tuesday.total_hours == Decimal("8.00")

    async def test_reject_requires_reason(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await self.create(session, seed, admin)
        await service.submit(admin, entry.timesheet_entry_id)
        with pytest.raises(ValidationError):
            await service.reject(admin, entry.timesheet_entry_id, "  ")

    async def test_rejected_needs_explicit_reopen(self, session, seed, admin):
        """A rejected entry is not editable until reopened to Draft."""
        service = TimesheetService(session)
        entry = await self.create(session, seed, admin)
        await service.submit(admin, entry.timesheet_entry_id)
        await service.reject(admin, entry.timesheet_entry_id, "wrong project")
        assert entry.rejection_reason == "wrong project"

        with pytest.raises(InvalidStateTransitionError):
            await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 16))

        entry = await service.reopen(admin, entry.timesheet_entry_id)
        assert entry.approval_status == "Draft"
        assert entry.rejection_reason is None
        entry = await service.update(admin, entry.timesheet_entry_id, check_out=at(MONDAY, 16))
        assert entry.total_hours == Decimal("7.00")

    async def test_bulk_approve_skips_non_submitted(self, session, seed, admin):
        service = TimesheetService(session)
        submitted = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        draft = await service.create(
            admin, seed.alice.employee_id, TUESDAY, at(TUESDAY, 9), at(TUESDAY, 17)
        )
        await service.submit(admin, submitted.timesheet_entry_id)

        result = await service.bulk_approve(
            admin, [submitted.timesheet_entry_id, draft.timesheet_entry_id]
        )
        assert result.approved == [submitted.timesheet_entry_id]
        assert result.skipped == [draft.timesheet_entry_id]
        assert draft.approval_status == "Draft"


class TestOvertimeWorkflow:
    """Test overtime decisions independent of approval status."""

    async def test_approve_overtime_on_draft_entry(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 19)
        )
        entry = await service.approve_overtime(admin, entry.timesheet_entry_id)
        assert entry.ot_approval_status == "Approved"
        assert entry.approval_status == "Draft"
        assert entry.ot_approved_by == admin.user_id

    async def test_reject_overtime_records_reason(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 19)
        )
        entry = await service.reject_overtime(admin, entry.timesheet_entry_id, "not pre-approved")
        assert entry.ot_approval_status == "Rejected"
        assert entry.ot_rejection_reason == "not pre-approved"

        with pytest.raises(InvalidStateTransitionError):
            await service.approve_overtime(admin, entry.timesheet_entry_id)

    async def test_no_overtime_to_decide(self, session, seed, admin):
        service = TimesheetService(session)
        entry = await service.create(
            admin, seed.alice.employee_id, MONDAY, at(MONDAY, 9), at(MONDAY, 17)
        )
        with pytest.raises(ValidationError):
            await service.approve_overtime(admin, entry.timesheet_entry_id)
