"""Tests for leave requests and balances."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from workforce_ledger.errors import (
    InsufficientBalanceError,
    InvalidStateTransitionError,
    NotFoundError,
    OverlapError,
    ValidationError,
)
from workforce_ledger.models import LeaveBalance, LeaveRequest
from workforce_ledger.services import LeaveBalanceService, LeaveService, TimesheetService

from .conftest import at

pytestmark = pytest.mark.asyncio

# Mon 6 - Fri 10 January 2025, five working days
WEEK_START, WEEK_END = date(2025, 1, 6), date(2025, 1, 10)
# Mon 13 - Wed 22 January 2025, eight working days
LONG_START, LONG_END = date(2025, 1, 13), date(2025, 1, 22)


@pytest.fixture
async def alice_annual(session, seed, admin):
    """Alice's default 12 day annual allowance for 2025."""
    return await LeaveBalanceService(session).allocate(
        admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025
    )


class TestAllocation:
    """Test balance allocation."""

    async def test_defaults_to_type_maximum(self, session, seed, admin):
        balance = await LeaveBalanceService(session).allocate(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025
        )
        assert balance.total_days == Decimal("12")
        assert balance.used_days == Decimal("0")
        assert balance.remaining_days == Decimal("12")

    async def test_allocating_twice_is_a_no_op(self, session, seed, admin):
        service = LeaveBalanceService(session)
        first = await service.allocate(admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025)
        second = await service.allocate(admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025)

        assert first.leave_balance_id == second.leave_balance_id
        rows = (
            await session.execute(
                select(LeaveBalance).where(LeaveBalance.employee_id == seed.alice.employee_id)
            )
        ).scalars().all()
        assert len(rows) == 1

    async def test_reset_keeps_used_days(self, session, seed, admin):
        leave = LeaveService(session)
        await leave.balances.allocate(admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025)
        request = await leave.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        await leave.approve_request(admin, request.leave_request_id)

        balance = await leave.balances.allocate(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025, Decimal("15")
        )
        assert balance.used_days == Decimal("5")
        assert balance.remaining_days == Decimal("10")

        with pytest.raises(ValidationError):
            await leave.balances.allocate(
                admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025, Decimal("4")
            )

    async def test_negative_total_rejected(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await LeaveBalanceService(session).allocate(
                admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025, Decimal("-1")
            )

    async def test_allocate_annual_for_all(self, session, seed, admin):
        service = LeaveBalanceService(session)
        await service.allocate(admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025)

        result = await service.allocate_annual_for_all(admin, 2025)
        assert result.total == 3
        assert result.reset == [seed.alice.employee_id]
        assert set(result.allocated) == {seed.bob.employee_id, seed.carol.employee_id}


class TestLeaveRequests:
    """Test filing requests."""

    async def test_number_of_days_counts_working_days(self, session, seed, admin, alice_annual):
        request = await LeaveService(session).create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, LONG_START, LONG_END
        )
        assert request.number_of_days == Decimal("8")
        assert request.status == "pending"
        assert request.balance_deducted is False

    async def test_weekend_only_range_rejected(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await LeaveService(session).create_request(
                admin, seed.alice.employee_id, seed.annual.leave_type_id, date(2025, 1, 11), date(2025, 1, 12)
            )

    async def test_reversed_range_rejected(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await LeaveService(session).create_request(
                admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_END, WEEK_START
            )

    async def test_overlapping_active_request_rejected(self, session, seed, admin, alice_annual):
        service = LeaveService(session)
        await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        with pytest.raises(OverlapError):
            await service.create_request(
                admin, seed.alice.employee_id, seed.sick.leave_type_id, date(2025, 1, 10), date(2025, 1, 14)
            )

    async def test_cancelled_request_frees_the_range(self, session, seed, admin, alice_annual):
        service = LeaveService(session)
        first = await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        await service.cancel_request(admin, first.leave_request_id)
        await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )

    async def test_submitted_timesheet_blocks_leave(self, session, seed, admin, alice_annual):
        timesheets = TimesheetService(session)
        entry = await timesheets.create(
            admin, seed.alice.employee_id, date(2025, 1, 8), at(date(2025, 1, 8), 9), at(date(2025, 1, 8), 17)
        )
        await timesheets.submit(admin, entry.timesheet_entry_id)

        with pytest.raises(OverlapError):
            await LeaveService(session).create_request(
                admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
            )

    async def test_draft_timesheet_does_not_block_leave(self, session, seed, admin, alice_annual):
        await TimesheetService(session).create(
            admin, seed.alice.employee_id, date(2025, 1, 8), at(date(2025, 1, 8), 9), at(date(2025, 1, 8), 17)
        )
        await LeaveService(session).create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )

    async def test_stand_in_cannot_be_self(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await LeaveService(session).create_request(
                admin,
                seed.alice.employee_id,
                seed.annual.leave_type_id,
                WEEK_START,
                WEEK_END,
                stand_in_employee_id=seed.alice.employee_id,
            )

    async def test_stand_in_must_exist(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await LeaveService(session).create_request(
                admin,
                seed.alice.employee_id,
                seed.annual.leave_type_id,
                WEEK_START,
                WEEK_END,
                stand_in_employee_id=seed.project.project_id,
            )

    async def test_stand_in_accepted(self, session, seed, admin, alice_annual):
        request = await LeaveService(session).create_request(
            admin,
            seed.alice.employee_id,
            seed.annual.leave_type_id,
            WEEK_START,
            WEEK_END,
            stand_in_employee_id=seed.bob.employee_id,
        )
        assert request.stand_in_employee_id == seed.bob.employee_id

    async def test_unknown_leave_type(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await LeaveService(session).create_request(
                admin, seed.alice.employee_id, seed.project.project_id, WEEK_START, WEEK_END
            )


class TestApproval:
    """Test approval and balance deduction."""

    async def test_deduction_and_insufficient_balance(self, session, seed, admin, alice_annual):
        """Both requests fit the 12 days when filed, only the first can be approved."""
        service = LeaveService(session)
        week = await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        longer = await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, LONG_START, LONG_END
        )

        await service.approve_request(admin, week.leave_request_id)
        balance = await service.balances.get_balance(
            seed.alice.employee_id, seed.annual.leave_type_id, 2025
        )
        assert balance.remaining_days == Decimal("7")
        assert week.balance_deducted is True

        with pytest.raises(InsufficientBalanceError):
            await service.approve_request(admin, longer.leave_request_id)

        assert balance.remaining_days == Decimal("7")
        assert longer.status == "pending"
        assert longer.balance_deducted is False

    async def test_request_exceeding_balance_refused_when_filed(
        self, session, seed, admin, alice_annual
    ):
        service = LeaveService(session)
        week = await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        await service.approve_request(admin, week.leave_request_id)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await service.create_request(
                admin, seed.alice.employee_id, seed.annual.leave_type_id, LONG_START, LONG_END
            )
        assert Decimal(exc_info.value.context["remaining_days"]) == Decimal("7")
        assert Decimal(exc_info.value.context["requested_days"]) == Decimal("8")

        pending = (
            await session.execute(
                select(LeaveRequest).where(LeaveRequest.start_date == LONG_START)
            )
        ).scalars().all()
        assert pending == []

    async def test_approving_twice_deducts_once(self, session, seed, admin):
        service = LeaveService(session)
        await service.balances.allocate(admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025)
        request = await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )

        await service.approve_request(admin, request.leave_request_id)
        await service.approve_request(admin, request.leave_request_id)

        balance = await service.balances.get_balance(
            seed.alice.employee_id, seed.annual.leave_type_id, 2025
        )
        assert balance.used_days == Decimal("5")

    async def test_capped_type_without_balance_is_refused(self, session, seed, admin):
        with pytest.raises(InsufficientBalanceError):
            await LeaveService(session).create_request(
                admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
            )

    async def test_uncapped_type_tracks_usage(self, session, seed, admin):
        service = LeaveService(session)
        request = await service.create_request(
            admin, seed.alice.employee_id, seed.sick.leave_type_id, WEEK_START, WEEK_END
        )
        await service.approve_request(admin, request.leave_request_id)

        balance = await service.balances.get_balance(
            seed.alice.employee_id, seed.sick.leave_type_id, 2025
        )
        assert balance.total_days == Decimal("0")
        assert balance.used_days == Decimal("5")

    async def test_uncapped_usage_shares_one_balance_row(self, session, seed, admin):
        service = LeaveService(session)
        for start, end in [(WEEK_START, WEEK_END), (date(2025, 1, 13), date(2025, 1, 14))]:
            request = await service.create_request(
                admin, seed.alice.employee_id, seed.sick.leave_type_id, start, end
            )
            await service.approve_request(admin, request.leave_request_id)

        rows = (
            await session.execute(
                select(LeaveBalance).where(
                    LeaveBalance.employee_id == seed.alice.employee_id,
                    LeaveBalance.leave_type_id == seed.sick.leave_type_id,
                )
            )
        ).scalars().all()
        assert len(rows) == 1
        assert rows[0].used_days == Decimal("7")

    async def test_approval_publishes_deduction(self, session, seed, admin):
        service = LeaveService(session)
        await service.balances.allocate(admin, seed.alice.employee_id, seed.annual.leave_type_id, 2025)
        request = await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        await service.approve_request(admin, request.leave_request_id)

        assert [e.event_type for e in service.events] == [
            "LeaveRequested",
            "LeaveBalanceDeducted",
            "LeaveRequestStatusChanged",
        ]

    async def test_reject_requires_reason(self, session, seed, admin, alice_annual):
        service = LeaveService(session)
        request = await service.create_request(
            admin, seed.alice.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        with pytest.raises(ValidationError):
            await service.reject_request(admin, request.leave_request_id, "")

        request = await service.reject_request(admin, request.leave_request_id, "peak season")
        assert request.status == "rejected"
        assert request.rejection_reason == "peak season"

    async def test_closed_requests_are_terminal(self, session, seed, admin):
        service = LeaveService(session)
        request = await service.create_request(
            admin, seed.alice.employee_id, seed.sick.leave_type_id, WEEK_START, WEEK_END
        )
        await service.cancel_request(admin, request.leave_request_id)

        with pytest.raises(InvalidStateTransitionError):
            await service.approve_request(admin, request.leave_request_id)
        with pytest.raises(InvalidStateTransitionError):
            await service.cancel_request(admin, request.leave_request_id)

    async def test_unknown_request(self, session, seed, admin):
        with pytest.raises(NotFoundError):
            await LeaveService(session).approve_request(admin, seed.alice.employee_id)


class TestBulkApproval:
    """Test batch approval with per-request isolation."""

    async def test_one_failure_keeps_the_rest(self, session, seed, admin):
        service = LeaveService(session)
        # Five days covers either week but not both
        await service.balances.allocate(
            admin, seed.bob.employee_id, seed.annual.leave_type_id, 2025, Decimal("5")
        )
        fits = await service.create_request(
            admin, seed.bob.employee_id, seed.annual.leave_type_id, WEEK_START, WEEK_END
        )
        refused = await service.create_request(
            admin, seed.bob.employee_id, seed.annual.leave_type_id, date(2025, 1, 13), date(2025, 1, 17)
        )
        service.events.clear()

        result = await service.bulk_approve(
            admin, [fits.leave_request_id, refused.leave_request_id]
        )

        assert result.approved == [fits.leave_request_id]
        assert result.failed[refused.leave_request_id]["code"] == "INSUFFICIENT_BALANCE"
        await session.refresh(refused)
        assert refused.status == "pending"
        assert "LeaveRequestStatusChanged" in [e.event_type for e in service.events]
        assert all(
            getattr(e, "leave_request_id", None) != refused.leave_request_id for e in service.events
        )

    async def test_empty_batch_rejected(self, session, seed, admin):
        with pytest.raises(ValidationError):
            await LeaveService(session).bulk_approve(admin, [])


class TestBalanceConsistency:
    """used_days always equals the sum of approved request days."""

    @pytest.mark.parametrize(
        "lengths",
        [[1], [4, 4, 4], [3, 2, 4, 1], [4, 4, 1, 2]],
    )
    async def test_remaining_is_total_minus_used(self, session, seed, admin, lengths):
        service = LeaveService(session)
        await service.balances.allocate(
            admin, seed.carol.employee_id, seed.annual.leave_type_id, 2026, Decimal("10")
        )
        # One request per week of March 2026, each starting on a Monday, all
        # filed before any is approved
        requests = []
        for week, length in enumerate(lengths):
            start = date(2026, 3, 2 + 7 * week)
            end = date(2026, 3, 2 + 7 * week + length - 1)
            requests.append(
                await service.create_request(
                    admin, seed.carol.employee_id, seed.annual.leave_type_id, start, end
                )
            )

        approved = Decimal("0")
        for request in requests:
            try:
                await service.approve_request(admin, request.leave_request_id)
            except InsufficientBalanceError:
                assert request.status == "pending"
                continue
            approved += request.number_of_days

        balance = await service.balances.get_balance(
            seed.carol.employee_id, seed.annual.leave_type_id, 2026
        )
        assert balance.used_days == approved
        assert balance.remaining_days == balance.total_days - balance.used_days
        assert balance.remaining_days >= 0
