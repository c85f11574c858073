"""Leave balance service - allocation and approval-driven deduction."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select

from workforce_ledger.actor import Actor
from workforce_ledger.database import acquire_employee_lock
from workforce_ledger.errors import InsufficientBalanceError, NotFoundError, ValidationError
from workforce_ledger.events import LeaveBalanceDeducted
from workforce_ledger.models import Employee, LeaveBalance, LeaveType
from workforce_ledger.services.base import LedgerService

logger = logging.getLogger(__name__)

ANNUAL_LEAVE_CODE = "ANNUAL"

# Serializes balance row creation, which a row lock cannot cover
LOCK_SCOPE = "leave_balance"


@dataclass
class AllocationResult:
    """Outcome of allocating one leave type across employees."""

    allocated: list[UUID] = field(default_factory=list)
    reset: list[UUID] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.allocated) + len(self.reset)


class LeaveBalanceService(LedgerService):
    """Service for per employee, leave type and year balances.

    used_days only ever grows through ``deduct``, which is reached from
    leave approval. There is no direct edit path.
    """

    entity_type = "leave_balance"

    async def get_leave_type(self, leave_type_id: UUID) -> LeaveType:
        leave_type = await self.session.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise ValidationError(f"Leave type {leave_type_id} not found", field="leave_type_id")
        return leave_type

    async def get_balance(
        self,
        employee_id: UUID,
        leave_type_id: UUID,
        year: int,
        for_update: bool = False,
    ) -> LeaveBalance | None:
        """Load the balance row for an identity, if allocated."""
        stmt = select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_balances(self, employee_id: UUID, year: int) -> Sequence[LeaveBalance]:
        """All balances of an employee for a year."""
        result = await self.session.execute(
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
            .order_by(LeaveBalance.leave_type_id)
        )
        return result.scalars().all()

    async def allocate(
        self,
        actor: Actor | None,
        employee_id: UUID,
        leave_type_id: UUID,
        year: int,
        total_days: Decimal | None = None,
    ) -> LeaveBalance:
        """Create or reset the balance for (employee, type, year).

        total_days defaults to the type's yearly maximum. used_days is kept
        on reset, so allocating twice with the same input is a no-op.
        """
        if await self.session.get(Employee, employee_id) is None:
            raise ValidationError(f"Employee {employee_id} not found", field="employee_id")
        leave_type = await self.get_leave_type(leave_type_id)

        if total_days is None:
            total_days = Decimal(leave_type.max_days_per_year or 0)
        total_days = Decimal(total_days)
        if total_days < 0:
            raise ValidationError("total_days cannot be negative", field="total_days")

        today = self.clock().date()
        before = None
        await acquire_employee_lock(self.session, LOCK_SCOPE, employee_id)
        balance = await self.get_balance(employee_id, leave_type_id, year, for_update=True)
        if balance is None:
            balance = LeaveBalance(
                leave_balance_id=uuid4(),
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                year=year,
                total_days=total_days,
                used_days=Decimal("0"),
                last_reset_date=today,
            )
            self.session.add(balance)
            action = "allocated"
        else:
            if Decimal(balance.total_days) == total_days:
                return balance
            if total_days < Decimal(balance.used_days):
                raise ValidationError(
                    f"total_days cannot drop below the {balance.used_days} days already used",
                    field="total_days",
                )
            before = {"total_days": str(balance.total_days)}
            balance.total_days = total_days
            balance.last_reset_date = today
            action = "reset"

        await self._flush_unique(
            "Leave balance already allocated",
            employee_id=str(employee_id),
            leave_type_id=str(leave_type_id),
            year=year,
        )
        await self._record_audit(
            actor,
            balance.leave_balance_id,
            action,
            before=before,
            after={"total_days": str(total_days), "used_days": str(balance.used_days)},
        )
        logger.info(
            "Leave balance %s for employee %s, type %s, %d: %s days",
            action,
            employee_id,
            leave_type.code,
            year,
            total_days,
        )
        return balance

    async def allocate_annual_for_all(
        self, actor: Actor | None, year: int, total_days: Decimal | None = None
    ) -> AllocationResult:
        """Allocate the annual leave type for every active employee."""
        leave_type = (
            await self.session.execute(select(LeaveType).where(LeaveType.code == ANNUAL_LEAVE_CODE))
        ).scalar_one_or_none()
        if leave_type is None:
            raise NotFoundError(f"Leave type {ANNUAL_LEAVE_CODE} not configured")

        employee_ids = (
            await self.session.execute(
                select(Employee.employee_id)
                .where(Employee.status == "active")
                .order_by(Employee.employee_id)
            )
        ).scalars().all()

        result = AllocationResult()
        for employee_id in employee_ids:
            existing = await self.get_balance(employee_id, leave_type.leave_type_id, year)
            await self.allocate(actor, employee_id, leave_type.leave_type_id, year, total_days)
            (result.reset if existing is not None else result.allocated).append(employee_id)

        logger.info("Annual leave allocated for %d employee(s) in %d", result.total, year)
        return result

    def check_available(
        self,
        leave_type: LeaveType,
        employee_id: UUID,
        year: int,
        days: Decimal,
        balance: LeaveBalance | None,
    ) -> None:
        """Raise InsufficientBalanceError when a capped balance cannot cover days.

        A missing balance row counts as nothing allocated. Uncapped types
        always pass.
        """
        if not leave_type.is_capped:
            return
        remaining = balance.remaining_days if balance is not None else Decimal("0")
        if balance is None or remaining - days < 0:
            logger.warning(
                "Insufficient %s balance for employee %s in %d: %s remaining, %s requested",
                leave_type.code,
                employee_id,
                year,
                remaining,
                days,
            )
            raise InsufficientBalanceError(
                f"Insufficient {leave_type.name} balance: {remaining} remaining, {days} requested",
                remaining_days=str(remaining),
                requested_days=str(days),
            )

    async def deduct(
        self,
        actor: Actor | None,
        employee_id: UUID,
        leave_type_id: UUID,
        year: int,
        days: Decimal,
    ) -> LeaveBalance:
        """Draw days from a balance under a row lock.

        Capped types refuse to go negative. Uncapped types only track
        used_days, creating a zero-total row on first use.
        """
        days = Decimal(days)
        if days <= 0:
            raise ValidationError("Deduction must be positive", field="days")

        leave_type = await self.get_leave_type(leave_type_id)
        await acquire_employee_lock(self.session, LOCK_SCOPE, employee_id)
        balance = await self.get_balance(employee_id, leave_type_id, year, for_update=True)

        self.check_available(leave_type, employee_id, year, days, balance)
        if balance is None:
            balance = LeaveBalance(
                leave_balance_id=uuid4(),
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                year=year,
                total_days=Decimal("0"),
                used_days=Decimal("0"),
            )
            self.session.add(balance)

        before = {"total_days": str(balance.total_days), "used_days": str(balance.used_days)}
        balance.used_days = Decimal(balance.used_days) + days
        await self._flush_unique(
            "Leave balance already allocated",
            employee_id=str(employee_id),
            leave_type_id=str(leave_type_id),
            year=year,
        )

        await self._record_audit(
            actor,
            balance.leave_balance_id,
            "deducted",
            before=before,
            after={"total_days": str(balance.total_days), "used_days": str(balance.used_days)},
        )
        self._publish(
            LeaveBalanceDeducted(
                metadata=self._metadata(actor),
                leave_balance_id=balance.leave_balance_id,
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                year=year,
                days=days,
                remaining_days=balance.remaining_days,
            )
        )
        return balance
