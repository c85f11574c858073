"""Monthly summary service - aggregation and dual-signature approval."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select

from workforce_ledger.actor import Actor, Role
from workforce_ledger.calculators import (
    ProjectBreakdownRow,
    SummaryMetrics,
    compute_subtotal,
    compute_tax,
    count_working_days,
    month_bounds,
    next_invoice_number,
    working_days_in_month,
)
from workforce_ledger.calculators.hours import quantize_hours
from workforce_ledger.calculators.working_days import clip_to_range
from workforce_ledger.errors import (
    DuplicateError,
    InvalidStateTransitionError,
    LedgerError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from workforce_ledger.events import (
    InvoiceComputed,
    MonthlySummaryGenerated,
    MonthlySummaryStatusChanged,
    to_jsonable,
)
from workforce_ledger.models import (
    FINANCIAL_FIELDS,
    Employee,
    LeaveRequest,
    MonthlySummary,
    Project,
    TimesheetEntry,
)
from workforce_ledger.services.base import LedgerService
from workforce_ledger.services.locking_service import LockingService
from workforce_ledger.services.state_machine import (
    LeaveRequestStatus,
    OvertimeStatus,
    SummaryStateMachine,
    SummaryStatus,
    TimesheetStatus,
)

logger = logging.getLogger(__name__)

UNASSIGNED_PROJECT = "Unassigned"
MIN_YEAR = 2020
MAX_YEAR = 2100


def visible_fields(summary: MonthlySummary, role: Role | str) -> dict[str, Any]:
    """Summary fields a caller of the given role may see.

    Only admins see pay data; everyone else gets the summary without
    subtotal, tax, total and invoice fields.
    """
    data = summary.to_dict()
    if Role(role) != Role.ADMIN:
        for name in FINANCIAL_FIELDS:
            data.pop(name, None)
    return data


def _require_text(value: str | None, field_name: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message, field=field_name)
    return value


@dataclass
class GenerateAllResult:
    """Outcome of generating a month of summaries for every active employee."""

    generated: list[UUID] = field(default_factory=list)
    failed: dict[UUID, dict[str, Any]] = field(default_factory=dict)


class MonthlySummaryService(LedgerService):
    """Service for monthly summaries.

    Lifecycle:
    - generate: aggregate approved work into a DRAFT
    - sign_by_staff: DRAFT → SIGNED_BY_STAFF (the employee's own signature)
    - approve / reject: SIGNED_BY_STAFF → APPROVED | REJECTED (admin)
    - regenerate: REJECTED → DRAFT with fresh metrics and no signatures
    - compute_financials: subtotal, tax and invoice number until APPROVED
    """

    entity_type = "monthly_summary"

    async def get(self, summary_id: UUID, for_update: bool = False) -> MonthlySummary:
        """Load a summary, raising NotFoundError if it does not exist."""
        stmt = select(MonthlySummary).where(MonthlySummary.monthly_summary_id == summary_id)
        if for_update:
            stmt = stmt.with_for_update()
        summary = (await self.session.execute(stmt)).scalar_one_or_none()
        if summary is None:
            raise NotFoundError(f"Monthly summary {summary_id} not found")
        return summary

    async def find(self, employee_id: UUID, month: int, year: int) -> MonthlySummary | None:
        stmt = select(MonthlySummary).where(
            MonthlySummary.employee_id == employee_id,
            MonthlySummary.month == month,
            MonthlySummary.year == year,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_summaries(
        self,
        month: int | None = None,
        year: int | None = None,
        status: str | None = None,
        employee_id: UUID | None = None,
    ) -> Sequence[MonthlySummary]:
        stmt = select(MonthlySummary)
        if month is not None:
            stmt = stmt.where(MonthlySummary.month == month)
        if year is not None:
            stmt = stmt.where(MonthlySummary.year == year)
        if status is not None:
            stmt = stmt.where(MonthlySummary.status == status)
        if employee_id is not None:
            stmt = stmt.where(MonthlySummary.employee_id == employee_id)
        stmt = stmt.order_by(
            MonthlySummary.year.desc(), MonthlySummary.month.desc(), MonthlySummary.employee_id
        )
        return (await self.session.execute(stmt)).scalars().all()

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    async def aggregate(self, employee_id: UUID, month: int, year: int) -> SummaryMetrics:
        """Aggregate approved timesheets and approved leave for one month."""
        first, last = month_bounds(year, month)

        entries = (
            await self.session.execute(
                select(TimesheetEntry)
                .where(
                    TimesheetEntry.employee_id == employee_id,
                    TimesheetEntry.work_date >= first,
                    TimesheetEntry.work_date <= last,
                    TimesheetEntry.approval_status == TimesheetStatus.APPROVED.value,
                )
                .order_by(TimesheetEntry.work_date)
            )
        ).scalars().all()

        project_ids = {e.project_id for e in entries if e.project_id is not None}
        project_names: dict[UUID, str] = {}
        if project_ids:
            rows = await self.session.execute(
                select(Project.project_id, Project.name).where(Project.project_id.in_(project_ids))
            )
            project_names = {row.project_id: row.name for row in rows}

        worked_dates = set()
        total_hours = Decimal("0")
        ot_hours = Decimal("0")
        breakdown: OrderedDict[UUID | None, ProjectBreakdownRow] = OrderedDict()
        project_dates: dict[UUID | None, set] = {}

        for entry in entries:
            approved_ot = (
                Decimal(entry.overtime_hours)
                if entry.ot_approval_status == OvertimeStatus.APPROVED
                else Decimal("0")
            )
            worked_dates.add(entry.work_date)
            total_hours += Decimal(entry.total_hours)
            ot_hours += approved_ot

            row = breakdown.get(entry.project_id)
            if row is None:
                name = project_names.get(entry.project_id, UNASSIGNED_PROJECT)
                row = breakdown[entry.project_id] = ProjectBreakdownRow(entry.project_id, name)
                project_dates[entry.project_id] = set()
            project_dates[entry.project_id].add(entry.work_date)
            row.days_worked = len(project_dates[entry.project_id])
            row.total_hours += Decimal(entry.total_hours)
            row.ot_hours += approved_ot

        rows = sorted(breakdown.values(), key=lambda r: (-r.total_hours, r.project_name))
        for row in rows:
            row.total_hours = quantize_hours(row.total_hours)
            row.ot_hours = quantize_hours(row.ot_hours)

        leave_days = await self._approved_leave_days(employee_id, first, last)
        working_days = working_days_in_month(year, month)
        absent_days = max(
            0,
            working_days
            - len(worked_dates)
            - int(leave_days.to_integral_value(rounding=ROUND_FLOOR)),
        )

        return SummaryMetrics(
            total_working_days=len(worked_dates),
            total_worked_hours=quantize_hours(total_hours),
            total_ot_hours=quantize_hours(ot_hours),
            approved_leaves=leave_days,
            absent_days=absent_days,
            project_breakdown=rows,
        )

    async def _approved_leave_days(self, employee_id: UUID, first, last) -> Decimal:
        """Working days of approved leave falling inside [first, last]."""
        requests = (
            await self.session.execute(
                select(LeaveRequest.start_date, LeaveRequest.end_date).where(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.status == LeaveRequestStatus.APPROVED.value,
                    LeaveRequest.start_date <= last,
                    LeaveRequest.end_date >= first,
                )
            )
        ).all()

        days = 0
        for start_date, end_date in requests:
            clipped = clip_to_range(start_date, end_date, first, last)
            if clipped is not None:
                days += count_working_days(*clipped)
        return Decimal(days)

    def _apply_metrics(self, summary: MonthlySummary, metrics: SummaryMetrics) -> None:
        summary.total_working_days = metrics.total_working_days
        summary.total_worked_hours = metrics.total_worked_hours
        summary.total_ot_hours = metrics.total_ot_hours
        summary.approved_leaves = metrics.approved_leaves
        summary.absent_days = metrics.absent_days
        summary.project_breakdown = [row.to_json() for row in metrics.project_breakdown]

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        actor: Actor,
        employee_id: UUID,
        month: int,
        year: int,
        tax_percentage: Decimal | None = None,
    ) -> MonthlySummary:
        """Create the DRAFT summary for (employee, month, year).

        An existing summary is never overwritten, whatever its status. A
        rejected one goes back to DRAFT only through regenerate().
        """
        if not 1 <= month <= 12:
            raise ValidationError("Invalid month. Must be 1-12", field="month")
        if not MIN_YEAR <= year <= MAX_YEAR:
            raise ValidationError(f"Invalid year. Must be {MIN_YEAR}-{MAX_YEAR}", field="year")

        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise ValidationError(f"Employee {employee_id} not found", field="employee_id")

        if await self.find(employee_id, month, year) is not None:
            raise DuplicateError(
                f"Monthly summary already exists for {year}-{month:02d}",
                employee_id=str(employee_id),
                month=month,
                year=year,
            )

        metrics = await self.aggregate(employee_id, month, year)
        summary = MonthlySummary(
            monthly_summary_id=uuid4(),
            employee_id=employee_id,
            month=month,
            year=year,
            status=SummaryStatus.DRAFT.value,
            payment_type=employee.payment_type,
            created_by=actor.user_id,
            regeneration_count=0,
        )
        self._apply_metrics(summary, metrics)
        self.session.add(summary)
        await self._flush_unique(
            f"Monthly summary already exists for {year}-{month:02d}",
            employee_id=str(employee_id),
            month=month,
            year=year,
        )

        await self._record_audit(actor, summary.monthly_summary_id, "generated")
        self._publish(
            MonthlySummaryGenerated(
                metadata=self._metadata(actor),
                monthly_summary_id=summary.monthly_summary_id,
                employee_id=employee_id,
                month=month,
                year=year,
            )
        )
        logger.info(
            "Monthly summary %s generated for employee %s, %d-%02d",
            summary.monthly_summary_id,
            employee_id,
            year,
            month,
        )

        if tax_percentage is not None:
            await self._apply_financials(actor, summary, employee, tax_percentage)
        return summary

    async def generate_for_all(
        self,
        actor: Actor,
        month: int,
        year: int,
        tax_percentage: Decimal | None = None,
    ) -> GenerateAllResult:
        """Generate a month for every active employee, collecting failures."""
        employee_ids = (
            await self.session.execute(
                select(Employee.employee_id)
                .where(Employee.status == "active")
                .order_by(Employee.employee_id)
            )
        ).scalars().all()

        result = GenerateAllResult()
        for employee_id in employee_ids:
            published = len(self.events)
            try:
                async with self.session.begin_nested():
                    summary = await self.generate(actor, employee_id, month, year, tax_percentage)
            except LedgerError as exc:
                del self.events[published:]
                result.failed[employee_id] = exc.to_dict()
                logger.warning(
                    "Summary generation skipped employee %s: %s", employee_id, exc.code
                )
            else:
                result.generated.append(summary.monthly_summary_id)

        logger.info(
            "Generated %d summaries for %d-%02d (%d failed)",
            len(result.generated),
            year,
            month,
            len(result.failed),
        )
        return result

    async def regenerate(self, actor: Actor, summary_id: UUID) -> MonthlySummary:
        """REJECTED → DRAFT with both signatures cleared and metrics recomputed."""
        summary = await self.get(summary_id, for_update=True)
        from_status = summary.status
        SummaryStateMachine.validate_transition(
            from_status, SummaryStatus.DRAFT.value, "Only rejected summaries can be regenerated"
        )

        before = summary.metrics_snapshot()
        LockingService.clear_signatures(summary)
        metrics = await self.aggregate(summary.employee_id, summary.month, summary.year)
        self._apply_metrics(summary, metrics)
        employee = await self.session.get(Employee, summary.employee_id)
        summary.payment_type = employee.payment_type if employee is not None else None
        summary.status = SummaryStatus.DRAFT.value
        summary.regeneration_count += 1
        await self.session.flush()

        await self._record_audit(
            actor,
            summary_id,
            f"status_change:{from_status}:{SummaryStatus.DRAFT.value}",
            before=to_jsonable(before),
            after=to_jsonable(summary.metrics_snapshot()),
        )
        self._publish(
            MonthlySummaryGenerated(
                metadata=self._metadata(actor),
                monthly_summary_id=summary_id,
                employee_id=summary.employee_id,
                month=summary.month,
                year=summary.year,
                regenerated=True,
            )
        )
        logger.info(
            "Monthly summary %s regenerated (cycle %d)", summary_id, summary.regeneration_count
        )

        # Derived amounts follow the fresh metrics, an admin-set subtotal stays
        if summary.subtotal is not None and employee is not None:
            await self._apply_financials(
                actor,
                summary,
                employee,
                summary.tax_percentage,
                subtotal=summary.subtotal if summary.subtotal_overridden else None,
            )
        return summary

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    async def sign_by_staff(
        self, actor: Actor, summary_id: UUID, signature_ref: str
    ) -> MonthlySummary:
        """DRAFT → SIGNED_BY_STAFF. Only the summary's employee may sign."""
        signature_ref = _require_text(signature_ref, "signature_ref", "Signature is required")
        summary = await self.get(summary_id, for_update=True)
        if not actor.owns(summary.employee_id):
            raise PermissionDeniedError("You can only sign your own summary")

        SummaryStateMachine.validate_transition(summary.status, SummaryStatus.SIGNED_BY_STAFF)
        LockingService.verify_staff_signature_open(summary)

        summary.staff_signature = signature_ref
        summary.staff_signed_at = self.clock()
        summary.staff_signed_by = actor.user_id
        return await self._transition(actor, summary, SummaryStatus.SIGNED_BY_STAFF.value)

    async def approve(
        self,
        actor: Actor,
        summary_id: UUID,
        signature_ref: str,
        remarks: str | None = None,
    ) -> MonthlySummary:
        """SIGNED_BY_STAFF → APPROVED. The summary is locked from here on."""
        signature_ref = _require_text(
            signature_ref, "signature_ref", "Admin signature is required for approval"
        )
        summary = await self.get(summary_id, for_update=True)
        if summary.status == SummaryStatus.APPROVED:
            return summary
        return await self._admin_decision(
            actor, summary, SummaryStatus.APPROVED.value, signature_ref, remarks
        )

    async def reject(
        self,
        actor: Actor,
        summary_id: UUID,
        signature_ref: str,
        remarks: str,
    ) -> MonthlySummary:
        """SIGNED_BY_STAFF → REJECTED with mandatory remarks."""
        signature_ref = _require_text(signature_ref, "signature_ref", "Admin signature is required")
        remarks = _require_text(remarks, "remarks", "Rejection reason is required")
        summary = await self.get(summary_id, for_update=True)
        return await self._admin_decision(
            actor, summary, SummaryStatus.REJECTED.value, signature_ref, remarks
        )

    async def bulk_approve(
        self,
        actor: Actor,
        summary_ids: Sequence[UUID],
        signature_ref: str,
        remarks: str | None = None,
    ) -> list[MonthlySummary]:
        """Approve every summary or none of them."""
        if not summary_ids:
            raise ValidationError("Provide at least one summary id", field="summary_ids")
        signature_ref = _require_text(
            signature_ref, "signature_ref", "Admin signature is required for bulk approval"
        )

        unique_ids = list(dict.fromkeys(summary_ids))
        summaries = (
            await self.session.execute(
                select(MonthlySummary)
                .where(MonthlySummary.monthly_summary_id.in_(unique_ids))
                .with_for_update()
            )
        ).scalars().all()
        by_id = {s.monthly_summary_id: s for s in summaries}

        missing = [str(i) for i in unique_ids if i not in by_id]
        if missing:
            raise NotFoundError(
                f"{len(missing)} monthly summary(ies) not found", summary_ids=missing
            )
        unsigned = [s for s in summaries if s.status != SummaryStatus.SIGNED_BY_STAFF]
        if unsigned:
            raise InvalidStateTransitionError(
                unsigned[0].status,
                SummaryStatus.APPROVED.value,
                f"{len(unsigned)} summary(ies) are not signed by staff",
            )

        approved = []
        for summary_id in unique_ids:
            approved.append(
                await self._admin_decision(
                    actor, by_id[summary_id], SummaryStatus.APPROVED.value, signature_ref, remarks
                )
            )
        logger.info("Bulk approved %d monthly summaries", len(approved))
        return approved

    async def _admin_decision(
        self,
        actor: Actor,
        summary: MonthlySummary,
        to_status: str,
        signature_ref: str,
        remarks: str | None,
    ) -> MonthlySummary:
        SummaryStateMachine.validate_transition(summary.status, to_status)
        summary.admin_signature = signature_ref
        summary.admin_approved_at = self.clock()
        summary.admin_approved_by = actor.user_id
        summary.admin_remarks = remarks
        return await self._transition(actor, summary, to_status, remarks)

    async def _transition(
        self,
        actor: Actor,
        summary: MonthlySummary,
        to_status: str,
        remarks: str | None = None,
    ) -> MonthlySummary:
        from_status = summary.status
        summary.status = to_status
        await self.session.flush()

        await self._record_audit(
            actor,
            summary.monthly_summary_id,
            f"status_change:{from_status}:{to_status}",
            after={"remarks": remarks} if remarks else None,
        )
        self._publish(
            MonthlySummaryStatusChanged(
                metadata=self._metadata(actor),
                monthly_summary_id=summary.monthly_summary_id,
                employee_id=summary.employee_id,
                from_status=from_status,
                to_status=to_status,
                remarks=remarks,
            )
        )
        logger.info(
            "Monthly summary %s: %s -> %s", summary.monthly_summary_id, from_status, to_status
        )
        return summary

    # ------------------------------------------------------------------
    # Financials
    # ------------------------------------------------------------------

    async def compute_financials(
        self,
        actor: Actor,
        summary_id: UUID,
        *,
        subtotal: Decimal | None = None,
        tax_percentage: Decimal | None = None,
    ) -> MonthlySummary:
        """Set subtotal, tax and total; the invoice number is assigned once.

        Without an explicit subtotal, one is derived from the employee's
        pay basis and the summary's metrics. An explicit subtotal is kept
        as given through later regenerations.
        """
        summary = await self.get(summary_id, for_update=True)
        LockingService.verify_summary_mutable(summary, summary.status)
        employee = await self.session.get(Employee, summary.employee_id)
        if employee is None:
            raise ValidationError(f"Employee {summary.employee_id} not found")
        return await self._apply_financials(
            actor, summary, employee, tax_percentage, subtotal=subtotal
        )

    async def _apply_financials(
        self,
        actor: Actor,
        summary: MonthlySummary,
        employee: Employee,
        tax_percentage: Decimal | None,
        subtotal: Decimal | None = None,
    ) -> MonthlySummary:
        if tax_percentage is None:
            tax_percentage = self.policy.default_tax_percentage
        tax_percentage = Decimal(tax_percentage)

        overridden = subtotal is not None
        if not overridden:
            subtotal = compute_subtotal(
                employee.payment_type,
                self._metrics_of(summary),
                working_days_in_month(summary.year, summary.month),
                hourly_rate=employee.hourly_rate,
                daily_rate=employee.daily_rate,
                monthly_rate=employee.monthly_rate,
                contract_rate=employee.contract_rate,
                policy=self.policy,
            )
        try:
            financials = compute_tax(Decimal(subtotal), tax_percentage)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        before = {name: getattr(summary, name) for name in FINANCIAL_FIELDS}
        summary.subtotal = financials.subtotal
        summary.tax_percentage = financials.tax_percentage
        summary.tax_amount = financials.tax_amount
        summary.total_amount = financials.total_amount
        summary.subtotal_overridden = overridden
        summary.payment_type = employee.payment_type
        if summary.invoice_number is None:
            summary.invoice_number = await self._next_invoice_number(summary.year, summary.month)

        await self._flush_unique(
            f"Invoice number {summary.invoice_number} already issued",
            invoice_number=summary.invoice_number,
        )
        await self._record_audit(
            actor,
            summary.monthly_summary_id,
            "financials_computed",
            before=to_jsonable(before),
            after=to_jsonable({name: getattr(summary, name) for name in FINANCIAL_FIELDS}),
        )
        self._publish(
            InvoiceComputed(
                metadata=self._metadata(actor),
                monthly_summary_id=summary.monthly_summary_id,
                employee_id=summary.employee_id,
                invoice_number=summary.invoice_number,
                subtotal=financials.subtotal,
                tax_amount=financials.tax_amount,
                total_amount=financials.total_amount,
            )
        )
        logger.info(
            "Financials for summary %s: %s + %s tax = %s (%s)",
            summary.monthly_summary_id,
            financials.subtotal,
            financials.tax_amount,
            financials.total_amount,
            summary.invoice_number,
        )
        return summary

    def _metrics_of(self, summary: MonthlySummary) -> SummaryMetrics:
        return SummaryMetrics(
            total_working_days=summary.total_working_days,
            total_worked_hours=Decimal(summary.total_worked_hours),
            total_ot_hours=Decimal(summary.total_ot_hours),
            approved_leaves=Decimal(summary.approved_leaves),
            absent_days=summary.absent_days,
        )

    async def _next_invoice_number(self, year: int, month: int) -> str:
        issued = (
            await self.session.execute(
                select(MonthlySummary.invoice_number).where(
                    MonthlySummary.year == year,
                    MonthlySummary.month == month,
                    MonthlySummary.invoice_number.is_not(None),
                )
            )
        ).scalars().all()
        return next_invoice_number(year, month, list(issued))
