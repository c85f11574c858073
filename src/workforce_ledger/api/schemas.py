"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Timesheet schemas
# ============================================================================


class TimesheetCreate(BaseModel):
    """Schema for recording a timesheet entry."""

    employee_id: UUID
    work_date: date
    check_in: datetime
    check_out: datetime | None = None
    project_id: UUID | None = None
    task_type: str | None = None
    status: str = "Present"
    remarks: str | None = None
    ot_justification: str | None = None


class TimesheetUpdate(BaseModel):
    """Schema for editing a timesheet entry. Only fields sent are changed."""

    work_date: date | None = None
    check_in: datetime | None = None
    check_out: datetime | None = None
    project_id: UUID | None = None
    task_type: str | None = None
    status: str | None = None
    remarks: str | None = None
    ot_justification: str | None = None


class TimesheetResponse(BaseModel):
    """Schema for timesheet entry response."""

    model_config = ConfigDict(from_attributes=True)

    timesheet_entry_id: UUID
    employee_id: UUID
    work_date: date
    check_in: datetime
    check_out: datetime | None = None
    total_hours: Decimal
    overtime_hours: Decimal
    project_id: UUID | None = None
    task_type: str | None = None
    status: str
    approval_status: str
    ot_approval_status: str | None = None
    remarks: str | None = None
    ot_justification: str | None = None
    rejection_reason: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    ot_approved_by: UUID | None = None
    ot_approved_at: datetime | None = None
    ot_rejection_reason: str | None = None
    is_open: bool = False


class RejectionRequest(BaseModel):
    """Schema for rejecting a timesheet, its overtime or a leave request."""

    reason: str = Field(min_length=1)


class BulkIdsRequest(BaseModel):
    """Schema for bulk operations over a list of ids."""

    ids: list[UUID] = Field(min_length=1)


class BulkTimesheetResponse(BaseModel):
    """Schema for bulk timesheet approval."""

    approved: list[UUID]
    skipped: list[UUID]


# ============================================================================
# Leave schemas
# ============================================================================


class LeaveTypeResponse(BaseModel):
    """Schema for leave type response."""

    model_config = ConfigDict(from_attributes=True)

    leave_type_id: UUID
    name: str
    code: str
    description: str | None = None
    requires_approval: bool
    max_days_per_year: int | None = None
    auto_reset_annually: bool


class LeaveRequestCreate(BaseModel):
    """Schema for filing a leave request."""

    employee_id: UUID
    leave_type_id: UUID
    start_date: date
    end_date: date
    reason: str | None = None
    project_id: UUID | None = None
    mc_document_url: str | None = None
    stand_in_employee_id: UUID | None = None


class LeaveRequestResponse(BaseModel):
    """Schema for leave request response."""

    model_config = ConfigDict(from_attributes=True)

    leave_request_id: UUID
    employee_id: UUID
    leave_type_id: UUID
    start_date: date
    end_date: date
    number_of_days: Decimal
    reason: str | None = None
    status: str
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    project_id: UUID | None = None
    mc_document_url: str | None = None
    stand_in_employee_id: UUID | None = None


class BulkLeaveResponse(BaseModel):
    """Schema for bulk leave approval."""

    approved: list[UUID]
    failed: dict[UUID, dict[str, Any]]


class AllocationRequest(BaseModel):
    """Schema for allocating a leave balance."""

    employee_id: UUID
    leave_type_id: UUID
    year: int = Field(ge=2020, le=2100)
    total_days: Decimal | None = Field(default=None, ge=0)


class LeaveBalanceResponse(BaseModel):
    """Schema for leave balance response."""

    model_config = ConfigDict(from_attributes=True)

    leave_balance_id: UUID
    employee_id: UUID
    leave_type_id: UUID
    year: int
    total_days: Decimal
    used_days: Decimal
    remaining_days: Decimal
    last_reset_date: date | None = None


# ============================================================================
# Monthly summary schemas
# ============================================================================


class GenerateAllRequest(BaseModel):
    """Schema for generating a month of summaries for every active employee."""

    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2020, le=2100)
    tax_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class SummaryGenerateRequest(BaseModel):
    """Schema for generating one employee's monthly summary."""

    employee_id: UUID
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2020, le=2100)
    tax_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class SignatureRequest(BaseModel):
    """Schema for a signature, with optional remarks."""

    signature_ref: str = Field(min_length=1)
    remarks: str | None = None


class BulkSummaryApprovalRequest(BaseModel):
    """Schema for approving several summaries at once."""

    ids: list[UUID] = Field(min_length=1)
    signature_ref: str = Field(min_length=1)
    remarks: str | None = None


class FinancialsRequest(BaseModel):
    """Schema for computing summary financials."""

    subtotal: Decimal | None = Field(default=None, ge=0)
    tax_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class MonthlySummaryResponse(BaseModel):
    """Schema for monthly summary response.

    Financial fields are absent for staff callers rather than null.
    """

    model_config = ConfigDict(extra="allow")

    monthly_summary_id: UUID
    employee_id: UUID
    month: int
    year: int
    status: str
    total_working_days: int
    total_worked_hours: Decimal
    total_ot_hours: Decimal
    approved_leaves: Decimal
    absent_days: int
    project_breakdown: list[dict[str, Any]]
    staff_signature: str | None = None
    staff_signed_at: datetime | None = None
    admin_signature: str | None = None
    admin_approved_at: datetime | None = None
    admin_remarks: str | None = None
    regeneration_count: int = 0


class GenerateAllResponse(BaseModel):
    """Schema for batch summary generation."""

    generated: list[UUID]
    failed: dict[UUID, dict[str, Any]]


# ============================================================================
# Reporting schemas
# ============================================================================


class LeaveTypeUsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leave_type_id: UUID
    name: str
    request_count: int
    total_days: Decimal


class LeaveStatisticsResponse(BaseModel):
    """Schema for yearly leave statistics."""

    model_config = ConfigDict(from_attributes=True)

    year: int
    pending_requests: int
    by_type: list[LeaveTypeUsageResponse]
    by_month: dict[int, Decimal]


class TimesheetStatisticsResponse(BaseModel):
    """Schema for the daily timesheet dashboard."""

    model_config = ConfigDict(from_attributes=True)

    on_date: date
    approved_ot_hours: Decimal
    awaiting_approval: int
    pending_ot_approvals: int


class LastWorkDateResponse(BaseModel):
    employee_id: UUID
    last_work_date: datetime | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
