"""Timesheet API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from workforce_ledger.api.dependencies import CurrentActor, Gateway
from workforce_ledger.api.schemas import (
    BulkIdsRequest,
    BulkTimesheetResponse,
    ErrorResponse,
    RejectionRequest,
    TimesheetCreate,
    TimesheetResponse,
    TimesheetUpdate,
)

router = APIRouter(prefix="/timesheets", tags=["timesheets"])

EntryId = Annotated[UUID, Path()]


# ============================================================================
# Entries
# ============================================================================


@router.post(
    "",
    response_model=TimesheetResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_timesheet(
    gateway: Gateway,
    actor: CurrentActor,
    payload: TimesheetCreate,
) -> TimesheetResponse:
    """Record a Draft entry; hours are derived from the interval."""
    fields = payload.model_dump(exclude={"employee_id", "work_date", "check_in"})
    entry = await gateway.timesheet_create(
        actor, payload.employee_id, payload.work_date, payload.check_in, **fields
    )
    return TimesheetResponse.model_validate(entry)


@router.get("", response_model=list[TimesheetResponse])
async def list_timesheets(
    gateway: Gateway,
    actor: CurrentActor,
    employee_id: UUID,
    start: date,
    end: date,
    approval_status: Annotated[str | None, Query()] = None,
) -> list[TimesheetResponse]:
    """List one employee's entries in a date range."""
    entries = await gateway.timesheet_list(actor, employee_id, start, end, approval_status)
    return [TimesheetResponse.model_validate(e) for e in entries]


@router.get(
    "/{entry_id}",
    response_model=TimesheetResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_timesheet(
    gateway: Gateway, actor: CurrentActor, entry_id: EntryId
) -> TimesheetResponse:
    entry = await gateway.timesheet_get(actor, entry_id)
    return TimesheetResponse.model_validate(entry)


@router.patch(
    "/{entry_id}",
    response_model=TimesheetResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_timesheet(
    gateway: Gateway,
    actor: CurrentActor,
    entry_id: EntryId,
    payload: TimesheetUpdate,
) -> TimesheetResponse:
    """Change the fields sent; locked fields are refused once approved."""
    entry = await gateway.timesheet_update(
        actor, entry_id, **payload.model_dump(exclude_unset=True)
    )
    return TimesheetResponse.model_validate(entry)


# ============================================================================
# Approval workflow
# ============================================================================


@router.post("/{entry_id}/submit", response_model=TimesheetResponse)
async def submit_timesheet(
    gateway: Gateway, actor: CurrentActor, entry_id: EntryId
) -> TimesheetResponse:
    return TimesheetResponse.model_validate(await gateway.timesheet_submit(actor, entry_id))


@router.post("/{entry_id}/approve", response_model=TimesheetResponse)
async def approve_timesheet(
    gateway: Gateway, actor: CurrentActor, entry_id: EntryId
) -> TimesheetResponse:
    return TimesheetResponse.model_validate(await gateway.timesheet_approve(actor, entry_id))


@router.post("/{entry_id}/reject", response_model=TimesheetResponse)
async def reject_timesheet(
    gateway: Gateway,
    actor: CurrentActor,
    entry_id: EntryId,
    payload: RejectionRequest,
) -> TimesheetResponse:
    entry = await gateway.timesheet_reject(actor, entry_id, payload.reason)
    return TimesheetResponse.model_validate(entry)


@router.post("/{entry_id}/reopen", response_model=TimesheetResponse)
async def reopen_timesheet(
    gateway: Gateway, actor: CurrentActor, entry_id: EntryId
) -> TimesheetResponse:
    """Send a rejected entry back to Draft."""
    return TimesheetResponse.model_validate(await gateway.timesheet_reopen(actor, entry_id))


@router.post("/bulk-approve", response_model=BulkTimesheetResponse)
async def bulk_approve_timesheets(
    gateway: Gateway, actor: CurrentActor, payload: BulkIdsRequest
) -> BulkTimesheetResponse:
    """Approve the Submitted entries among the ids; the rest are skipped."""
    result = await gateway.timesheet_bulk_approve(actor, payload.ids)
    return BulkTimesheetResponse(approved=result.approved, skipped=result.skipped)


# ============================================================================
# Overtime
# ============================================================================


@router.post("/{entry_id}/overtime/approve", response_model=TimesheetResponse)
async def approve_overtime(
    gateway: Gateway, actor: CurrentActor, entry_id: EntryId
) -> TimesheetResponse:
    entry = await gateway.timesheet_approve_overtime(actor, entry_id)
    return TimesheetResponse.model_validate(entry)


@router.post("/{entry_id}/overtime/reject", response_model=TimesheetResponse)
async def reject_overtime(
    gateway: Gateway,
    actor: CurrentActor,
    entry_id: EntryId,
    payload: RejectionRequest,
) -> TimesheetResponse:
    entry = await gateway.timesheet_reject_overtime(actor, entry_id, payload.reason)
    return TimesheetResponse.model_validate(entry)
