"""Reporting API endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter

from workforce_ledger.api.dependencies import CurrentActor, Gateway
from workforce_ledger.api.schemas import (
    ErrorResponse,
    LastWorkDateResponse,
    LeaveStatisticsResponse,
    TimesheetStatisticsResponse,
)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get(
    "/leave-statistics",
    response_model=LeaveStatisticsResponse,
    responses={403: {"model": ErrorResponse}},
)
async def leave_statistics(gateway: Gateway, actor: CurrentActor, year: int) -> LeaveStatisticsResponse:
    stats = await gateway.report_leave_statistics(actor, year)
    return LeaveStatisticsResponse.model_validate(stats)


@router.get(
    "/timesheet-statistics",
    response_model=TimesheetStatisticsResponse,
    responses={403: {"model": ErrorResponse}},
)
async def timesheet_statistics(
    gateway: Gateway, actor: CurrentActor, on_date: date
) -> TimesheetStatisticsResponse:
    stats = await gateway.report_timesheet_statistics(actor, on_date)
    return TimesheetStatisticsResponse.model_validate(stats)


@router.post("/last-work-dates/refresh", responses={403: {"model": ErrorResponse}})
async def refresh_last_work_dates(gateway: Gateway, actor: CurrentActor) -> dict[str, int]:
    """Rebuild the last check-out projection from timesheets."""
    return {"refreshed": await gateway.report_refresh_last_work_dates(actor)}


@router.get(
    "/last-work-dates/{employee_id}",
    response_model=LastWorkDateResponse,
    responses={403: {"model": ErrorResponse}},
)
async def last_work_date(
    gateway: Gateway, actor: CurrentActor, employee_id: UUID
) -> LastWorkDateResponse:
    return LastWorkDateResponse(
        employee_id=employee_id,
        last_work_date=await gateway.report_last_work_date(actor, employee_id),
    )
