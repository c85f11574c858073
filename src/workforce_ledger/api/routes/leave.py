"""Leave API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from workforce_ledger.api.dependencies import CurrentActor, Gateway
from workforce_ledger.api.schemas import (
    AllocationRequest,
    BulkIdsRequest,
    BulkLeaveResponse,
    ErrorResponse,
    LeaveBalanceResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveTypeResponse,
    RejectionRequest,
)

router = APIRouter(prefix="/leave", tags=["leave"])

RequestId = Annotated[UUID, Path()]


@router.get("/types", response_model=list[LeaveTypeResponse])
async def list_leave_types(gateway: Gateway, actor: CurrentActor) -> list[LeaveTypeResponse]:
    return [LeaveTypeResponse.model_validate(t) for t in await gateway.leave_types(actor)]


# ============================================================================
# Requests
# ============================================================================


@router.post(
    "/requests",
    response_model=LeaveRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_leave_request(
    gateway: Gateway,
    actor: CurrentActor,
    payload: LeaveRequestCreate,
) -> LeaveRequestResponse:
    """File a pending request. The balance is drawn only on approval."""
    fields = payload.model_dump(exclude={"employee_id", "leave_type_id", "start_date", "end_date"})
    request = await gateway.leave_create_request(
        actor,
        payload.employee_id,
        payload.leave_type_id,
        payload.start_date,
        payload.end_date,
        **fields,
    )
    return LeaveRequestResponse.model_validate(request)


@router.get("/requests", response_model=list[LeaveRequestResponse])
async def list_leave_requests(
    gateway: Gateway,
    actor: CurrentActor,
    employee_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    year: int | None = None,
) -> list[LeaveRequestResponse]:
    requests = await gateway.leave_list_requests(actor, employee_id, status_filter, year)
    return [LeaveRequestResponse.model_validate(r) for r in requests]


@router.post(
    "/requests/{request_id}/approve",
    response_model=LeaveRequestResponse,
    responses={409: {"model": ErrorResponse}},
)
async def approve_leave_request(
    gateway: Gateway, actor: CurrentActor, request_id: RequestId
) -> LeaveRequestResponse:
    """Approve and deduct the balance in one transaction."""
    request = await gateway.leave_approve_request(actor, request_id)
    return LeaveRequestResponse.model_validate(request)


@router.post("/requests/{request_id}/reject", response_model=LeaveRequestResponse)
async def reject_leave_request(
    gateway: Gateway,
    actor: CurrentActor,
    request_id: RequestId,
    payload: RejectionRequest,
) -> LeaveRequestResponse:
    request = await gateway.leave_reject_request(actor, request_id, payload.reason)
    return LeaveRequestResponse.model_validate(request)


@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestResponse)
async def cancel_leave_request(
    gateway: Gateway, actor: CurrentActor, request_id: RequestId
) -> LeaveRequestResponse:
    request = await gateway.leave_cancel_request(actor, request_id)
    return LeaveRequestResponse.model_validate(request)


@router.post("/requests/bulk-approve", response_model=BulkLeaveResponse)
async def bulk_approve_leave(
    gateway: Gateway, actor: CurrentActor, payload: BulkIdsRequest
) -> BulkLeaveResponse:
    """Approve each request independently, reporting the ones that failed."""
    result = await gateway.leave_bulk_approve(actor, payload.ids)
    return BulkLeaveResponse(approved=result.approved, failed=result.failed)


# ============================================================================
# Balances
# ============================================================================


@router.post(
    "/balances",
    response_model=LeaveBalanceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def allocate_leave_balance(
    gateway: Gateway, actor: CurrentActor, payload: AllocationRequest
) -> LeaveBalanceResponse:
    balance = await gateway.leave_allocate_balance(
        actor, payload.employee_id, payload.leave_type_id, payload.year, payload.total_days
    )
    return LeaveBalanceResponse.model_validate(balance)


@router.get("/balances/{employee_id}", response_model=list[LeaveBalanceResponse])
async def list_leave_balances(
    gateway: Gateway,
    actor: CurrentActor,
    employee_id: Annotated[UUID, Path()],
    year: int,
    leave_type_id: UUID | None = None,
) -> list[LeaveBalanceResponse]:
    if leave_type_id is None:
        balances = await gateway.leave_list_balances(actor, employee_id, year)
        return [LeaveBalanceResponse.model_validate(b) for b in balances]

    balance = await gateway.leave_get_balance(actor, employee_id, leave_type_id, year)
    if balance is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Leave balance not allocated",
        )
    return [LeaveBalanceResponse.model_validate(balance)]
