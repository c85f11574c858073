"""Monthly summary API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from workforce_ledger.api.dependencies import CurrentActor, Gateway
from workforce_ledger.api.schemas import (
    BulkSummaryApprovalRequest,
    ErrorResponse,
    FinancialsRequest,
    GenerateAllRequest,
    GenerateAllResponse,
    MonthlySummaryResponse,
    SignatureRequest,
    SummaryGenerateRequest,
)
from workforce_ledger.services import visible_fields

router = APIRouter(prefix="/monthly-summaries", tags=["monthly-summaries"])

SummaryId = Annotated[UUID, Path()]


def _response(summary, actor) -> MonthlySummaryResponse:
    return MonthlySummaryResponse.model_validate(visible_fields(summary, actor.role))


# ============================================================================
# Generation
# ============================================================================


@router.post(
    "",
    response_model=MonthlySummaryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def generate_summary(
    gateway: Gateway, actor: CurrentActor, payload: SummaryGenerateRequest
) -> MonthlySummaryResponse:
    """Aggregate one employee's approved month into a DRAFT summary."""
    summary = await gateway.summary_generate(
        actor, payload.employee_id, payload.month, payload.year, payload.tax_percentage
    )
    return _response(summary, actor)


@router.post("/generate-all", response_model=GenerateAllResponse)
async def generate_all_summaries(
    gateway: Gateway, actor: CurrentActor, payload: GenerateAllRequest
) -> GenerateAllResponse:
    result = await gateway.summary_generate_for_all(
        actor, payload.month, payload.year, payload.tax_percentage
    )
    return GenerateAllResponse(generated=result.generated, failed=result.failed)


@router.get("", response_model=list[MonthlySummaryResponse])
async def list_summaries(
    gateway: Gateway,
    actor: CurrentActor,
    month: Annotated[int | None, Query(ge=1, le=12)] = None,
    year: int | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    employee_id: UUID | None = None,
) -> list[MonthlySummaryResponse]:
    rows = await gateway.summary_list(actor, month, year, status_filter, employee_id)
    return [MonthlySummaryResponse.model_validate(row) for row in rows]


@router.get(
    "/{summary_id}",
    response_model=MonthlySummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_summary(
    gateway: Gateway, actor: CurrentActor, summary_id: SummaryId
) -> MonthlySummaryResponse:
    return MonthlySummaryResponse.model_validate(await gateway.summary_get(actor, summary_id))


@router.post("/{summary_id}/regenerate", response_model=MonthlySummaryResponse)
async def regenerate_summary(
    gateway: Gateway, actor: CurrentActor, summary_id: SummaryId
) -> MonthlySummaryResponse:
    """Rebuild a rejected summary as a fresh DRAFT."""
    return _response(await gateway.summary_regenerate(actor, summary_id), actor)


# ============================================================================
# Signatures
# ============================================================================


@router.post("/{summary_id}/sign", response_model=MonthlySummaryResponse)
async def sign_summary(
    gateway: Gateway,
    actor: CurrentActor,
    summary_id: SummaryId,
    payload: SignatureRequest,
) -> MonthlySummaryResponse:
    """Staff sign-off on their own summary."""
    summary = await gateway.summary_sign_by_staff(actor, summary_id, payload.signature_ref)
    return _response(summary, actor)


@router.post("/{summary_id}/approve", response_model=MonthlySummaryResponse)
async def approve_summary(
    gateway: Gateway,
    actor: CurrentActor,
    summary_id: SummaryId,
    payload: SignatureRequest,
) -> MonthlySummaryResponse:
    summary = await gateway.summary_approve(
        actor, summary_id, payload.signature_ref, payload.remarks
    )
    return _response(summary, actor)


@router.post("/{summary_id}/reject", response_model=MonthlySummaryResponse)
async def reject_summary(
    gateway: Gateway,
    actor: CurrentActor,
    summary_id: SummaryId,
    payload: SignatureRequest,
) -> MonthlySummaryResponse:
    summary = await gateway.summary_reject(
        actor, summary_id, payload.signature_ref, payload.remarks
    )
    return _response(summary, actor)


@router.post("/bulk-approve", response_model=list[MonthlySummaryResponse])
async def bulk_approve_summaries(
    gateway: Gateway, actor: CurrentActor, payload: BulkSummaryApprovalRequest
) -> list[MonthlySummaryResponse]:
    """Approve every listed summary, or none if any is not signed by staff."""
    summaries = await gateway.summary_bulk_approve(
        actor, payload.ids, payload.signature_ref, payload.remarks
    )
    return [_response(s, actor) for s in summaries]


# ============================================================================
# Financials
# ============================================================================


@router.post("/{summary_id}/financials", response_model=MonthlySummaryResponse)
async def compute_financials(
    gateway: Gateway,
    actor: CurrentActor,
    summary_id: SummaryId,
    payload: FinancialsRequest,
) -> MonthlySummaryResponse:
    summary = await gateway.summary_compute_financials(
        actor, summary_id, subtotal=payload.subtotal, tax_percentage=payload.tax_percentage
    )
    return _response(summary, actor)
