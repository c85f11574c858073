"""Liveness, readiness and database health for the ledger API."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from workforce_ledger.api.dependencies import DbSession
from workforce_ledger.models import LeaveType

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    dialect: str


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report database reachability, degrading instead of failing."""
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError:
        logger.warning("Ledger database unreachable", exc_info=True)
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
        dialect=db.get_bind().dialect.name,
    )


@router.get("/ready")
async def readiness_check(db: DbSession) -> dict[str, str]:
    """Ready once the schema exists and can be queried."""
    try:
        await db.execute(select(func.count()).select_from(LeaveType))
    except SQLAlchemyError:
        logger.warning("Ledger schema not ready", exc_info=True)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="not ready")
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
