"""API routes."""

from workforce_ledger.api.routes.health import router as health_router
from workforce_ledger.api.routes.leave import router as leave_router
from workforce_ledger.api.routes.monthly_summaries import router as monthly_summaries_router
from workforce_ledger.api.routes.reports import router as reports_router
from workforce_ledger.api.routes.timesheets import router as timesheets_router

__all__ = [
    "health_router",
    "leave_router",
    "monthly_summaries_router",
    "reports_router",
    "timesheets_router",
]
