"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workforce_ledger.api.routes import (
    health_router,
    leave_router,
    monthly_summaries_router,
    reports_router,
    timesheets_router,
)
from workforce_ledger.config import get_settings
from workforce_ledger.database import dispose_db, init_db
from workforce_ledger.errors import (
    DuplicateError,
    HoursCeilingError,
    ImmutableFieldError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    LedgerError,
    NotFoundError,
    OverlapError,
    PermissionDeniedError,
    ValidationError,
)
from workforce_ledger.events import AsyncEventEmitter
from workforce_ledger.gateway import LedgerGateway

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[LedgerError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    HoursCeilingError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OverlapError: status.HTTP_409_CONFLICT,
    ImmutableFieldError: status.HTTP_409_CONFLICT,
    InsufficientBalanceError: status.HTTP_409_CONFLICT,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    DuplicateError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
}


def status_for(exc: LedgerError) -> int:
    """HTTP status for a ledger error, walking its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    emitter: AsyncEventEmitter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a session factory the global engine from DATABASE_URL is used.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        owns_engine = session_factory is None
        if owns_engine:
            _, factory = init_db()
        else:
            factory = session_factory
        app.state.gateway = LedgerGateway(
            factory,
            policy=get_settings().policy,
            emitter=emitter or AsyncEventEmitter(),
        )
        yield
        if owns_engine:
            await dispose_db()

    app = FastAPI(
        title="Workforce Ledger API",
        description="Timesheets, leave and monthly summary approvals",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
        """Map ledger rejections to their HTTP status with a stable code."""
        code = status_for(exc)
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(timesheets_router, prefix="/api/v1")
    app.include_router(leave_router, prefix="/api/v1")
    app.include_router(monthly_summaries_router, prefix="/api/v1")
    app.include_router(reports_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
