"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_ledger.actor import Actor
from workforce_ledger.errors import PermissionDeniedError
from workforce_ledger.gateway import LedgerGateway


def get_gateway(request: Request) -> LedgerGateway:
    """Get the ledger gateway built at startup."""
    return request.app.state.gateway


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.gateway.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid {header} format",
        )


async def get_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
    x_employee_id: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the caller from identity headers. The role is never defaulted."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-ID and X-Actor-Role headers are required",
        )
    user_id = _parse_uuid(x_actor_id, "X-Actor-ID")
    employee_id = _parse_uuid(x_employee_id, "X-Employee-ID") if x_employee_id else None
    try:
        return Actor(user_id=user_id, role=x_actor_role.lower(), employee_id=employee_id)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Gateway = Annotated[LedgerGateway, Depends(get_gateway)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
