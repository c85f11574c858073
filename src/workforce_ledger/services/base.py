"""Plumbing shared by the ledger services."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_ledger.actor import Actor
from workforce_ledger.config import LedgerPolicy
from workforce_ledger.errors import DuplicateError
from workforce_ledger.events import DomainEvent, EventMetadata, to_jsonable
from workforce_ledger.models import AuditEvent, Base, utcnow

logger = logging.getLogger(__name__)


def snapshot(record: Base, fields: Iterable[str]) -> dict[str, Any]:
    """JSON-safe copy of selected fields, for audit before/after images."""
    return to_jsonable({name: getattr(record, name) for name in fields})


def is_unique_violation(exc: IntegrityError) -> bool:
    """Distinguish unique-key collisions from other constraint failures."""
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate key" in message


class LedgerService:
    """Base for services operating inside one caller-owned transaction.

    The session is never committed here. Domain events raised by an
    operation are collected on ``events`` and published by the caller
    once the transaction commits.
    """

    entity_type = "ledger"

    def __init__(
        self,
        session: AsyncSession,
        policy: LedgerPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        correlation_id: UUID | None = None,
    ):
        self.session = session
        self.policy = policy or LedgerPolicy()
        self.clock = clock or utcnow
        self.correlation_id = correlation_id or uuid4()
        self.events: list[DomainEvent] = []

    def _metadata(self, actor: Actor | None) -> EventMetadata:
        return EventMetadata.create(
            correlation_id=self.correlation_id,
            actor_id=actor.user_id if actor else None,
            actor_role=actor.role.value if actor else None,
            source_service=type(self).__name__,
        )

    def _publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    async def _record_audit(
        self,
        actor: Actor | None,
        entity_id: UUID,
        action: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        entity_type: str | None = None,
    ) -> AuditEvent:
        """Record an audit event in the current transaction."""
        event = AuditEvent(
            actor_id=actor.user_id if actor else None,
            actor_role=actor.role.value if actor else None,
            entity_type=entity_type or self.entity_type,
            entity_id=entity_id,
            action=action,
            before_json=before,
            after_json=after,
        )
        self.session.add(event)
        return event

    async def _flush_unique(self, message: str, **context: Any) -> None:
        """Flush pending writes, reporting a unique-key collision as DuplicateError."""
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc):
                logger.warning("Duplicate rejected: %s", message)
                raise DuplicateError(message, **context) from exc
            raise
