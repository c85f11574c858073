"""Audit trail and cached reporting projection models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from workforce_ledger.models.base import Base, JSONType, TimestampMixin, utcnow


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String, nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (Index("ix_audit_event_entity", "entity_type", "entity_id"),)


class EmployeeLastWorkDate(Base):
    """Cached latest check-out per employee, rebuilt by an explicit refresh."""

    __tablename__ = "employee_last_work_date"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        primary_key=True,
    )
    last_check_out: Mapped[datetime | None] = mapped_column(nullable=True)
    refreshed_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
