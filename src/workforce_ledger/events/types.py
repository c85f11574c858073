"""Domain event types for ledger operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for logging and notification hand-off

Events are published only after the transaction that produced them
commits, so a handler never sees a change that was rolled back.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from workforce_ledger.models.base import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    TIMESHEET = "timesheet"
    LEAVE = "leave"
    SUMMARY = "summary"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links events from one gateway call
    actor_id: UUID | None
    actor_role: str | None
    source_service: str
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_role: str | None = None,
        source_service: str = "ledger",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_role=actor_role,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return to_jsonable(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def to_jsonable(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, date):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Timesheet Events
# =============================================================================


@dataclass(frozen=True)
class TimesheetCreated(DomainEvent):
    """A timesheet entry was recorded."""

    timesheet_entry_id: UUID
    employee_id: UUID
    work_date: date
    total_hours: Decimal
    overtime_hours: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.TIMESHEET


@dataclass(frozen=True)
class TimesheetStatusChanged(DomainEvent):
    """A timesheet entry moved between approval statuses."""

    timesheet_entry_id: UUID
    employee_id: UUID
    from_status: str
    to_status: str
    reason: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.TIMESHEET


@dataclass(frozen=True)
class OvertimeDecided(DomainEvent):
    """Overtime on an entry was approved or rejected."""

    timesheet_entry_id: UUID
    employee_id: UUID
    ot_approval_status: str
    overtime_hours: Decimal
    reason: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.TIMESHEET


# =============================================================================
# Leave Events
# =============================================================================


@dataclass(frozen=True)
class LeaveRequested(DomainEvent):
    """A leave request was filed."""

    leave_request_id: UUID
    employee_id: UUID
    leave_type_id: UUID
    start_date: date
    end_date: date
    number_of_days: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEAVE


@dataclass(frozen=True)
class LeaveRequestStatusChanged(DomainEvent):
    """A leave request left pending."""

    leave_request_id: UUID
    employee_id: UUID
    from_status: str
    to_status: str
    reason: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEAVE


@dataclass(frozen=True)
class LeaveBalanceDeducted(DomainEvent):
    """Approved leave was drawn from a balance."""

    leave_balance_id: UUID
    employee_id: UUID
    leave_type_id: UUID
    year: int
    days: Decimal
    remaining_days: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEAVE


# =============================================================================
# Monthly Summary Events
# =============================================================================


@dataclass(frozen=True)
class MonthlySummaryGenerated(DomainEvent):
    """Metrics were aggregated for a summary, first time or after rejection."""

    monthly_summary_id: UUID
    employee_id: UUID
    month: int
    year: int
    regenerated: bool = False

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUMMARY


@dataclass(frozen=True)
class MonthlySummaryStatusChanged(DomainEvent):
    """A summary was signed, approved or rejected."""

    monthly_summary_id: UUID
    employee_id: UUID
    from_status: str
    to_status: str
    remarks: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUMMARY


@dataclass(frozen=True)
class InvoiceComputed(DomainEvent):
    """Financial totals were computed for a summary."""

    monthly_summary_id: UUID
    employee_id: UUID
    invoice_number: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUMMARY
