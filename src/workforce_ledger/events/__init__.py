"""Ledger domain events package.

This package provides:
- Typed domain events for timesheet, leave and summary operations
- An async emitter that publishes events after commit
"""

from workforce_ledger.events.emitter import (
    AsyncEventEmitter,
    AsyncEventHandler,
    EventHandler,
)
from workforce_ledger.events.types import (
    # Base
    DomainEvent,
    EventCategory,
    EventMetadata,
    # Timesheet Events
    OvertimeDecided,
    TimesheetCreated,
    TimesheetStatusChanged,
    # Leave Events
    LeaveBalanceDeducted,
    LeaveRequested,
    LeaveRequestStatusChanged,
    # Summary Events
    InvoiceComputed,
    MonthlySummaryGenerated,
    MonthlySummaryStatusChanged,
    to_jsonable,
)

__all__ = [
    # Base
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "to_jsonable",
    # Timesheet Events
    "OvertimeDecided",
    "TimesheetCreated",
    "TimesheetStatusChanged",
    # Leave Events
    "LeaveBalanceDeducted",
    "LeaveRequested",
    "LeaveRequestStatusChanged",
    # Summary Events
    "InvoiceComputed",
    "MonthlySummaryGenerated",
    "MonthlySummaryStatusChanged",
    # Emitter
    "AsyncEventEmitter",
    "AsyncEventHandler",
    "EventHandler",
]
