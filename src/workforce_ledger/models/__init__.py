"""ORM models for the workforce ledger."""

from workforce_ledger.models.audit import AuditEvent, EmployeeLastWorkDate
from workforce_ledger.models.base import Base, TimestampMixin, utcnow
from workforce_ledger.models.employee import Employee, Project
from workforce_ledger.models.leave import LeaveBalance, LeaveRequest, LeaveType
from workforce_ledger.models.summary import FINANCIAL_FIELDS, METRIC_FIELDS, MonthlySummary
from workforce_ledger.models.timesheet import TimesheetEntry

__all__ = [
    "AuditEvent",
    "Base",
    "Employee",
    "EmployeeLastWorkDate",
    "FINANCIAL_FIELDS",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveType",
    "METRIC_FIELDS",
    "MonthlySummary",
    "Project",
    "TimesheetEntry",
    "TimestampMixin",
    "utcnow",
]
