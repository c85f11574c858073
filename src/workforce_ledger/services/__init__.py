"""Workforce ledger services."""

from workforce_ledger.services.state_machine import (
    LeaveRequestStateMachine,
    LeaveRequestStatus,
    OvertimeStateMachine,
    OvertimeStatus,
    SummaryStateMachine,
    SummaryStatus,
    TimesheetStateMachine,
    TimesheetStatus,
)
from workforce_ledger.services.locking_service import LockingService
from workforce_ledger.services.timesheet_service import BulkApproveResult, TimesheetService
from workforce_ledger.services.leave_balance_service import AllocationResult, LeaveBalanceService
from workforce_ledger.services.leave_service import BulkLeaveApprovalResult, LeaveService
from workforce_ledger.services.monthly_summary_service import (
    GenerateAllResult,
    MonthlySummaryService,
    visible_fields,
)
from workforce_ledger.services.reporting_service import ReportingService

__all__ = [
    "AllocationResult",
    "BulkApproveResult",
    "BulkLeaveApprovalResult",
    "GenerateAllResult",
    "LeaveBalanceService",
    "LeaveRequestStateMachine",
    "LeaveRequestStatus",
    "LeaveService",
    "LockingService",
    "MonthlySummaryService",
    "OvertimeStateMachine",
    "OvertimeStatus",
    "ReportingService",
    "SummaryStateMachine",
    "SummaryStatus",
    "TimesheetService",
    "TimesheetStateMachine",
    "TimesheetStatus",
    "visible_fields",
]
