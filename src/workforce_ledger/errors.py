"""Ledger error kinds.

Every rejection raised by the ledger is a business-rule failure, not a
transient one, so none of these are retried by the ledger itself. Each
kind carries a stable ``code`` that callers map to a specific message.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all ledger failures."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and bulk operation reports."""
        return {"detail": self.message, "code": self.code}


class ValidationError(LedgerError):
    """Malformed input: bad date range, missing required field, unknown reference."""

    code = "VALIDATION_ERROR"


class OverlapError(LedgerError):
    """Time interval collides with an existing entry of the same employee."""

    code = "OVERLAP"


class HoursCeilingError(LedgerError):
    """Computed total_hours exceeds the daily ceiling."""

    code = "HOURS_CEILING"


class ImmutableFieldError(LedgerError):
    """Attempted edit of a field locked by approval."""

    code = "IMMUTABLE_FIELD"

    def __init__(self, message: str, fields: list[str] | None = None, **context: Any):
        self.fields = fields or []
        super().__init__(message, fields=self.fields, **context)


class InsufficientBalanceError(LedgerError):
    """Leave deduction would drive the remaining balance negative."""

    code = "INSUFFICIENT_BALANCE"


class InvalidStateTransitionError(LedgerError):
    """Raised when an operation is attempted from a state that does not permit it."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=from_status, to_status=to_status)


class DuplicateError(LedgerError):
    """Unique identity already taken."""

    code = "DUPLICATE"


class NotFoundError(LedgerError):
    """Referenced ledger record does not exist."""

    code = "NOT_FOUND"


class PermissionDeniedError(LedgerError):
    """Caller role or identity does not allow the operation."""

    code = "PERMISSION_DENIED"
