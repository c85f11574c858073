"""Caller identity passed explicitly into every mutating ledger call."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from workforce_ledger.errors import PermissionDeniedError


class Role(str, Enum):
    """Caller roles the ledger understands."""

    ADMIN = "admin"
    STAFF = "staff"


@dataclass(frozen=True)
class Actor:
    """Who is calling, as established by the surrounding application.

    The ledger never falls back to a default role: an unknown role is
    refused outright.
    """

    user_id: UUID
    role: Role
    employee_id: UUID | None = None

    def __post_init__(self) -> None:
        try:
            role = Role(self.role)
        except ValueError:
            raise PermissionDeniedError(f"Unknown role: {self.role!r}") from None
        object.__setattr__(self, "role", role)
        if role == Role.STAFF and self.employee_id is None:
            raise PermissionDeniedError("Staff callers must carry an employee_id")

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def owns(self, employee_id: UUID) -> bool:
        """Check if the record's employee is the caller."""
        return self.employee_id is not None and self.employee_id == employee_id
