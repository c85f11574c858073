"""Workforce time and approval ledger.

Timesheets with derived overtime, leave requests drawing on yearly
balances, and monthly summaries approved by staff then admin signature.
"""

from workforce_ledger.actor import Actor, Role
from workforce_ledger.config import LedgerPolicy, Settings, get_settings
from workforce_ledger.gateway import LedgerGateway

__version__ = "0.1.0"

__all__ = [
    "Actor",
    "LedgerGateway",
    "LedgerPolicy",
    "Role",
    "Settings",
    "get_settings",
]
