"""
Domain: operation log (append-only audit trail).

Entries are written once by the repositories and the ownership protocol and
are never updated or deleted by normal flows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .time import require_utc_timestamp


class LogAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    STATUS_CHANGE = "STATUS_CHANGE"
    DELETE = "DELETE"
    TRANSFER_REQUEST = "TRANSFER_REQUEST"
    TRANSFER_ACCEPT = "TRANSFER_ACCEPT"
    TRANSFER_REJECT = "TRANSFER_REJECT"
    ADMIN_ASSIGN = "ADMIN_ASSIGN"
    TASK_ASSIGN = "TASK_ASSIGN"
    TASK_COMPLETE = "TASK_COMPLETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"


# Actions that record an owner change on a lead.
OWNERSHIP_ACTIONS = frozenset({LogAction.CREATE, LogAction.TRANSFER_ACCEPT, LogAction.ADMIN_ASSIGN})


@dataclass(frozen=True, slots=True)
class OperationLog:
    log_id: str
    user: str
    action: LogAction
    details: str
    timestamp: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)
