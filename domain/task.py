"""
Domain: direct tasks.

Point-to-point actionable messages between two actors, independent of any
Lead. Only the addressee completes a task and completion is terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class DirectTask:
    task_id: str
    from_user: str
    to_user: str
    message: str
    created_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.completed_at is not None:
            require_utc_timestamp("completed_at", self.completed_at)

    @property
    def is_pending(self) -> bool:
        return self.status is TaskStatus.PENDING
