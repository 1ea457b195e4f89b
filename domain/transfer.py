"""
Domain: ownership transfer requests.

A TransferRequest is a non-owner's proposal to take over a Lead. It is
resolved exactly once by the owner it was addressed to and is never deleted;
resolved requests remain as the audit trail of hand-offs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class TransferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class TransferRequest:
    request_id: str
    lead_id: str
    lead_name: str  # denormalized for the audit trail
    from_user: str
    to_user: str
    created_at: datetime
    status: TransferStatus = TransferStatus.PENDING
    resolved_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.resolved_at is not None:
            require_utc_timestamp("resolved_at", self.resolved_at)
        if self.from_user == self.to_user:
            raise ValueError("a transfer request cannot target its own requester")

    @property
    def is_pending(self) -> bool:
        return self.status is TransferStatus.PENDING
