"""
Domain: team chat channels and messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .time import require_utc_timestamp

GENERAL_CHANNEL_ID = "general"


@dataclass(frozen=True, slots=True)
class ChatChannel:
    channel_id: str
    name: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("channel name is required")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)


@dataclass(frozen=True, slots=True)
class ChatMessage:
    message_id: str
    user: str
    text: str
    timestamp: datetime
    channel_id: str = GENERAL_CHANNEL_ID

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


GENERAL_CHANNEL = ChatChannel(channel_id=GENERAL_CHANNEL_ID, name="General")
