"""
Domain: Lead entity.

A Lead is a prospect/account record tracked through the sales pipeline.

Rules implemented here:
- A Lead is identified by a stable string id that is never reused.
- `status` is one of four pipeline stages; transitions are free-form.
- `owner` is the single actor managing the lead. It is unset only for
  transient discovery candidates that have not been claimed yet.
- Fields this model does not know about are kept in `extras` and written back
  verbatim, so older or newer clients never lose data through this one.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from .time import require_utc_timestamp


class LeadStatus(str, Enum):
    COLD = "cold"
    CONTACTED = "contacted"
    NEGOTIATING = "negotiating"
    CLIENT = "client"

    @classmethod
    def parse(cls, value: Any) -> "LeadStatus":
        """Accept current values plus the legacy spellings still found in stored data."""

        if isinstance(value, LeadStatus):
            return value
        text = str(value or "").strip().lower()
        if not text:
            return cls.COLD
        return cls(_LEGACY_STATUS.get(text, text))


_LEGACY_STATUS = {
    "frio": "cold",
    "negotiation": "negotiating",
}

INITIAL_STATUS = LeadStatus.COLD

NEXT_ACTIONS = ("call", "whatsapp", "email", "visit", "quote", "offer", "sale")

# Changing any of these counts as a contact with the prospect.
CONTACT_FIELDS = frozenset({"status", "notes", "next_action", "price_list"})


def validate_calendar_date(name: str, value: Optional[str]) -> None:
    if value is None:
        return
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}") from exc


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Immutable snapshot of a Lead record.

    Mutation happens by producing a new instance (`with_changes`) and writing
    the difference through the repository.
    """

    lead_id: str
    name: str
    status: LeadStatus = INITIAL_STATUS
    owner: Optional[str] = None

    category: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    contact_name: Optional[str] = None
    notes: Optional[str] = None

    # Follow-up scheduling
    next_action: Optional[str] = None
    next_action_date: Optional[str] = None
    last_contact_date: Optional[str] = None

    saved_at: Optional[datetime] = None

    # Conversion
    is_client: bool = False
    sale_value: Optional[float] = None
    price_list: Optional[str] = None

    extras: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.lead_id:
            raise ValueError("lead_id is required")
        if not self.name or not self.name.strip():
            raise ValueError("name is required")
        if not isinstance(self.status, LeadStatus):
            raise TypeError(f"status must be a LeadStatus, got {type(self.status)!r}")
        if self.saved_at is not None:
            require_utc_timestamp("saved_at", self.saved_at)

    @property
    def is_owned(self) -> bool:
        return bool(self.owner)

    def with_changes(self, **changes: Any) -> "Lead":
        return dataclasses.replace(self, **changes)


LEAD_ATTRIBUTES = frozenset(f.name for f in dataclasses.fields(Lead)) - {"extras"}
