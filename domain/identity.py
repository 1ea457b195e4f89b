"""
Domain: acting identity.

The session boundary supplies who is acting and whether they hold the
administrator capability. Nothing here authenticates; the value is trusted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True, slots=True)
class Actor:
    name: str
    is_administrator: bool = False

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("actor name is required")

    def can_manage(self, owner: str | None) -> bool:
        """Owners manage their own records; administrators manage everyone's."""

        return self.is_administrator or (owner is not None and owner == self.name)


def parse_roster(value: str | None) -> frozenset[str]:
    """Parse a comma separated list of administrator names."""

    if not value:
        return frozenset()
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def roster_actor(name: str, administrators: Iterable[str]) -> Actor:
    return Actor(name=name, is_administrator=name in set(administrators))
