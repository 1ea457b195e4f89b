"""
Domain: agenda / action center projections (pure).

Given the full lead, direct task and transfer request snapshots, an actor and
today's date, compute what requires that actor's attention:

- due: leads owned by the actor whose next action date is on or before today.
- future: leads owned by the actor whose next action date is after today.
- direct_tasks: pending tasks addressed to the actor.
- transfer_requests: pending ownership requests addressed to the actor.

Dates are ISO `YYYY-MM-DD` strings, so plain string comparison is
chronological. Sorting is stable so that equal dates keep snapshot order and
repeated recomputation yields identical output. Leads without a next action
date are never scheduled.

No I/O and no hidden state: safe to recompute on every snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

from .lead import Lead
from .task import DirectTask
from .transfer import TransferRequest


@dataclass(frozen=True, slots=True)
class Agenda:
    actor: str
    today: str
    due: Tuple[Lead, ...] = ()
    future: Tuple[Lead, ...] = ()
    direct_tasks: Tuple[DirectTask, ...] = ()
    transfer_requests: Tuple[TransferRequest, ...] = ()

    @property
    def overdue(self) -> Tuple[Lead, ...]:
        """Presentation refinement of `due`: strictly before today."""

        return tuple(lead for lead in self.due if is_overdue(lead, self.today))

    @property
    def has_overdue(self) -> bool:
        return any(is_overdue(lead, self.today) for lead in self.due)

    @property
    def total_alerts(self) -> int:
        return len(self.due) + len(self.direct_tasks) + len(self.transfer_requests)


def is_overdue(lead: Lead, today: str) -> bool:
    return bool(lead.next_action_date) and lead.next_action_date < today


def _by_next_action_date(lead: Lead) -> str:
    return lead.next_action_date or ""


def build_agenda(
    leads: Iterable[Lead],
    tasks: Iterable[DirectTask],
    transfers: Iterable[TransferRequest],
    actor: str,
    today: str,
) -> Agenda:
    due: list[Lead] = []
    future: list[Lead] = []

    for lead in leads:
        if lead.owner != actor or not lead.next_action_date:
            continue
        if lead.next_action_date <= today:
            due.append(lead)
        else:
            future.append(lead)

    # list.sort is stable: ties keep snapshot order.
    due.sort(key=_by_next_action_date)
    future.sort(key=_by_next_action_date)

    return Agenda(
        actor=actor,
        today=today,
        due=tuple(due),
        future=tuple(future),
        direct_tasks=tuple(t for t in tasks if t.to_user == actor and t.is_pending),
        transfer_requests=tuple(r for r in transfers if r.to_user == actor and r.is_pending),
    )
