"""
Agenda service: the live action center for one actor.

Recomputes `domain.agenda.build_agenda` whenever the lead, task or transfer
mirrors deliver a new snapshot, or the date rolls over. The only state kept
is the memo of the last computation, keyed by the snapshot versions and the
date, so listeners are notified once per actual change and never receive a
stale or duplicated alert set.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from domain.agenda import Agenda, build_agenda
from repositories.lead_repository import LeadRepository
from repositories.task_repository import DirectTaskRepository
from repositories.transfer_repository import TransferRepository

AgendaListener = Callable[[Agenda], None]


class AgendaService:
    def __init__(
        self,
        leads: LeadRepository,
        tasks: DirectTaskRepository,
        transfers: TransferRepository,
        actor: str,
        *,
        today: Callable[[], str],
    ) -> None:
        self._leads = leads
        self._tasks = tasks
        self._transfers = transfers
        self._actor = actor
        self._today = today
        self._memo_key: Optional[Tuple[int, int, int, str]] = None
        self._memo: Optional[Agenda] = None
        self._listeners: List[AgendaListener] = []
        self._unregister = [
            leads.subscribe(lambda _items: self._on_change()),
            tasks.subscribe(lambda _items: self._on_change()),
            transfers.subscribe(lambda _items: self._on_change()),
        ]
        self._compute()

    @property
    def current(self) -> Agenda:
        return self._compute()

    def _compute(self) -> Agenda:
        key = (
            self._leads.mirror.version,
            self._tasks.mirror.version,
            self._transfers.mirror.version,
            self._today(),
        )
        if self._memo is None or key != self._memo_key:
            self._memo = build_agenda(
                self._leads.snapshot,
                self._tasks.snapshot,
                self._transfers.snapshot,
                self._actor,
                key[3],
            )
            self._memo_key = key
        return self._memo

    def _on_change(self) -> None:
        previous = self._memo
        agenda = self._compute()
        if agenda == previous:
            return
        for listener in list(self._listeners):
            listener(agenda)

    def refresh(self) -> None:
        """Re-evaluate against the clock (e.g. on a timer crossing midnight)."""

        self._on_change()

    def listen(self, callback: AgendaListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unregister() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unregister

    def close(self) -> None:
        for unregister in self._unregister:
            unregister()
        self._unregister = []
        self._listeners.clear()


__all__ = ["AgendaService"]
