"""
Session: everything one actor needs, with a scoped lifetime.

A Session wires the repositories, the ownership protocol, the task service
and the agenda for one actor over an injected record store. Subscriptions are
opened when the session is built and released when it closes, so nothing
outlives the consuming context:

    with Session(store, Actor("Diego")) as session:
        session.ownership.claim(candidate, session.actor)
        print(session.agenda.current.due)

Non-administrators mirror only their own leads; administrators see all.

Connection health is exposed as a persistent `ConnectionState` signal derived
from the last error of every live subscription. Missing tables and denied
access are blocking; anything else degrades to stale data.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from domain.errors import BackingCollectionMissing, PermissionDenied, StoreError
from domain.identity import Actor
from domain.operation_log import LogAction
from domain.time import Clock, iso_date, utc_now
from repositories.base import CollectionMirror
from repositories.chat_repository import ChatRepository
from repositories.lead_repository import LeadRepository
from repositories.log_repository import OperationLogRepository
from repositories.store import RecordStore
from repositories.task_repository import DirectTaskRepository
from repositories.transfer_repository import TransferRepository
from services.agenda_service import AgendaService
from services.ownership_service import OwnershipProtocol
from services.task_service import TaskService

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    OK = "ok"
    MISSING_DB = "missing_db"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN_ERROR = "unknown_error"

    @property
    def blocking(self) -> bool:
        return self in (ConnectionState.MISSING_DB, ConnectionState.PERMISSION_DENIED)

    @classmethod
    def from_error(cls, error: Optional[StoreError]) -> "ConnectionState":
        if error is None:
            return cls.OK
        if isinstance(error, BackingCollectionMissing):
            return cls.MISSING_DB
        if isinstance(error, PermissionDenied):
            return cls.PERMISSION_DENIED
        return cls.UNKNOWN_ERROR


# Worst state wins when several subscriptions fail differently.
_SEVERITY = [
    ConnectionState.OK,
    ConnectionState.UNKNOWN_ERROR,
    ConnectionState.PERMISSION_DENIED,
    ConnectionState.MISSING_DB,
]


class Session:
    def __init__(self, store: RecordStore, actor: Actor, *, clock: Clock = utc_now) -> None:
        self.actor = actor
        self._store = store
        self._clock = clock
        self._closed = False
        self._logged_in = False
        self._state_listeners: List[Callable[[ConnectionState], None]] = []

        self.logs = OperationLogRepository(store, clock=clock)
        self.leads = LeadRepository(
            store,
            self.logs,
            clock=clock,
            owner_scope=None if actor.is_administrator else actor.name,
        )
        self.transfers = TransferRepository(store, clock=clock)
        self.tasks = DirectTaskRepository(store, clock=clock)
        self.chat = ChatRepository(store, clock=clock)

        self.ownership = OwnershipProtocol(store, self.leads, self.transfers, self.logs, clock=clock)
        self.task_service = TaskService(self.tasks, self.logs)
        self.agenda = AgendaService(
            self.leads,
            self.tasks,
            self.transfers,
            actor.name,
            today=lambda: iso_date(self._clock()),
        )

        self._connection_state = self._compute_state()
        for mirror in self._mirrors():
            mirror.listen_errors(self._on_mirror_error)

    def _mirrors(self) -> List[CollectionMirror[Any]]:
        mirrors: List[CollectionMirror[Any]] = [self.leads.mirror, self.transfers.mirror, self.tasks.mirror]
        if self.logs.mirror is not None:
            mirrors.append(self.logs.mirror)
        mirrors.extend(self.chat.mirrors)
        return mirrors

    # -- connection state --------------------------------------------------

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def last_error(self) -> Optional[StoreError]:
        for mirror in self._mirrors():
            if mirror.last_error is not None:
                return mirror.last_error
        return None

    def _compute_state(self) -> ConnectionState:
        states = [ConnectionState.from_error(m.last_error) for m in self._mirrors()]
        return max(states, key=_SEVERITY.index, default=ConnectionState.OK)

    def _on_mirror_error(self, _error: Optional[StoreError]) -> None:
        state = self._compute_state()
        if state == self._connection_state:
            return
        self._connection_state = state
        if state is not ConnectionState.OK:
            logger.warning(
                f"Session for {self.actor.name} is now {state.value}",
                extra={"actor": self.actor.name, "blocking": state.blocking},
            )
        for listener in list(self._state_listeners):
            listener(state)

    def on_connection_state(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        self._state_listeners.append(callback)

        def unregister() -> None:
            if callback in self._state_listeners:
                self._state_listeners.remove(callback)

        return unregister

    def retry(self) -> ConnectionState:
        """Manual retry after a blocking failure: resubscribe every collection."""

        for mirror in self._mirrors():
            mirror.reopen()
        self._on_mirror_error(None)
        return self._connection_state

    # -- lifetime ----------------------------------------------------------

    def __enter__(self) -> "Session":
        if not self._logged_in:
            self.logs.append(self.actor.name, LogAction.LOGIN, "Session started")
            self._logged_in = True
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._logged_in:
            self.logs.append(self.actor.name, LogAction.LOGOUT, "Session ended")
        self.agenda.close()
        self.chat.close()
        self.tasks.close()
        self.transfers.close()
        self.leads.close()
        self.logs.close()
        self._state_listeners.clear()


__all__ = ["ConnectionState", "Session"]
