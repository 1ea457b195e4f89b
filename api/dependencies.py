"""
Request-scoped dependencies.

The acting identity arrives in the `X-Actor` header and is trusted as-is;
the administrator capability comes from the configured roster. Every request
gets its own Session over the application's shared record store, closed when
the response is done so no subscription outlives the request.
"""

from typing import Iterator

from fastapi import Depends, Header, HTTPException, Request

from domain.identity import Actor, roster_actor
from domain.time import Clock
from repositories.client import Settings
from repositories.store import RecordStore
from services.session import Session


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_actor(
    x_actor: str = Header(..., description="Name of the acting user"),
    settings: Settings = Depends(get_settings),
) -> Actor:
    name = x_actor.strip()
    if not name:
        raise HTTPException(status_code=401, detail="X-Actor header must name the acting user")
    return roster_actor(name, settings.administrators)


def get_session(
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    clock: Clock = Depends(get_clock),
) -> Iterator[Session]:
    session = Session(store, actor, clock=clock)
    try:
        # Missing tables or denied access: refuse instead of serving empty data.
        if session.connection_state.blocking and session.last_error is not None:
            raise session.last_error
        yield session
    finally:
        session.close()
