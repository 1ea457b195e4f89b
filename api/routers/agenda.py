"""
Agenda API Endpoints.

The actor's action center: follow-ups due today or overdue, upcoming
follow-ups, pending tasks and pending transfer requests addressed to them.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_session
from api.models import AgendaResponse, LogResponse
from services.session import Session

router = APIRouter()


@router.get(
    "/agenda",
    response_model=AgendaResponse,
    summary="Get Agenda",
)
def get_agenda(session: Session = Depends(get_session)):
    return AgendaResponse.from_domain(session.agenda.current)


@router.get(
    "/logs",
    response_model=list[LogResponse],
    summary="Operation Log",
    description="Administrators only: the audit trail, newest first.",
)
def list_logs(session: Session = Depends(get_session)):
    if not session.actor.is_administrator:
        raise HTTPException(status_code=403, detail="Only administrators can read the operation log")
    return [LogResponse.from_domain(entry) for entry in session.logs.entries]
