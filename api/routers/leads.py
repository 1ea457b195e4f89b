"""
Leads API Endpoints.

Endpoints for listing, claiming, editing and removing leads, and for the
ownership operations that start from a lead (transfer request, reassignment).
"""

from typing import List
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_session
from api.models import (
    BulkClaimResponse,
    CandidateStatusResponse,
    ClaimConflictResponse,
    LeadListResponse,
    LeadPayload,
    LeadResponse,
    LeadUpdate,
    ReassignRequest,
    TransferResponse,
)
from domain.errors import NotFoundError
from domain.lead import Lead
from services.lead_csv_service import export_leads_csv
from services.session import Session

router = APIRouter()


def _candidate(payload: LeadPayload) -> Lead:
    return Lead(
        lead_id=payload.id or f"lead-{uuid4().hex}",
        name=payload.name.strip(),
        category=payload.category,
        location=payload.location,
        phone=payload.phone,
        email=payload.email,
        contact_name=payload.contact_name,
        notes=payload.notes,
        extras=dict(payload.extras),
    )


def _require(session: Session, lead_id: str) -> Lead:
    lead = session.leads.load(lead_id)
    if lead is None:
        raise NotFoundError(f"Lead '{lead_id}' does not exist")
    return lead


@router.get(
    "/leads",
    response_model=LeadListResponse,
    summary="List Leads",
    description="Leads visible to the actor: their own, or all of them for administrators. Newest first.",
)
def list_leads(session: Session = Depends(get_session)):
    items = [LeadResponse.from_domain(lead) for lead in session.leads.snapshot]
    return LeadListResponse(items=items, total_count=len(items))


@router.get(
    "/leads/export",
    summary="Export Leads CSV",
    description="Download the visible leads as CSV.",
    response_class=Response,
)
def export_leads(session: Session = Depends(get_session)):
    """
    CSV export of the leads the actor can see, newest first.

    **Security:**
    Cells that a spreadsheet would evaluate as formulas are neutralized.
    """
    return Response(
        content=export_leads_csv(session.leads.snapshot),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=leads_{session.actor.name}.csv"},
    )


@router.post(
    "/leads",
    response_model=LeadResponse,
    status_code=201,
    summary="Claim Lead",
    description="Save an unowned candidate as a lead owned by the actor.",
)
def claim_lead(payload: LeadPayload, session: Session = Depends(get_session)):
    """
    Claim a discovery result, manual entry or import row.

    Returns 409 with the current `owner` when a lead with the same id or
    name has already been saved by anyone.
    """
    lead = session.ownership.claim(_candidate(payload), session.actor)
    return LeadResponse.from_domain(lead)


@router.post(
    "/leads/import",
    response_model=BulkClaimResponse,
    summary="Import Leads",
    description="Claim many candidates at once; conflicts are reported per row instead of failing the batch.",
)
def import_leads(payload: List[LeadPayload], session: Session = Depends(get_session)):
    result = session.ownership.claim_many([_candidate(row) for row in payload], session.actor)
    return BulkClaimResponse(
        claimed=[LeadResponse.from_domain(lead) for lead in result.claimed],
        conflicts=[
            ClaimConflictResponse(name=c.candidate.name, owner=c.owner, message=c.message)
            for c in result.conflicts
        ],
    )


@router.post(
    "/leads/status",
    response_model=CandidateStatusResponse,
    summary="Candidate Status",
    description="Whether a candidate is free to claim, already owned by the actor, or locked by someone else.",
)
def candidate_status(payload: LeadPayload, session: Session = Depends(get_session)):
    status = session.ownership.candidate_status(_candidate(payload), session.actor)
    return CandidateStatusResponse(state=status.state.value, owner=status.owner)


@router.patch(
    "/leads/{lead_id}",
    response_model=LeadResponse,
    summary="Update Lead",
    description="Partial update of a lead the actor manages. The owner cannot be changed here.",
)
def update_lead(lead_id: str, payload: LeadUpdate, session: Session = Depends(get_session)):
    lead = session.leads.update(lead_id, payload.changes, session.actor, context=payload.context)
    return LeadResponse.from_domain(lead)


@router.delete(
    "/leads/{lead_id}",
    status_code=204,
    summary="Delete Lead",
    description="Hard delete. Requires `confirm=true`.",
)
def delete_lead(
    lead_id: str,
    confirm: bool = Query(False, description="Must be true to delete"),
    session: Session = Depends(get_session),
):
    session.leads.remove(lead_id, session.actor, confirmed=confirm)


@router.post(
    "/leads/{lead_id}/transfer-requests",
    response_model=TransferResponse,
    status_code=201,
    summary="Request Transfer",
    description="Ask the current owner of a lead to hand it over to the actor.",
)
def request_transfer(lead_id: str, session: Session = Depends(get_session)):
    request = session.ownership.request_transfer(_require(session, lead_id), session.actor)
    return TransferResponse.from_domain(request)


@router.post(
    "/leads/{lead_id}/reassign",
    response_model=LeadResponse,
    summary="Reassign Lead",
    description="Administrators only: move a lead to another owner without a transfer request.",
)
def reassign_lead(lead_id: str, payload: ReassignRequest, session: Session = Depends(get_session)):
    lead = session.ownership.reassign(_require(session, lead_id), payload.new_owner.strip(), session.actor)
    return LeadResponse.from_domain(lead)
