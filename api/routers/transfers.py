"""
Transfer Requests API Endpoints.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_session
from api.models import ResolveTransferRequest, TransferResolutionResponse, TransferResponse, LeadResponse
from domain.errors import NotFoundError
from services.session import Session

router = APIRouter()


@router.get(
    "/transfer-requests",
    response_model=list[TransferResponse],
    summary="List Transfer Requests",
    description="Requests sent by or addressed to the actor (all requests for administrators).",
)
def list_transfer_requests(session: Session = Depends(get_session)):
    actor = session.actor
    return [
        TransferResponse.from_domain(request)
        for request in session.transfers.snapshot
        if actor.is_administrator or actor.name in (request.from_user, request.to_user)
    ]


@router.post(
    "/transfer-requests/{request_id}/resolve",
    response_model=TransferResolutionResponse,
    summary="Resolve Transfer Request",
    description="Accept or reject a pending request. Only the addressee, while still owning the lead, may resolve it.",
)
def resolve_transfer_request(
    request_id: str,
    payload: ResolveTransferRequest,
    session: Session = Depends(get_session),
):
    """
    On accept the lead moves to the requester and its status resets to cold.
    A request that was already resolved returns 409.
    """
    request = session.transfers.load(request_id)
    if request is None:
        raise NotFoundError(f"Transfer request '{request_id}' does not exist")

    resolution = session.ownership.resolve_transfer(request, payload.accept, session.actor)
    return TransferResolutionResponse(
        request=TransferResponse.from_domain(resolution.request),
        lead=LeadResponse.from_domain(resolution.lead) if resolution.lead is not None else None,
    )
