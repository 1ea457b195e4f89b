"""
Ownership and transfer protocol.

The only code path that changes a Lead's owner. Four operations:

- claim: an unowned candidate becomes a saved Lead owned by the caller.
- request_transfer: a non-owner asks the current owner for a lead.
- resolve_transfer: the owner accepts or rejects a pending request.
- reassign: administrator override without the handshake.

Load-bearing guards:
- claim rejects leads that are already owned and names/ids already saved,
  reporting who owns them (ConflictError / AlreadyOwnedError).
- resolve_transfer only runs for the addressee who still owns the lead, and
  the request's pending -> resolved move is a compare-and-set, so a request is
  applied at most once (AlreadyResolvedError afterwards).
- reassign checks the administrator capability here, not in the UI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from domain.errors import (
    AlreadyOwnedError,
    AlreadyResolvedError,
    ConflictError,
    DuplicatePendingRequestError,
    NotFoundError,
    StoreError,
    UnauthorizedError,
)
from domain.identity import Actor
from domain.lead import INITIAL_STATUS, Lead
from domain.operation_log import LogAction
from domain.time import Clock, iso_date, utc_now
from domain.transfer import TransferRequest, TransferStatus
from repositories.lead_repository import LeadRepository
from repositories.log_repository import OperationLogRepository
from repositories.store import CollectionKind, RecordStore
from repositories.transfer_repository import TransferRepository

logger = logging.getLogger(__name__)


class CandidateState(str, Enum):
    FREE = "free"
    OWNED = "owned"  # already saved by the asking actor
    LOCKED = "locked"  # saved by someone else


@dataclass(frozen=True, slots=True)
class CandidateStatus:
    state: CandidateState
    owner: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ClaimConflict:
    candidate: Lead
    owner: Optional[str]
    message: str


@dataclass(frozen=True, slots=True)
class BulkClaimResult:
    claimed: List[Lead] = field(default_factory=list)
    conflicts: List[ClaimConflict] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TransferResolution:
    request: TransferRequest
    lead: Optional[Lead]  # the reassigned lead on accept, None on reject


class OwnershipProtocol:
    def __init__(
        self,
        store: RecordStore,
        leads: LeadRepository,
        transfers: TransferRepository,
        logs: OperationLogRepository,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._leads = leads
        self._transfers = transfers
        self._logs = logs
        self._clock = clock

    # -- claim -------------------------------------------------------------

    def claim(self, candidate: Lead, actor: Actor) -> Lead:
        """
        Save an unowned candidate as a Lead owned by `actor`.

        Pipeline fields are reset to their initial values: status cold, no
        scheduled follow-up, saved now, last contact today.

        Raises:
        - AlreadyOwnedError if the candidate already carries an owner.
        - ConflictError if a lead with the same id or name exists; `owner`
          names whoever holds it.
        """

        if candidate.is_owned:
            raise AlreadyOwnedError(
                f"'{candidate.name}' is already owned by {candidate.owner}",
                owner=candidate.owner,
            )

        now = self._clock()
        lead = candidate.with_changes(
            owner=actor.name,
            status=INITIAL_STATUS,
            next_action=None,
            next_action_date=None,
            saved_at=now,
            last_contact_date=iso_date(now),
        )
        try:
            saved = self._leads.create(lead, actor)
        except ConflictError as exc:
            logger.info(
                f"Claim of '{candidate.name}' by {actor.name} lost to {exc.owner}",
                extra={"lead_id": candidate.lead_id, "actor": actor.name, "owner": exc.owner},
            )
            raise
        logger.info(f"{actor.name} claimed '{saved.name}'", extra={"lead_id": saved.lead_id})
        return saved

    def claim_many(self, candidates: Iterable[Lead], actor: Actor) -> BulkClaimResult:
        """Bulk import: claim each candidate, collecting conflicts instead of stopping."""

        result = BulkClaimResult()
        for candidate in candidates:
            try:
                result.claimed.append(self.claim(candidate, actor))
            except ConflictError as exc:
                result.conflicts.append(ClaimConflict(candidate=candidate, owner=exc.owner, message=str(exc)))
        return result

    def candidate_status(self, candidate: Lead, actor: Actor) -> CandidateStatus:
        """Tell a discovery result apart: free to claim, already ours, or locked by someone else."""

        existing = self._leads.find_by_name(candidate.name)
        if existing is None:
            return CandidateStatus(CandidateState.FREE)
        if existing.owner == actor.name:
            return CandidateStatus(CandidateState.OWNED, owner=existing.owner)
        return CandidateStatus(CandidateState.LOCKED, owner=existing.owner)

    # -- transfer handshake ------------------------------------------------

    def request_transfer(self, lead: Lead, requester: Actor) -> TransferRequest:
        """
        Ask the current owner of `lead` to hand it over.

        Raises:
        - NotFoundError if the lead no longer exists.
        - ConflictError if the lead is unowned or already owned by the requester.
        - DuplicatePendingRequestError if the requester already has a pending
          request for this lead.
        """

        current = self._leads.load(lead.lead_id)
        if current is None:
            raise NotFoundError(f"Lead '{lead.lead_id}' no longer exists")
        if not current.is_owned:
            raise ConflictError(f"'{current.name}' has no owner; claim it instead")
        if current.owner == requester.name:
            raise ConflictError(f"{requester.name} already owns '{current.name}'", owner=current.owner)

        if self._transfers.pending_for(current.lead_id, requester.name) is not None:
            raise DuplicatePendingRequestError(
                f"{requester.name} already has a pending request for '{current.name}'"
            )

        request = self._transfers.create(current.lead_id, current.name, requester.name, current.owner)
        self._logs.append(
            requester.name,
            LogAction.TRANSFER_REQUEST,
            f"Requested {current.name} from {current.owner}",
        )
        return request

    def resolve_transfer(self, request: TransferRequest, accept: bool, actor: Actor) -> TransferResolution:
        """
        Accept or reject a pending request. Only the addressee, while still
        owning the lead, may resolve it.

        On accept the lead moves to the requester and its status resets to
        the initial stage; notes and sale history are left as they are.

        Raises:
        - UnauthorizedError for any other actor, or if the addressee no longer owns the lead.
        - AlreadyResolvedError if the request is no longer pending.
        - NotFoundError if the request or (on accept) the lead is gone.
        """

        current = self._transfers.load(request.request_id)
        if current is None:
            raise NotFoundError(f"Transfer request '{request.request_id}' does not exist")
        if actor.name != current.to_user:
            raise UnauthorizedError(f"Only {current.to_user} can resolve this request")
        if not current.is_pending:
            raise AlreadyResolvedError(f"Transfer request for '{current.lead_name}' is already {current.status.value}")

        if not accept:
            resolved = self._transfers.mark_resolved(current.request_id, TransferStatus.REJECTED)
            self._logs.append(
                actor.name,
                LogAction.TRANSFER_REJECT,
                f"Rejected {current.from_user}'s request for {current.lead_name}",
            )
            return TransferResolution(request=resolved, lead=None)

        lead = self._leads.load(current.lead_id)
        if lead is None:
            raise NotFoundError(f"Lead '{current.lead_id}' no longer exists")
        if lead.owner != actor.name:
            raise UnauthorizedError(f"{actor.name} no longer owns '{lead.name}' (owned by {lead.owner})")

        resolved = self._transfers.mark_resolved(current.request_id, TransferStatus.ACCEPTED)
        try:
            updated = self._leads.assign_owner(lead.lead_id, current.from_user, reset_status=True)
        except (ConflictError, NotFoundError, StoreError):
            self._reopen(current.request_id)
            raise

        self._logs.append(
            actor.name,
            LogAction.TRANSFER_ACCEPT,
            f"Transferred {lead.name} to {current.from_user}",
        )
        logger.info(
            f"'{lead.name}' transferred from {actor.name} to {current.from_user}",
            extra={"lead_id": lead.lead_id, "request_id": current.request_id},
        )
        return TransferResolution(request=resolved, lead=updated)

    def _reopen(self, request_id: str) -> None:
        """Undo an acceptance whose owner change could not be written."""

        try:
            self._store.update(
                CollectionKind.TRANSFER_REQUESTS,
                request_id,
                {"status": TransferStatus.PENDING.value, "resolvedAt": None},
                expected={"status": TransferStatus.ACCEPTED.value},
            )
        except (ConflictError, NotFoundError, StoreError) as exc:
            logger.error(
                f"Transfer request '{request_id}' accepted but owner change failed and could not be reopened: {exc}",
                extra={"request_id": request_id},
            )

    # -- administrator override -------------------------------------------

    def reassign(self, lead: Lead, new_owner: str, actor: Actor) -> Lead:
        """
        Administrator-only: set the owner directly, bypassing the handshake.

        Raises:
        - UnauthorizedError if `actor` lacks the administrator capability.
        - NotFoundError if the lead no longer exists.
        """

        if not actor.is_administrator:
            raise UnauthorizedError(f"{actor.name} is not allowed to reassign leads")
        if not new_owner or not new_owner.strip():
            raise ValueError("new owner is required")

        current = self._leads.load(lead.lead_id)
        if current is None:
            raise NotFoundError(f"Lead '{lead.lead_id}' no longer exists")
        if current.owner == new_owner:
            return current

        updated = self._leads.assign_owner(current.lead_id, new_owner, reset_status=False)
        self._logs.append(
            actor.name,
            LogAction.ADMIN_ASSIGN,
            f"{actor.name} reassigned {current.name} to {new_owner}",
        )
        logger.info(
            f"'{current.name}' reassigned from {current.owner} to {new_owner} by {actor.name}",
            extra={"lead_id": current.lead_id},
        )
        return updated


__all__ = [
    "BulkClaimResult",
    "CandidateState",
    "CandidateStatus",
    "ClaimConflict",
    "OwnershipProtocol",
    "TransferResolution",
]
