"""
Tests for `services/ownership_service.py`.

Covers contract rules:
- A lead has exactly one owner; claiming a saved name fails with the owner named.
- Concurrent claims of the same candidate: exactly one wins.
- Transfers go through a request the current owner accepts or rejects, once.
- A requester holds at most one pending request per lead.
- Accepting moves the lead to the requester and resets its status to cold.
- Only administrators reassign directly.
- Every owner change leaves exactly one log entry.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import candidate
from domain.errors import (
    AlreadyOwnedError,
    AlreadyResolvedError,
    ConflictError,
    DuplicatePendingRequestError,
    NotFoundError,
    TransientStoreError,
    UnauthorizedError,
)
from domain.identity import Actor
from domain.lead import LeadStatus
from domain.operation_log import LogAction
from domain.transfer import TransferStatus
from repositories.store import CollectionKind, InMemoryRecordStore
from services.ownership_service import CandidateState
from services.session import Session


@pytest.fixture
def sessions(store: InMemoryRecordStore, clock, diego: Actor, gaston: Actor, admin: Actor):
    opened = {actor.name: Session(store, actor, clock=clock) for actor in (diego, gaston, admin)}
    yield opened
    for session in opened.values():
        session.close()


def _log_actions(session: Session) -> list[LogAction]:
    return [entry.action for entry in session.logs.history()]


def test_claim_sets_owner_and_initial_pipeline(sessions, diego: Actor) -> None:
    """Verify a claimed candidate is saved as Diego's, cold, with no follow-up."""

    lead = sessions["Diego"].ownership.claim(
        candidate(next_action="visit", next_action_date="2026-01-01"), diego
    )

    assert lead.owner == "Diego"
    assert lead.status is LeadStatus.COLD
    assert lead.next_action is None
    assert lead.next_action_date is None
    assert lead.saved_at is not None
    assert lead.last_contact_date == "2026-03-10"
    assert [saved.name for saved in sessions["Diego"].leads.snapshot] == ["Acme Bar"]


def test_claim_already_owned_candidate(sessions, gaston: Actor) -> None:
    """Verify a candidate that already carries an owner cannot be claimed."""

    with pytest.raises(AlreadyOwnedError) as excinfo:
        sessions["Gaston"].ownership.claim(candidate(owner="Diego"), gaston)

    assert excinfo.value.owner == "Diego"


def test_second_claim_of_same_name_loses(sessions, diego: Actor, gaston: Actor) -> None:
    """Verify two sellers claiming the same business: exactly one succeeds."""

    sessions["Diego"].ownership.claim(candidate(lead_id="from-diego"), diego)

    with pytest.raises(ConflictError) as excinfo:
        sessions["Gaston"].ownership.claim(candidate(lead_id="from-gaston"), gaston)

    assert excinfo.value.owner == "Diego"
    stored = sessions["Mati"].leads.snapshot
    assert [(lead.lead_id, lead.owner) for lead in stored] == [("from-diego", "Diego")]
    assert sessions["Gaston"].leads.snapshot == ()


def test_candidate_status(sessions, diego: Actor, gaston: Actor) -> None:
    """Verify discovery results show free, owned or locked."""

    protocol = sessions["Gaston"].ownership
    assert protocol.candidate_status(candidate(), gaston).state is CandidateState.FREE

    sessions["Diego"].ownership.claim(candidate(), diego)

    locked = protocol.candidate_status(candidate(lead_id="other-id"), gaston)
    assert locked.state is CandidateState.LOCKED
    assert locked.owner == "Diego"
    assert sessions["Diego"].ownership.candidate_status(candidate(), diego).state is CandidateState.OWNED


def test_claim_many_collects_conflicts(sessions, diego: Actor, gaston: Actor) -> None:
    """Verify a bulk import claims the free rows and reports the taken ones."""

    sessions["Diego"].ownership.claim(candidate(), diego)

    result = sessions["Gaston"].ownership.claim_many(
        [candidate(lead_id="row-1"), candidate("Beta Cafe", "row-2"), candidate("Gamma Pub", "row-3")],
        gaston,
    )

    assert [lead.name for lead in result.claimed] == ["Beta Cafe", "Gamma Pub"]
    assert [(c.candidate.name, c.owner) for c in result.conflicts] == [("Acme Bar", "Diego")]


def test_acme_bar_transfer_handshake(sessions, diego: Actor, gaston: Actor) -> None:
    """Verify the full request/accept flow hands the lead over exactly once."""

    sessions["Diego"].ownership.claim(candidate(), diego)
    sessions["Diego"].leads.update("lead-acme", {"status": "negotiating", "notes": "wants a quote"}, diego)

    acme = sessions["Gaston"].leads.load("lead-acme")
    request = sessions["Gaston"].ownership.request_transfer(acme, gaston)

    assert request.from_user == "Gaston"
    assert request.to_user == "Diego"
    assert request.status is TransferStatus.PENDING
    assert [r.request_id for r in sessions["Diego"].agenda.current.transfer_requests] == [request.request_id]

    resolution = sessions["Diego"].ownership.resolve_transfer(request, True, diego)

    assert resolution.request.status is TransferStatus.ACCEPTED
    assert resolution.lead.owner == "Gaston"
    assert resolution.lead.status is LeadStatus.COLD
    stored = sessions["Gaston"].leads.get("lead-acme")
    assert stored.owner == "Gaston"
    assert stored.status is LeadStatus.COLD
    assert stored.notes == "wants a quote"
    assert sessions["Diego"].leads.snapshot == ()
    assert sessions["Diego"].agenda.current.transfer_requests == ()

    with pytest.raises(AlreadyResolvedError):
        sessions["Diego"].ownership.resolve_transfer(request, True, diego)

    assert _log_actions(sessions["Mati"]).count(LogAction.TRANSFER_ACCEPT) == 1
    assert _log_actions(sessions["Mati"]).count(LogAction.TRANSFER_REQUEST) == 1


def test_duplicate_pending_request(sessions, diego: Actor, gaston: Actor) -> None:
    """Verify a requester cannot open a second pending request for the same lead."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)
    sessions["Gaston"].ownership.request_transfer(lead, gaston)

    with pytest.raises(DuplicatePendingRequestError):
        sessions["Gaston"].ownership.request_transfer(lead, gaston)

    assert len(sessions["Mati"].transfers.snapshot) == 1


def test_request_for_own_or_missing_lead(sessions, diego: Actor) -> None:
    """Verify owners cannot ask for their own lead, and deleted leads are reported."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)

    with pytest.raises(ConflictError):
        sessions["Diego"].ownership.request_transfer(lead, diego)

    sessions["Diego"].leads.remove("lead-acme", diego, confirmed=True)
    with pytest.raises(NotFoundError):
        sessions["Gaston"].ownership.request_transfer(lead, Actor("Gaston"))


def test_only_addressee_resolves(sessions, diego: Actor, gaston: Actor, admin: Actor) -> None:
    """Verify neither the requester nor an administrator can resolve someone else's request."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)
    request = sessions["Gaston"].ownership.request_transfer(lead, gaston)

    with pytest.raises(UnauthorizedError):
        sessions["Gaston"].ownership.resolve_transfer(request, True, gaston)
    with pytest.raises(UnauthorizedError):
        sessions["Mati"].ownership.resolve_transfer(request, True, admin)

    assert sessions["Mati"].transfers.load(request.request_id).is_pending


def test_addressee_is_checked_against_stored_request(sessions, diego: Actor, gaston: Actor) -> None:
    """Verify a copy of the request readdressed to the caller does not let them resolve it."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)
    request = sessions["Gaston"].ownership.request_transfer(lead, gaston)
    mallory = Actor("Mallory")

    with pytest.raises(UnauthorizedError):
        sessions["Gaston"].ownership.resolve_transfer(replace(request, to_user="Mallory"), False, mallory)

    assert sessions["Diego"].transfers.load(request.request_id).is_pending
    assert LogAction.TRANSFER_REJECT not in _log_actions(sessions["Mati"])


def test_reject_leaves_lead_untouched(sessions, diego: Actor, gaston: Actor) -> None:
    """Verify a rejection closes the request without moving the lead."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)
    request = sessions["Gaston"].ownership.request_transfer(lead, gaston)

    resolution = sessions["Diego"].ownership.resolve_transfer(request, False, diego)

    assert resolution.request.status is TransferStatus.REJECTED
    assert resolution.lead is None
    assert sessions["Diego"].leads.get("lead-acme").owner == "Diego"
    assert LogAction.TRANSFER_REJECT in _log_actions(sessions["Mati"])

    # A fresh request is allowed once the previous one is resolved.
    sessions["Gaston"].ownership.request_transfer(lead, gaston)


def test_accept_after_owner_changed_is_refused(sessions, diego: Actor, gaston: Actor, admin: Actor) -> None:
    """Verify an addressee who lost the lead in the meantime cannot hand it over."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)
    request = sessions["Gaston"].ownership.request_transfer(lead, gaston)
    sessions["Mati"].ownership.reassign(lead, "Nico", admin)

    with pytest.raises(UnauthorizedError):
        sessions["Diego"].ownership.resolve_transfer(request, True, diego)

    assert sessions["Mati"].leads.get("lead-acme").owner == "Nico"
    assert sessions["Mati"].transfers.load(request.request_id).is_pending


def test_failed_owner_write_reopens_request(
    sessions, store: InMemoryRecordStore, diego: Actor, gaston: Actor, monkeypatch
) -> None:
    """Verify an acceptance whose owner change fails leaves the request pending."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)
    request = sessions["Gaston"].ownership.request_transfer(lead, gaston)

    def fail_assign(*_args, **_kwargs):
        raise TransientStoreError("connection reset")

    monkeypatch.setattr(sessions["Diego"].leads, "assign_owner", fail_assign)

    with pytest.raises(TransientStoreError):
        sessions["Diego"].ownership.resolve_transfer(request, True, diego)

    assert store.get(CollectionKind.TRANSFER_REQUESTS, request.request_id)["status"] == "pending"
    assert store.get(CollectionKind.LEADS, "lead-acme")["owner"] == "Diego"
    assert LogAction.TRANSFER_ACCEPT not in _log_actions(sessions["Mati"])


def test_reassign_is_administrator_only(sessions, diego: Actor, gaston: Actor, admin: Actor) -> None:
    """Verify reassignment needs the administrator capability and keeps the status."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)
    sessions["Diego"].leads.update("lead-acme", {"status": "contacted"}, diego)

    with pytest.raises(UnauthorizedError):
        sessions["Diego"].ownership.reassign(lead, "Gaston", diego)

    moved = sessions["Mati"].ownership.reassign(lead, "Gaston", admin)

    assert moved.owner == "Gaston"
    assert moved.status is LeadStatus.CONTACTED
    assert sessions["Gaston"].leads.get("lead-acme").owner == "Gaston"
    assert _log_actions(sessions["Mati"]).count(LogAction.ADMIN_ASSIGN) == 1


def test_reassign_to_current_owner_is_noop(sessions, diego: Actor, admin: Actor) -> None:
    """Verify reassigning to the same owner writes and logs nothing."""

    lead = sessions["Diego"].ownership.claim(candidate(), diego)

    unchanged = sessions["Mati"].ownership.reassign(lead, "Diego", admin)

    assert unchanged.owner == "Diego"
    assert LogAction.ADMIN_ASSIGN not in _log_actions(sessions["Mati"])
