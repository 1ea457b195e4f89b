"""
Tests for `repositories/lead_repository.py`.

Covers contract rules:
- Creation rejects duplicate ids and names with ConflictError naming the owner.
- update never changes the owner and requires the owner or an administrator.
- Changing status, notes, next action or price list stamps lastContactDate.
- Moving to the client stage marks the lead as a client.
- Every change appends exactly one log entry; a no-op update writes nothing.
- Unknown stored fields and legacy values survive a read-modify-write.
- Deletion requires explicit confirmation.
- A non-administrator mirror only holds the actor's own leads.
"""

from __future__ import annotations

import pytest

from conftest import NOW, TODAY, candidate
from domain.errors import ConflictError, NotFoundError, UnauthorizedError
from domain.identity import Actor
from domain.lead import LeadStatus
from domain.operation_log import LogAction
from repositories.lead_repository import LeadRepository
from repositories.log_repository import OperationLogRepository
from repositories.store import CollectionKind, InMemoryRecordStore


@pytest.fixture
def logs(store: InMemoryRecordStore, clock) -> OperationLogRepository:
    return OperationLogRepository(store, clock=clock)


@pytest.fixture
def leads(store: InMemoryRecordStore, logs: OperationLogRepository, clock) -> LeadRepository:
    return LeadRepository(store, logs, clock=clock)


def _actions(logs: OperationLogRepository) -> list[LogAction]:
    return sorted((entry.action for entry in logs.entries), key=lambda action: action.value)


def _save(leads: LeadRepository, actor: Actor, name: str = "Acme Bar", lead_id: str = "lead-acme"):
    lead = candidate(name, lead_id).with_changes(owner=actor.name, saved_at=NOW)
    return leads.create(lead, actor)


def test_create_persists_and_logs(leads: LeadRepository, logs: OperationLogRepository, diego: Actor) -> None:
    """Verify a created lead reaches the mirror and one CREATE entry is written."""

    _save(leads, diego)

    assert [lead.name for lead in leads.snapshot] == ["Acme Bar"]
    assert leads.get("lead-acme").owner == "Diego"
    assert _actions(logs) == [LogAction.CREATE]
    assert logs.entries[0].details == "Saved new lead: Acme Bar"


def test_create_requires_owner(leads: LeadRepository, diego: Actor) -> None:
    """Verify unowned candidates cannot be saved directly."""

    with pytest.raises(ValueError):
        leads.create(candidate(), diego)


def test_create_retry_is_idempotent(leads: LeadRepository, logs: OperationLogRepository, diego: Actor) -> None:
    """Verify saving the identical lead twice yields one record and one log entry."""

    lead = candidate().with_changes(owner="Diego", saved_at=NOW)
    leads.create(lead, diego)
    leads.create(lead, diego)

    assert len(leads.snapshot) == 1
    assert _actions(logs) == [LogAction.CREATE]


def test_create_retry_outside_mirror_logs_once(
    store: InMemoryRecordStore, leads: LeadRepository, logs: OperationLogRepository, diego: Actor, clock
) -> None:
    """Verify a retried create the mirror has not seen yet does not log CREATE twice."""

    lead = candidate().with_changes(owner="Diego", saved_at=NOW)
    leads.create(lead, diego)
    gaston_view = LeadRepository(store, logs, clock=clock, owner_scope="Gaston")

    gaston_view.create(lead, diego)

    assert len(store.fetch(CollectionKind.LEADS)) == 1
    assert _actions(logs) == [LogAction.CREATE]


def test_create_duplicate_name_reports_owner(leads: LeadRepository, diego: Actor, gaston: Actor) -> None:
    """Verify a second lead with the same name is rejected with the existing owner."""

    _save(leads, diego)

    with pytest.raises(ConflictError) as excinfo:
        _save(leads, gaston, lead_id="lead-other")

    assert excinfo.value.owner == "Diego"


def test_update_status_stamps_contact_and_logs_status_change(
    leads: LeadRepository, logs: OperationLogRepository, diego: Actor
) -> None:
    """Verify a status move stamps lastContactDate and logs STATUS_CHANGE only."""

    _save(leads, diego)

    updated = leads.update("lead-acme", {"status": "contacted"}, diego)

    assert updated.status is LeadStatus.CONTACTED
    assert updated.last_contact_date == TODAY
    assert leads.load("lead-acme").status is LeadStatus.CONTACTED
    assert _actions(logs) == [LogAction.CREATE, LogAction.STATUS_CHANGE]
    assert "Acme Bar: cold -> contacted" in [entry.details for entry in logs.entries]


def test_update_to_client_marks_client(store: InMemoryRecordStore, leads: LeadRepository, diego: Actor) -> None:
    """Verify reaching the client stage sets isClient in the same write."""

    _save(leads, diego)

    leads.update("lead-acme", {"status": "client", "saleValue": 1500.0}, diego)

    document = store.get(CollectionKind.LEADS, "lead-acme")
    assert document["isClient"] is True
    assert document["saleValue"] == 1500.0


def test_update_schedule_logs_update_with_context(
    leads: LeadRepository, logs: OperationLogRepository, diego: Actor, clock
) -> None:
    """Verify a next-action edit is logged as UPDATE and stamps the contact date."""

    _save(leads, diego)

    updated = leads.update(
        "lead-acme",
        {"nextAction": "call", "nextActionDate": "2026-03-12"},
        diego,
        context="follow-up",
    )

    assert updated.next_action == "call"
    assert updated.next_action_date == "2026-03-12"
    assert updated.last_contact_date == TODAY
    assert "Edited follow-up on Acme Bar" in [entry.details for entry in logs.entries]


def test_update_rejects_malformed_date(leads: LeadRepository, diego: Actor) -> None:
    """Verify next action dates must be ISO calendar dates."""

    _save(leads, diego)

    with pytest.raises(ValueError):
        leads.update("lead-acme", {"nextActionDate": "12/03/2026"}, diego)


def test_update_clears_next_action_date_from_empty_string(leads: LeadRepository, diego: Actor) -> None:
    """Verify an empty date from a cleared input unschedules the follow-up."""

    _save(leads, diego)
    leads.update("lead-acme", {"nextActionDate": "2026-03-12"}, diego)

    updated = leads.update("lead-acme", {"nextActionDate": ""}, diego)

    assert updated.next_action_date is None
    assert leads.get("lead-acme").next_action_date is None


def test_noop_update_writes_nothing(leads: LeadRepository, logs: OperationLogRepository, diego: Actor) -> None:
    """Verify an update that changes nothing neither writes nor logs."""

    _save(leads, diego)
    version = leads.mirror.version

    leads.update("lead-acme", {"status": "cold", "name": "Acme Bar"}, diego)

    assert leads.mirror.version == version
    assert _actions(logs) == [LogAction.CREATE]


def test_update_cannot_change_owner(leads: LeadRepository, diego: Actor) -> None:
    """Verify owner changes are refused outside the ownership protocol."""

    _save(leads, diego)

    with pytest.raises(ValueError):
        leads.update("lead-acme", {"owner": "Gaston"}, diego)

    assert leads.load("lead-acme").owner == "Diego"


def test_update_requires_owner_or_administrator(
    leads: LeadRepository, diego: Actor, gaston: Actor, admin: Actor
) -> None:
    """Verify other actors are refused while administrators may edit."""

    _save(leads, diego)

    with pytest.raises(UnauthorizedError):
        leads.update("lead-acme", {"notes": "mine now"}, gaston)

    updated = leads.update("lead-acme", {"notes": "checked by admin"}, admin)
    assert updated.notes == "checked by admin"
    assert updated.owner == "Diego"


def test_update_unknown_lead(leads: LeadRepository, diego: Actor) -> None:
    """Verify updating a lead missing from the snapshot raises NotFoundError."""

    with pytest.raises(NotFoundError):
        leads.update("ghost", {"notes": "x"}, diego)


def test_unknown_fields_survive_round_trip(store: InMemoryRecordStore, leads: LeadRepository, diego: Actor) -> None:
    """Verify fields written by other clients, and legacy values, are preserved."""

    store.insert(
        CollectionKind.LEADS,
        "lead-legacy",
        {
            "name": "Old Tavern",
            "owner": "Diego",
            "status": "frio",
            "savedAt": 1767225600000,
            "rating": 4.5,
            "googlePlaceId": "abc123",
        },
    )

    lead = leads.get("lead-legacy")
    assert lead.status is LeadStatus.COLD
    assert lead.extras == {"rating": 4.5, "googlePlaceId": "abc123"}

    updated = leads.update("lead-legacy", {"notes": "called", "instagram": "@oldtavern"}, diego)

    document = store.get(CollectionKind.LEADS, "lead-legacy")
    assert document["rating"] == 4.5
    assert document["googlePlaceId"] == "abc123"
    assert document["instagram"] == "@oldtavern"
    assert document["notes"] == "called"
    assert updated.extras["instagram"] == "@oldtavern"


def test_undecodable_record_is_skipped(store: InMemoryRecordStore, leads: LeadRepository) -> None:
    """Verify one malformed record does not blank out the rest of the view."""

    store.insert(CollectionKind.LEADS, "good", {"name": "Acme Bar", "owner": "Diego", "savedAt": NOW.isoformat()})
    store.insert(CollectionKind.LEADS, "broken", {"owner": "Diego", "status": "archived"})

    assert [lead.lead_id for lead in leads.snapshot] == ["good"]


def test_remove_requires_confirmation(
    leads: LeadRepository, logs: OperationLogRepository, diego: Actor, gaston: Actor
) -> None:
    """Verify deletion needs confirmation and authority, and is logged."""

    _save(leads, diego)

    with pytest.raises(ValueError):
        leads.remove("lead-acme", diego)
    with pytest.raises(UnauthorizedError):
        leads.remove("lead-acme", gaston, confirmed=True)

    leads.remove("lead-acme", diego, confirmed=True)

    assert leads.snapshot == ()
    assert leads.load("lead-acme") is None
    assert _actions(logs) == [LogAction.CREATE, LogAction.DELETE]


def test_owner_scoped_mirror(store: InMemoryRecordStore, logs: OperationLogRepository, clock) -> None:
    """Verify a non-administrator mirror holds only that actor's leads."""

    everyone = LeadRepository(store, logs, clock=clock)
    diego_only = LeadRepository(store, logs, clock=clock, owner_scope="Diego")

    _save(everyone, Actor("Diego"), "Acme Bar", "lead-acme")
    _save(everyone, Actor("Gaston"), "Beta Cafe", "lead-beta")

    assert {lead.name for lead in everyone.snapshot} == {"Acme Bar", "Beta Cafe"}
    assert [lead.name for lead in diego_only.snapshot] == ["Acme Bar"]
    assert diego_only.find_by_name("Beta Cafe").owner == "Gaston"
