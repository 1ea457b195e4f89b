"""
Tests for `repositories/supabase_store.py`.

Runs the Supabase record store against an in-process fake of the
PostgREST query builder, so no network or project is needed.

Covers contract rules:
- Backend error codes map onto missing-table, denied and transient errors.
- Inserts are idempotent for identical retries and conflict otherwise.
- A unique violation from a racing writer is reported as a ConflictError.
- Compare-and-set updates distinguish a missing record from a moved precondition.
- Writes and refreshes republish the full ordered table to subscribers.
- Refresh failures reach subscribers instead of raising.
- Conditions on a missing value are sent as `is.null`, which SQL NULL matches.
- Realtime resynchronization runs off the event loop thread.
"""

from __future__ import annotations

import asyncio
import threading
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import pytest
from postgrest.exceptions import APIError

from domain.errors import (
    BackingCollectionMissing,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    TransientStoreError,
)
from domain.identity import Actor
from repositories.lead_repository import LeadRepository
from repositories.log_repository import OperationLogRepository
from repositories.store import CollectionKind, Snapshot
from repositories.supabase_store import SupabaseRecordStore, classify_store_error

LEADS = CollectionKind.LEADS


class FakeQuery:
    def __init__(self, table: "FakeTable", operation: str, payload: Optional[dict] = None) -> None:
        self._table = table
        self._operation = operation
        self._payload = payload
        self._filters: List[tuple] = []
        self._limit: Optional[int] = None
        self._order: Optional[tuple] = None

    def eq(self, key: str, value: Any) -> "FakeQuery":
        self._filters.append(("eq", key, value))
        return self

    def is_(self, key: str, value: str) -> "FakeQuery":
        self._filters.append(("is", key, value))
        return self

    def order(self, key: str, desc: bool = False) -> "FakeQuery":
        self._order = (key, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        for operator, key, value in self._filters:
            if operator == "is":
                if value != "null" or row.get(key) is not None:
                    return False
            # Like SQL, equality never matches NULL.
            elif value is None or row.get(key) != value:
                return False
        return True

    def execute(self) -> SimpleNamespace:
        self._table.threads.add(threading.get_ident())
        if self._table.error is not None:
            raise self._table.error
        rows = self._table.rows
        if self._operation == "select":
            data = [dict(row) for row in rows if self._matches(row)]
            if self._order is not None:
                key, desc = self._order
                data.sort(key=lambda row: str(row.get(key) or ""), reverse=desc)
            if self._limit is not None:
                data = data[: self._limit]
        elif self._operation == "insert":
            if self._table.race_row is not None:
                rows.append(self._table.race_row)
                self._table.race_row = None
                raise APIError({"code": "23505", "message": "duplicate key value violates unique constraint"})
            rows.append(dict(self._payload))
            data = [dict(self._payload)]
        elif self._operation == "update":
            data = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    data.append(dict(row))
        else:
            data = [dict(row) for row in rows if self._matches(row)]
            rows[:] = [row for row in rows if not self._matches(row)]
        return SimpleNamespace(data=data)


class FakeTable:
    def __init__(self) -> None:
        self.rows: List[dict] = []
        self.error: Optional[Exception] = None
        self.race_row: Optional[dict] = None
        self.threads: set = set()

    def select(self, _columns: str) -> FakeQuery:
        return FakeQuery(self, "select")

    def insert(self, payload: dict) -> FakeQuery:
        return FakeQuery(self, "insert", payload)

    def update(self, payload: dict) -> FakeQuery:
        return FakeQuery(self, "update", payload)

    def delete(self) -> FakeQuery:
        return FakeQuery(self, "delete")


class FakeClient:
    def __init__(self) -> None:
        self.tables: Dict[str, FakeTable] = {}

    def table(self, name: str) -> FakeTable:
        return self.tables.setdefault(name, FakeTable())


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def supabase_store(client: FakeClient) -> SupabaseRecordStore:
    return SupabaseRecordStore(client)  # type: ignore[arg-type]


def _doc(name: str, owner: Optional[str], saved_at: str) -> dict:
    return {"name": name, "owner": owner, "savedAt": saved_at}


def test_classify_store_error() -> None:
    """Verify backend codes map onto the store error taxonomy."""

    assert isinstance(classify_store_error("42P01", "relation does not exist", "leads"), BackingCollectionMissing)
    assert isinstance(classify_store_error("PGRST205", "table not in schema cache", "leads"), BackingCollectionMissing)
    assert isinstance(classify_store_error("42501", "new row violates row-level security", "leads"), PermissionDenied)
    assert isinstance(classify_store_error(None, "permission denied for table leads", "leads"), PermissionDenied)
    assert isinstance(classify_store_error("57014", "statement timeout", "leads"), TransientStoreError)
    assert classify_store_error("42P01", "x", "leads").blocking
    assert not classify_store_error("57014", "x", "leads").blocking


def test_api_errors_are_classified(client: FakeClient, supabase_store: SupabaseRecordStore) -> None:
    """Verify APIError and network errors surface as store errors."""

    client.table("leads").error = APIError({"code": "42P01", "message": "relation \"leads\" does not exist"})
    with pytest.raises(BackingCollectionMissing):
        supabase_store.fetch(LEADS)

    client.table("leads").error = httpx.ConnectError("connection refused")
    with pytest.raises(TransientStoreError):
        supabase_store.fetch(LEADS)


def test_insert_publishes_ordered_snapshot(supabase_store: SupabaseRecordStore) -> None:
    """Verify subscribers get the initial table and a fresh snapshot after each write."""

    received: list[Snapshot] = []
    supabase_store.subscribe(LEADS, received.append)

    supabase_store.insert(LEADS, "old", _doc("Old Bar", "Diego", "2026-01-01T00:00:00+00:00"))
    supabase_store.insert(LEADS, "new", _doc("New Bar", "Diego", "2026-02-01T00:00:00+00:00"))

    assert len(received) == 3
    assert [doc["id"] for doc in received[-1]] == ["new", "old"]
    assert received[-1].version > received[0].version


def test_insert_retry_and_conflicts(supabase_store: SupabaseRecordStore) -> None:
    """Verify identical retries are no-ops and collisions report the owner."""

    doc = _doc("Acme Bar", "Diego", "2026-03-01T00:00:00+00:00")
    assert supabase_store.insert(LEADS, "a", doc, unique_fields=("name",)) is True
    assert supabase_store.insert(LEADS, "a", doc, unique_fields=("name",)) is False
    assert len(supabase_store.fetch(LEADS)) == 1

    with pytest.raises(ConflictError) as excinfo:
        supabase_store.insert(LEADS, "b", _doc("Acme Bar", "Gaston", "2026-03-02T00:00:00+00:00"), unique_fields=("name",))
    assert excinfo.value.owner == "Diego"


def test_lost_insert_race_reports_winner(client: FakeClient, supabase_store: SupabaseRecordStore) -> None:
    """Verify a unique violation from a concurrent writer becomes a ConflictError."""

    client.table("leads").race_row = dict(_doc("Acme Bar", "Diego", "2026-03-01T00:00:00+00:00"), id="a")

    with pytest.raises(ConflictError) as excinfo:
        supabase_store.insert(LEADS, "b", _doc("Acme Bar", "Gaston", "2026-03-01T00:00:01+00:00"), unique_fields=("name",))

    assert excinfo.value.owner == "Diego"


def test_update_compare_and_set(supabase_store: SupabaseRecordStore) -> None:
    """Verify conditional updates apply once and report why they failed."""

    supabase_store.insert(LEADS, "a", _doc("Acme Bar", "Diego", "2026-03-01T00:00:00+00:00"))

    supabase_store.update(LEADS, "a", {"owner": "Gaston"}, expected={"owner": "Diego"})
    with pytest.raises(ConflictError):
        supabase_store.update(LEADS, "a", {"owner": "Mati"}, expected={"owner": "Diego"})
    with pytest.raises(NotFoundError):
        supabase_store.update(LEADS, "ghost", {"owner": "Mati"})

    assert supabase_store.get(LEADS, "a")["owner"] == "Gaston"


def test_update_expecting_missing_owner(supabase_store: SupabaseRecordStore) -> None:
    """Verify a compare-and-set on an unset owner matches the stored NULL."""

    supabase_store.insert(LEADS, "a", _doc("Loose Bar", None, "2026-03-01T00:00:00+00:00"))

    supabase_store.update(LEADS, "a", {"owner": "Gaston"}, expected={"owner": None})

    assert supabase_store.get(LEADS, "a")["owner"] == "Gaston"
    with pytest.raises(ConflictError):
        supabase_store.update(LEADS, "a", {"owner": "Mati"}, expected={"owner": None})


def test_assign_owner_of_unowned_lead(supabase_store: SupabaseRecordStore) -> None:
    """Verify an administrator can hand out a lead that nobody owns yet."""

    supabase_store.insert(LEADS, "a", _doc("Loose Bar", None, "2026-03-01T00:00:00+00:00"))
    leads = LeadRepository(supabase_store, OperationLogRepository(supabase_store, mirror=False))

    moved = leads.assign_owner("a", "Gaston", reset_status=False)

    assert moved.owner == "Gaston"
    assert supabase_store.get(LEADS, "a")["owner"] == "Gaston"
    assert leads.get("a").owner == "Gaston"
    leads.close()


def test_refresh_picks_up_remote_changes(client: FakeClient, supabase_store: SupabaseRecordStore) -> None:
    """Verify a refresh after a remote write redelivers the whole table."""

    received: list[Snapshot] = []
    supabase_store.subscribe(LEADS, received.append)

    client.table("leads").rows.append(dict(_doc("Remote Bar", "Gaston", "2026-03-01T00:00:00+00:00"), id="r"))
    supabase_store.refresh(LEADS)

    assert [doc["id"] for doc in received[-1]] == ["r"]


def test_resync_runs_off_the_event_loop_thread(client: FakeClient, supabase_store: SupabaseRecordStore) -> None:
    """Verify a Realtime-triggered resync queries on a worker thread and delivers the table."""

    received: list[Snapshot] = []
    supabase_store.subscribe(LEADS, received.append)
    client.table("leads").rows.append(dict(_doc("Remote Bar", "Gaston", "2026-03-01T00:00:00+00:00"), id="r"))
    client.table("leads").threads.clear()

    asyncio.run(supabase_store.resync(LEADS))

    assert [doc["id"] for doc in received[-1]] == ["r"]
    assert client.table("leads").threads
    assert threading.get_ident() not in client.table("leads").threads


def test_refresh_failure_reaches_subscribers(client: FakeClient, supabase_store: SupabaseRecordStore) -> None:
    """Verify a failing resync is reported to subscribers, not raised."""

    errors = []
    supabase_store.subscribe(LEADS, lambda _snapshot: None, on_error=errors.append)

    client.table("leads").error = APIError({"code": "42501", "message": "permission denied for table leads"})
    supabase_store.refresh(LEADS)

    assert isinstance(errors[-1], PermissionDenied)


def test_delete_republishes(supabase_store: SupabaseRecordStore) -> None:
    """Verify deletes reach subscribers and released subscriptions stop receiving."""

    received: list[Snapshot] = []
    subscription = supabase_store.subscribe(LEADS, received.append)
    supabase_store.insert(LEADS, "a", _doc("Acme Bar", "Diego", "2026-03-01T00:00:00+00:00"))

    supabase_store.delete(LEADS, "a")
    assert len(received[-1]) == 0

    subscription.close()
    assert supabase_store.active_subscriptions() == 0
