"""
Supabase record store (persistence).

Implements the record store primitives over Supabase tables, one table per
collection kind, keyed by an `id` text column. Column names are the document
field names. Writes touch only the columns they name, so columns this
package does not know about survive every read-modify-write.

Subscriptions are snapshot based: subscribing fetches the full ordered
table, every write made through this store republishes the table it touched,
and `refresh()` resynchronizes subscribers after remote changes or a lost
connection. `listen()` attaches Supabase Realtime channels that call
`refresh()` whenever another client writes; the refetch runs on a worker
thread so the event loop delivering Realtime messages is never blocked by
the synchronous client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, List, Optional, Sequence, Set

import httpx
from postgrest.exceptions import APIError
from supabase import Client  # type: ignore[import-not-found]

from domain.errors import (
    BackingCollectionMissing,
    NotFoundError,
    PermissionDenied,
    StoreError,
    TransientStoreError,
)
from repositories.client import Settings
from repositories.store import (
    ORDERING,
    CollectionKind,
    Document,
    ErrorCallback,
    Predicate,
    SnapshotCallback,
    Subscription,
    SubscriptionRegistry,
    conflict_for,
    freeze,
)

logger = logging.getLogger(__name__)

# PostgREST / PostgreSQL error codes
_MISSING_CODES = {"42P01", "PGRST205", "PGRST204", "404"}
_DENIED_CODES = {"42501", "PGRST301", "PGRST302", "401", "403"}
_UNIQUE_VIOLATION = "23505"


def classify_store_error(code: Any, message: str, collection: str) -> StoreError:
    """
    Map a backend error onto the store error taxonomy.

    - missing table/relation -> BackingCollectionMissing
    - row level security / auth rejection -> PermissionDenied
    - anything else -> TransientStoreError
    """

    code_text = str(code) if code is not None else None
    text = f"{collection}: {message}"
    if code_text in _MISSING_CODES:
        return BackingCollectionMissing(f"Backing table is missing for {text}", code=code_text)
    if code_text in _DENIED_CODES or "permission denied" in message.lower():
        return PermissionDenied(f"Access denied to {text}", code=code_text)
    return TransientStoreError(f"Store request failed for {text}", code=code_text)


def _match(query: Any, key: str, value: Any) -> Any:
    # `eq.null` never matches SQL NULL; PostgREST spells it `is.null`.
    if value is None:
        return query.is_(key, "null")
    return query.eq(key, value)


class SupabaseRecordStore:
    def __init__(self, client: Client, settings: Optional[Settings] = None) -> None:
        self._client = client
        self._settings = settings
        self._registry = SubscriptionRegistry()
        self._realtime: Any = None
        self._pending: Set["asyncio.Task[None]"] = set()

    # -- plumbing ----------------------------------------------------------

    def _table(self, kind: CollectionKind) -> Any:
        return self._client.table(kind.value)

    def _execute(self, kind: CollectionKind, query: Any) -> List[dict]:
        try:
            response = query.execute()
        except APIError as exc:
            if str(exc.code) == _UNIQUE_VIOLATION:
                raise
            raise classify_store_error(exc.code, exc.message or str(exc), kind.value) from exc
        except httpx.HTTPError as exc:
            raise TransientStoreError(f"Network error talking to {kind.value}: {exc}") from exc

        error = getattr(response, "error", None)
        if error:
            raise classify_store_error(getattr(error, "code", None), str(error), kind.value)
        return list(getattr(response, "data", None) or [])

    def _select(self, kind: CollectionKind, where: Optional[Document] = None, limit: Optional[int] = None) -> List[dict]:
        ordering = ORDERING[kind]
        query = self._table(kind).select("*")
        for key, value in (where or {}).items():
            query = _match(query, key, value)
        query = query.order(ordering.field, desc=ordering.descending)
        if limit is not None:
            query = query.limit(limit)
        return self._execute(kind, query)

    # -- writes ------------------------------------------------------------

    def insert(
        self,
        kind: CollectionKind,
        record_id: str,
        document: Document,
        *,
        unique_fields: Sequence[str] = (),
    ) -> bool:
        payload = dict(document, id=record_id)
        if self._already_stored(kind, record_id, payload, unique_fields):
            return False

        try:
            self._execute(kind, self._table(kind).insert(payload))
        except APIError as exc:
            # Lost a race against another writer; report who won.
            logger.info(f"Unique violation inserting into {kind.value}: {exc.message}")
            if self._already_stored(kind, record_id, payload, unique_fields):
                return False
            raise TransientStoreError(f"Insert into {kind.value} rejected: {exc.message}", code=str(exc.code)) from exc

        self.refresh(kind)
        return True

    def _already_stored(
        self,
        kind: CollectionKind,
        record_id: str,
        payload: dict,
        unique_fields: Sequence[str],
    ) -> bool:
        """True for an identical retry; raises ConflictError for any other collision."""

        existing = self.get(kind, record_id)
        if existing is not None:
            if all(existing.get(key) == value for key, value in payload.items()):
                return True
            raise conflict_for(record_id, existing, "Record id already exists")

        for field_name in unique_fields:
            value = payload.get(field_name)
            if value is None:
                continue
            rows = self._select(kind, {field_name: value}, limit=1)
            if rows:
                raise conflict_for(str(value), rows[0], f"Duplicate {field_name}")
        return False

    def update(
        self,
        kind: CollectionKind,
        record_id: str,
        fields: Document,
        *,
        expected: Optional[Document] = None,
    ) -> None:
        query = self._table(kind).update(dict(fields)).eq("id", record_id)
        for key, value in (expected or {}).items():
            query = _match(query, key, value)
        rows = self._execute(kind, query)

        if not rows:
            existing = self.get(kind, record_id)
            if existing is None:
                raise NotFoundError(f"No {kind.value} record with id '{record_id}'")
            key = next(iter(expected or {}), "record")
            raise conflict_for(record_id, existing, f"Precondition failed on {key}")

        self.refresh(kind)

    def delete(self, kind: CollectionKind, record_id: str) -> None:
        self._execute(kind, self._table(kind).delete().eq("id", record_id))
        self.refresh(kind)

    # -- reads -------------------------------------------------------------

    def get(self, kind: CollectionKind, record_id: str) -> Optional[Document]:
        rows = self._execute(kind, self._table(kind).select("*").eq("id", record_id).limit(1))
        if not rows:
            return None
        return freeze(rows[0])

    def fetch(self, kind: CollectionKind, where: Optional[Document] = None) -> List[Document]:
        return [freeze(row) for row in self._select(kind, where)]

    # -- subscriptions -----------------------------------------------------

    def subscribe(
        self,
        kind: CollectionKind,
        callback: SnapshotCallback,
        *,
        predicate: Optional[Predicate] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = self._registry.register(kind, callback, predicate, on_error)
        try:
            rows = self._select(kind)
        except StoreError as exc:
            subscription.fail(exc)
        else:
            subscription.deliver(self._registry.snapshot(kind, rows))
        return subscription

    def refresh(self, kind: CollectionKind) -> None:
        """
        Refetch `kind` and redeliver the snapshot to its subscribers.

        Failures are reported to subscribers, not raised: a write that already
        succeeded must not look failed because the follow-up read did.
        """

        if not self._registry.active_count(kind):
            return
        try:
            rows = self._select(kind)
        except StoreError as exc:
            logger.warning(
                f"Failed to resynchronize '{kind.value}': {exc}",
                extra={"collection": kind.value, "error_type": type(exc).__name__},
            )
            self._registry.fail(kind, exc)
            return
        self._registry.publish(kind, rows)

    async def resync(self, kind: CollectionKind) -> None:
        """`refresh` on a worker thread, for callers running on an event loop."""

        await asyncio.to_thread(self.refresh, kind)

    def refresh_all(self) -> None:
        for kind in CollectionKind:
            self.refresh(kind)

    def active_subscriptions(self, kind: Optional[CollectionKind] = None) -> int:
        return self._registry.active_count(kind)

    # -- realtime ----------------------------------------------------------

    async def listen(self, kinds: Optional[Iterable[CollectionKind]] = None) -> None:
        """
        Attach Realtime `postgres_changes` listeners that resynchronize on remote writes.

        Needs the URL and key used to build the synchronous client, because
        Realtime is only available on the async client.
        """

        from supabase import acreate_client  # type: ignore[import-not-found]

        if self._settings is None or not self._settings.supabase_url or not self._settings.supabase_key:
            raise RuntimeError("Realtime listening requires SUPABASE_URL and SUPABASE_KEY settings")

        self._realtime = await acreate_client(self._settings.supabase_url, self._settings.supabase_key)
        for kind in kinds or CollectionKind:
            channel = self._realtime.channel(f"crm-{kind.value}")
            channel.on_postgres_changes(
                "*",
                schema="public",
                table=kind.value,
                callback=lambda _payload, kind=kind: self._schedule_resync(kind),
            )
            await channel.subscribe()
            logger.info(f"Listening for remote changes on '{kind.value}'")

    def _schedule_resync(self, kind: CollectionKind) -> None:
        task = asyncio.get_running_loop().create_task(self.resync(kind))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def stop_listening(self) -> None:
        if self._realtime is not None:
            await self._realtime.remove_all_channels()
            self._realtime = None
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ["SupabaseRecordStore", "classify_store_error"]
