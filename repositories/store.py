"""
Record store adapter.

Defines the primitives every entity repository is built on: keyed
create/update/delete, ordered fetches and full-snapshot subscriptions over the
six logical collections. Two implementations exist:

- `InMemoryRecordStore` (this module): process-local, used for tests and
  offline development.
- `SupabaseRecordStore` (`repositories.supabase_store`): the remote store.

Subscription semantics are the same for both. Every change to a collection
redelivers a complete, ordered snapshot (never a delta) to every active
subscriber, in the order the changes are observed. There is no ordering
guarantee across collections.

Stores are shared between request threads and the Realtime event loop, so
subscriber bookkeeping and in-memory writes are serialized with a lock.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

from domain.errors import ConflictError, NotFoundError, StoreError
from domain.time import parse_utc_datetime

logger = logging.getLogger(__name__)

Document = Mapping[str, Any]
Predicate = Callable[[Document], bool]


class CollectionKind(str, Enum):
    LEADS = "leads"
    LOGS = "logs"
    TRANSFER_REQUESTS = "transfer_requests"
    DIRECT_TASKS = "direct_tasks"
    CHAT_MESSAGES = "chat_messages"
    CHAT_CHANNELS = "chat_channels"


@dataclass(frozen=True, slots=True)
class Ordering:
    field: str
    descending: bool = False


ORDERING: Dict[CollectionKind, Ordering] = {
    CollectionKind.LEADS: Ordering("savedAt", descending=True),
    CollectionKind.LOGS: Ordering("timestamp", descending=True),
    CollectionKind.TRANSFER_REQUESTS: Ordering("createdAt"),
    CollectionKind.DIRECT_TASKS: Ordering("createdAt"),
    CollectionKind.CHAT_MESSAGES: Ordering("timestamp"),
    CollectionKind.CHAT_CHANNELS: Ordering("createdAt"),
}


def _sort_value(value: Any) -> str:
    if value is None:
        return ""
    try:
        return parse_utc_datetime(value).isoformat()
    except (TypeError, ValueError):
        return str(value)


def sort_documents(kind: CollectionKind, documents: Iterable[Document]) -> List[Document]:
    """Order documents for a collection. Stable: ties keep their input order."""

    ordering = ORDERING[kind]
    return sorted(
        documents,
        key=lambda doc: _sort_value(doc.get(ordering.field)),
        reverse=ordering.descending,
    )


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Complete, ordered, immutable materialization of one collection."""

    kind: CollectionKind
    documents: Tuple[Document, ...]
    version: int

    def __iter__(self) -> Iterator[Document]:
        return iter(self.documents)

    def __len__(self) -> int:
        return len(self.documents)


SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[StoreError], None]


class Subscription:
    """
    Handle for one live subscription.

    Release it with `close()` (or use it as a context manager) when the
    consuming context ends. Closing twice is harmless.
    """

    def __init__(
        self,
        kind: CollectionKind,
        callback: SnapshotCallback,
        release: Callable[["Subscription"], None],
        predicate: Optional[Predicate] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.kind = kind
        self._callback = callback
        self._release = release
        self._predicate = predicate
        self._on_error = on_error
        self.active = True
        self.last_error: Optional[StoreError] = None

    def deliver(self, snapshot: Snapshot) -> None:
        if not self.active:
            return
        self.last_error = None
        if self._predicate is not None:
            snapshot = Snapshot(
                kind=snapshot.kind,
                documents=tuple(doc for doc in snapshot.documents if self._predicate(doc)),
                version=snapshot.version,
            )
        self._callback(snapshot)

    def fail(self, error: StoreError) -> None:
        if not self.active:
            return
        self.last_error = error
        if self._on_error is not None:
            self._on_error(error)
        else:
            logger.warning(
                f"Unhandled subscription error on '{self.kind.value}': {error}",
                extra={"collection": self.kind.value, "error_type": type(error).__name__},
            )

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._release(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class RecordStore(Protocol):
    def insert(
        self,
        kind: CollectionKind,
        record_id: str,
        document: Document,
        *,
        unique_fields: Sequence[str] = (),
    ) -> bool:
        """Returns False when an identical record was already stored."""
        ...

    def update(
        self,
        kind: CollectionKind,
        record_id: str,
        fields: Document,
        *,
        expected: Optional[Document] = None,
    ) -> None: ...

    def delete(self, kind: CollectionKind, record_id: str) -> None: ...

    def get(self, kind: CollectionKind, record_id: str) -> Optional[Document]: ...

    def fetch(self, kind: CollectionKind, where: Optional[Document] = None) -> List[Document]: ...

    def subscribe(
        self,
        kind: CollectionKind,
        callback: SnapshotCallback,
        *,
        predicate: Optional[Predicate] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription: ...


def freeze(document: Document) -> Document:
    return MappingProxyType(copy.deepcopy(dict(document)))


class SubscriptionRegistry:
    """Subscriber bookkeeping shared by the store implementations."""

    def __init__(self) -> None:
        self._subscribers: Dict[CollectionKind, List[Subscription]] = {kind: [] for kind in CollectionKind}
        self._versions: Dict[CollectionKind, int] = {kind: 0 for kind in CollectionKind}
        self._lock = threading.RLock()

    def register(
        self,
        kind: CollectionKind,
        callback: SnapshotCallback,
        predicate: Optional[Predicate],
        on_error: Optional[ErrorCallback],
    ) -> Subscription:
        subscription = Subscription(kind, callback, self._release, predicate=predicate, on_error=on_error)
        with self._lock:
            self._subscribers[kind].append(subscription)
        return subscription

    def _release(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers[subscription.kind]
            if subscription in subscribers:
                subscribers.remove(subscription)

    def subscribers(self, kind: CollectionKind) -> List[Subscription]:
        with self._lock:
            return list(self._subscribers[kind])

    def active_count(self, kind: Optional[CollectionKind] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._subscribers[kind])
            return sum(len(subs) for subs in self._subscribers.values())

    def snapshot(self, kind: CollectionKind, documents: Iterable[Document]) -> Snapshot:
        documents = tuple(freeze(doc) for doc in sort_documents(kind, documents))
        with self._lock:
            self._versions[kind] += 1
            return Snapshot(kind=kind, documents=documents, version=self._versions[kind])

    def publish(self, kind: CollectionKind, documents: Iterable[Document]) -> Snapshot:
        # Held across delivery so subscribers see snapshots in version order.
        with self._lock:
            snapshot = self.snapshot(kind, documents)
            # Copy: callbacks may close their own subscription.
            for subscription in self.subscribers(kind):
                subscription.deliver(snapshot)
        return snapshot

    def fail(self, kind: CollectionKind, error: StoreError) -> None:
        with self._lock:
            for subscription in self.subscribers(kind):
                subscription.fail(error)


def conflict_for(record_id: str, existing: Document, reason: str) -> ConflictError:
    owner = existing.get("owner")
    message = f"{reason}: '{record_id}'"
    if owner:
        message += f" (owned by {owner})"
    return ConflictError(message, owner=owner, existing=dict(existing))


class InMemoryRecordStore:
    """
    Process-local record store.

    Writes apply synchronously and publish a fresh snapshot to every
    subscriber of the collection before returning.
    """

    def __init__(self) -> None:
        self._collections: Dict[CollectionKind, Dict[str, Dict[str, Any]]] = {kind: {} for kind in CollectionKind}
        self._failures: Dict[CollectionKind, StoreError] = {}
        self._registry = SubscriptionRegistry()
        self._lock = threading.RLock()

    # -- failure injection -------------------------------------------------

    def inject_failure(self, kind: CollectionKind, error: StoreError) -> None:
        """Make every operation on `kind` fail with `error` and notify subscribers."""

        with self._lock:
            self._failures[kind] = error
            self._registry.fail(kind, error)

    def clear_failure(self, kind: CollectionKind) -> None:
        """Restore `kind` and resynchronize its subscribers."""

        with self._lock:
            if self._failures.pop(kind, None) is not None:
                self._publish(kind)

    def _check(self, kind: CollectionKind) -> None:
        error = self._failures.get(kind)
        if error is not None:
            raise error

    def _publish(self, kind: CollectionKind) -> None:
        self._registry.publish(kind, self._collections[kind].values())

    # -- writes ------------------------------------------------------------

    def insert(
        self,
        kind: CollectionKind,
        record_id: str,
        document: Document,
        *,
        unique_fields: Sequence[str] = (),
    ) -> bool:
        payload = dict(copy.deepcopy(dict(document)), id=record_id)
        with self._lock:
            self._check(kind)
            collection = self._collections[kind]

            existing = collection.get(record_id)
            if existing is not None:
                if existing == payload:
                    return False
                raise conflict_for(record_id, existing, "Record id already exists")

            for field_name in unique_fields:
                value = payload.get(field_name)
                if value is None:
                    continue
                for other in collection.values():
                    if other.get(field_name) == value:
                        raise conflict_for(str(value), other, f"Duplicate {field_name}")

            collection[record_id] = payload
            self._publish(kind)
        return True

    def update(
        self,
        kind: CollectionKind,
        record_id: str,
        fields: Document,
        *,
        expected: Optional[Document] = None,
    ) -> None:
        with self._lock:
            self._check(kind)
            existing = self._collections[kind].get(record_id)
            if existing is None:
                raise NotFoundError(f"No {kind.value} record with id '{record_id}'")
            if expected:
                for key, value in expected.items():
                    if existing.get(key) != value:
                        raise conflict_for(record_id, existing, f"Precondition failed on {key}")
            existing.update(copy.deepcopy(dict(fields)))
            self._publish(kind)

    def delete(self, kind: CollectionKind, record_id: str) -> None:
        with self._lock:
            self._check(kind)
            if self._collections[kind].pop(record_id, None) is not None:
                self._publish(kind)

    # -- reads -------------------------------------------------------------

    def get(self, kind: CollectionKind, record_id: str) -> Optional[Document]:
        with self._lock:
            self._check(kind)
            document = self._collections[kind].get(record_id)
            return freeze(document) if document is not None else None

    def fetch(self, kind: CollectionKind, where: Optional[Document] = None) -> List[Document]:
        with self._lock:
            self._check(kind)
            documents = [
                doc
                for doc in self._collections[kind].values()
                if not where or all(doc.get(key) == value for key, value in where.items())
            ]
            return [freeze(doc) for doc in sort_documents(kind, documents)]

    def subscribe(
        self,
        kind: CollectionKind,
        callback: SnapshotCallback,
        *,
        predicate: Optional[Predicate] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        with self._lock:
            subscription = self._registry.register(kind, callback, predicate, on_error)
            error = self._failures.get(kind)
            if error is not None:
                subscription.fail(error)
            else:
                subscription.deliver(self._registry.snapshot(kind, self._collections[kind].values()))
        return subscription

    def active_subscriptions(self, kind: Optional[CollectionKind] = None) -> int:
        return self._registry.active_count(kind)
