"""
Live typed mirror of one remote collection.

A `CollectionMirror` owns the in-memory, typed copy of a collection for one
consumer context. It subscribes to the record store, decodes every snapshot
into domain objects, and fans the result out to registered listeners.
Listeners unregister with the function returned by `listen()`; the mirror
releases its store subscription on `close()`.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

from domain.errors import StoreError
from repositories.store import CollectionKind, Document, Predicate, RecordStore, Snapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

ItemsListener = Callable[[Tuple[T, ...]], None]
ErrorListener = Callable[[Optional[StoreError]], None]


class CollectionMirror(Generic[T]):
    def __init__(
        self,
        store: RecordStore,
        kind: CollectionKind,
        decode: Callable[[Document], T],
        *,
        predicate: Optional[Predicate] = None,
    ) -> None:
        self.kind = kind
        self._store = store
        self._decode = decode
        self._predicate = predicate
        self._items: Tuple[T, ...] = ()
        self._version = 0
        self._listeners: List[ItemsListener] = []
        self._error_listeners: List[ErrorListener] = []
        self.last_error: Optional[StoreError] = None
        self._subscription = store.subscribe(kind, self._on_snapshot, predicate=predicate, on_error=self._on_error)

    @property
    def items(self) -> Tuple[T, ...]:
        return self._items

    @property
    def version(self) -> int:
        """Store version of the last snapshot received (0 before the first one)."""

        return self._version

    @property
    def is_open(self) -> bool:
        return self._subscription.active

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        items: List[T] = []
        for document in snapshot:
            try:
                items.append(self._decode(document))
            except (KeyError, TypeError, ValueError) as exc:
                # One malformed record must not blank out the whole view.
                logger.warning(
                    f"Skipping undecodable {self.kind.value} record '{document.get('id')}': {exc}",
                    extra={"collection": self.kind.value, "record_id": document.get("id")},
                )
        self._items = tuple(items)
        self._version = snapshot.version

        recovered = self.last_error is not None
        self.last_error = None
        if recovered:
            for error_listener in list(self._error_listeners):
                error_listener(None)
        for listener in list(self._listeners):
            listener(self._items)

    def _on_error(self, error: StoreError) -> None:
        self.last_error = error
        logger.warning(
            f"Subscription to '{self.kind.value}' failed: {error}",
            extra={"collection": self.kind.value, "error_type": type(error).__name__},
        )
        for error_listener in list(self._error_listeners):
            error_listener(error)

    def listen(self, callback: ItemsListener) -> Callable[[], None]:
        """Register `callback` for every new snapshot. Returns the unregister function."""

        self._listeners.append(callback)

        def unregister() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unregister

    def listen_errors(self, callback: ErrorListener) -> Callable[[], None]:
        """Register `callback` for failures (error) and recoveries (None)."""

        self._error_listeners.append(callback)

        def unregister() -> None:
            if callback in self._error_listeners:
                self._error_listeners.remove(callback)

        return unregister

    def reopen(self) -> None:
        """Drop the current subscription and subscribe again (manual retry)."""

        self._subscription.close()
        self._subscription = self._store.subscribe(
            self.kind, self._on_snapshot, predicate=self._predicate, on_error=self._on_error
        )

    def close(self) -> None:
        self._subscription.close()
        self._listeners.clear()
        self._error_listeners.clear()
