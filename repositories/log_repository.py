"""
Operation log repository (persistence).

Append-only. Appends are best effort: the entry documents a primary write
that has already succeeded, so a failing append is logged and swallowed
instead of being reported as if the primary write had failed.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Tuple
from uuid import uuid4

from domain.errors import StoreError
from domain.operation_log import LogAction, OperationLog
from domain.time import Clock, parse_utc_datetime, to_iso_utc, utc_now
from repositories.base import CollectionMirror
from repositories.store import CollectionKind, RecordStore

logger = logging.getLogger(__name__)


def _log_to_document(entry: OperationLog) -> dict[str, Any]:
    return {
        "user": entry.user,
        "action": entry.action.value,
        "details": entry.details,
        "timestamp": to_iso_utc(entry.timestamp, name="timestamp"),
    }


def _document_to_log(document: Mapping[str, Any]) -> OperationLog:
    return OperationLog(
        log_id=str(document["id"]),
        user=str(document["user"]),
        action=LogAction(str(document["action"])),
        details=str(document.get("details") or ""),
        timestamp=parse_utc_datetime(document["timestamp"]),
    )


class OperationLogRepository:
    def __init__(self, store: RecordStore, *, clock: Clock = utc_now, mirror: bool = True) -> None:
        self._store = store
        self._clock = clock
        self._mirror: Optional[CollectionMirror[OperationLog]] = (
            CollectionMirror(store, CollectionKind.LOGS, _document_to_log) if mirror else None
        )

    @property
    def mirror(self) -> Optional[CollectionMirror[OperationLog]]:
        return self._mirror

    @property
    def entries(self) -> Tuple[OperationLog, ...]:
        """Newest first."""

        return self._mirror.items if self._mirror is not None else ()

    def append(self, user: str, action: LogAction, details: str) -> Optional[OperationLog]:
        entry = OperationLog(
            log_id=f"log-{uuid4().hex}",
            user=user,
            action=action,
            details=details,
            timestamp=self._clock(),
        )
        try:
            self._store.insert(CollectionKind.LOGS, entry.log_id, _log_to_document(entry))
        except StoreError as exc:
            logger.warning(
                f"Failed to append operation log: {exc}",
                extra={"user": user, "action": action.value, "details": details[:100]},
            )
            return None
        return entry

    def history(self, *, user: Optional[str] = None) -> Tuple[OperationLog, ...]:
        """Authoritative read, newest first, optionally for one user."""

        where = {"user": user} if user else None
        return tuple(_document_to_log(doc) for doc in self._store.fetch(CollectionKind.LOGS, where))

    def close(self) -> None:
        if self._mirror is not None:
            self._mirror.close()


__all__ = ["OperationLogRepository"]
