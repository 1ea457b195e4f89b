"""
Transfer request repository (persistence + live mirror).

Requests are created pending and resolved with a compare-and-set on
`status == pending`, so two concurrent resolutions cannot both apply.
Requests are never deleted.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Tuple
from uuid import uuid4

from domain.errors import AlreadyResolvedError, ConflictError, NotFoundError
from domain.time import Clock, parse_utc_datetime, to_iso_utc, utc_now
from domain.transfer import TransferRequest, TransferStatus
from repositories.base import CollectionMirror
from repositories.store import CollectionKind, RecordStore


def _request_to_document(request: TransferRequest) -> dict[str, Any]:
    return {
        "leadId": request.lead_id,
        "leadName": request.lead_name,
        "fromUser": request.from_user,
        "toUser": request.to_user,
        "status": request.status.value,
        "createdAt": to_iso_utc(request.created_at, name="created_at"),
        "resolvedAt": to_iso_utc(request.resolved_at, name="resolved_at") if request.resolved_at else None,
    }


def _document_to_request(document: Mapping[str, Any]) -> TransferRequest:
    resolved_at = document.get("resolvedAt")
    return TransferRequest(
        request_id=str(document["id"]),
        lead_id=str(document["leadId"]),
        lead_name=str(document.get("leadName") or ""),
        from_user=str(document["fromUser"]),
        to_user=str(document["toUser"]),
        status=TransferStatus(str(document.get("status") or TransferStatus.PENDING.value)),
        created_at=parse_utc_datetime(document["createdAt"]),
        resolved_at=parse_utc_datetime(resolved_at) if resolved_at else None,
    )


class TransferRepository:
    def __init__(self, store: RecordStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._mirror: CollectionMirror[TransferRequest] = CollectionMirror(
            store, CollectionKind.TRANSFER_REQUESTS, _document_to_request
        )

    @property
    def mirror(self) -> CollectionMirror[TransferRequest]:
        return self._mirror

    @property
    def snapshot(self) -> Tuple[TransferRequest, ...]:
        return self._mirror.items

    def subscribe(self, callback: Callable[[Tuple[TransferRequest, ...]], None]) -> Callable[[], None]:
        return self._mirror.listen(callback)

    def load(self, request_id: str) -> Optional[TransferRequest]:
        document = self._store.get(CollectionKind.TRANSFER_REQUESTS, request_id)
        return _document_to_request(document) if document is not None else None

    def pending_for(self, lead_id: str, from_user: str) -> Optional[TransferRequest]:
        """Authoritative lookup of the outstanding request for (lead, requester)."""

        documents = self._store.fetch(
            CollectionKind.TRANSFER_REQUESTS,
            {"leadId": lead_id, "fromUser": from_user, "status": TransferStatus.PENDING.value},
        )
        return _document_to_request(documents[0]) if documents else None

    def create(self, lead_id: str, lead_name: str, from_user: str, to_user: str) -> TransferRequest:
        request = TransferRequest(
            request_id=f"transfer-{uuid4().hex}",
            lead_id=lead_id,
            lead_name=lead_name,
            from_user=from_user,
            to_user=to_user,
            created_at=self._clock(),
        )
        self._store.insert(CollectionKind.TRANSFER_REQUESTS, request.request_id, _request_to_document(request))
        return request

    def mark_resolved(self, request_id: str, status: TransferStatus) -> TransferRequest:
        """
        Move a pending request to `status`.

        Raises:
        - NotFoundError if the request does not exist.
        - AlreadyResolvedError if it is no longer pending.
        """

        if status is TransferStatus.PENDING:
            raise ValueError("a request can only be resolved to accepted or rejected")

        resolved_at = self._clock()
        try:
            self._store.update(
                CollectionKind.TRANSFER_REQUESTS,
                request_id,
                {"status": status.value, "resolvedAt": to_iso_utc(resolved_at, name="resolved_at")},
                expected={"status": TransferStatus.PENDING.value},
            )
        except ConflictError as exc:
            current = (exc.existing or {}).get("status")
            raise AlreadyResolvedError(f"Transfer request '{request_id}' is already {current}") from exc

        request = self.load(request_id)
        if request is None:
            raise NotFoundError(f"Transfer request '{request_id}' disappeared after resolution")
        return request

    def close(self) -> None:
        self._mirror.close()


__all__ = ["TransferRepository"]
