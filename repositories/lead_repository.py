"""
Lead repository (persistence + live mirror).

Typed create/update/remove for Lead records on top of the record store, plus
the live mirror of the `leads` collection for one consumer context.

Rules enforced here:
- Creation is rejected with ConflictError when another lead has the same id
  or the same name; the error carries the existing owner.
- `update` never changes `owner`. Owner changes go through
  `services.ownership_service`, which is the only caller of `assign_owner`.
- Any change to status, notes, next action or price list stamps
  `lastContactDate` in the same write.
- Every mutation appends one OperationLog entry (STATUS_CHANGE when the status
  moved, UPDATE otherwise, CREATE/DELETE for creation and removal).
- Unknown document fields are carried in `Lead.extras` and written back as-is.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from domain.errors import ConflictError, NotFoundError, UnauthorizedError
from domain.identity import Actor
from domain.lead import (
    CONTACT_FIELDS,
    INITIAL_STATUS,
    LEAD_ATTRIBUTES,
    Lead,
    LeadStatus,
    validate_calendar_date,
)
from domain.operation_log import LogAction
from domain.time import Clock, iso_date, parse_utc_datetime, to_iso_utc, utc_now
from repositories.base import CollectionMirror
from repositories.log_repository import OperationLogRepository
from repositories.store import CollectionKind, RecordStore

# Python attribute -> persisted document field
_FIELDS: Dict[str, str] = {
    "lead_id": "id",
    "name": "name",
    "status": "status",
    "owner": "owner",
    "category": "category",
    "location": "location",
    "phone": "phone",
    "email": "email",
    "contact_name": "contactName",
    "notes": "notes",
    "next_action": "nextAction",
    "next_action_date": "nextActionDate",
    "last_contact_date": "lastContactDate",
    "saved_at": "savedAt",
    "is_client": "isClient",
    "sale_value": "saleValue",
    "price_list": "priceList",
}
_ATTRIBUTES: Dict[str, str] = {field: attr for attr, field in _FIELDS.items()}

_PROTECTED = frozenset({"lead_id", "owner", "saved_at"})


def _encode(attribute: str, value: Any) -> Any:
    if value is None:
        return None
    if attribute == "status":
        return LeadStatus(value).value
    if attribute == "saved_at":
        return to_iso_utc(value, name="saved_at")
    return value


def _lead_to_document(lead: Lead) -> dict[str, Any]:
    """Convert a domain Lead to a store document (extension fields first, known fields win)."""

    document: dict[str, Any] = dict(lead.extras)
    for attribute, field_name in _FIELDS.items():
        document[field_name] = _encode(attribute, getattr(lead, attribute))
    return document


def _document_to_lead(document: Mapping[str, Any]) -> Lead:
    """Convert a store document into a domain Lead."""

    # Empty strings are stored by older clients for "not set".
    def get_optional(key: str) -> Any:
        value = document.get(key)
        return value if value not in ("", None) else None

    saved_at = get_optional("savedAt")
    sale_value = get_optional("saleValue")

    return Lead(
        lead_id=str(document["id"]),
        name=str(document["name"]),
        status=LeadStatus.parse(document.get("status")),
        owner=get_optional("owner"),
        category=get_optional("category"),
        location=get_optional("location"),
        phone=get_optional("phone"),
        email=get_optional("email"),
        contact_name=get_optional("contactName"),
        notes=get_optional("notes"),
        next_action=get_optional("nextAction"),
        next_action_date=get_optional("nextActionDate"),
        last_contact_date=get_optional("lastContactDate"),
        saved_at=parse_utc_datetime(saved_at) if saved_at is not None else None,
        is_client=bool(document.get("isClient", False)),
        sale_value=float(sale_value) if sale_value is not None else None,
        price_list=get_optional("priceList"),
        extras={key: value for key, value in document.items() if key not in _ATTRIBUTES},
    )


class LeadRepository:
    def __init__(
        self,
        store: RecordStore,
        logs: OperationLogRepository,
        *,
        clock: Clock = utc_now,
        owner_scope: Optional[str] = None,
    ) -> None:
        """
        `owner_scope` restricts the live mirror to one owner's leads (the
        non-administrator view). Uniqueness checks always consult the store.
        """

        self._store = store
        self._logs = logs
        self._clock = clock
        predicate = (lambda doc: doc.get("owner") == owner_scope) if owner_scope else None
        self._mirror: CollectionMirror[Lead] = CollectionMirror(
            store, CollectionKind.LEADS, _document_to_lead, predicate=predicate
        )

    # -- reads -------------------------------------------------------------

    @property
    def mirror(self) -> CollectionMirror[Lead]:
        return self._mirror

    @property
    def snapshot(self) -> Tuple[Lead, ...]:
        """Last-seen leads, newest first."""

        return self._mirror.items

    def subscribe(self, callback: Callable[[Tuple[Lead, ...]], None]) -> Callable[[], None]:
        return self._mirror.listen(callback)

    def get(self, lead_id: str) -> Optional[Lead]:
        for lead in self._mirror.items:
            if lead.lead_id == lead_id:
                return lead
        return None

    def load(self, lead_id: str) -> Optional[Lead]:
        """Authoritative read straight from the store."""

        document = self._store.get(CollectionKind.LEADS, lead_id)
        return _document_to_lead(document) if document is not None else None

    def find_by_name(self, name: str) -> Optional[Lead]:
        """Authoritative lookup by exact (case-sensitive) name."""

        documents = self._store.fetch(CollectionKind.LEADS, {"name": name})
        return _document_to_lead(documents[0]) if documents else None

    # -- writes ------------------------------------------------------------

    def create(self, lead: Lead, actor: Actor) -> Lead:
        """
        Persist a new, owned Lead.

        Raises:
        - ValueError if the lead has no owner (use the ownership protocol's claim).
        - ConflictError if the id or the name is already taken.
        - StoreError on transport failure.
        """

        if not lead.is_owned:
            raise ValueError("A lead must have an owner before it is saved")

        document = _lead_to_document(lead)
        for existing in self._mirror.items:
            if existing.lead_id == lead.lead_id:
                if _lead_to_document(existing) == document:
                    return existing
                raise ConflictError(
                    f"Lead id '{lead.lead_id}' already exists (owned by {existing.owner})",
                    owner=existing.owner,
                    existing=_lead_to_document(existing),
                )
            if existing.name == lead.name:
                raise ConflictError(
                    f"Lead '{lead.name}' already exists (owned by {existing.owner})",
                    owner=existing.owner,
                    existing=_lead_to_document(existing),
                )

        if not self._store.insert(CollectionKind.LEADS, lead.lead_id, document, unique_fields=("name",)):
            return lead
        self._logs.append(actor.name, LogAction.CREATE, f"Saved new lead: {lead.name}")
        return lead

    def update(
        self,
        lead_id: str,
        changes: Mapping[str, Any],
        actor: Actor,
        *,
        context: Optional[str] = None,
    ) -> Lead:
        """
        Apply a partial update to a lead the caller can currently see.

        `changes` keys are Lead attribute names or stored field names; keys that
        match neither are stored as extension fields.

        Raises:
        - NotFoundError if the lead is not in the last-seen snapshot.
        - UnauthorizedError if the actor neither owns the lead nor administers.
        - ValueError for protected fields (owner, id, savedAt) or malformed dates.
        """

        lead = self.get(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead '{lead_id}' is not in the current snapshot")
        if not actor.can_manage(lead.owner):
            raise UnauthorizedError(f"{actor.name} cannot edit '{lead.name}' (owned by {lead.owner})")

        known: Dict[str, Any] = {}
        extras: Dict[str, Any] = {}
        for key, value in changes.items():
            attribute = key if key in LEAD_ATTRIBUTES else _ATTRIBUTES.get(key)
            if attribute is None:
                extras[key] = value
            elif attribute in _PROTECTED:
                raise ValueError(f"'{key}' cannot be changed through update")
            else:
                known[attribute] = value

        # Clearing a date input sends an empty string.
        for attribute in ("next_action_date", "last_contact_date"):
            if known.get(attribute) == "":
                known[attribute] = None
        if "status" in known:
            known["status"] = LeadStatus.parse(known["status"])
        validate_calendar_date("next_action_date", known.get("next_action_date"))
        validate_calendar_date("last_contact_date", known.get("last_contact_date"))

        updated = lead.with_changes(**known, extras={**lead.extras, **extras})
        changed = {attr for attr in known if getattr(lead, attr) != getattr(updated, attr)}
        changed_extras = {key for key in extras if lead.extras.get(key) != extras[key]}
        if not changed and not changed_extras:
            return lead

        if "status" in changed and updated.status is LeadStatus.CLIENT and "is_client" not in known:
            updated = updated.with_changes(is_client=True)
            changed.add("is_client")
        if changed & CONTACT_FIELDS and "last_contact_date" not in known:
            updated = updated.with_changes(last_contact_date=iso_date(self._clock()))
            changed.add("last_contact_date")

        fields = {_FIELDS[attr]: _encode(attr, getattr(updated, attr)) for attr in changed}
        fields.update({key: extras[key] for key in changed_extras})
        self._store.update(CollectionKind.LEADS, lead_id, fields)

        if "status" in changed:
            self._logs.append(
                actor.name,
                LogAction.STATUS_CHANGE,
                f"{lead.name}: {lead.status.value} -> {updated.status.value}",
            )
        else:
            what = context or ", ".join(sorted(fields))
            self._logs.append(actor.name, LogAction.UPDATE, f"Edited {what} on {lead.name}")
        return updated

    def remove(self, lead_id: str, actor: Actor, *, confirmed: bool = False) -> None:
        """Hard delete. The caller must pass `confirmed=True` after asking the user."""

        if not confirmed:
            raise ValueError("Deleting a lead requires explicit confirmation")
        lead = self.get(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead '{lead_id}' is not in the current snapshot")
        if not actor.can_manage(lead.owner):
            raise UnauthorizedError(f"{actor.name} cannot delete '{lead.name}' (owned by {lead.owner})")

        self._store.delete(CollectionKind.LEADS, lead_id)
        self._logs.append(actor.name, LogAction.DELETE, f"Deleted record: {lead.name}")

    def assign_owner(self, lead_id: str, new_owner: str, *, reset_status: bool) -> Lead:
        """
        Move a lead to `new_owner`. Reserved for the ownership protocol, which
        performs authorization and writes the audit entry.

        The write is conditional on the owner read here, so a concurrent owner
        change surfaces as ConflictError instead of being overwritten.
        """

        lead = self.load(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead '{lead_id}' no longer exists")

        fields: Dict[str, Any] = {"owner": new_owner}
        updated = lead.with_changes(owner=new_owner)
        if reset_status:
            fields["status"] = INITIAL_STATUS.value
            updated = updated.with_changes(status=INITIAL_STATUS)

        self._store.update(CollectionKind.LEADS, lead_id, fields, expected={"owner": lead.owner})
        return updated

    def close(self) -> None:
        self._mirror.close()


__all__ = ["LeadRepository"]
