"""
Domain: error taxonomy.

Every failure the repositories and the ownership protocol can surface to a
caller. Callers branch on the class, never on message text.

- ConflictError: a uniqueness or ownership precondition is already satisfied
  by someone else. Carries the conflicting owner when one is known.
- UnauthorizedError: hard denial (wrong actor, missing admin capability).
- DuplicatePendingRequestError / AlreadyResolvedError: idempotence guards,
  presented as notices rather than failures.
- NotFoundError: the record is absent from the caller's last-seen snapshot.
- StoreError: transport/backing-store failure, classified by cause.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


class CrmError(Exception):
    """Base class for every error raised by this package."""


class ConflictError(CrmError):
    def __init__(
        self,
        message: str,
        *,
        owner: Optional[str] = None,
        existing: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.owner = owner
        self.existing = existing


class AlreadyOwnedError(ConflictError):
    """Raised when claiming a lead that already has an owner."""


class UnauthorizedError(CrmError):
    pass


class DuplicatePendingRequestError(CrmError):
    pass


class AlreadyResolvedError(CrmError):
    pass


class NotFoundError(CrmError):
    pass


class StoreError(CrmError):
    """
    Backing store failure.

    `blocking` errors leave the whole workspace unusable until someone fixes
    the deployment and retries; non-blocking ones only degrade to stale data.
    """

    blocking: bool = False

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class BackingCollectionMissing(StoreError):
    blocking = True


class PermissionDenied(StoreError):
    blocking = True


class TransientStoreError(StoreError):
    pass
