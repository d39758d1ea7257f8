"""Error taxonomy for the permission layer.

A semantic deny is not an error: `Authorizer.authorize` returns it as an
`AuthzDecision`. `PermissionDenied` exists for callers that prefer raising
(`Authorizer.require`, `Authorizer.require_admin`).
"""

from __future__ import annotations

from typing import Optional


class RBACError(Exception):
    """Base class for everything raised by `kbot.rbac`."""


class NotFoundError(RBACError):
    """No permission record for a principal, or no such resource instance."""


class ValidationError(RBACError, ValueError):
    """Malformed selector, key or grant input."""


class BackendError(RBACError):
    """Transport or persistence failure in an external collaborator."""


class StoreError(BackendError):
    """Permission Store failure.

    `conflict` is set when the store rejected a write because the record already
    exists (create) or the version token is stale (update). Callers that need
    stronger guarantees re-load and re-apply.
    """

    def __init__(self, message: str, *, conflict: bool = False) -> None:
        super().__init__(message)
        self.conflict = conflict


class DirectoryError(BackendError):
    """Resource Directory failure other than a missing instance."""


class PermissionDenied(RBACError):
    def __init__(self, reason: str, *, principal_id: Optional[int] = None) -> None:
        super().__init__(reason or "permission denied")
        self.reason = reason or "permission denied"
        self.principal_id = principal_id
