"""Permission Store seam.

Backends speak plain documents (see `kbot.rbac.models` for the layout) so the
Kubernetes CRD store and the local JSON store stay interchangeable. The adapter
turns documents into typed records and decides create vs update from the
record's version token.

No caching here: a revoked grant must be gone on the very next check.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from kbot.rbac.errors import StoreError
from kbot.rbac.models import PermissionRecord, principal_key

logger = logging.getLogger(__name__)


@runtime_checkable
class PermissionStore(Protocol):
    def get(self, name: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Return the stored document. Raises NotFoundError."""

    def create(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Persist a new document. Raises StoreError (conflict if it already exists)."""

    def update(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Replace an existing document. Raises StoreError (conflict on stale resourceVersion)."""


class PermissionStoreAdapter:
    def __init__(self, store: PermissionStore) -> None:
        self._store = store

    def load(self, principal_id: int, *, timeout: Optional[float] = None) -> PermissionRecord:
        """Fetch and parse the principal's record. NotFoundError when there is none."""
        doc = self._store.get(principal_key(principal_id), timeout=timeout)
        return PermissionRecord.from_document(doc)

    def save(self, record: PermissionRecord, *, timeout: Optional[float] = None) -> PermissionRecord:
        """
        Create (no version token yet) or update the record.

        Returns a copy carrying the version token assigned by the store.
        """
        doc = record.to_document()
        if record.resource_version is None:
            saved = self._store.create(doc, timeout=timeout)
            op = "create"
        else:
            saved = self._store.update(doc, timeout=timeout)
            op = "update"

        rv = ((saved or {}).get("metadata") or {}).get("resourceVersion")
        if rv in (None, ""):
            raise StoreError(f"store returned no resourceVersion after {op} of {record.key}")
        logger.debug("permission record %s: %s ok (resourceVersion=%s)", record.key, op, rv)
        return record.model_copy(update={"resource_version": str(rv)}, deep=True)
