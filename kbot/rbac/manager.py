"""Grant/revoke: read-modify-write against the Permission Store.

There is no retry loop. A concurrent writer makes the save fail with
`StoreError(conflict=True)`; callers re-run the operation if they need to.
"""

from __future__ import annotations

import logging
from typing import Optional

from kbot.rbac.errors import NotFoundError, ValidationError
from kbot.rbac.models import PermissionRecord, new_record
from kbot.rbac.selector import parse_selector
from kbot.rbac.store import PermissionStoreAdapter

logger = logging.getLogger(__name__)


def _require(name: str, value: str) -> str:
    v = (value or "").strip()
    if not v:
        raise ValidationError(f"{name} is required")
    return v


class PermissionManager:
    def __init__(self, permissions: PermissionStoreAdapter) -> None:
        self.permissions = permissions

    def get(self, principal_id: int, *, timeout: Optional[float] = None) -> PermissionRecord:
        return self.permissions.load(principal_id, timeout=timeout)

    def grant(
        self,
        principal_id: int,
        namespace: str,
        resource: str,
        verb: str,
        selector: str = "",
        *,
        timeout: Optional[float] = None,
    ) -> PermissionRecord:
        """
        Give `principal_id` `verb` on `resource` in `namespace` (optionally selector-scoped).

        A principal without a record gets a fresh "viewer" record. Grants sharing the
        same (namespace, selector) are merged rather than duplicated.
        """
        namespace = _require("namespace", namespace)
        resource = _require("resource", resource)
        verb = _require("verb", verb)
        selector = (selector or "").strip()
        parse_selector(selector)

        try:
            record = self.permissions.load(principal_id, timeout=timeout)
        except NotFoundError:
            record = new_record(principal_id)

        record.add_grant(namespace, resource, verb, selector)
        saved = self.permissions.save(record, timeout=timeout)
        logger.info(
            "granted %s %s in %s to %s%s",
            verb,
            resource,
            namespace,
            principal_id,
            f" (selector {selector})" if selector else "",
        )
        return saved

    def revoke(
        self,
        principal_id: int,
        namespace: str,
        resource: str,
        verb: str,
        *,
        timeout: Optional[float] = None,
    ) -> PermissionRecord:
        """
        Remove `resource` and `verb` from grants scoped literally to `namespace`.

        Raises NotFoundError when the principal has no record.
        """
        namespace = _require("namespace", namespace)
        resource = _require("resource", resource)
        verb = _require("verb", verb)

        record = self.permissions.load(principal_id, timeout=timeout)
        touched = record.remove_grant(namespace, resource, verb)
        saved = self.permissions.save(record, timeout=timeout)
        logger.info(
            "revoked %s %s in %s from %s (%d grant(s) touched)", verb, resource, namespace, principal_id, touched
        )
        return saved
