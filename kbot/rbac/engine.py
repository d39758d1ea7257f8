"""Authorization decisions and namespace visibility.

Order of evaluation for `Authorizer.authorize`:
1. bootstrap principal -> allow (store not consulted)
2. load record; missing record -> deny with the NotFoundError attached
3. role "admin" -> allow
4. first grant matching namespace/resource/verb decides; a selector-scoped grant
   whose selector rejects the named instance is a hard deny (later grants are
   not consulted)
5. otherwise deny

Only a missing record folds into a deny. Every other failure is raised so the
engine never fails open.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from kbot.rbac.bootstrap import BootstrapAuthority
from kbot.rbac.errors import NotFoundError, PermissionDenied
from kbot.rbac.models import WILDCARD, PermissionRecord
from kbot.rbac.selector import SelectorResolver
from kbot.rbac.store import PermissionStoreAdapter

if TYPE_CHECKING:
    from kbot.providers.k8s_provider import ResourceDirectory

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
ADMIN_ROLE = "admin"


def normalize_namespace(namespace: Optional[str]) -> str:
    ns = (namespace or "").strip()
    return ns or DEFAULT_NAMESPACE


@dataclass(frozen=True)
class AuthzRequest:
    principal_id: int
    namespace: str
    resource: str  # pods | deployments | services | ...
    verb: str  # get | list | logs | restart | rollback | scale | ...
    instance_name: str = ""
    # Carried for callers; selector constraints come from grants, not requests.
    selector: str = ""

    @classmethod
    def build(
        cls,
        principal_id: int,
        verb: str,
        resource: str,
        namespace: Optional[str] = None,
        instance_name: str = "",
        selector: str = "",
    ) -> "AuthzRequest":
        return cls(
            principal_id=principal_id,
            namespace=normalize_namespace(namespace),
            resource=resource,
            verb=verb,
            instance_name=instance_name or "",
            selector=selector or "",
        )


@dataclass(frozen=True)
class AuthzDecision:
    allowed: bool
    reason: str = ""
    # Set when a deny comes from a failed lookup (missing record) rather than from grants.
    error: Optional[Exception] = None

    def __bool__(self) -> bool:
        return self.allowed


_ALLOW = AuthzDecision(allowed=True)


class Authorizer:
    def __init__(
        self,
        bootstrap: BootstrapAuthority,
        permissions: PermissionStoreAdapter,
        resolver: SelectorResolver,
        directory: "ResourceDirectory",
    ) -> None:
        self.bootstrap = bootstrap
        self.permissions = permissions
        self.resolver = resolver
        self.directory = directory

    def authorize(self, request: AuthzRequest, *, timeout: Optional[float] = None) -> AuthzDecision:
        pid = request.principal_id
        if self.bootstrap.is_bootstrap(pid):
            return _ALLOW

        try:
            record = self.permissions.load(pid, timeout=timeout)
        except NotFoundError as e:
            logger.debug("authorize %s: no permission record", pid)
            return AuthzDecision(allowed=False, reason=f"no permissions found for principal {pid}", error=e)

        if record.role == ADMIN_ROLE:
            return _ALLOW

        decision = self._evaluate_grants(record, request, timeout=timeout)
        logger.debug(
            "authorize %s %s %s ns=%s name=%s -> %s %s",
            pid,
            request.verb,
            request.resource,
            request.namespace,
            request.instance_name or "-",
            "allow" if decision.allowed else "deny",
            decision.reason,
        )
        return decision

    def _evaluate_grants(
        self, record: PermissionRecord, request: AuthzRequest, *, timeout: Optional[float]
    ) -> AuthzDecision:
        for grant in record.grants:
            if not grant.covers_namespace(request.namespace):
                continue
            if not grant.covers_resource(request.resource):
                continue
            if not grant.covers_verb(request.verb):
                continue

            if grant.selector and request.instance_name:
                ok = self.resolver.matches(
                    request.resource, request.namespace, request.instance_name, grant.selector, timeout=timeout
                )
                if not ok:
                    # First structurally matching grant decides, even when a later
                    # unscoped grant would allow.
                    return AuthzDecision(
                        allowed=False,
                        reason=f"resource '{request.instance_name}' does not match required selector: {grant.selector}",
                    )
            return _ALLOW

        return AuthzDecision(
            allowed=False,
            reason=f"missing '{request.verb}' access to {request.resource} in namespace '{request.namespace}'",
        )

    def require(self, request: AuthzRequest, *, timeout: Optional[float] = None) -> None:
        """Raise PermissionDenied unless `request` is allowed."""
        decision = self.authorize(request, timeout=timeout)
        if decision.allowed:
            return
        raise PermissionDenied(decision.reason, principal_id=request.principal_id) from decision.error

    def is_admin(self, principal_id: int, *, timeout: Optional[float] = None) -> bool:
        if self.bootstrap.is_bootstrap(principal_id):
            return True
        try:
            record = self.permissions.load(principal_id, timeout=timeout)
        except NotFoundError:
            return False
        return record.role == ADMIN_ROLE

    def require_admin(self, principal_id: int, *, timeout: Optional[float] = None) -> None:
        if not self.is_admin(principal_id, timeout=timeout):
            raise PermissionDenied("admin access required", principal_id=principal_id)

    def role_of(self, principal_id: int, *, timeout: Optional[float] = None) -> Optional[str]:
        """Effective role; None when the principal has no record."""
        if self.bootstrap.is_bootstrap(principal_id):
            return ADMIN_ROLE
        try:
            return self.permissions.load(principal_id, timeout=timeout).role
        except NotFoundError:
            return None

    def has_any_permission(self, principal_id: int, *, timeout: Optional[float] = None) -> bool:
        if self.bootstrap.is_bootstrap(principal_id):
            return True
        try:
            record = self.permissions.load(principal_id, timeout=timeout)
        except NotFoundError:
            return False
        return record.has_any_grant

    def visible_namespaces(self, principal_id: int, *, timeout: Optional[float] = None) -> List[str]:
        """
        Namespaces the principal may see.

        Everything the directory knows for bootstrap/admin principals or as soon as a
        "*" grant shows up; otherwise the distinct granted namespaces, in grant order.
        Raises NotFoundError when the principal has no record.
        """
        if self.bootstrap.is_bootstrap(principal_id):
            return self.directory.list_namespaces(timeout=timeout)

        record = self.permissions.load(principal_id, timeout=timeout)
        if record.role == ADMIN_ROLE:
            return self.directory.list_namespaces(timeout=timeout)

        seen: List[str] = []
        for grant in record.grants:
            if grant.namespace == WILDCARD:
                return self.directory.list_namespaces(timeout=timeout)
            if grant.namespace not in seen:
                seen.append(grant.namespace)
        return seen
