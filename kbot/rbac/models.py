"""Permission record + grant entries (single source of truth for the persisted shape).

The stored layout mirrors the `TelegramBotPermission` custom resource:

    spec:
      telegramUserId: 42
      role: viewer
      permissions:
        - {namespace: production, resources: [pods], verbs: [logs], selector: app=frontend}

Backends only ever see plain dicts (`to_document` / `from_document`); everything
above the store works with the typed models.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from kbot.rbac.errors import ValidationError

API_GROUP = "telegram.k8s.io"
API_VERSION = "v1"
KIND = "TelegramBotPermission"
PLURAL = "telegrambotpermissions"

WILDCARD = "*"
DEFAULT_ROLE = "viewer"
KEY_PREFIX = "user-"

_KEY_RE = re.compile(r"^user-(-?\d+)$")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

Role = Literal["admin", "operator", "viewer", ""]


def merge_unique(*seqs: Iterable[str]) -> List[str]:
    """Concatenate, dropping repeats. First-seen order wins."""
    seen = set()
    out: List[str] = []
    for seq in seqs:
        for item in seq or []:
            if item in seen:
                continue
            seen.add(item)
            out.append(item)
    return out


def principal_key(principal_id: int) -> str:
    return f"{KEY_PREFIX}{int(principal_id)}"


def parse_principal_key(key: str) -> int:
    """Inverse of `principal_key` ("user-123" -> 123)."""
    m = _KEY_RE.match(key or "")
    if not m:
        raise ValidationError(f"invalid permission record name: {key!r}")
    principal_id = int(m.group(1))
    if not (_INT64_MIN <= principal_id <= _INT64_MAX):
        raise ValidationError(f"principal id out of range in record name: {key!r}")
    return principal_id


class Grant(BaseModel):
    model_config = ConfigDict(extra="forbid")

    namespace: str
    resources: List[str] = Field(default_factory=list)
    verbs: List[str] = Field(default_factory=list)
    selector: str = ""

    @field_validator("resources", "verbs")
    @classmethod
    def _dedupe(cls, v: List[str]) -> List[str]:
        return merge_unique(v)

    @field_validator("selector", mode="before")
    @classmethod
    def _none_selector(cls, v: Any) -> Any:
        return v or ""

    def covers_namespace(self, namespace: str) -> bool:
        # Exact match or "*"; no prefix/glob matching.
        return self.namespace == WILDCARD or self.namespace == namespace

    def covers_resource(self, resource: str) -> bool:
        return resource in self.resources or WILDCARD in self.resources

    def covers_verb(self, verb: str) -> bool:
        return verb in self.verbs or WILDCARD in self.verbs

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "namespace": self.namespace,
            "resources": list(self.resources),
            "verbs": list(self.verbs),
        }
        if self.selector:
            out["selector"] = self.selector
        return out


class PermissionRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    principal_id: int = Field(alias="telegramUserId")
    role: Role = ""
    grants: List[Grant] = Field(default_factory=list, alias="permissions")
    # Opaque store version token. None => never persisted (save creates).
    resource_version: Optional[str] = Field(default=None, exclude=True)

    @field_validator("principal_id")
    @classmethod
    def _int64(cls, v: int) -> int:
        if not (_INT64_MIN <= v <= _INT64_MAX):
            raise ValueError("principal id must fit in a signed 64-bit integer")
        return v

    @field_validator("role", mode="before")
    @classmethod
    def _none_role(cls, v: Any) -> Any:
        return v or ""

    @field_validator("grants", mode="before")
    @classmethod
    def _none_grants(cls, v: Any) -> Any:
        return v or []

    @property
    def key(self) -> str:
        return principal_key(self.principal_id)

    @property
    def has_any_grant(self) -> bool:
        return bool(self.role) and len(self.grants) > 0

    def add_grant(self, namespace: str, resource: str, verb: str, selector: str = "") -> Grant:
        """
        Merge (resource, verb) into the grant scoped to exactly (namespace, selector),
        or append a new singleton grant when there is none.
        """
        selector = selector or ""
        for g in self.grants:
            if g.namespace == namespace and g.selector == selector:
                g.resources = merge_unique(g.resources, [resource])
                g.verbs = merge_unique(g.verbs, [verb])
                return g
        g = Grant(namespace=namespace, resources=[resource], verbs=[verb], selector=selector)
        self.grants.append(g)
        return g

    def remove_grant(self, namespace: str, resource: str, verb: str) -> int:
        """
        Strip `resource` and `verb` from every grant scoped literally to `namespace`.

        A grant is dropped only once both its resources and verbs are empty.
        Returns the number of grants that were scoped to `namespace`.
        """
        touched = 0
        kept: List[Grant] = []
        for g in self.grants:
            if g.namespace != namespace:
                kept.append(g)
                continue
            touched += 1
            resources = [r for r in g.resources if r != resource]
            verbs = [v for v in g.verbs if v != verb]
            if resources or verbs:
                kept.append(g.model_copy(update={"resources": resources, "verbs": verbs}))
        self.grants = kept
        return touched

    def to_spec(self) -> Dict[str, Any]:
        return {
            "telegramUserId": self.principal_id,
            "role": self.role,
            "permissions": [g.to_dict() for g in self.grants],
        }

    def to_document(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": self.key}
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": KIND,
            "metadata": metadata,
            "spec": self.to_spec(),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "PermissionRecord":
        """Parse a stored document. The ID in `spec` must match the one in `metadata.name`."""
        if not isinstance(doc, dict):
            raise ValidationError("permission document must be a mapping")
        metadata = doc.get("metadata") or {}
        spec = doc.get("spec") or {}
        try:
            record = cls.model_validate(spec)
        except PydanticValidationError as e:
            raise ValidationError(f"invalid permission spec: {e}") from e

        name = metadata.get("name")
        if name and parse_principal_key(name) != record.principal_id:
            raise ValidationError(f"record {name!r} carries telegramUserId {record.principal_id}")

        rv = metadata.get("resourceVersion")
        record.resource_version = str(rv) if rv not in (None, "") else None
        return record


def new_record(principal_id: int) -> PermissionRecord:
    """Fresh, unsaved record for a principal seen for the first time."""
    return PermissionRecord(principal_id=principal_id, role=DEFAULT_ROLE, grants=[])
