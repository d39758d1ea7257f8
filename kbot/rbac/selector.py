"""Label selectors (Kubernetes syntax) and the selector check used by grants.

Supported requirement forms, joined by commas (AND):

    key=value   key==value   key!=value
    key in (a,b)   key notin (a,b)
    key   !key
    key>N   key<N         (N an integer; the label must hold an integer too)

Keys may carry a DNS prefix (`app.kubernetes.io/name`).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

from kbot.rbac.errors import ValidationError

if TYPE_CHECKING:
    from kbot.providers.k8s_provider import ResourceDirectory

logger = logging.getLogger(__name__)

_NAME = r"[A-Za-z0-9](?:[-A-Za-z0-9_.]{0,61}[A-Za-z0-9])?"
_PREFIX = r"[a-z0-9](?:[-a-z0-9.]{0,251}[a-z0-9])?"
_KEY_RE = re.compile(rf"^(?:{_PREFIX}/)?{_NAME}$")
_VALUE_RE = re.compile(rf"^(?:{_NAME})?$")

# Resource types whose instances are checked against grant selectors.
SELECTOR_TYPES = ("pods", "deployments")
# Selector constraints are not enforced for services (known gap, kept on purpose).
SELECTOR_EXEMPT_TYPES = ("services",)


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str  # =, !=, in, notin, exists, !, >, <
    values: Tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        has = self.key in labels
        if self.operator == "exists":
            return has
        if self.operator == "!":
            return not has
        if self.operator in ("=", "in"):
            return has and labels[self.key] in self.values
        if self.operator in ("!=", "notin"):
            return not has or labels[self.key] not in self.values
        if self.operator in (">", "<"):
            if not has:
                return False
            try:
                actual = int(labels[self.key])
            except ValueError:
                return False
            bound = int(self.values[0])
            return actual > bound if self.operator == ">" else actual < bound
        raise ValidationError(f"unknown selector operator: {self.operator}")


def _split_top_level(expr: str) -> List[str]:
    """Split on commas outside parentheses."""
    parts: List[str] = []
    depth = 0
    buf: List[str] = []
    for ch in expr:
        if ch == "(":
            depth += 1
            if depth > 1:
                raise ValidationError(f"nested parentheses in selector: {expr!r}")
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValidationError(f"unbalanced parentheses in selector: {expr!r}")
        if ch == "," and depth == 0:
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    if depth != 0:
        raise ValidationError(f"unbalanced parentheses in selector: {expr!r}")
    parts.append("".join(buf))
    return parts


def _check_key(key: str, expr: str) -> str:
    if not _KEY_RE.match(key):
        raise ValidationError(f"invalid label key {key!r} in selector {expr!r}")
    return key


def _check_value(value: str, expr: str) -> str:
    if not _VALUE_RE.match(value):
        raise ValidationError(f"invalid label value {value!r} in selector {expr!r}")
    return value


_SET_RE = re.compile(r"^(?P<key>\S+)\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$")
_NUMERIC_RE = re.compile(r"^[-+]?\d+$")


def _parse_requirement(term: str, expr: str) -> Requirement:
    t = term.strip()
    if not t:
        raise ValidationError(f"empty requirement in selector {expr!r}")

    m = _SET_RE.match(t)
    if m:
        values = tuple(_check_value(v.strip(), expr) for v in m.group("values").split(","))
        if not any(values):
            raise ValidationError(f"empty value set in selector {expr!r}")
        return Requirement(key=_check_key(m.group("key"), expr), operator=m.group("op"), values=values)

    for token, op in (("!=", "!="), ("==", "="), ("=", "=")):
        if token in t:
            key, _, value = t.partition(token)
            value = value.strip()
            if "=" in value or "!" in value:
                raise ValidationError(f"invalid requirement {t!r} in selector {expr!r}")
            return Requirement(key=_check_key(key.strip(), expr), operator=op, values=(_check_value(value, expr),))

    for op in (">", "<"):
        if op in t:
            key, _, value = t.partition(op)
            value = value.strip()
            if not _NUMERIC_RE.match(value):
                raise ValidationError(f"{op} requires an integer value in selector {expr!r} (got {value!r})")
            return Requirement(key=_check_key(key.strip(), expr), operator=op, values=(value,))

    if t.startswith("!"):
        return Requirement(key=_check_key(t[1:].strip(), expr), operator="!")
    return Requirement(key=_check_key(t, expr), operator="exists")


def parse_selector(expr: str) -> List[Requirement]:
    """Parse a selector into a conjunction of requirements. Empty selects everything."""
    s = (expr or "").strip()
    if not s:
        return []
    return [_parse_requirement(term, s) for term in _split_top_level(s)]


def selector_matches(requirements: List[Requirement], labels: Optional[Mapping[str, str]]) -> bool:
    lbls: Mapping[str, str] = labels or {}
    return all(r.matches(lbls) for r in requirements)


class SelectorResolver:
    """Checks a named instance's live labels against a grant selector."""

    def __init__(self, directory: "ResourceDirectory") -> None:
        self._directory = directory

    def matches(
        self,
        resource_type: str,
        namespace: str,
        instance_name: str,
        selector: str,
        *,
        timeout: Optional[float] = None,
    ) -> bool:
        if not (selector or "").strip():
            return True
        if resource_type in SELECTOR_EXEMPT_TYPES:
            return True
        if resource_type not in SELECTOR_TYPES:
            raise ValidationError(f"unsupported resource type for selector check: {resource_type}")

        requirements = parse_selector(selector)
        labels: Dict[str, str] = self._directory.get_labels(resource_type, namespace, instance_name, timeout=timeout)
        ok = selector_matches(requirements, labels)
        logger.debug(
            "selector %r vs %s %s/%s labels=%s -> %s", selector, resource_type, namespace, instance_name, labels, ok
        )
        return ok
