"""
Pytest config.

Local imports like `import kbot` rely on the repo root being on sys.path. When a
global `pytest` entrypoint is used that doesn't happen reliably during collection,
so we pin it here.

Shared fakes:
- `memory_store`: in-memory Permission Store with API-server-like resourceVersions
- `directory`: Resource Directory backed by dicts (namespaces + labels)
"""

from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from kbot.rbac.bootstrap import BootstrapAuthority  # noqa: E402
from kbot.rbac.engine import Authorizer  # noqa: E402
from kbot.rbac.errors import NotFoundError, StoreError  # noqa: E402
from kbot.rbac.manager import PermissionManager  # noqa: E402
from kbot.rbac.selector import SelectorResolver  # noqa: E402
from kbot.rbac.store import PermissionStoreAdapter  # noqa: E402

BOOTSTRAP_ID = 1


class _InMemoryPermissionStore:
    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._rv = 0

    def _next_rv(self) -> str:
        self._rv += 1
        return str(self._rv)

    def get(self, name: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        self.calls.append(("get", name))
        if name not in self.docs:
            raise NotFoundError(f"{name} not found")
        return copy.deepcopy(self.docs[name])

    def create(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        name = document["metadata"]["name"]
        self.calls.append(("create", name))
        if name in self.docs:
            raise StoreError(f"{name} already exists", conflict=True)
        doc = copy.deepcopy(document)
        doc["metadata"]["resourceVersion"] = self._next_rv()
        self.docs[name] = doc
        return copy.deepcopy(doc)

    def update(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        name = document["metadata"]["name"]
        self.calls.append(("update", name))
        if name not in self.docs:
            raise NotFoundError(f"{name} not found")
        if document["metadata"].get("resourceVersion") != self.docs[name]["metadata"]["resourceVersion"]:
            raise StoreError(f"{name} conflict", conflict=True)
        doc = copy.deepcopy(document)
        doc["metadata"]["resourceVersion"] = self._next_rv()
        self.docs[name] = doc
        return copy.deepcopy(doc)

    def put_spec(self, principal_id: int, spec: Dict[str, Any]) -> None:
        """Seed a record directly (as if created by another writer)."""
        name = f"user-{principal_id}"
        self.docs[name] = {"metadata": {"name": name, "resourceVersion": self._next_rv()}, "spec": copy.deepcopy(spec)}


class _FakeDirectory:
    def __init__(self) -> None:
        self.namespaces: List[str] = ["default", "production", "staging"]
        self.labels: Dict[Tuple[str, str, str], Dict[str, str]] = {}
        self.label_calls: List[Tuple[str, str, str]] = []

    def list_namespaces(self, *, timeout: Optional[float] = None) -> List[str]:
        return list(self.namespaces)

    def get_labels(
        self, resource_type: str, namespace: str, name: str, *, timeout: Optional[float] = None
    ) -> Dict[str, str]:
        self.label_calls.append((resource_type, namespace, name))
        key = (resource_type, namespace, name)
        if key not in self.labels:
            raise NotFoundError(f"{resource_type} '{name}' not found in namespace '{namespace}'")
        return dict(self.labels[key])


@pytest.fixture
def memory_store() -> _InMemoryPermissionStore:
    return _InMemoryPermissionStore()


@pytest.fixture
def directory() -> _FakeDirectory:
    return _FakeDirectory()


@pytest.fixture
def authorizer(memory_store, directory) -> Authorizer:
    return Authorizer(
        bootstrap=BootstrapAuthority.of([BOOTSTRAP_ID]),
        permissions=PermissionStoreAdapter(memory_store),
        resolver=SelectorResolver(directory),
        directory=directory,
    )


@pytest.fixture
def manager(memory_store) -> PermissionManager:
    return PermissionManager(PermissionStoreAdapter(memory_store))
