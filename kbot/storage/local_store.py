"""Local filesystem permission store for development (fallback when no cluster is available)."""

from __future__ import annotations

import copy
import json
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from kbot.rbac.errors import NotFoundError, StoreError
from kbot.rbac.models import parse_principal_key


@dataclass
class LocalPermissionStore:
    """
    One JSON document per principal under `base_dir`, shaped like the CRD store's.

    `metadata.resourceVersion` is a per-record counter; updates carrying a stale
    value are rejected as conflicts, the same way the API server does it.
    """

    base_dir: str = "./permissions"
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        """Ensure base directory exists."""
        self.base_dir = os.path.abspath(self.base_dir)
        Path(self.base_dir).mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        # Also rejects names that could escape base_dir.
        parse_principal_key(name)
        return Path(self.base_dir) / f"{name}.json"

    def _read(self, path: Path) -> Dict[str, Any]:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to read {path.name}: {e}") from e

    def _write(self, path: Path, doc: Dict[str, Any]) -> None:
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(doc, sort_keys=True, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Failed to write {path.name}: {e}") from e

    def get(self, name: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        path = self._path(name)
        try:
            return self._read(path)
        except FileNotFoundError as e:
            raise NotFoundError(f"permission record '{name}' not found") from e

    def create(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        name = (document.get("metadata") or {}).get("name", "")
        path = self._path(name)
        with self._lock:
            if path.exists():
                raise StoreError(f"permission record '{name}' already exists", conflict=True)
            doc = copy.deepcopy(document)
            doc.setdefault("metadata", {})["resourceVersion"] = "1"
            self._write(path, doc)
            return doc

    def update(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        name = (document.get("metadata") or {}).get("name", "")
        path = self._path(name)
        with self._lock:
            try:
                current = self._read(path)
            except FileNotFoundError as e:
                raise NotFoundError(f"permission record '{name}' not found") from e

            have = str((current.get("metadata") or {}).get("resourceVersion", ""))
            want = str((document.get("metadata") or {}).get("resourceVersion", ""))
            if want != have:
                raise StoreError(
                    f"permission record '{name}' update conflict: resourceVersion {want!r} is stale (current {have!r})",
                    conflict=True,
                )

            doc = copy.deepcopy(document)
            doc.setdefault("metadata", {})["resourceVersion"] = str(int(have or "0") + 1)
            self._write(path, doc)
            return doc
