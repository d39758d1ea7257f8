"""Process configuration (env/ConfigMap driven).

Recommended vars:
- ADMIN_TELEGRAM_IDS=111,222          (required; break-glass admins)
- LOG_LEVEL=info
- PERMISSION_STORE=k8s|local
- PERMISSION_STORE_DIR=./permissions  (local store only)
- K8S_REQUEST_TIMEOUT_SECONDS=10
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import FrozenSet, List

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_STORE_KINDS = ("k8s", "local")


class ConfigError(ValueError):
    """Missing or invalid configuration value."""


def _split_csv(raw: str) -> List[str]:
    return [x.strip() for x in (raw or "").split(",") if x.strip()]


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def parse_admin_ids(raw: str) -> FrozenSet[int]:
    """Parse a comma-separated list of principal IDs. At least one is required."""
    ids = []
    for part in _split_csv(raw):
        try:
            principal_id = int(part, 10)
        except ValueError as e:
            raise ConfigError(f"invalid admin ID '{part}': {e}") from e
        if not (_INT64_MIN <= principal_id <= _INT64_MAX):
            raise ConfigError(f"invalid admin ID '{part}': out of int64 range")
        ids.append(principal_id)
    if not ids:
        raise ConfigError("at least one admin ID is required")
    return frozenset(ids)


@dataclass(frozen=True)
class BotConfig:
    admin_ids: FrozenSet[int]
    log_level: str = "info"

    # Permission storage backend
    permission_store: str = "k8s"
    permission_store_dir: str = "./permissions"

    # Upper bound for any single Kubernetes API call
    request_timeout_seconds: int = 10

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)


def load_config(*, require_admins: bool = True) -> BotConfig:
    """
    Load configuration from env.

    `require_admins=False` is for tooling that only reads records; the running bot
    always needs at least one bootstrap admin.
    """
    raw_admins = (os.getenv("ADMIN_TELEGRAM_IDS") or "").strip()
    if raw_admins:
        admin_ids = parse_admin_ids(raw_admins)
    elif require_admins:
        raise ConfigError("ADMIN_TELEGRAM_IDS environment variable is required")
    else:
        admin_ids = frozenset()

    store_kind = (os.getenv("PERMISSION_STORE") or "k8s").strip().lower()
    if store_kind not in _STORE_KINDS:
        raise ConfigError(f"PERMISSION_STORE must be one of {', '.join(_STORE_KINDS)} (got {store_kind!r})")

    return BotConfig(
        admin_ids=admin_ids,
        log_level=(os.getenv("LOG_LEVEL") or "info").strip().lower() or "info",
        permission_store=store_kind,
        permission_store_dir=(os.getenv("PERMISSION_STORE_DIR") or "./permissions").strip() or "./permissions",
        request_timeout_seconds=max(1, min(_env_int("K8S_REQUEST_TIMEOUT_SECONDS", 10), 120)),
    )
