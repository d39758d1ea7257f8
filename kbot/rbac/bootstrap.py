from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable

from kbot.config import BotConfig


@dataclass(frozen=True)
class BootstrapAuthority:
    """Break-glass admins: allowed everything, never looked up in the store."""

    principal_ids: FrozenSet[int] = frozenset()

    @classmethod
    def of(cls, principal_ids: Iterable[int]) -> "BootstrapAuthority":
        return cls(principal_ids=frozenset(int(x) for x in principal_ids))

    @classmethod
    def from_config(cls, cfg: BotConfig) -> "BootstrapAuthority":
        return cls(principal_ids=frozenset(cfg.admin_ids))

    def is_bootstrap(self, principal_id: int) -> bool:
        return principal_id in self.principal_ids
