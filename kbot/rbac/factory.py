"""Wiring: build the permission layer from `BotConfig`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from kbot.config import BotConfig
from kbot.rbac.bootstrap import BootstrapAuthority
from kbot.rbac.engine import Authorizer
from kbot.rbac.manager import PermissionManager
from kbot.rbac.selector import SelectorResolver
from kbot.rbac.store import PermissionStore, PermissionStoreAdapter

if TYPE_CHECKING:
    from kbot.providers.k8s_provider import ResourceDirectory


def build_permission_store(cfg: BotConfig) -> PermissionStore:
    if cfg.permission_store == "local":
        from kbot.storage.local_store import LocalPermissionStore

        return LocalPermissionStore(base_dir=cfg.permission_store_dir)

    from kbot.providers.k8s_provider import K8sPermissionStore

    return K8sPermissionStore()


def build_authorizer(
    cfg: BotConfig,
    *,
    store: Optional[PermissionStore] = None,
    directory: Optional["ResourceDirectory"] = None,
) -> Authorizer:
    if directory is None:
        from kbot.providers.k8s_provider import get_resource_directory

        directory = get_resource_directory()
    return Authorizer(
        bootstrap=BootstrapAuthority.from_config(cfg),
        permissions=PermissionStoreAdapter(store if store is not None else build_permission_store(cfg)),
        resolver=SelectorResolver(directory),
        directory=directory,
    )


def build_manager(cfg: BotConfig, *, store: Optional[PermissionStore] = None) -> PermissionManager:
    return PermissionManager(PermissionStoreAdapter(store if store is not None else build_permission_store(cfg)))
