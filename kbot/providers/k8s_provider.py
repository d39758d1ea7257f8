"""Kubernetes-backed collaborators: the Resource Directory and the CRD permission store."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from kbot.rbac.errors import DirectoryError, NotFoundError, StoreError, ValidationError
from kbot.rbac.models import API_GROUP, API_VERSION, KIND, PLURAL

logger = logging.getLogger(__name__)

_core_v1_api = None
_apps_v1_api = None
_custom_objects_api = None
_config_loaded = False
_init_lock = threading.Lock()


@runtime_checkable
class ResourceDirectory(Protocol):
    def list_namespaces(self, *, timeout: Optional[float] = None) -> List[str]: ...

    def get_labels(
        self, resource_type: str, namespace: str, name: str, *, timeout: Optional[float] = None
    ) -> Dict[str, str]: ...


def _load_config_locked() -> None:
    """Load in-cluster config, falling back to kubeconfig. Caller holds `_init_lock`."""
    global _config_loaded
    if _config_loaded:
        return
    from kubernetes import config

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    _config_loaded = True


def _get_core_v1():
    """Return a cached CoreV1Api client (thread-safe lazy init)."""
    global _core_v1_api
    if _core_v1_api is not None:
        return _core_v1_api
    with _init_lock:
        if _core_v1_api is not None:
            return _core_v1_api
        from kubernetes import client

        _load_config_locked()
        _core_v1_api = client.CoreV1Api()
        return _core_v1_api


def _get_apps_v1():
    """Return a cached AppsV1Api client (thread-safe lazy init)."""
    global _apps_v1_api
    if _apps_v1_api is not None:
        return _apps_v1_api
    with _init_lock:
        if _apps_v1_api is not None:
            return _apps_v1_api
        from kubernetes import client

        _load_config_locked()
        _apps_v1_api = client.AppsV1Api()
        return _apps_v1_api


def _get_custom_objects():
    """Return a cached CustomObjectsApi client (thread-safe lazy init)."""
    global _custom_objects_api
    if _custom_objects_api is not None:
        return _custom_objects_api
    with _init_lock:
        if _custom_objects_api is not None:
            return _custom_objects_api
        from kubernetes import client

        _load_config_locked()
        _custom_objects_api = client.CustomObjectsApi()
        return _custom_objects_api


def _timeout_kwargs(timeout: Optional[float]) -> Dict[str, Any]:
    return {"_request_timeout": timeout} if timeout else {}


def _api_status(e: Exception) -> Optional[int]:
    from kubernetes.client.exceptions import ApiException

    if isinstance(e, ApiException):
        return e.status
    return None


def _api_detail(e: Exception) -> str:
    reason = getattr(e, "reason", None)
    body = getattr(e, "body", None)
    if reason or body:
        return f"{reason} - {body}" if body else str(reason)
    return str(e)


def _read_labels(resource_type: str, namespace: str, name: str, kw: Dict[str, Any]) -> Dict[str, str]:
    if resource_type == "pods":
        obj = _get_core_v1().read_namespaced_pod(name=name, namespace=namespace, **kw)
    elif resource_type == "deployments":
        obj = _get_apps_v1().read_namespaced_deployment(name=name, namespace=namespace, **kw)
    elif resource_type == "services":
        obj = _get_core_v1().read_namespaced_service(name=name, namespace=namespace, **kw)
    else:
        raise ValidationError(f"unsupported resource type: {resource_type}")
    raw = getattr(getattr(obj, "metadata", None), "labels", None)
    return dict(raw) if isinstance(raw, dict) else {}


class K8sResourceDirectory:
    """Live cluster reads. Nothing is cached: labels reflect current state."""

    def list_namespaces(self, *, timeout: Optional[float] = None) -> List[str]:
        try:
            ns_list = _get_core_v1().list_namespace(**_timeout_kwargs(timeout))
        except Exception as e:
            logger.warning("listing namespaces failed: %s", _api_detail(e))
            raise DirectoryError(f"Failed to list namespaces: {_api_detail(e)}") from e

        names: List[str] = []
        for ns in ns_list.items or []:
            name = getattr(getattr(ns, "metadata", None), "name", None)
            if name:
                names.append(name)
        return names

    def get_labels(
        self, resource_type: str, namespace: str, name: str, *, timeout: Optional[float] = None
    ) -> Dict[str, str]:
        try:
            return _read_labels(resource_type, namespace, name, _timeout_kwargs(timeout))
        except ValidationError:
            raise
        except Exception as e:
            if _api_status(e) == 404:
                raise NotFoundError(f"{resource_type} '{name}' not found in namespace '{namespace}'") from e
            logger.warning("reading %s %s/%s failed: %s", resource_type, namespace, name, _api_detail(e))
            raise DirectoryError(f"Failed to read {resource_type} '{namespace}/{name}': {_api_detail(e)}") from e


class K8sPermissionStore:
    """
    Permission records as cluster-scoped `TelegramBotPermission` custom resources.

    The API server's `metadata.resourceVersion` is the version token: replace with a
    stale one is rejected with 409, which surfaces as `StoreError(conflict=True)`.
    """

    def __init__(self, *, group: str = API_GROUP, version: str = API_VERSION, plural: str = PLURAL) -> None:
        self.group = group
        self.version = version
        self.plural = plural

    def _translate(self, op: str, name: str, e: Exception) -> Exception:
        status = _api_status(e)
        if status == 404:
            return NotFoundError(f"{KIND} '{name}' not found")
        if status == 409:
            return StoreError(f"{KIND} '{name}' {op} conflict: {_api_detail(e)}", conflict=True)
        logger.warning("%s %s %s failed: %s", KIND, op, name, _api_detail(e))
        return StoreError(f"Failed to {op} {KIND} '{name}': {_api_detail(e)}")

    def get(self, name: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        try:
            return _get_custom_objects().get_cluster_custom_object(
                self.group, self.version, self.plural, name, **_timeout_kwargs(timeout)
            )
        except Exception as e:
            raise self._translate("get", name, e) from e

    def create(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        name = (document.get("metadata") or {}).get("name", "")
        body = dict(document)
        body["metadata"] = {k: v for k, v in (document.get("metadata") or {}).items() if k != "resourceVersion"}
        try:
            return _get_custom_objects().create_cluster_custom_object(
                self.group, self.version, self.plural, body, **_timeout_kwargs(timeout)
            )
        except Exception as e:
            raise self._translate("create", name, e) from e

    def update(self, document: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        name = (document.get("metadata") or {}).get("name", "")
        try:
            return _get_custom_objects().replace_cluster_custom_object(
                self.group, self.version, self.plural, name, document, **_timeout_kwargs(timeout)
            )
        except Exception as e:
            raise self._translate("update", name, e) from e


def get_resource_directory() -> ResourceDirectory:
    """Seam for swapping directory implementations (tests, other clusters)."""
    return K8sResourceDirectory()
