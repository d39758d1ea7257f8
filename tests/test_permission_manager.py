from __future__ import annotations

import pytest

from kbot.rbac.errors import NotFoundError, StoreError, ValidationError


def test_first_grant_creates_viewer_record(manager, memory_store) -> None:
    rec = manager.grant(42, "production", "pods", "logs")

    assert memory_store.calls == [("get", "user-42"), ("create", "user-42")]
    assert rec.role == "viewer"
    assert rec.resource_version == "1"
    assert memory_store.docs["user-42"]["spec"]["permissions"] == [
        {"namespace": "production", "resources": ["pods"], "verbs": ["logs"]}
    ]


def test_repeated_grant_updates_and_merges(manager, memory_store) -> None:
    manager.grant(42, "production", "pods", "get")
    manager.grant(42, "production", "pods", "list")
    rec = manager.grant(42, "production", "pods", "list")

    assert [c[0] for c in memory_store.calls] == ["get", "create", "get", "update", "get", "update"]
    assert len(rec.grants) == 1
    assert rec.grants[0].verbs == ["get", "list"]


def test_grant_keeps_existing_role(manager, memory_store) -> None:
    memory_store.put_spec(9, {"telegramUserId": 9, "role": "operator", "permissions": []})
    rec = manager.grant(9, "dev", "deployments", "restart")
    assert rec.role == "operator"


def test_grant_validates_input_before_touching_store(manager, memory_store) -> None:
    with pytest.raises(ValidationError):
        manager.grant(42, "", "pods", "get")
    with pytest.raises(ValidationError):
        manager.grant(42, "production", "pods", "get", "app=a=b")
    assert memory_store.calls == []


def test_revoke_without_record_is_an_error(manager, memory_store) -> None:
    with pytest.raises(NotFoundError):
        manager.revoke(42, "production", "pods", "get")
    assert memory_store.calls == [("get", "user-42")]


def test_revoke_emptying_entry_removes_it(manager) -> None:
    manager.grant(42, "production", "pods", "get")
    rec = manager.revoke(42, "production", "pods", "get")
    assert [g for g in rec.grants if g.namespace == "production"] == []


def test_revoke_leaves_other_namespaces(manager) -> None:
    manager.grant(42, "production", "pods", "get")
    manager.grant(42, "*", "pods", "get")
    rec = manager.revoke(42, "*", "pods", "get")
    assert [g.namespace for g in rec.grants] == ["production"]


def test_stale_write_surfaces_as_conflict(manager, memory_store) -> None:
    manager.grant(42, "production", "pods", "get")
    stale = manager.get(42)

    manager.grant(42, "production", "pods", "list")  # concurrent writer bumps the version

    stale.add_grant("staging", "pods", "get")
    with pytest.raises(StoreError) as ei:
        manager.permissions.save(stale)
    assert ei.value.conflict is True
