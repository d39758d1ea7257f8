from __future__ import annotations

import pytest

from kbot.rbac.errors import NotFoundError, ValidationError
from kbot.rbac.selector import Requirement, SelectorResolver, parse_selector, selector_matches


def _m(expr: str, labels) -> bool:
    return selector_matches(parse_selector(expr), labels)


def test_parse_empty_selects_everything() -> None:
    assert parse_selector("") == []
    assert parse_selector("   ") == []
    assert _m("", {}) is True


def test_parse_equality_forms() -> None:
    assert parse_selector("app=frontend") == [Requirement("app", "=", ("frontend",))]
    assert parse_selector("app==frontend") == [Requirement("app", "=", ("frontend",))]
    assert parse_selector("app!=frontend") == [Requirement("app", "!=", ("frontend",))]
    assert parse_selector(" app = frontend , tier=web") == [
        Requirement("app", "=", ("frontend",)),
        Requirement("tier", "=", ("web",)),
    ]


def test_parse_set_and_existence_forms() -> None:
    assert parse_selector("env in (prod, staging)") == [Requirement("env", "in", ("prod", "staging"))]
    assert parse_selector("env notin (dev)") == [Requirement("env", "notin", ("dev",))]
    assert parse_selector("app") == [Requirement("app", "exists")]
    assert parse_selector("!canary") == [Requirement("canary", "!")]


def test_prefixed_keys() -> None:
    assert _m("app.kubernetes.io/name=api", {"app.kubernetes.io/name": "api"})


@pytest.mark.parametrize(
    "bad",
    ["=frontend", "app=a=b", "app=fr ontend", "a=b,", ",a=b", "env in (a", "env in ()", "app!", "-app=x", "a=(b)"],
)
def test_parse_rejects_malformed(bad: str) -> None:
    with pytest.raises(ValidationError):
        parse_selector(bad)


def test_conjunction_semantics() -> None:
    labels = {"app": "frontend", "env": "prod"}
    assert _m("app=frontend", labels)
    assert _m("app=frontend,env=prod", labels)
    assert not _m("app=frontend,env=staging", labels)
    assert not _m("app=backend", labels)
    assert _m("app!=backend", labels)
    assert _m("tier!=web", labels)  # absent key satisfies !=
    assert _m("env in (prod,staging)", labels)
    assert not _m("env notin (prod)", labels)
    assert _m("tier notin (web)", labels)
    assert _m("app,!canary", labels)
    assert not _m("canary", labels)
    assert not _m("app=frontend", None)


def test_numeric_comparison_forms() -> None:
    assert parse_selector("replicas>1") == [Requirement("replicas", ">", ("1",))]
    assert parse_selector("tier < 3") == [Requirement("tier", "<", ("3",))]

    labels = {"replicas": "3", "tier": "web"}
    assert _m("replicas>1", labels)
    assert not _m("replicas>3", labels)
    assert _m("replicas<4", labels)
    assert not _m("tier>1", labels)  # non-integer label never matches
    assert not _m("shard<10", labels)  # absent key never matches

    for bad in ("replicas>one", "replicas>", ">1", "replicas>1.5"):
        with pytest.raises(ValidationError):
            parse_selector(bad)


def test_grant_accepts_numeric_selector(manager) -> None:
    record = manager.grant(7, "production", "pods", "get", "replicas>1")
    assert record.grants[0].selector == "replicas>1"


def test_resolver_empty_selector_skips_directory(directory) -> None:
    r = SelectorResolver(directory)
    assert r.matches("pods", "production", "frontend-1", "") is True
    assert directory.label_calls == []


def test_resolver_checks_live_labels(directory) -> None:
    directory.labels[("pods", "production", "frontend-1")] = {"app": "frontend"}
    directory.labels[("deployments", "production", "api")] = {"app": "api"}
    r = SelectorResolver(directory)

    assert r.matches("pods", "production", "frontend-1", "app=frontend") is True
    assert r.matches("deployments", "production", "api", "app=frontend") is False

    # Labels change between checks: no caching.
    directory.labels[("pods", "production", "frontend-1")] = {"app": "other"}
    assert r.matches("pods", "production", "frontend-1", "app=frontend") is False
    assert len(directory.label_calls) == 3


def test_resolver_services_always_match(directory) -> None:
    r = SelectorResolver(directory)
    assert r.matches("services", "production", "web", "app=frontend") is True
    assert directory.label_calls == []


def test_resolver_errors(directory) -> None:
    r = SelectorResolver(directory)
    with pytest.raises(NotFoundError):
        r.matches("pods", "production", "missing", "app=frontend")
    with pytest.raises(ValidationError):
        r.matches("pods", "production", "missing", "app=a=b")
    with pytest.raises(ValidationError):
        r.matches("configmaps", "production", "cm", "app=frontend")
