"""Unit tests for three-tier policy resolution."""

from __future__ import annotations

import pytest

from services.action.permission_validator.config import PermissionValidatorSettings
from services.action.permission_validator.data.repository import (
    InMemoryWorkspacePolicyRepository,
)
from services.action.permission_validator.domain import (
    PolicySource,
    ValidationPolicyError,
    WorkspacePolicy,
)
from services.action.permission_validator.policy import PolicyResolver


class _FakeOwnership:
    def __init__(self, owners: dict[str, str] | None = None) -> None:
        self.owners = owners or {}
        self.calls = 0

    def is_sole_owner(
        self, *, workspace_id: str, table: str, subject_id: str, actor_id: str
    ) -> bool:
        self.calls += 1
        return self.owners.get(subject_id) == actor_id


class _FailingPolicies(InMemoryWorkspacePolicyRepository):
    def get(self, *, workspace_id: str):
        raise ConnectionError("policy store down")


class _FailingOwnership:
    def is_sole_owner(self, **kwargs) -> bool:
        raise TimeoutError("projection store slow")


def _resolver(policies=None, ownership=None) -> PolicyResolver:
    return PolicyResolver(
        settings=PermissionValidatorSettings(),
        workspace_policies=policies or InMemoryWorkspacePolicyRepository(),
        ownership=ownership or _FakeOwnership(),
    )


def _resolve(resolver: PolicyResolver, table: str, action: str, **overrides):
    payload = {
        "workspace_id": "ws-1",
        "table": table,
        "action": action,
        "actor_id": "user-1",
        "subject_id": "subject-1",
        "subject_type": table,
    }
    payload.update(overrides)
    return resolver.resolve(**payload)


def test_global_default_auto_approves_entity_create() -> None:
    decision = _resolve(_resolver(), "entities", "create")

    assert decision.requires_validation is False
    assert decision.source is PolicySource.GLOBAL


def test_destructive_action_always_requires_review_even_with_workspace_allow() -> None:
    policies = InMemoryWorkspacePolicyRepository()
    policies.put(
        policy=WorkspacePolicy(workspace_id="ws-1", rules={"entities": {"delete": False}})
    )

    decision = _resolve(_resolver(policies), "entities", "delete")

    assert decision.requires_validation is True
    assert decision.source is PolicySource.SYSTEM


def test_workspace_override_beats_global_default() -> None:
    policies = InMemoryWorkspacePolicyRepository()
    policies.put(
        policy=WorkspacePolicy(workspace_id="ws-1", rules={"documents": {"*": True}})
    )

    decision = _resolve(_resolver(policies), "documents", "update")

    assert decision.requires_validation is True
    assert decision.source is PolicySource.WORKSPACE


def test_workspace_deny_produces_denial() -> None:
    policies = InMemoryWorkspacePolicyRepository()
    policies.put(
        policy=WorkspacePolicy(workspace_id="ws-1", rules={"views": {"create": "deny"}})
    )

    decision = _resolve(_resolver(policies), "views", "create")

    assert decision.denied is True
    assert decision.source is PolicySource.WORKSPACE


def test_ai_originated_requests_always_require_review() -> None:
    decision = _resolve(_resolver(), "entities", "create", ai_originated=True)

    assert decision.requires_validation is True
    assert decision.source is PolicySource.SYSTEM


def test_sole_owner_shortcut_auto_approves_review_by_default_table() -> None:
    ownership = _FakeOwnership({"pkg-1": "user-1"})

    decision = _resolve(
        _resolver(ownership=ownership), "packages", "update", subject_id="pkg-1"
    )

    assert decision.requires_validation is False
    assert decision.source is PolicySource.SYSTEM


def test_non_owner_gets_global_review() -> None:
    decision = _resolve(
        _resolver(ownership=_FakeOwnership({"pkg-1": "someone-else"})),
        "packages",
        "update",
        subject_id="pkg-1",
    )

    assert decision.requires_validation is True
    assert decision.source is PolicySource.GLOBAL


@pytest.mark.parametrize(
    "policy",
    [
        WorkspacePolicy(workspace_id="ws-1", owner_shortcut_enabled=False),
        WorkspacePolicy(workspace_id="ws-1", rules={"packages": {"update": True}}),
    ],
)
def test_workspace_can_forbid_owner_shortcut(policy: WorkspacePolicy) -> None:
    policies = InMemoryWorkspacePolicyRepository()
    policies.put(policy=policy)
    ownership = _FakeOwnership({"pkg-1": "user-1"})

    decision = _resolve(
        _resolver(policies, ownership), "packages", "update", subject_id="pkg-1"
    )

    assert decision.requires_validation is True


def test_unknown_table_falls_back_to_review() -> None:
    decision = _resolve(_resolver(), "gadgets", "create")

    assert decision.requires_validation is True
    assert decision.source is PolicySource.GLOBAL


def test_workspace_lookup_failure_raises_policy_error() -> None:
    with pytest.raises(ValidationPolicyError):
        _resolve(_resolver(policies=_FailingPolicies()), "entities", "create")


def test_ownership_lookup_failure_raises_policy_error() -> None:
    with pytest.raises(ValidationPolicyError):
        _resolve(_resolver(ownership=_FailingOwnership()), "packages", "update")
