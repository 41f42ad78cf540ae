"""Three-tier policy resolution: system, then workspace, then global default."""

from __future__ import annotations

from typing import Any, Mapping

from services.action.permission_validator.config import PermissionValidatorSettings
from services.action.permission_validator.domain import (
    DENY,
    PolicyDecision,
    PolicySource,
    ValidationPolicyError,
    WorkspacePolicy,
)
from services.action.permission_validator.interfaces import (
    OwnershipResolver,
    WorkspacePolicyRepository,
)
from services.state.event_store.domain import Event, EventSource

DESTRUCTIVE_REASON = "destructive action always requires review"
AI_ORIGIN_REASON = "AI-originated request requires human review"
WORKSPACE_DENY_REASON = "denied by workspace policy"
WORKSPACE_REVIEW_REASON = "workspace policy requires review"
WORKSPACE_ALLOW_REASON = "workspace policy allows auto-approval"
OWNER_SHORTCUT_REASON = "actor is sole owner of a non-destructive change"
GLOBAL_REVIEW_REASON = "global default requires review"
GLOBAL_ALLOW_REASON = "global default allows auto-approval"


class PolicyResolver:
    """Resolve one request into a frozen ``PolicyDecision``.

    Holds no mutable policy state of its own; every call reads the current
    workspace override and ownership through its collaborators. Lookup
    failures raise ``ValidationPolicyError``.
    """

    def __init__(
        self,
        *,
        settings: PermissionValidatorSettings,
        workspace_policies: WorkspacePolicyRepository,
        ownership: OwnershipResolver,
    ) -> None:
        self._settings = settings
        self._workspace_policies = workspace_policies
        self._ownership = ownership

    def resolve(
        self,
        *,
        workspace_id: str,
        table: str,
        action: str,
        actor_id: str,
        subject_id: str,
        subject_type: str,
        ai_originated: bool = False,
    ) -> PolicyDecision:
        if action in self._settings.destructive_actions:
            return PolicyDecision(
                requires_validation=True,
                reason=DESTRUCTIVE_REASON,
                source=PolicySource.SYSTEM,
            )

        policy = self._workspace_policy(workspace_id)
        rule = None if policy is None else policy.rule_for(table, action)
        if rule == DENY:
            return PolicyDecision(
                requires_validation=False,
                reason=WORKSPACE_DENY_REASON,
                source=PolicySource.WORKSPACE,
                denied=True,
            )
        if ai_originated:
            return PolicyDecision(
                requires_validation=True,
                reason=AI_ORIGIN_REASON,
                source=PolicySource.SYSTEM,
            )
        if rule is not None:
            return PolicyDecision(
                requires_validation=bool(rule),
                reason=WORKSPACE_REVIEW_REASON if rule else WORKSPACE_ALLOW_REASON,
                source=PolicySource.WORKSPACE,
            )

        requires_validation = self._settings.global_default(table, action)
        if requires_validation and self._owner_shortcut_applies(
            policy=policy,
            workspace_id=workspace_id,
            table=table,
            subject_id=subject_id,
            actor_id=actor_id,
        ):
            return PolicyDecision(
                requires_validation=False,
                reason=OWNER_SHORTCUT_REASON,
                source=PolicySource.SYSTEM,
            )
        return PolicyDecision(
            requires_validation=requires_validation,
            reason=GLOBAL_REVIEW_REASON if requires_validation else GLOBAL_ALLOW_REASON,
            source=PolicySource.GLOBAL,
        )

    def _workspace_policy(self, workspace_id: str) -> WorkspacePolicy | None:
        if workspace_id == "":
            return None
        try:
            return self._workspace_policies.get(workspace_id=workspace_id)
        except Exception as exc:  # noqa: BLE001
            raise ValidationPolicyError(
                f"workspace policy lookup failed for {workspace_id}"
            ) from exc

    def _owner_shortcut_applies(
        self,
        *,
        policy: WorkspacePolicy | None,
        workspace_id: str,
        table: str,
        subject_id: str,
        actor_id: str,
    ) -> bool:
        if policy is not None and not policy.owner_shortcut_enabled:
            return False
        try:
            return self._ownership.is_sole_owner(
                workspace_id=workspace_id,
                table=table,
                subject_id=subject_id,
                actor_id=actor_id,
            )
        except Exception as exc:  # noqa: BLE001
            raise ValidationPolicyError(
                f"ownership lookup failed for {table}/{subject_id}"
            ) from exc


def is_ai_originated(event: Event, settings: PermissionValidatorSettings) -> bool:
    """Return whether an event came from, or was tagged as, external intelligence."""
    if event.source is EventSource.EXTERNAL_INTELLIGENCE:
        return True
    return _tagged(event.metadata, settings)


def _tagged(metadata: Mapping[str, Any], settings: PermissionValidatorSettings) -> bool:
    if metadata.get(settings.ai_metadata_flag) is True:
        return True
    return bool(metadata.get(settings.ai_reasoning_key))
