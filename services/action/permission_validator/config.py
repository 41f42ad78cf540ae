"""Pydantic settings for the Permission Validator and its global defaults."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.synap_shared.config import SynapSettings, resolve_component_settings
from services.action.permission_validator.component import SERVICE_COMPONENT_ID

WILDCARD_ACTION = "*"

# table -> action -> requires validation
DEFAULT_GLOBAL_DEFAULTS: dict[str, dict[str, bool]] = {
    "entities": {WILDCARD_ACTION: False},
    "documents": {WILDCARD_ACTION: False},
    "views": {WILDCARD_ACTION: False},
    "relations": {WILDCARD_ACTION: False},
    "packages": {WILDCARD_ACTION: True},
    "workspaces": {WILDCARD_ACTION: True},
}


class PermissionValidatorSettings(BaseModel):
    """Shipped global policy defaults and AI-origin detection keys."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    global_defaults: dict[str, dict[str, bool]] = Field(
        default_factory=lambda: {
            table: dict(actions) for table, actions in DEFAULT_GLOBAL_DEFAULTS.items()
        }
    )
    global_fallback_requires_validation: bool = True
    destructive_actions: tuple[str, ...] = ("delete",)
    ai_metadata_flag: str = "externalIntelligence"
    ai_reasoning_key: str = "aiReasoning"
    system_actor_id: str = Field(default="system:permission-validator", min_length=1)

    def global_default(self, table: str, action: str) -> bool:
        """Return whether ``table``/``action`` requires review by default."""
        actions = self.global_defaults.get(table)
        if actions is None:
            return self.global_fallback_requires_validation
        if action in actions:
            return actions[action]
        return actions.get(WILDCARD_ACTION, self.global_fallback_requires_validation)


def resolve_permission_validator_settings(
    settings: SynapSettings,
) -> PermissionValidatorSettings:
    """Resolve validator settings from ``components.service.permission_validator``."""
    return resolve_component_settings(
        settings=settings,
        component_id=str(SERVICE_COMPONENT_ID),
        model=PermissionValidatorSettings,
    )
