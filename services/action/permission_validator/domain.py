"""Domain contracts for permission decisions and workspace policy overrides."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from services.action.permission_validator.config import WILDCARD_ACTION

DENY = "deny"
POLICY_DECISION_KEY = "policyDecision"

RuleValue = bool | Literal["deny"]


class PolicySource(str, Enum):
    """Policy tier that produced a decision."""

    SYSTEM = "system"
    WORKSPACE = "workspace"
    GLOBAL = "global"


class PolicyDecision(BaseModel):
    """Immutable result of three-tier policy resolution."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    requires_validation: bool
    reason: str
    source: PolicySource
    denied: bool = False

    def to_metadata(self) -> dict[str, Any]:
        """Return the camelCase audit shape recorded on follow-up events."""
        return {
            "requiresValidation": self.requires_validation,
            "reason": self.reason,
            "source": self.source.value,
            "denied": self.denied,
        }


class WorkspacePolicy(BaseModel):
    """Owner-configured override map for one workspace.

    ``rules`` maps table to action (or ``"*"``) to ``True`` (review
    required), ``False`` (auto-approve) or ``"deny"``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    workspace_id: str = Field(min_length=1)
    rules: dict[str, dict[str, RuleValue]] = Field(default_factory=dict)
    owner_shortcut_enabled: bool = True

    def rule_for(self, table: str, action: str) -> RuleValue | None:
        actions = self.rules.get(table)
        if actions is None:
            return None
        if action in actions:
            return actions[action]
        return actions.get(WILDCARD_ACTION)


class ValidationOutcome(str, Enum):
    """What the validator did with one ``.requested`` event."""

    APPROVED = "approved"
    PROPOSED = "proposed"
    REJECTED = "rejected"
    ALREADY_HANDLED = "already_handled"


class ValidationResult(BaseModel):
    """Outcome of handling one ``.requested`` event."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_id: str
    outcome: ValidationOutcome
    decision: PolicyDecision | None = None
    follow_up_event_id: str | None = None
    proposal_id: str | None = None


class ValidationPolicyError(RuntimeError):
    """Raised when a policy input could not be looked up.

    The dispatcher retries the event and dead-letters it once attempts are
    exhausted; nothing is approved or proposed on this path.
    """
