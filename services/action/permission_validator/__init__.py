"""Permission Validator package exports."""

from services.action.permission_validator.component import (
    MANIFEST,
    SERVICE_COMPONENT_ID,
)
from services.action.permission_validator.config import (
    PermissionValidatorSettings,
    resolve_permission_validator_settings,
)
from services.action.permission_validator.data import (
    InMemoryWorkspacePolicyRepository,
    PermissionValidatorPostgresRuntime,
    PostgresWorkspacePolicyRepository,
)
from services.action.permission_validator.domain import (
    PolicyDecision,
    PolicySource,
    ValidationOutcome,
    ValidationPolicyError,
    ValidationResult,
    WorkspacePolicy,
)
from services.action.permission_validator.implementation import (
    DefaultPermissionValidator,
)
from services.action.permission_validator.interfaces import (
    OwnershipResolver,
    WorkspacePolicyRepository,
)
from services.action.permission_validator.policy import PolicyResolver, is_ai_originated
from services.action.permission_validator.service import PermissionValidator

__all__ = [
    "DefaultPermissionValidator",
    "InMemoryWorkspacePolicyRepository",
    "MANIFEST",
    "OwnershipResolver",
    "PermissionValidator",
    "PermissionValidatorPostgresRuntime",
    "PermissionValidatorSettings",
    "PolicyDecision",
    "PolicyResolver",
    "PolicySource",
    "PostgresWorkspacePolicyRepository",
    "SERVICE_COMPONENT_ID",
    "ValidationOutcome",
    "ValidationPolicyError",
    "ValidationResult",
    "WorkspacePolicy",
    "WorkspacePolicyRepository",
    "is_ai_originated",
    "resolve_permission_validator_settings",
]
