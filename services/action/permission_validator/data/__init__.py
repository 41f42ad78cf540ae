"""Permission Validator data layer exports."""

from services.action.permission_validator.data.repository import (
    InMemoryWorkspacePolicyRepository,
    PostgresWorkspacePolicyRepository,
)
from services.action.permission_validator.data.runtime import (
    PermissionValidatorPostgresRuntime,
)
from services.action.permission_validator.data.schema import (
    metadata,
    workspace_policies,
)

__all__ = [
    "InMemoryWorkspacePolicyRepository",
    "PermissionValidatorPostgresRuntime",
    "PostgresWorkspacePolicyRepository",
    "metadata",
    "workspace_policies",
]
