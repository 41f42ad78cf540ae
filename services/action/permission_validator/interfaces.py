"""Protocols for policy lookups consumed by the Permission Validator."""

from __future__ import annotations

from typing import Protocol

from services.action.permission_validator.domain import WorkspacePolicy


class WorkspacePolicyRepository(Protocol):
    """Workspace-level override store."""

    def get(self, *, workspace_id: str) -> WorkspacePolicy | None:
        """Return the override document for one workspace, if configured."""

    def put(self, *, policy: WorkspacePolicy) -> WorkspacePolicy:
        """Create or replace one workspace override document."""


class OwnershipResolver(Protocol):
    """Answers whether an actor solely owns a subject."""

    def is_sole_owner(
        self, *, workspace_id: str, table: str, subject_id: str, actor_id: str
    ) -> bool:
        """Return ``True`` when ``actor_id`` is the only owner of the subject."""
