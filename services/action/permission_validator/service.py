"""Authoritative in-process Python API for the Permission Validator."""

from __future__ import annotations

from abc import ABC, abstractmethod

from packages.synap_shared.envelope import Envelope, EnvelopeMeta
from services.action.permission_validator.domain import (
    PolicyDecision,
    ValidationResult,
    WorkspacePolicy,
)
from services.state.event_store.domain import Event


class PermissionValidator(ABC):
    """Gate every ``.requested`` event through policy."""

    @abstractmethod
    def handle_requested(self, event: Event) -> ValidationResult:
        """Dispatcher handler: approve, propose, or reject one request.

        Raises on lookup or append failure so the dispatcher retries.
        """

    @abstractmethod
    def evaluate(self, *, meta: EnvelopeMeta, event: Event) -> Envelope[PolicyDecision]:
        """Resolve policy for one request without acting on it."""

    @abstractmethod
    def put_workspace_policy(
        self, *, meta: EnvelopeMeta, policy: WorkspacePolicy
    ) -> Envelope[WorkspacePolicy]:
        """Create or replace one workspace override document."""

    @abstractmethod
    def get_workspace_policy(
        self, *, meta: EnvelopeMeta, workspace_id: str
    ) -> Envelope[WorkspacePolicy | None]:
        """Read one workspace override document."""
