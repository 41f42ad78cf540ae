"""Authoritative in-process Python API for the Proposal Manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import Envelope, EnvelopeMeta
from services.action.proposal_manager.domain import Proposal, ProposalDecision
from services.state.event_store.domain import Event
from services.state.event_store.service import EventPublisher


class ProposalManager(ABC):
    """Public API for opening and resolving human review proposals."""

    @abstractmethod
    def open_proposal(
        self,
        *,
        meta: EnvelopeMeta,
        requested: Event,
        reason: str,
        decision: Mapping[str, Any],
    ) -> Envelope[Proposal]:
        """Open, or return the existing, pending proposal for one request."""

    @abstractmethod
    def resolve(
        self,
        *,
        meta: EnvelopeMeta,
        proposal_id: str,
        decision: ProposalDecision,
        resolved_by: str,
        reason: str | None = None,
    ) -> Envelope[Proposal]:
        """Resolve one pending proposal and append the matching stage event."""

    @abstractmethod
    def get_proposal(self, *, meta: EnvelopeMeta, proposal_id: str) -> Envelope[Proposal]:
        """Read one proposal by id."""

    @abstractmethod
    def find_by_originating_event(
        self, *, meta: EnvelopeMeta, event_id: str
    ) -> Envelope[Proposal | None]:
        """Return the proposal opened for one ``.requested`` event, if any."""

    @abstractmethod
    def list_pending(
        self, *, meta: EnvelopeMeta, workspace_id: str | None = None
    ) -> Envelope[tuple[Proposal, ...]]:
        """List pending proposals for the review queue."""


def build_proposal_manager(
    *, settings: SynapSettings, publisher: EventPublisher
) -> ProposalManager:
    """Build the default Postgres-backed Proposal Manager."""
    from services.action.proposal_manager.implementation import (
        DefaultProposalManager,
    )

    return DefaultProposalManager.from_settings(settings=settings, publisher=publisher)
