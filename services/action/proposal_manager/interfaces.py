"""Protocols for proposal persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from services.action.proposal_manager.domain import Proposal, ProposalStatus


class ProposalRepository(Protocol):
    """Durable proposal store with single-resolution semantics."""

    def insert_if_absent(self, *, proposal: Proposal) -> Proposal:
        """Insert unless a proposal for the same originating event exists.

        Returns the stored proposal, which is the pre-existing one on conflict.
        """

    def get(self, *, proposal_id: str) -> Proposal | None:
        """Return one proposal by id."""

    def get_by_originating_event(self, *, event_id: str) -> Proposal | None:
        """Return the proposal opened for one ``.requested`` event."""

    def compare_and_set_resolution(
        self,
        *,
        proposal_id: str,
        status: ProposalStatus,
        resolved_by: str,
        resolution_reason: str | None,
        resolved_at: datetime,
    ) -> Proposal | None:
        """Resolve a pending proposal; return ``None`` if it was not pending."""

    def list_pending(
        self, *, workspace_id: str | None, limit: int
    ) -> tuple[Proposal, ...]:
        """Return pending proposals oldest first."""
