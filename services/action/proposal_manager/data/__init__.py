"""Proposal Manager data layer exports."""

from services.action.proposal_manager.data.repository import (
    InMemoryProposalRepository,
    PostgresProposalRepository,
)
from services.action.proposal_manager.data.runtime import (
    ProposalManagerPostgresRuntime,
)
from services.action.proposal_manager.data.schema import metadata, proposals

__all__ = [
    "InMemoryProposalRepository",
    "PostgresProposalRepository",
    "ProposalManagerPostgresRuntime",
    "metadata",
    "proposals",
]
