"""Proposal Manager package exports."""

from services.action.proposal_manager.component import MANIFEST, SERVICE_COMPONENT_ID
from services.action.proposal_manager.config import (
    ProposalManagerSettings,
    resolve_proposal_manager_settings,
)
from services.action.proposal_manager.data import (
    InMemoryProposalRepository,
    PostgresProposalRepository,
    ProposalManagerPostgresRuntime,
)
from services.action.proposal_manager.domain import (
    Proposal,
    ProposalDecision,
    ProposalRequest,
    ProposalStatus,
)
from services.action.proposal_manager.implementation import DefaultProposalManager
from services.action.proposal_manager.interfaces import ProposalRepository
from services.action.proposal_manager.service import (
    ProposalManager,
    build_proposal_manager,
)

__all__ = [
    "DefaultProposalManager",
    "InMemoryProposalRepository",
    "MANIFEST",
    "PostgresProposalRepository",
    "Proposal",
    "ProposalDecision",
    "ProposalManager",
    "ProposalManagerPostgresRuntime",
    "ProposalManagerSettings",
    "ProposalRepository",
    "ProposalRequest",
    "ProposalStatus",
    "SERVICE_COMPONENT_ID",
    "build_proposal_manager",
    "resolve_proposal_manager_settings",
]
