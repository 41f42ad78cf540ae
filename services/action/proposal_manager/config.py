"""Pydantic settings for the Proposal Manager."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.synap_shared.config import SynapSettings, resolve_component_settings
from services.action.proposal_manager.component import SERVICE_COMPONENT_ID


class ProposalManagerSettings(BaseModel):
    """Review-queue read limits."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    list_pending_limit: int = Field(default=200, gt=0)
    # bounded by the reason columns in data/schema.py
    max_reason_length: int = Field(default=2000, gt=0, le=2000)


def resolve_proposal_manager_settings(
    settings: SynapSettings,
) -> ProposalManagerSettings:
    """Resolve proposal settings from ``components.service.proposal_manager``."""
    return resolve_component_settings(
        settings=settings,
        component_id=str(SERVICE_COMPONENT_ID),
        model=ProposalManagerSettings,
    )
