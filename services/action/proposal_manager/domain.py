"""Domain contracts for human-in-the-loop proposals."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

RESOLVED_BY_KEY = "resolvedBy"
RESOLUTION_REASON_KEY = "resolutionReason"
POLICY_DECISION_KEY = "policyDecision"


class ProposalStatus(str, Enum):
    """Lifecycle of one proposal; only ``pending`` is non-terminal."""

    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"


class ProposalDecision(str, Enum):
    """Reviewer verdict passed to ``resolve``."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def status(self) -> ProposalStatus:
        if self is ProposalDecision.APPROVE:
            return ProposalStatus.VALIDATED
        return ProposalStatus.REJECTED


class ProposalRequest(BaseModel):
    """Snapshot of the intent awaiting review."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_type: str
    subject_id: str
    data: dict[str, Any] = Field(default_factory=dict)


class Proposal(BaseModel):
    """Pending or resolved review of one ``.requested`` event."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    workspace_id: str
    target_type: str
    status: ProposalStatus
    originating_event_id: str
    request: ProposalRequest
    reason: str
    decision: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_reason: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is ProposalStatus.PENDING
