"""Domain contracts for projections and worker idempotency."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

EXPECTED_VERSION_KEY = "expectedVersion"
OWNER_ID_KEY = "ownerId"
FAILURE_REASON_KEY = "failureReason"
ERROR_CODE_KEY = "errorCode"
RECORD_VERSION_KEY = "recordVersion"


class ProjectionRecord(BaseModel):
    """Current state of one record in a table family projection."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    record_id: str
    workspace_id: str = ""
    owner_id: str
    version: int = Field(ge=1)
    data: dict[str, Any] = Field(default_factory=dict)
    deleted: bool = False
    updated_by_event_id: str


class MarkerOutcome(str, Enum):
    """Terminal result a worker recorded for one event."""

    VALIDATED = "validated"
    FAILED = "failed"


class ProcessedEventMarker(BaseModel):
    """Proof that ``worker`` already handled ``event_id``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    worker: str
    event_id: str
    outcome: MarkerOutcome
    detail: str = ""
    processed_at: datetime


class ProjectionMutation(BaseModel):
    """Planned write: the new record and the version it must replace.

    ``expected_version`` is ``None`` when no record may exist yet.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    record: ProjectionRecord
    expected_version: int | None


class MutationConflict(Exception):
    """Raised when an approved change cannot apply to current state.

    Duplicate creates, missing records and version mismatches end the event
    as ``.failed`` without retries.
    """


class WorkOutcome(str, Enum):
    APPLIED = "applied"
    CONFLICT = "conflict"
    REPLAYED = "replayed"
    IGNORED = "ignored"


class WorkResult(BaseModel):
    """What a worker did with one approved event."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_id: str
    outcome: WorkOutcome
    completion_event_id: str | None = None
    detail: str = ""


class ReplayResult(BaseModel):
    """Counters from one projection rebuild."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    scanned: int
    applied: int
    skipped: int
