"""Domain contracts for webhook subscriptions and delivery attempts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class WebhookSubscription(BaseModel):
    """External endpoint that receives matching validated events."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    workspace_id: str
    url: str = Field(min_length=1)
    event_type_patterns: tuple[str, ...]
    secret: str = Field(min_length=1, repr=False)
    active: bool = True
    created_at: datetime


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    DEAD_LETTERED = "dead-lettered"


class DeliveryAttempt(BaseModel):
    """One scheduled or completed POST of one event to one subscription."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    subscription_id: str
    event_id: str
    attempt_number: int = Field(ge=1)
    status: DeliveryStatus
    last_error: str = ""
    next_attempt_at: datetime | None = None
    response_status: int | None = None
    created_at: datetime
    completed_at: datetime | None = None


class DeliveryReport(BaseModel):
    """Counters from one ``process_due`` pass."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0


class DeliveryFailure(Exception):
    """One delivery attempt did not get a 2xx response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
