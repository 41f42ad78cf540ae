"""Domain contracts for the Dispatcher service."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from pydantic import BaseModel, ConfigDict

from services.state.event_store.domain import Event

EventHandler = Callable[[Event], object]


class NonRetryableHandlerError(Exception):
    """Raised by a handler to dead-letter an event without further retries."""


class DispatcherUnavailableError(RuntimeError):
    """Raised by ``dispatch`` when the dispatcher is not running."""


class DeadLetter(BaseModel):
    """Terminal record for one event a subscription could not process."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    event_id: str
    event_type: str
    subject_id: str
    subscriber: str
    attempts: int
    last_error: str
    created_at: datetime


DeadLetterCallback = Callable[[Event, DeadLetter], object]


class SubscriptionInfo(BaseModel):
    """Read-only description of one registered subscription."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    pattern: str
    lanes: int


class DispatcherStats(BaseModel):
    """Point-in-time dispatcher counters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    running: bool
    subscriptions: int
    queued: int
    delivered: int
    retried: int
    dead_lettered: int
