"""Authoritative in-process Python API for the Event Store."""

from __future__ import annotations

from abc import ABC, abstractmethod

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import Envelope, EnvelopeMeta
from services.state.event_store.domain import (
    AppendEventRequest,
    DispatchSweepResult,
    Event,
    EventStoreHealthStatus,
)
from services.state.event_store.interfaces import DispatchTransport
from services.state.event_store.taxonomy import EventStage


class EventPublisher(ABC):
    """Single entry point for recording events, plus log read access."""

    @abstractmethod
    def append(
        self, *, meta: EnvelopeMeta, request: AppendEventRequest
    ) -> Envelope[Event]:
        """Durably append one event, then signal dispatch."""

    @abstractmethod
    def get_event(self, *, meta: EnvelopeMeta, event_id: str) -> Envelope[Event]:
        """Read one event by id."""

    @abstractmethod
    def list_events(
        self,
        *,
        meta: EnvelopeMeta,
        after_sequence: int = 0,
        limit: int | None = None,
    ) -> Envelope[tuple[Event, ...]]:
        """Read events in replay order."""

    @abstractmethod
    def list_subject_events(
        self, *, meta: EnvelopeMeta, subject_id: str
    ) -> Envelope[tuple[Event, ...]]:
        """Read the full history of one subject."""

    @abstractmethod
    def find_caused_by(
        self,
        *,
        meta: EnvelopeMeta,
        causation_id: str,
        stages: tuple[EventStage, ...] = (),
    ) -> Envelope[tuple[Event, ...]]:
        """Read events whose ``causation_id`` is the given event id."""

    @abstractmethod
    def redispatch_pending(
        self, *, meta: EnvelopeMeta, limit: int | None = None
    ) -> Envelope[DispatchSweepResult]:
        """Resend outstanding dispatch signals, oldest first."""

    @abstractmethod
    def health(self, *, meta: EnvelopeMeta) -> Envelope[EventStoreHealthStatus]:
        """Return event store readiness and outbox counters."""


def build_event_publisher(
    *, settings: SynapSettings, transport: DispatchTransport
) -> EventPublisher:
    """Build the default Postgres-backed publisher from typed settings."""
    from services.state.event_store.implementation import DefaultEventPublisher

    return DefaultEventPublisher.from_settings(settings=settings, transport=transport)
