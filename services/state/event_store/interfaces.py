"""Protocols for Event Store persistence and dispatch transport."""

from __future__ import annotations

from typing import Protocol

from services.state.event_store.domain import Event
from services.state.event_store.taxonomy import EventStage


class EventRepository(Protocol):
    """Append-only event log plus its dispatch outbox."""

    def append(self, *, event: Event) -> Event:
        """Insert the event and its pending outbox row in one transaction.

        Returns the event with its store-assigned ``sequence``. Raises
        ``DuplicateOutcomeError`` when the event's cause already has an
        outcome in the same group.
        """

    def get_event(self, *, event_id: str) -> Event | None:
        """Return one event by id."""

    def list_events(self, *, after_sequence: int, limit: int) -> tuple[Event, ...]:
        """Return events in append order starting after ``after_sequence``."""

    def list_subject_events(self, *, subject_id: str) -> tuple[Event, ...]:
        """Return every event for one subject in append order."""

    def find_caused_by(
        self, *, causation_id: str, stages: tuple[EventStage, ...] = ()
    ) -> tuple[Event, ...]:
        """Return events caused by ``causation_id``, optionally filtered by stage."""

    def list_pending_dispatch(self, *, limit: int) -> tuple[Event, ...]:
        """Return events whose dispatch signal is outstanding, oldest first."""

    def is_dispatch_pending(self, *, event_id: str) -> bool:
        """Return whether one event still awaits its dispatch signal."""

    def has_older_pending(self, *, subject_id: str, sequence: int) -> bool:
        """Return whether an earlier event for the subject is still pending."""

    def mark_dispatched(self, *, event_id: str) -> None:
        """Clear the pending flag after a successful signal."""

    def record_dispatch_failure(self, *, event_id: str, error: str) -> None:
        """Count one failed signal attempt and keep the event pending."""

    def count_events(self) -> int:
        """Return total number of stored events."""

    def count_pending_dispatch(self) -> int:
        """Return number of events awaiting a dispatch signal."""


class DispatchTransport(Protocol):
    """Carries the post-commit dispatch signal to the dispatcher."""

    def send(self, event: Event) -> None:
        """Signal one stored event; raise on failure."""
