"""Authoritative in-process Python API for the Dispatcher."""

from __future__ import annotations

from abc import ABC, abstractmethod

from services.action.dispatcher.domain import (
    DeadLetter,
    DeadLetterCallback,
    DispatcherStats,
    EventHandler,
    SubscriptionInfo,
)
from services.state.event_store.domain import Event


class Dispatcher(ABC):
    """Routes stored events to subscribed handlers by event-type pattern."""

    @abstractmethod
    def subscribe(
        self,
        pattern: str,
        handler: EventHandler,
        *,
        name: str | None = None,
        on_dead_letter: DeadLetterCallback | None = None,
    ) -> SubscriptionInfo:
        """Register one handler for every event type matching ``pattern``."""

    @abstractmethod
    def dispatch(self, event: Event) -> int:
        """Queue one event for every matching subscription; return the count."""

    @abstractmethod
    def start(self) -> None:
        """Start lane threads and the shared handler pool."""

    @abstractmethod
    def stop(self, *, timeout: float = 10.0) -> None:
        """Stop accepting events, drain queued ones, and release threads."""

    @abstractmethod
    def join(self, *, timeout: float | None = None) -> bool:
        """Wait until every queued delivery finished; return False on timeout."""

    @abstractmethod
    def dead_letters(
        self, *, subscriber: str | None = None, limit: int = 100
    ) -> tuple[DeadLetter, ...]:
        """Return dead-lettered deliveries, newest first."""

    @abstractmethod
    def stats(self) -> DispatcherStats:
        """Return point-in-time delivery counters."""
