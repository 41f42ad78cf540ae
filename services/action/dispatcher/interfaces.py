"""Protocols for Dispatcher dead-letter persistence."""

from __future__ import annotations

from typing import Protocol

from services.action.dispatcher.domain import DeadLetter


class DeadLetterRepository(Protocol):
    """Durable store of dead-lettered deliveries for manual replay."""

    def append(self, *, dead_letter: DeadLetter) -> None:
        """Persist one dead-letter row."""

    def list_dead_letters(
        self, *, subscriber: str | None = None, limit: int = 100
    ) -> tuple[DeadLetter, ...]:
        """Return dead letters, newest first."""
