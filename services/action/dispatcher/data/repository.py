"""Dispatcher dead-letter repository implementations."""

from __future__ import annotations

from threading import Lock

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert

from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from services.action.dispatcher.data.schema import dead_letters
from services.action.dispatcher.domain import DeadLetter
from services.action.dispatcher.interfaces import DeadLetterRepository


class InMemoryDeadLetterRepository(DeadLetterRepository):
    """Append-only in-memory dead-letter log."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._rows: list[DeadLetter] = []

    def append(self, *, dead_letter: DeadLetter) -> None:
        with self._lock:
            self._rows.append(dead_letter)

    def list_dead_letters(
        self, *, subscriber: str | None = None, limit: int = 100
    ) -> tuple[DeadLetter, ...]:
        with self._lock:
            rows = [
                row
                for row in reversed(self._rows)
                if subscriber is None or row.subscriber == subscriber
            ]
            return tuple(rows[:limit])


class PostgresDeadLetterRepository(DeadLetterRepository):
    """SQL repository over the Dispatcher schema."""

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    def append(self, *, dead_letter: DeadLetter) -> None:
        with self._sessions.session() as session:
            session.execute(
                insert(dead_letters)
                .values(
                    id=dead_letter.id,
                    event_id=dead_letter.event_id,
                    event_type=dead_letter.event_type,
                    subject_id=dead_letter.subject_id,
                    subscriber=dead_letter.subscriber,
                    attempts=dead_letter.attempts,
                    last_error=dead_letter.last_error[:2048],
                    created_at=dead_letter.created_at,
                )
                .on_conflict_do_nothing(index_elements=["id"])
            )

    def list_dead_letters(
        self, *, subscriber: str | None = None, limit: int = 100
    ) -> tuple[DeadLetter, ...]:
        stmt = select(dead_letters).order_by(dead_letters.c.created_at.desc()).limit(limit)
        if subscriber is not None:
            stmt = stmt.where(dead_letters.c.subscriber == subscriber)
        with self._sessions.session() as session:
            rows = session.execute(stmt).mappings().all()
            return tuple(DeadLetter.model_validate(dict(row)) for row in rows)
