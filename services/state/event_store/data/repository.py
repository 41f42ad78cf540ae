"""Event Store persistence repository implementations."""

from __future__ import annotations

from threading import Lock
from typing import Any, Mapping

from sqlalchemy import exists, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError

from packages.synap_shared.envelope import utc_now
from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from services.state.event_store.data.schema import (
    OUTCOME_INDEX_NAME,
    dispatch_outbox,
    events,
)
from services.state.event_store.domain import DuplicateOutcomeError, Event, EventSource
from services.state.event_store.interfaces import EventRepository
from services.state.event_store.taxonomy import EventStage


class InMemoryEventRepository(EventRepository):
    """Lock-guarded in-memory event log with outbox bookkeeping."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: list[Event] = []
        self._by_id: dict[str, Event] = {}
        self._pending: dict[str, bool] = {}
        self._attempts: dict[str, int] = {}
        self._last_errors: dict[str, str] = {}

    def append(self, *, event: Event) -> Event:
        group = event.event_type.stage.outcome_group
        with self._lock:
            if event.id in self._by_id:
                raise ValueError(f"duplicate event id: {event.id}")
            if group is not None and event.causation_id is not None:
                self._check_outcome_free(event.causation_id, group)
            stored = event.model_copy(update={"sequence": len(self._events) + 1})
            self._events.append(stored)
            self._by_id[stored.id] = stored
            self._pending[stored.id] = True
            self._attempts[stored.id] = 0
            return stored

    def get_event(self, *, event_id: str) -> Event | None:
        with self._lock:
            return self._by_id.get(event_id)

    def list_events(self, *, after_sequence: int, limit: int) -> tuple[Event, ...]:
        with self._lock:
            # sequence n lives at index n-1
            return tuple(self._events[max(after_sequence, 0) : max(after_sequence, 0) + limit])

    def list_subject_events(self, *, subject_id: str) -> tuple[Event, ...]:
        with self._lock:
            return tuple(item for item in self._events if item.subject_id == subject_id)

    def find_caused_by(
        self, *, causation_id: str, stages: tuple[EventStage, ...] = ()
    ) -> tuple[Event, ...]:
        with self._lock:
            return tuple(
                item
                for item in self._events
                if item.causation_id == causation_id
                and (not stages or item.event_type.stage in stages)
            )

    def list_pending_dispatch(self, *, limit: int) -> tuple[Event, ...]:
        with self._lock:
            pending = [item for item in self._events if self._pending[item.id]]
            return tuple(pending[:limit])

    def is_dispatch_pending(self, *, event_id: str) -> bool:
        with self._lock:
            return self._pending.get(event_id, False)

    def has_older_pending(self, *, subject_id: str, sequence: int) -> bool:
        with self._lock:
            return any(
                self._pending[item.id]
                for item in self._events[: max(sequence - 1, 0)]
                if item.subject_id == subject_id
            )

    def mark_dispatched(self, *, event_id: str) -> None:
        with self._lock:
            if event_id in self._pending:
                self._pending[event_id] = False

    def record_dispatch_failure(self, *, event_id: str, error: str) -> None:
        with self._lock:
            if event_id not in self._pending:
                return
            self._attempts[event_id] += 1
            self._last_errors[event_id] = error

    def count_events(self) -> int:
        with self._lock:
            return len(self._events)

    def count_pending_dispatch(self) -> int:
        with self._lock:
            return sum(1 for value in self._pending.values() if value)

    def dispatch_attempts(self, *, event_id: str) -> int:
        """Return failed signal attempts recorded for one event."""
        with self._lock:
            return self._attempts.get(event_id, 0)

    def _check_outcome_free(self, causation_id: str, group: str) -> None:
        for item in self._events:
            if (
                item.causation_id == causation_id
                and item.event_type.stage.outcome_group == group
            ):
                raise DuplicateOutcomeError(
                    causation_id=causation_id, outcome_group=group
                )


class PostgresEventRepository(EventRepository):
    """SQL repository over the Event Store schema tables."""

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    def append(self, *, event: Event) -> Event:
        """Insert the event and its outbox row in one transaction.

        The partial unique index on ``(causation_id, outcome_group)`` turns a
        second decision or completion for one cause into
        ``DuplicateOutcomeError``.
        """
        group = event.event_type.stage.outcome_group
        try:
            sequence = self._insert(event, group=group)
        except IntegrityError as exc:
            if group is not None and OUTCOME_INDEX_NAME in str(exc):
                raise DuplicateOutcomeError(
                    causation_id=event.causation_id or "", outcome_group=group
                ) from exc
            raise
        return event.model_copy(update={"sequence": sequence})

    def _insert(self, event: Event, *, group: str | None) -> int:
        parsed = event.event_type
        with self._sessions.session() as session:
            sequence = session.execute(
                insert(events)
                .values(
                    id=event.id,
                    schema_version=event.schema_version,
                    type=event.type,
                    resource=parsed.resource,
                    action=parsed.action,
                    stage=parsed.stage.value,
                    subject_id=event.subject_id,
                    subject_type=event.subject_type,
                    data=event.data,
                    metadata=event.metadata,
                    actor_id=event.actor_id,
                    source=event.source.value,
                    timestamp=event.timestamp,
                    correlation_id=event.correlation_id,
                    causation_id=event.causation_id,
                    outcome_group=group,
                )
                .returning(events.c.sequence)
            ).scalar_one()
            session.execute(
                insert(dispatch_outbox).values(
                    event_id=event.id,
                    subject_id=event.subject_id,
                    sequence=sequence,
                    dispatch_pending=True,
                    attempts=0,
                    last_error="",
                    updated_at=utc_now(),
                )
            )
        return int(sequence)

    def get_event(self, *, event_id: str) -> Event | None:
        with self._sessions.session() as session:
            row = (
                session.execute(select(events).where(events.c.id == event_id))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_event(row)

    def list_events(self, *, after_sequence: int, limit: int) -> tuple[Event, ...]:
        with self._sessions.session() as session:
            rows = (
                session.execute(
                    select(events)
                    .where(events.c.sequence > after_sequence)
                    .order_by(events.c.sequence)
                    .limit(limit)
                )
                .mappings()
                .all()
            )
            return tuple(_to_event(row) for row in rows)

    def list_subject_events(self, *, subject_id: str) -> tuple[Event, ...]:
        with self._sessions.session() as session:
            rows = (
                session.execute(
                    select(events)
                    .where(events.c.subject_id == subject_id)
                    .order_by(events.c.sequence)
                )
                .mappings()
                .all()
            )
            return tuple(_to_event(row) for row in rows)

    def find_caused_by(
        self, *, causation_id: str, stages: tuple[EventStage, ...] = ()
    ) -> tuple[Event, ...]:
        stmt = select(events).where(events.c.causation_id == causation_id)
        if stages:
            stmt = stmt.where(events.c.stage.in_([stage.value for stage in stages]))
        with self._sessions.session() as session:
            rows = session.execute(stmt.order_by(events.c.sequence)).mappings().all()
            return tuple(_to_event(row) for row in rows)

    def list_pending_dispatch(self, *, limit: int) -> tuple[Event, ...]:
        with self._sessions.session() as session:
            rows = (
                session.execute(
                    select(events)
                    .join(dispatch_outbox, dispatch_outbox.c.event_id == events.c.id)
                    .where(dispatch_outbox.c.dispatch_pending.is_(True))
                    .order_by(dispatch_outbox.c.sequence)
                    .limit(limit)
                )
                .mappings()
                .all()
            )
            return tuple(_to_event(row) for row in rows)

    def is_dispatch_pending(self, *, event_id: str) -> bool:
        with self._sessions.session() as session:
            value = session.execute(
                select(dispatch_outbox.c.dispatch_pending).where(
                    dispatch_outbox.c.event_id == event_id
                )
            ).scalar_one_or_none()
            return bool(value)

    def has_older_pending(self, *, subject_id: str, sequence: int) -> bool:
        with self._sessions.session() as session:
            return bool(
                session.execute(
                    select(
                        exists().where(
                            dispatch_outbox.c.subject_id == subject_id,
                            dispatch_outbox.c.dispatch_pending.is_(True),
                            dispatch_outbox.c.sequence < sequence,
                        )
                    )
                ).scalar()
            )

    def mark_dispatched(self, *, event_id: str) -> None:
        with self._sessions.session() as session:
            session.execute(
                update(dispatch_outbox)
                .where(dispatch_outbox.c.event_id == event_id)
                .values(dispatch_pending=False, updated_at=utc_now())
            )

    def record_dispatch_failure(self, *, event_id: str, error: str) -> None:
        with self._sessions.session() as session:
            session.execute(
                update(dispatch_outbox)
                .where(dispatch_outbox.c.event_id == event_id)
                .values(
                    attempts=dispatch_outbox.c.attempts + 1,
                    last_error=error[:2048],
                    updated_at=utc_now(),
                )
            )

    def count_events(self) -> int:
        with self._sessions.session() as session:
            return int(session.execute(select(func.count()).select_from(events)).scalar_one())

    def count_pending_dispatch(self) -> int:
        with self._sessions.session() as session:
            return int(
                session.execute(
                    select(func.count())
                    .select_from(dispatch_outbox)
                    .where(dispatch_outbox.c.dispatch_pending.is_(True))
                ).scalar_one()
            )


def _to_event(row: Mapping[str, Any]) -> Event:
    return Event(
        id=row["id"],
        schema_version=row["schema_version"],
        type=row["type"],
        subject_id=row["subject_id"],
        subject_type=row["subject_type"],
        data=dict(row["data"] or {}),
        metadata=dict(row["metadata"] or {}),
        actor_id=row["actor_id"],
        source=EventSource(row["source"]),
        timestamp=row["timestamp"],
        correlation_id=row["correlation_id"],
        causation_id=row["causation_id"],
        sequence=int(row["sequence"]),
    )
