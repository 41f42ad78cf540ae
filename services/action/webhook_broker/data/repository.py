"""Webhook repository implementations."""

from __future__ import annotations

from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Mapping

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert

from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from services.action.webhook_broker.data.schema import (
    delivery_attempts,
    webhook_subscriptions,
)
from services.action.webhook_broker.domain import (
    DeliveryAttempt,
    DeliveryStatus,
    WebhookSubscription,
)
from services.action.webhook_broker.interfaces import WebhookRepository


class InMemoryWebhookRepository(WebhookRepository):
    """Lock-guarded in-memory subscriptions and attempt ledger."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscriptions: dict[str, WebhookSubscription] = {}
        self._attempts: dict[str, DeliveryAttempt] = {}
        self._leases: dict[str, datetime] = {}

    def add_subscription(self, *, subscription: WebhookSubscription) -> WebhookSubscription:
        with self._lock:
            if subscription.id in self._subscriptions:
                raise ValueError(f"duplicate subscription id: {subscription.id}")
            self._subscriptions[subscription.id] = subscription
            return subscription

    def set_active(self, *, subscription_id: str, active: bool) -> WebhookSubscription | None:
        with self._lock:
            current = self._subscriptions.get(subscription_id)
            if current is None:
                return None
            updated = current.model_copy(update={"active": active})
            self._subscriptions[subscription_id] = updated
            return updated

    def get_subscription(self, *, subscription_id: str) -> WebhookSubscription | None:
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def list_active_subscriptions(self) -> tuple[WebhookSubscription, ...]:
        with self._lock:
            return tuple(item for item in self._subscriptions.values() if item.active)

    def schedule(self, *, attempt: DeliveryAttempt) -> bool:
        with self._lock:
            for existing in self._attempts.values():
                if (
                    existing.subscription_id == attempt.subscription_id
                    and existing.event_id == attempt.event_id
                    and existing.attempt_number == attempt.attempt_number
                ):
                    return False
            self._attempts[attempt.id] = attempt
            return True

    def claim_due(
        self, *, now: datetime, limit: int, lease_seconds: float
    ) -> tuple[DeliveryAttempt, ...]:
        with self._lock:
            due = sorted(
                (
                    attempt
                    for attempt in self._attempts.values()
                    if attempt.status is DeliveryStatus.PENDING
                    and attempt.next_attempt_at is not None
                    and attempt.next_attempt_at <= now
                    and self._leases.get(attempt.id, now) <= now
                ),
                key=lambda attempt: (attempt.next_attempt_at, attempt.id),
            )[:limit]
            lease_until = now + timedelta(seconds=lease_seconds)
            for attempt in due:
                self._leases[attempt.id] = lease_until
            return tuple(due)

    def complete(
        self,
        *,
        attempt_id: str,
        status: DeliveryStatus,
        response_status: int | None,
        last_error: str,
        completed_at: datetime,
        next_attempt: DeliveryAttempt | None = None,
    ) -> None:
        with self._lock:
            current = self._attempts[attempt_id]
            self._attempts[attempt_id] = current.model_copy(
                update={
                    "status": status,
                    "response_status": response_status,
                    "last_error": last_error,
                    "completed_at": completed_at,
                    "next_attempt_at": None,
                }
            )
            self._leases.pop(attempt_id, None)
            if next_attempt is not None:
                self._attempts[next_attempt.id] = next_attempt

    def list_attempts(
        self, *, event_id: str | None = None, subscription_id: str | None = None
    ) -> tuple[DeliveryAttempt, ...]:
        with self._lock:
            return tuple(
                sorted(
                    (
                        attempt
                        for attempt in self._attempts.values()
                        if (event_id is None or attempt.event_id == event_id)
                        and (
                            subscription_id is None
                            or attempt.subscription_id == subscription_id
                        )
                    ),
                    key=lambda attempt: (attempt.created_at, attempt.attempt_number),
                )
            )


class PostgresWebhookRepository(WebhookRepository):
    """SQL repository over the Webhook Broker schema."""

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    def add_subscription(self, *, subscription: WebhookSubscription) -> WebhookSubscription:
        with self._sessions.session() as session:
            session.execute(
                insert(webhook_subscriptions).values(
                    id=subscription.id,
                    workspace_id=subscription.workspace_id,
                    url=subscription.url,
                    event_type_patterns=list(subscription.event_type_patterns),
                    secret=subscription.secret,
                    active=subscription.active,
                    created_at=subscription.created_at,
                )
            )
        return subscription

    def set_active(self, *, subscription_id: str, active: bool) -> WebhookSubscription | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    update(webhook_subscriptions)
                    .where(webhook_subscriptions.c.id == subscription_id)
                    .values(active=active)
                    .returning(*webhook_subscriptions.c)
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_subscription(row)

    def get_subscription(self, *, subscription_id: str) -> WebhookSubscription | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    select(webhook_subscriptions).where(
                        webhook_subscriptions.c.id == subscription_id
                    )
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_subscription(row)

    def list_active_subscriptions(self) -> tuple[WebhookSubscription, ...]:
        with self._sessions.session() as session:
            rows = (
                session.execute(
                    select(webhook_subscriptions)
                    .where(webhook_subscriptions.c.active.is_(True))
                    .order_by(webhook_subscriptions.c.created_at)
                )
                .mappings()
                .all()
            )
            return tuple(_to_subscription(row) for row in rows)

    def schedule(self, *, attempt: DeliveryAttempt) -> bool:
        with self._sessions.session() as session:
            inserted = session.execute(
                _insert_attempt(attempt)
                .on_conflict_do_nothing(
                    constraint="uq_delivery_attempts_subscription_event_attempt"
                )
                .returning(delivery_attempts.c.id)
            ).first()
            return inserted is not None

    def claim_due(
        self, *, now: datetime, limit: int, lease_seconds: float
    ) -> tuple[DeliveryAttempt, ...]:
        due_ids = (
            select(delivery_attempts.c.id)
            .where(
                delivery_attempts.c.status == DeliveryStatus.PENDING.value,
                delivery_attempts.c.next_attempt_at <= now,
                or_(
                    delivery_attempts.c.claimed_until.is_(None),
                    delivery_attempts.c.claimed_until <= now,
                ),
            )
            .order_by(delivery_attempts.c.next_attempt_at, delivery_attempts.c.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        with self._sessions.session() as session:
            rows = (
                session.execute(
                    update(delivery_attempts)
                    .where(delivery_attempts.c.id.in_(due_ids.scalar_subquery()))
                    .values(claimed_until=now + timedelta(seconds=lease_seconds))
                    .returning(*delivery_attempts.c)
                )
                .mappings()
                .all()
            )
            attempts = [_to_attempt(row) for row in rows]
            attempts.sort(key=lambda attempt: (attempt.next_attempt_at, attempt.id))
            return tuple(attempts)

    def complete(
        self,
        *,
        attempt_id: str,
        status: DeliveryStatus,
        response_status: int | None,
        last_error: str,
        completed_at: datetime,
        next_attempt: DeliveryAttempt | None = None,
    ) -> None:
        with self._sessions.session() as session:
            session.execute(
                update(delivery_attempts)
                .where(delivery_attempts.c.id == attempt_id)
                .values(
                    status=status.value,
                    response_status=response_status,
                    last_error=last_error[:2048],
                    completed_at=completed_at,
                    next_attempt_at=None,
                    claimed_until=None,
                )
            )
            if next_attempt is not None:
                session.execute(
                    _insert_attempt(next_attempt).on_conflict_do_nothing(
                        constraint="uq_delivery_attempts_subscription_event_attempt"
                    )
                )

    def list_attempts(
        self, *, event_id: str | None = None, subscription_id: str | None = None
    ) -> tuple[DeliveryAttempt, ...]:
        stmt = select(delivery_attempts).order_by(
            delivery_attempts.c.created_at, delivery_attempts.c.attempt_number
        )
        if event_id is not None:
            stmt = stmt.where(delivery_attempts.c.event_id == event_id)
        if subscription_id is not None:
            stmt = stmt.where(delivery_attempts.c.subscription_id == subscription_id)
        with self._sessions.session() as session:
            rows = session.execute(stmt).mappings().all()
            return tuple(_to_attempt(row) for row in rows)


def _insert_attempt(attempt: DeliveryAttempt):
    return insert(delivery_attempts).values(
        id=attempt.id,
        subscription_id=attempt.subscription_id,
        event_id=attempt.event_id,
        attempt_number=attempt.attempt_number,
        status=attempt.status.value,
        last_error=attempt.last_error,
        next_attempt_at=attempt.next_attempt_at,
        response_status=attempt.response_status,
        created_at=attempt.created_at,
        completed_at=attempt.completed_at,
    )


def _to_subscription(row: Mapping[str, Any]) -> WebhookSubscription:
    return WebhookSubscription(
        id=row["id"],
        workspace_id=row["workspace_id"],
        url=row["url"],
        event_type_patterns=tuple(row["event_type_patterns"] or ()),
        secret=row["secret"],
        active=bool(row["active"]),
        created_at=row["created_at"],
    )


def _to_attempt(row: Mapping[str, Any]) -> DeliveryAttempt:
    return DeliveryAttempt(
        id=row["id"],
        subscription_id=row["subscription_id"],
        event_id=row["event_id"],
        attempt_number=int(row["attempt_number"]),
        status=DeliveryStatus(row["status"]),
        last_error=row["last_error"],
        next_attempt_at=row["next_attempt_at"],
        response_status=row["response_status"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
    )
