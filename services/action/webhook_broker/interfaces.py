"""Protocols for webhook subscription and delivery persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from services.action.webhook_broker.domain import (
    DeliveryAttempt,
    DeliveryStatus,
    WebhookSubscription,
)


class WebhookRepository(Protocol):
    """Subscriptions plus the delivery attempt ledger."""

    def add_subscription(self, *, subscription: WebhookSubscription) -> WebhookSubscription:
        """Insert one subscription."""

    def set_active(self, *, subscription_id: str, active: bool) -> WebhookSubscription | None:
        """Toggle one subscription; return it, or ``None`` if unknown."""

    def get_subscription(self, *, subscription_id: str) -> WebhookSubscription | None:
        """Return one subscription by id."""

    def list_active_subscriptions(self) -> tuple[WebhookSubscription, ...]:
        """Return every active subscription."""

    def schedule(self, *, attempt: DeliveryAttempt) -> bool:
        """Insert a pending attempt unless that attempt number already exists."""

    def claim_due(
        self, *, now: datetime, limit: int, lease_seconds: float
    ) -> tuple[DeliveryAttempt, ...]:
        """Lease due pending attempts so no other poller sends them."""

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
        """Record one outcome and optionally schedule the retry, atomically."""

    def list_attempts(
        self, *, event_id: str | None = None, subscription_id: str | None = None
    ) -> tuple[DeliveryAttempt, ...]:
        """Return attempts ordered by creation."""
