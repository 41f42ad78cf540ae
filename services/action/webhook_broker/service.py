"""Authoritative in-process Python API for the Webhook Broker."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Sequence

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import Envelope, EnvelopeMeta
from services.action.webhook_broker.domain import (
    DeliveryAttempt,
    DeliveryReport,
    WebhookSubscription,
)
from services.state.event_store.domain import Event
from services.state.event_store.service import EventPublisher


class WebhookBroker(ABC):
    """Public API for webhook subscriptions and signed outbound delivery."""

    @abstractmethod
    def handle_validated(self, event: Event) -> int:
        """Schedule first attempts for every matching subscription.

        Returns the number of newly scheduled attempts. Raises when the
        ledger is unavailable so the dispatcher retries.
        """

    @abstractmethod
    def process_due(self, *, now: datetime | None = None) -> DeliveryReport:
        """Claim and send every due attempt once."""

    @abstractmethod
    def add_subscription(
        self,
        *,
        meta: EnvelopeMeta,
        workspace_id: str,
        url: str,
        event_type_patterns: Sequence[str],
        secret: str,
        active: bool = True,
    ) -> Envelope[WebhookSubscription]:
        """Register one endpoint."""

    @abstractmethod
    def set_subscription_active(
        self, *, meta: EnvelopeMeta, subscription_id: str, active: bool
    ) -> Envelope[WebhookSubscription]:
        """Enable or disable one endpoint."""

    @abstractmethod
    def list_attempts(
        self,
        *,
        meta: EnvelopeMeta,
        event_id: str | None = None,
        subscription_id: str | None = None,
    ) -> Envelope[tuple[DeliveryAttempt, ...]]:
        """Read the delivery ledger."""

    @abstractmethod
    def close(self) -> None:
        """Release HTTP and worker pool resources."""


def build_webhook_broker(
    *, settings: SynapSettings, publisher: EventPublisher
) -> WebhookBroker:
    """Build the default Postgres-backed Webhook Broker."""
    from services.action.webhook_broker.implementation import DefaultWebhookBroker

    return DefaultWebhookBroker.from_settings(settings=settings, publisher=publisher)
