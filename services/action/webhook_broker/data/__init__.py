"""Webhook Broker data layer exports."""

from services.action.webhook_broker.data.repository import (
    InMemoryWebhookRepository,
    PostgresWebhookRepository,
)
from services.action.webhook_broker.data.runtime import WebhookBrokerPostgresRuntime
from services.action.webhook_broker.data.schema import (
    delivery_attempts,
    metadata,
    webhook_subscriptions,
)

__all__ = [
    "InMemoryWebhookRepository",
    "PostgresWebhookRepository",
    "WebhookBrokerPostgresRuntime",
    "delivery_attempts",
    "metadata",
    "webhook_subscriptions",
]
