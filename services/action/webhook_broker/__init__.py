"""Webhook Broker package exports."""

from services.action.webhook_broker.component import MANIFEST, SERVICE_COMPONENT_ID
from services.action.webhook_broker.config import (
    WebhookBrokerSettings,
    resolve_webhook_broker_settings,
)
from services.action.webhook_broker.data import (
    InMemoryWebhookRepository,
    PostgresWebhookRepository,
    WebhookBrokerPostgresRuntime,
)
from services.action.webhook_broker.domain import (
    DeliveryAttempt,
    DeliveryFailure,
    DeliveryReport,
    DeliveryStatus,
    WebhookSubscription,
)
from services.action.webhook_broker.implementation import (
    DefaultWebhookBroker,
    build_delivery_body,
)
from services.action.webhook_broker.interfaces import WebhookRepository
from services.action.webhook_broker.poller import DeliveryPoller
from services.action.webhook_broker.service import WebhookBroker, build_webhook_broker
from services.action.webhook_broker.signing import (
    EVENT_ID_HEADER,
    EVENT_TYPE_HEADER,
    SIGNATURE_HEADER,
    sign_payload,
    verify_signature,
)

__all__ = [
    "DefaultWebhookBroker",
    "DeliveryAttempt",
    "DeliveryFailure",
    "DeliveryPoller",
    "DeliveryReport",
    "DeliveryStatus",
    "EVENT_ID_HEADER",
    "EVENT_TYPE_HEADER",
    "InMemoryWebhookRepository",
    "MANIFEST",
    "PostgresWebhookRepository",
    "SERVICE_COMPONENT_ID",
    "SIGNATURE_HEADER",
    "WebhookBroker",
    "WebhookBrokerPostgresRuntime",
    "WebhookBrokerSettings",
    "WebhookRepository",
    "WebhookSubscription",
    "build_delivery_body",
    "build_webhook_broker",
    "resolve_webhook_broker_settings",
    "sign_payload",
    "verify_signature",
]
