"""Webhook Broker-owned Postgres runtime wiring."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.manifest import component_id_to_schema_name
from resources.substrates.postgres import (
    ServiceSchemaSessionProvider,
    create_postgres_engine,
    create_session_factory,
)
from resources.substrates.postgres.config import resolve_postgres_settings
from services.action.webhook_broker.component import SERVICE_COMPONENT_ID


@dataclass(frozen=True)
class WebhookBrokerPostgresRuntime:
    """Schema-scoped Postgres access for subscriptions and delivery attempts."""

    engine: Engine
    schema_sessions: ServiceSchemaSessionProvider

    @classmethod
    def from_settings(
        cls, settings: SynapSettings, *, engine: Engine | None = None
    ) -> "WebhookBrokerPostgresRuntime":
        resolved_engine = engine or create_postgres_engine(
            resolve_postgres_settings(settings)
        )
        return cls(
            engine=resolved_engine,
            schema_sessions=ServiceSchemaSessionProvider(
                session_factory=create_session_factory(resolved_engine),
                schema=component_id_to_schema_name(SERVICE_COMPONENT_ID),
            ),
        )
