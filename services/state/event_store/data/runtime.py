"""Event Store-owned Postgres runtime wiring."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.manifest import component_id_to_schema_name
from resources.substrates.postgres import (
    ServiceSchemaSessionProvider,
    create_postgres_engine,
    create_session_factory,
    ping,
)
from resources.substrates.postgres.config import resolve_postgres_settings
from services.state.event_store.component import SERVICE_COMPONENT_ID


@dataclass(frozen=True)
class EventStorePostgresRuntime:
    """Concrete Event Store handle for schema-scoped Postgres access."""

    engine: Engine
    session_factory: sessionmaker[Session]
    schema_sessions: ServiceSchemaSessionProvider
    health_timeout_seconds: float

    @classmethod
    def from_settings(
        cls, settings: SynapSettings, *, engine: Engine | None = None
    ) -> "EventStorePostgresRuntime":
        """Build the runtime, reusing ``engine`` when the caller shares one."""
        postgres_config = resolve_postgres_settings(settings)
        resolved_engine = engine or create_postgres_engine(postgres_config)
        session_factory = create_session_factory(resolved_engine)
        return cls(
            engine=resolved_engine,
            session_factory=session_factory,
            schema_sessions=ServiceSchemaSessionProvider(
                session_factory=session_factory,
                schema=component_id_to_schema_name(SERVICE_COMPONENT_ID),
            ),
            health_timeout_seconds=postgres_config.health_timeout_seconds,
        )

    def is_healthy(self) -> bool:
        return ping(self.engine, timeout_seconds=self.health_timeout_seconds)
