"""Event Store data layer exports."""

from services.state.event_store.data.repository import (
    InMemoryEventRepository,
    PostgresEventRepository,
)
from services.state.event_store.data.runtime import EventStorePostgresRuntime
from services.state.event_store.data.schema import dispatch_outbox, events, metadata

__all__ = [
    "EventStorePostgresRuntime",
    "InMemoryEventRepository",
    "PostgresEventRepository",
    "dispatch_outbox",
    "events",
    "metadata",
]
