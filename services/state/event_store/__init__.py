"""Event Store package exports."""

from packages.synap_shared.envelope import Envelope, EnvelopeKind, EnvelopeMeta
from services.state.event_store.component import MANIFEST, SERVICE_COMPONENT_ID
from services.state.event_store.config import (
    EventStoreSettings,
    resolve_event_store_settings,
)
from services.state.event_store.data import (
    EventStorePostgresRuntime,
    InMemoryEventRepository,
    PostgresEventRepository,
)
from services.state.event_store.domain import (
    AppendEventRequest,
    ApprovedEvent,
    DispatchSweepResult,
    Event,
    EventSource,
    EventStoreHealthStatus,
    EventStoreUnavailableError,
    FailedEvent,
    RejectedEvent,
    RequestedEvent,
    StageEvent,
    ValidatedEvent,
    decode_stage_event,
    follow_up_request,
    require_ok,
)
from services.state.event_store.implementation import DefaultEventPublisher
from services.state.event_store.interfaces import DispatchTransport, EventRepository
from services.state.event_store.service import EventPublisher, build_event_publisher
from services.state.event_store.sweeper import DispatchSweeper
from services.state.event_store.taxonomy import (
    EventStage,
    EventTaxonomy,
    EventType,
    UnknownEventTypeError,
)

__all__ = [
    "AppendEventRequest",
    "ApprovedEvent",
    "DefaultEventPublisher",
    "DispatchSweepResult",
    "DispatchSweeper",
    "DispatchTransport",
    "Envelope",
    "EnvelopeKind",
    "EnvelopeMeta",
    "Event",
    "EventPublisher",
    "EventRepository",
    "EventSource",
    "EventStage",
    "EventStoreHealthStatus",
    "EventStorePostgresRuntime",
    "EventStoreSettings",
    "EventStoreUnavailableError",
    "EventTaxonomy",
    "EventType",
    "FailedEvent",
    "InMemoryEventRepository",
    "MANIFEST",
    "PostgresEventRepository",
    "RejectedEvent",
    "RequestedEvent",
    "SERVICE_COMPONENT_ID",
    "StageEvent",
    "UnknownEventTypeError",
    "ValidatedEvent",
    "build_event_publisher",
    "decode_stage_event",
    "follow_up_request",
    "require_ok",
    "resolve_event_store_settings",
]
