"""Domain contracts for the Event Store and Event Publisher."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from packages.synap_shared.envelope import Envelope, EnvelopeMeta
from packages.synap_shared.errors import codes
from services.state.event_store.taxonomy import EventStage, EventType

if TYPE_CHECKING:
    from services.state.event_store.service import EventPublisher

SCHEMA_VERSION = "v1"
WORKSPACE_ID_KEY = "workspaceId"
PROPOSAL_ID_KEY = "proposalId"

T = TypeVar("T")


class EventSource(str, Enum):
    """Originator tag carried by every event."""

    USER_API = "user-api"
    AUTOMATION = "automation"
    SYNC = "sync"
    MIGRATION = "migration"
    SYSTEM = "system"
    EXTERNAL_INTELLIGENCE = "external-intelligence"


class Event(BaseModel):
    """Immutable fact recorded in the event log.

    Attributes are snake_case in Python and camelCase on the wire.
    ``sequence`` is assigned by the store on append and is never serialized.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str
    schema_version: str = SCHEMA_VERSION
    type: str
    subject_id: str
    subject_type: str
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    actor_id: str
    source: EventSource
    timestamp: datetime
    correlation_id: str | None = None
    causation_id: str | None = None
    sequence: int | None = Field(default=None, exclude=True)

    @property
    def event_type(self) -> EventType:
        return EventType.parse(self.type)

    @property
    def workspace_id(self) -> str:
        """Workspace the event belongs to, from metadata first, then data."""
        for container in (self.metadata, self.data):
            value = container.get(WORKSPACE_ID_KEY)
            if isinstance(value, str) and value != "":
                return value
        return ""

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready wire representation."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> "Event":
        return cls.model_validate(payload)


class AppendEventRequest(BaseModel):
    """Input to ``EventPublisher.append``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    subject_type: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    actor_id: str = Field(min_length=1)
    source: EventSource
    correlation_id: str | None = None
    causation_id: str | None = None


def follow_up_request(
    cause: Event,
    *,
    stage: EventStage,
    actor_id: str,
    source: EventSource,
    data: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    causation_id: str | None = None,
) -> AppendEventRequest:
    """Build the sibling-stage request caused by ``cause``.

    The follow-up keeps the subject and correlation chain of its cause and
    carries the cause's workspace id forward.
    """
    merged_metadata: dict[str, Any] = {}
    if cause.workspace_id != "":
        merged_metadata[WORKSPACE_ID_KEY] = cause.workspace_id
    merged_metadata.update(metadata or {})
    return AppendEventRequest(
        type=str(cause.event_type.with_stage(stage)),
        subject_id=cause.subject_id,
        subject_type=cause.subject_type,
        data=dict(cause.data) if data is None else data,
        metadata=merged_metadata,
        actor_id=actor_id,
        source=source,
        correlation_id=cause.correlation_id or cause.id,
        causation_id=causation_id or cause.id,
    )


class _StageView(BaseModel):
    model_config = ConfigDict(frozen=True)

    event: Event
    resource: str
    action: str


class RequestedEvent(_StageView):
    """An intent awaiting a permission decision."""

    stage: Literal[EventStage.REQUESTED] = EventStage.REQUESTED


class ApprovedEvent(_StageView):
    """An intent cleared for execution by policy or a human reviewer."""

    stage: Literal[EventStage.APPROVED] = EventStage.APPROVED


class RejectedEvent(_StageView):
    """A terminal denial by policy or a human reviewer."""

    stage: Literal[EventStage.REJECTED] = EventStage.REJECTED


class ValidatedEvent(_StageView):
    """A state change applied by its domain worker."""

    stage: Literal[EventStage.VALIDATED] = EventStage.VALIDATED


class FailedEvent(_StageView):
    """A state change its domain worker could not apply."""

    stage: Literal[EventStage.FAILED] = EventStage.FAILED


StageEvent = Annotated[
    Union[RequestedEvent, ApprovedEvent, RejectedEvent, ValidatedEvent, FailedEvent],
    Field(discriminator="stage"),
]

_STAGE_EVENT_ADAPTER: TypeAdapter[StageEvent] = TypeAdapter(StageEvent)


def decode_stage_event(event: Event) -> StageEvent:
    """Decode one stored event into its typed stage view."""
    parsed = event.event_type
    return _STAGE_EVENT_ADAPTER.validate_python(
        {
            "stage": parsed.stage,
            "event": event,
            "resource": parsed.resource,
            "action": parsed.action,
        }
    )


class DispatchSweepResult(BaseModel):
    """Outcome of one pass over pending dispatch signals."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    scanned: int = 0
    dispatched: int = 0
    failed: int = 0
    deferred: int = 0


class EventStoreHealthStatus(BaseModel):
    """Event store readiness and outbox counters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    service_ready: bool
    event_count: int
    pending_dispatch_count: int
    detail: str


class EventStoreUnavailableError(RuntimeError):
    """Raised by collaborators when an event store call returns errors."""


def require_ok(envelope: Envelope[T], *, operation: str) -> T:
    """Return the envelope payload or raise ``EventStoreUnavailableError``."""
    if not envelope.ok:
        summary = "; ".join(f"{err.code}: {err.message}" for err in envelope.errors)
        raise EventStoreUnavailableError(f"{operation} failed: {summary}")
    value = envelope.value
    if value is None:
        raise EventStoreUnavailableError(f"{operation} returned no payload")
    return value


class DuplicateOutcomeError(ValueError):
    """Raised by repositories when a cause already has an outcome in a group."""

    def __init__(self, *, causation_id: str, outcome_group: str) -> None:
        super().__init__(
            f"event {causation_id} already has a recorded {outcome_group}"
        )
        self.causation_id = causation_id
        self.outcome_group = outcome_group


def append_outcome(
    publisher: "EventPublisher",
    *,
    meta: EnvelopeMeta,
    request: AppendEventRequest,
) -> Event:
    """Append a decision or completion, or return the one already recorded.

    Concurrent handlers for the same cause race on the store's uniqueness
    rule. The loser gets the winner's event back instead of an error.
    """
    envelope = publisher.append(meta=meta, request=request)
    duplicate = any(
        err.code == codes.OUTCOME_ALREADY_RECORDED for err in envelope.errors
    )
    if duplicate and request.causation_id is not None:
        group = EventType.parse(request.type).stage.outcome_group
        existing = require_ok(
            publisher.find_caused_by(
                meta=meta,
                causation_id=request.causation_id,
                stages=tuple(
                    stage for stage in EventStage if stage.outcome_group == group
                ),
            ),
            operation="find_caused_by",
        )
        if existing:
            return existing[0]
    return require_ok(envelope, operation="append")
