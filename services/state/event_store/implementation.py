"""Concrete Event Publisher implementation over an event repository."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Callable

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import (
    Envelope,
    EnvelopeMeta,
    failure,
    success,
    utc_now,
    validate_meta,
)
from packages.synap_shared.errors import (
    ErrorDetail,
    codes,
    conflict_error,
    dependency_error,
    describe_exception,
    not_found_error,
    validation_error,
)
from packages.synap_shared.ids import generate_ulid_str
from packages.synap_shared.logging import (
    fields,
    get_logger,
    log_context,
    public_api_instrumented,
)
from resources.substrates.postgres.errors import normalize_postgres_error
from services.state.event_store.component import SERVICE_COMPONENT_ID
from services.state.event_store.config import (
    EventStoreSettings,
    resolve_event_store_settings,
)
from services.state.event_store.data import (
    EventStorePostgresRuntime,
    PostgresEventRepository,
)
from services.state.event_store.domain import (
    PROPOSAL_ID_KEY,
    AppendEventRequest,
    DispatchSweepResult,
    DuplicateOutcomeError,
    Event,
    EventSource,
    EventStoreHealthStatus,
)
from services.state.event_store.interfaces import DispatchTransport, EventRepository
from services.state.event_store.service import EventPublisher
from services.state.event_store.taxonomy import (
    EventStage,
    EventTaxonomy,
    EventType,
    UnknownEventTypeError,
)

_LOGGER = get_logger(__name__)


class DefaultEventPublisher(EventPublisher):
    """Dual-write publisher: durable append first, dispatch signal second.

    Signals for one subject leave in append order. An event is only signalled
    directly when no older event for its subject is still pending; otherwise
    the sweeper sends it behind its predecessors.
    """

    def __init__(
        self,
        *,
        settings: EventStoreSettings,
        repository: EventRepository,
        transport: DispatchTransport,
        taxonomy: EventTaxonomy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._transport = transport
        self._taxonomy = taxonomy or EventTaxonomy(
            tables=settings.tables, actions=settings.actions
        )
        self._clock = clock
        self._dispatch_lock = Lock()

    @classmethod
    def from_settings(
        cls,
        *,
        settings: SynapSettings,
        transport: DispatchTransport,
        runtime: EventStorePostgresRuntime | None = None,
    ) -> "DefaultEventPublisher":
        """Build a Postgres-backed publisher from typed settings."""
        resolved_runtime = runtime or EventStorePostgresRuntime.from_settings(settings)
        return cls(
            settings=resolve_event_store_settings(settings),
            repository=PostgresEventRepository(resolved_runtime.schema_sessions),
            transport=transport,
        )

    @property
    def taxonomy(self) -> EventTaxonomy:
        return self._taxonomy

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def append(
        self, *, meta: EnvelopeMeta, request: AppendEventRequest
    ) -> Envelope[Event]:
        """Durably append one event, then signal dispatch.

        Events past ``requested`` must answer a stored cause (see
        ``_chain_errors``), and a cause gets at most one decision and one
        completion. A failed signal never fails the call: the event stays
        pending in the outbox and the sweeper resends it.
        """
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)

        try:
            event_type = self._taxonomy.parse(request.type)
        except UnknownEventTypeError as exc:
            return failure(
                meta=meta,
                errors=[
                    validation_error(
                        str(exc),
                        code=codes.UNKNOWN_EVENT_TYPE,
                        metadata={"type": request.type},
                    )
                ],
            )

        try:
            chain_errors = self._chain_errors(event_type, request)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="get_event", exc=exc)
        if chain_errors:
            return failure(meta=meta, errors=chain_errors)

        event_id = generate_ulid_str()
        event = Event(
            id=event_id,
            type=str(event_type),
            subject_id=request.subject_id,
            subject_type=request.subject_type,
            data=dict(request.data),
            metadata=dict(request.metadata),
            actor_id=request.actor_id,
            source=request.source,
            timestamp=self._clock(),
            correlation_id=request.correlation_id or event_id,
            causation_id=request.causation_id,
        )

        try:
            stored = self._repository.append(event=event)
        except DuplicateOutcomeError as exc:
            _LOGGER.info("Outcome already recorded: %s", exc)
            return failure(
                meta=meta,
                errors=[
                    conflict_error(
                        str(exc),
                        code=codes.OUTCOME_ALREADY_RECORDED,
                        metadata={
                            "causation_id": exc.causation_id,
                            "outcome_group": exc.outcome_group,
                        },
                    )
                ],
            )
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="append", exc=exc)

        self._signal(stored, defer_behind_older=True)
        return success(meta=meta, payload=stored)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("event_id",),
    )
    def get_event(self, *, meta: EnvelopeMeta, event_id: str) -> Envelope[Event]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            event = self._repository.get_event(event_id=event_id)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="get_event", exc=exc)
        if event is None:
            return failure(
                meta=meta,
                errors=[
                    not_found_error(
                        "event not found",
                        code=codes.RESOURCE_NOT_FOUND,
                        metadata={"event_id": event_id},
                    )
                ],
            )
        return success(meta=meta, payload=event)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def list_events(
        self,
        *,
        meta: EnvelopeMeta,
        after_sequence: int = 0,
        limit: int | None = None,
    ) -> Envelope[tuple[Event, ...]]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        if after_sequence < 0 or (limit is not None and limit <= 0):
            return failure(
                meta=meta,
                errors=[
                    validation_error(
                        "after_sequence must be >= 0 and limit must be > 0",
                        code=codes.INVALID_ARGUMENT,
                    )
                ],
            )
        try:
            page = self._repository.list_events(
                after_sequence=after_sequence,
                limit=limit or self._settings.list_page_size,
            )
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="list_events", exc=exc)
        return success(meta=meta, payload=page)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("subject_id",),
    )
    def list_subject_events(
        self, *, meta: EnvelopeMeta, subject_id: str
    ) -> Envelope[tuple[Event, ...]]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            history = self._repository.list_subject_events(subject_id=subject_id)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(
                meta=meta, operation="list_subject_events", exc=exc
            )
        return success(meta=meta, payload=history)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("causation_id",),
    )
    def find_caused_by(
        self,
        *,
        meta: EnvelopeMeta,
        causation_id: str,
        stages: tuple[EventStage, ...] = (),
    ) -> Envelope[tuple[Event, ...]]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            caused = self._repository.find_caused_by(
                causation_id=causation_id, stages=stages
            )
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(
                meta=meta, operation="find_caused_by", exc=exc
            )
        return success(meta=meta, payload=caused)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def redispatch_pending(
        self, *, meta: EnvelopeMeta, limit: int | None = None
    ) -> Envelope[DispatchSweepResult]:
        """Resend pending signals in append order.

        A failure for one subject defers that subject's later events to the
        next pass so they never overtake it.
        """
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            pending = self._repository.list_pending_dispatch(
                limit=limit or self._settings.sweep_batch_size
            )
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(
                meta=meta, operation="redispatch_pending", exc=exc
            )

        blocked_subjects: set[str] = set()
        dispatched = failed = deferred = 0
        for event in pending:
            if event.subject_id in blocked_subjects:
                deferred += 1
                continue
            if self._signal(event, defer_behind_older=False):
                dispatched += 1
            else:
                failed += 1
                blocked_subjects.add(event.subject_id)

        if pending:
            _LOGGER.info(
                "Dispatch sweep: scanned=%d dispatched=%d failed=%d deferred=%d",
                len(pending),
                dispatched,
                failed,
                deferred,
            )
        return success(
            meta=meta,
            payload=DispatchSweepResult(
                scanned=len(pending),
                dispatched=dispatched,
                failed=failed,
                deferred=deferred,
            ),
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def health(self, *, meta: EnvelopeMeta) -> Envelope[EventStoreHealthStatus]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            event_count = self._repository.count_events()
            pending_count = self._repository.count_pending_dispatch()
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="health", exc=exc)
        return success(
            meta=meta,
            payload=EventStoreHealthStatus(
                service_ready=True,
                event_count=event_count,
                pending_dispatch_count=pending_count,
                detail="ok",
            ),
        )

    def _chain_errors(
        self, event_type: EventType, request: AppendEventRequest
    ) -> list[ErrorDetail]:
        """Check that a non-``requested`` event answers the stage before it.

        - only ``requested`` may come from external intelligence
        - ``approved``/``rejected`` answer a stored ``requested`` event for the
          same subject and come from the system or a proposal resolution
        - ``validated``/``failed`` answer a stored ``approved`` event for the
          same subject and come from the system
        - an external-intelligence request is only approved through a proposal
        """
        stage = event_type.stage
        if stage is EventStage.REQUESTED:
            return []
        if request.source is EventSource.EXTERNAL_INTELLIGENCE:
            return [
                _chain_error(
                    f"{request.source.value} may only append requested events",
                    request,
                )
            ]
        resolves_proposal = bool(request.metadata.get(PROPOSAL_ID_KEY))
        if stage in (EventStage.APPROVED, EventStage.REJECTED):
            expected = event_type.with_stage(EventStage.REQUESTED)
            if request.source is not EventSource.SYSTEM and not resolves_proposal:
                return [
                    _chain_error(
                        "decisions come from the system or a proposal resolution",
                        request,
                    )
                ]
        else:
            expected = event_type.with_stage(EventStage.APPROVED)
            if request.source is not EventSource.SYSTEM:
                return [_chain_error("completions come from the system", request)]

        if request.causation_id is None:
            return [_chain_error(f"{stage.value} events require a cause", request)]
        cause = self._repository.get_event(event_id=request.causation_id)
        if cause is None:
            return [_chain_error("causing event not found", request)]
        if cause.event_type != expected or cause.subject_id != request.subject_id:
            return [
                _chain_error(f"{event_type} must follow {expected} for its subject", request)
            ]
        if (
            stage is EventStage.APPROVED
            and cause.source is EventSource.EXTERNAL_INTELLIGENCE
            and not resolves_proposal
        ):
            return [
                _chain_error(
                    "external-intelligence requests are approved only by proposal",
                    request,
                )
            ]
        return []

    def _signal(self, event: Event, *, defer_behind_older: bool) -> bool:
        """Send one dispatch signal; return whether the outbox row was cleared.

        Serialized with the sweeper so an event is never signalled twice by
        this process.
        """
        with self._dispatch_lock, log_context(_event_log_context(event)):
            try:
                if not self._repository.is_dispatch_pending(event_id=event.id):
                    return True
                if defer_behind_older and self._repository.has_older_pending(
                    subject_id=event.subject_id, sequence=event.sequence or 0
                ):
                    _LOGGER.info("Dispatch deferred behind older pending event")
                    return False
                self._transport.send(event)
                self._repository.mark_dispatched(event_id=event.id)
            except Exception as exc:  # noqa: BLE001
                self._note_dispatch_failure(event=event, exc=exc)
                return False
        return True

    def _note_dispatch_failure(self, *, event: Event, exc: Exception) -> None:
        _LOGGER.warning(
            "Dispatch signal failed; event left pending: %s",
            describe_exception(exc),
        )
        try:
            self._repository.record_dispatch_failure(
                event_id=event.id, error=describe_exception(exc)
            )
        except Exception as record_exc:  # noqa: BLE001
            _LOGGER.warning(
                "Failed to record dispatch failure: %s",
                describe_exception(record_exc),
            )

    def _dependency_failure(
        self, *, meta: EnvelopeMeta, operation: str, exc: Exception
    ) -> Envelope[Any]:
        _LOGGER.warning(
            "%s failed due to dependency error: exception_type=%s",
            operation,
            type(exc).__name__,
            exc_info=exc,
        )
        if _is_postgres_error(exc):
            return failure(meta=meta, errors=[normalize_postgres_error(exc)])
        return failure(
            meta=meta,
            errors=[
                dependency_error(
                    f"{operation} failed",
                    code=codes.DEPENDENCY_FAILURE,
                    metadata={"exception_type": type(exc).__name__},
                )
            ],
        )


def _meta_errors(meta: EnvelopeMeta) -> list[ErrorDetail]:
    try:
        validate_meta(meta)
    except ValueError as exc:
        return [validation_error(str(exc), code=codes.INVALID_ARGUMENT)]
    return []


def _event_log_context(event: Event) -> dict[str, object]:
    return {
        fields.EVENT_ID: event.id,
        fields.EVENT_TYPE: event.type,
        fields.SUBJECT_ID: event.subject_id,
    }


def _is_postgres_error(exc: Exception) -> bool:
    module = type(exc).__module__
    return module.startswith("sqlalchemy") or module.startswith("psycopg")


def _chain_error(message: str, request: AppendEventRequest) -> ErrorDetail:
    return validation_error(
        message,
        code=codes.INVALID_EVENT_CHAIN,
        metadata={"type": request.type, "causation_id": request.causation_id or ""},
    )
