"""Domain worker framework and the default record projection worker."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable

from packages.synap_shared.envelope import EnvelopeKind, EnvelopeMeta, new_meta, utc_now
from packages.synap_shared.errors import codes
from packages.synap_shared.logging import fields, get_logger, log_context
from services.state.event_store.domain import (
    ApprovedEvent,
    Event,
    EventSource,
    append_outcome,
    decode_stage_event,
    follow_up_request,
    require_ok,
)
from services.state.event_store.service import EventPublisher
from services.state.event_store.taxonomy import EventStage
from services.state.projection_worker.config import ProjectionWorkerSettings
from services.state.projection_worker.domain import (
    ERROR_CODE_KEY,
    EXPECTED_VERSION_KEY,
    FAILURE_REASON_KEY,
    OWNER_ID_KEY,
    RECORD_VERSION_KEY,
    MarkerOutcome,
    MutationConflict,
    ProcessedEventMarker,
    ProjectionMutation,
    ProjectionRecord,
    WorkOutcome,
    WorkResult,
)
from services.state.projection_worker.interfaces import ProjectionRepository

_LOGGER = get_logger(__name__)

_COMPLETION_STAGES = (EventStage.VALIDATED, EventStage.FAILED)


class DomainWorker(ABC):
    """Apply approved events for one table family exactly once.

    ``on_approved`` is the dispatcher handler. Subclasses only plan the
    mutation; marker bookkeeping, conflict handling and completion events
    live here.
    """

    def __init__(
        self,
        *,
        family: str,
        settings: ProjectionWorkerSettings,
        publisher: EventPublisher,
        repository: ProjectionRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._family = family
        self._settings = settings
        self._publisher = publisher
        self._repository = repository
        self._clock = clock

    @property
    def family(self) -> str:
        return self._family

    @property
    def name(self) -> str:
        return f"{self._family}-worker"

    @property
    def pattern(self) -> str:
        return f"{self._family}.*.approved"

    @abstractmethod
    def plan_mutation(self, event: Event) -> ProjectionMutation:
        """Return the write this event implies, or raise ``MutationConflict``."""

    def on_approved(self, event: Event) -> WorkResult:
        view = decode_stage_event(event)
        if not isinstance(view, ApprovedEvent) or view.resource != self._family:
            _LOGGER.warning("%s ignored %s", self.name, event.type)
            return WorkResult(event_id=event.id, outcome=WorkOutcome.IGNORED)

        with log_context(
            {
                fields.WORKER: self.name,
                fields.EVENT_ID: event.id,
                fields.SUBJECT_ID: event.subject_id,
            }
        ):
            marker = self._repository.get_marker(worker=self.name, event_id=event.id)
            if marker is not None:
                return self._replayed(event, marker)

            try:
                mutation = self.plan_mutation(event)
                committed = self._repository.commit_mutation(
                    marker=self._marker(event, MarkerOutcome.VALIDATED),
                    record=mutation.record,
                    expected_version=mutation.expected_version,
                )
            except MutationConflict as exc:
                return self._conflict(event, str(exc))

            if not committed:
                existing = self._repository.get_marker(worker=self.name, event_id=event.id)
                if existing is not None:
                    return self._replayed(event, existing)
            completion = self.ensure_completion(
                event,
                outcome=MarkerOutcome.VALIDATED,
                version=mutation.record.version,
            )
            _LOGGER.info(
                "Applied %s to %s/%s at version %d",
                event.event_type.action,
                self._family,
                event.subject_id,
                mutation.record.version,
            )
            return WorkResult(
                event_id=event.id,
                outcome=WorkOutcome.APPLIED,
                completion_event_id=completion.id,
            )

    def on_dead_letter(self, event: Event, dead_letter: Any) -> None:
        """Dispatcher dead-letter hook: close the event out as ``.failed``."""
        reason = getattr(dead_letter, "last_error", "") or "retries exhausted"
        marker = self._repository.get_marker(worker=self.name, event_id=event.id)
        if marker is not None and marker.outcome is MarkerOutcome.VALIDATED:
            self.ensure_completion(event, outcome=MarkerOutcome.VALIDATED)
            return
        self._repository.record_failure(
            marker=self._marker(event, MarkerOutcome.FAILED, detail=reason)
        )
        self.ensure_completion(event, outcome=MarkerOutcome.FAILED, reason=reason)

    def ensure_completion(
        self,
        event: Event,
        *,
        outcome: MarkerOutcome,
        reason: str = "",
        version: int | None = None,
    ) -> Event:
        """Append ``.validated``/``.failed`` for ``event`` unless one exists.

        The lookup is a fast path. The store's one-completion-per-cause rule
        settles a race with a concurrent caller.
        """
        meta = self._handler_meta(event)
        existing = require_ok(
            self._publisher.find_caused_by(
                meta=meta, causation_id=event.id, stages=_COMPLETION_STAGES
            ),
            operation="find_caused_by",
        )
        if existing:
            return existing[0]

        metadata: dict[str, Any] = {}
        if outcome is MarkerOutcome.FAILED:
            stage = EventStage.FAILED
            metadata[FAILURE_REASON_KEY] = reason
            metadata[ERROR_CODE_KEY] = codes.MUTATION_CONFLICT
        else:
            stage = EventStage.VALIDATED
            if version is not None:
                metadata[RECORD_VERSION_KEY] = version
        return append_outcome(
            self._publisher,
            meta=meta,
            request=follow_up_request(
                event,
                stage=stage,
                actor_id=self._settings.worker_actor_id,
                source=EventSource.SYSTEM,
                metadata=metadata,
            ),
        )

    def requested_by(self, event: Event) -> str:
        """Actor of the request this approval answers."""
        if event.causation_id is None:
            return event.actor_id
        cause = require_ok(
            self._publisher.get_event(
                meta=self._handler_meta(event), event_id=event.causation_id
            ),
            operation="get_event",
        )
        return cause.actor_id

    def _replayed(self, event: Event, marker: ProcessedEventMarker) -> WorkResult:
        completion = self.ensure_completion(
            event, outcome=marker.outcome, reason=marker.detail
        )
        _LOGGER.info("Event already processed; completion ensured")
        return WorkResult(
            event_id=event.id,
            outcome=WorkOutcome.REPLAYED,
            completion_event_id=completion.id,
            detail=marker.detail,
        )

    def _conflict(self, event: Event, reason: str) -> WorkResult:
        _LOGGER.warning("Mutation conflict: %s", reason)
        self._repository.record_failure(
            marker=self._marker(event, MarkerOutcome.FAILED, detail=reason)
        )
        completion = self.ensure_completion(
            event, outcome=MarkerOutcome.FAILED, reason=reason
        )
        return WorkResult(
            event_id=event.id,
            outcome=WorkOutcome.CONFLICT,
            completion_event_id=completion.id,
            detail=reason,
        )

    def _marker(
        self, event: Event, outcome: MarkerOutcome, *, detail: str = ""
    ) -> ProcessedEventMarker:
        return ProcessedEventMarker(
            worker=self.name,
            event_id=event.id,
            outcome=outcome,
            detail=detail,
            processed_at=self._clock(),
        )

    def _handler_meta(self, event: Event) -> EnvelopeMeta:
        return new_meta(
            kind=EnvelopeKind.EVENT,
            source=self.name,
            principal=self._settings.worker_actor_id,
            trace_id=event.correlation_id or event.id,
        )


class RecordProjectionWorker(DomainWorker):
    """Create, update and delete ``ProjectionRecord`` rows for one family.

    - create: fails if a live record exists; owner is ``data.ownerId`` or the
      actor of the originating request.
    - update: shallow-merges ``data``; honors ``data.expectedVersion``.
    - delete: writes a tombstone.
    """

    def plan_mutation(self, event: Event) -> ProjectionMutation:
        action = event.event_type.action
        current = self._repository.get_record(
            table=self._family, record_id=event.subject_id
        )
        if action == "create":
            return self._plan_create(event, current)
        if current is None or current.deleted:
            raise MutationConflict(f"{self._family}/{event.subject_id} does not exist")
        if action == "update":
            return self._plan_update(event, current)
        if action == "delete":
            return ProjectionMutation(
                record=current.model_copy(
                    update={
                        "deleted": True,
                        "version": current.version + 1,
                        "updated_by_event_id": event.id,
                    }
                ),
                expected_version=current.version,
            )
        raise MutationConflict(f"unsupported action: {action}")

    def _plan_create(
        self, event: Event, current: ProjectionRecord | None
    ) -> ProjectionMutation:
        if current is not None and not current.deleted:
            raise MutationConflict(f"{self._family}/{event.subject_id} already exists")
        data = _payload(event.data)
        owner = event.data.get(OWNER_ID_KEY)
        if not isinstance(owner, str) or owner == "":
            owner = self.requested_by(event)
        return ProjectionMutation(
            record=ProjectionRecord(
                table=self._family,
                record_id=event.subject_id,
                workspace_id=event.workspace_id,
                owner_id=owner,
                version=1 if current is None else current.version + 1,
                data=data,
                deleted=False,
                updated_by_event_id=event.id,
            ),
            expected_version=None if current is None else current.version,
        )

    def _plan_update(
        self, event: Event, current: ProjectionRecord
    ) -> ProjectionMutation:
        expected = event.data.get(EXPECTED_VERSION_KEY)
        if expected is not None and expected != current.version:
            raise MutationConflict(
                f"{self._family}/{event.subject_id} is at version {current.version}, "
                f"expected {expected}"
            )
        return ProjectionMutation(
            record=current.model_copy(
                update={
                    "data": {**current.data, **_payload(event.data)},
                    "version": current.version + 1,
                    "workspace_id": event.workspace_id or current.workspace_id,
                    "updated_by_event_id": event.id,
                }
            ),
            expected_version=current.version,
        )


def _payload(data: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value
        for key, value in data.items()
        if key not in (EXPECTED_VERSION_KEY, OWNER_ID_KEY)
    }
