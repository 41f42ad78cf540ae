"""Unit tests for record projection workers: apply, conflict, replay safety."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from packages.synap_shared.envelope import EnvelopeKind, new_meta
from packages.synap_shared.errors import codes
from services.state.event_store.config import EventStoreSettings
from services.state.event_store.data.repository import InMemoryEventRepository
from services.state.event_store.domain import (
    AppendEventRequest,
    Event,
    EventSource,
    EventStoreUnavailableError,
    follow_up_request,
)
from services.state.event_store.implementation import DefaultEventPublisher
from services.state.event_store.taxonomy import EventStage
from services.state.projection_worker.config import ProjectionWorkerSettings
from services.state.projection_worker.data.repository import (
    InMemoryProjectionRepository,
)
from services.state.projection_worker.domain import MarkerOutcome, WorkOutcome
from services.state.projection_worker.ownership import ProjectionOwnershipResolver
from services.state.projection_worker.worker import RecordProjectionWorker


def _meta():
    return new_meta(kind=EnvelopeKind.COMMAND, source="test", principal="user-1")


class _NullTransport:
    def send(self, event: Event) -> None:
        return None


class _Harness:
    def __init__(self) -> None:
        self.events = InMemoryEventRepository()
        self.publisher = DefaultEventPublisher(
            settings=EventStoreSettings(),
            repository=self.events,
            transport=_NullTransport(),
        )
        self.projections = InMemoryProjectionRepository()
        self.worker = RecordProjectionWorker(
            family="entities",
            settings=ProjectionWorkerSettings(),
            publisher=self.publisher,
            repository=self.projections,
        )

    def approved(self, action: str, subject_id: str = "entity-1", **data) -> Event:
        requested = self.publisher.append(
            meta=_meta(),
            request=AppendEventRequest(
                type=f"entities.{action}.requested",
                subject_id=subject_id,
                subject_type="entity",
                data=data,
                metadata={"workspaceId": "ws-1"},
                actor_id="user-1",
                source=EventSource.USER_API,
            ),
        ).value
        return self.publisher.append(
            meta=_meta(),
            request=follow_up_request(
                requested,
                stage=EventStage.APPROVED,
                actor_id="system:permission-validator",
                source=EventSource.SYSTEM,
            ),
        ).value

    def completions(self, event: Event) -> tuple[Event, ...]:
        return self.events.find_caused_by(
            causation_id=event.id, stages=(EventStage.VALIDATED, EventStage.FAILED)
        )


def test_worker_subscribes_only_to_its_family_approvals() -> None:
    assert _Harness().worker.pattern == "entities.*.approved"


def test_create_applies_record_and_appends_validated() -> None:
    harness = _Harness()
    event = harness.approved("create", title="Hello", ownerId="user-9")

    result = harness.worker.on_approved(event)

    assert result.outcome is WorkOutcome.APPLIED
    record = harness.projections.get_record(table="entities", record_id="entity-1")
    assert record.version == 1
    assert record.data == {"title": "Hello"}
    assert record.owner_id == "user-9"
    assert record.workspace_id == "ws-1"
    (completion,) = harness.completions(event)
    assert completion.type == "entities.create.validated"
    assert completion.metadata["recordVersion"] == 1
    assert completion.correlation_id == event.correlation_id


def test_update_merges_data_and_bumps_version() -> None:
    harness = _Harness()
    harness.worker.on_approved(harness.approved("create", title="Hello", body="x"))

    harness.worker.on_approved(harness.approved("update", title="Bye", expectedVersion=1))

    record = harness.projections.get_record(table="entities", record_id="entity-1")
    assert record.version == 2
    assert record.data == {"title": "Bye", "body": "x"}


def test_version_mismatch_appends_failed_without_mutation() -> None:
    harness = _Harness()
    harness.worker.on_approved(harness.approved("create", title="Hello"))
    stale = harness.approved("update", title="Stale", expectedVersion=7)

    result = harness.worker.on_approved(stale)

    assert result.outcome is WorkOutcome.CONFLICT
    record = harness.projections.get_record(table="entities", record_id="entity-1")
    assert record.data == {"title": "Hello"}
    (failed,) = harness.completions(stale)
    assert failed.type == "entities.update.failed"
    assert failed.metadata["errorCode"] == codes.MUTATION_CONFLICT
    assert "version 1" in failed.metadata["failureReason"]
    marker = harness.projections.get_marker(worker=harness.worker.name, event_id=stale.id)
    assert marker.outcome is MarkerOutcome.FAILED


def test_duplicate_create_and_missing_record_conflict() -> None:
    harness = _Harness()
    harness.worker.on_approved(harness.approved("create", title="Hello"))

    duplicate = harness.worker.on_approved(harness.approved("create", title="Again"))
    missing = harness.worker.on_approved(harness.approved("delete", subject_id="nope"))

    assert duplicate.outcome is WorkOutcome.CONFLICT
    assert missing.outcome is WorkOutcome.CONFLICT


def test_delete_writes_tombstone_and_allows_recreate() -> None:
    harness = _Harness()
    harness.worker.on_approved(harness.approved("create", title="Hello"))
    harness.worker.on_approved(harness.approved("delete"))

    tombstone = harness.projections.get_record(table="entities", record_id="entity-1")
    assert tombstone.deleted is True
    assert tombstone.version == 2

    recreated = harness.worker.on_approved(harness.approved("create", title="Back"))
    assert recreated.outcome is WorkOutcome.APPLIED
    record = harness.projections.get_record(table="entities", record_id="entity-1")
    assert (record.deleted, record.version) == (False, 3)


def test_duplicate_delivery_never_double_applies() -> None:
    harness = _Harness()
    harness.worker.on_approved(harness.approved("create", title="Hello"))
    update = harness.approved("update", title="Bye")

    first = harness.worker.on_approved(update)
    second = harness.worker.on_approved(update)

    assert first.outcome is WorkOutcome.APPLIED
    assert second.outcome is WorkOutcome.REPLAYED
    assert second.completion_event_id == first.completion_event_id
    record = harness.projections.get_record(table="entities", record_id="entity-1")
    assert record.version == 2
    assert len(harness.completions(update)) == 1


def test_replay_after_lost_completion_appends_it_once() -> None:
    harness = _Harness()
    event = harness.approved("create", title="Hello")
    original_append = harness.publisher.append
    calls = {"n": 0}

    def flaky_append(*, meta, request):
        calls["n"] += 1
        if calls["n"] == 1:
            raise EventStoreUnavailableError("append failed")
        return original_append(meta=meta, request=request)

    harness.publisher.append = flaky_append
    with pytest.raises(EventStoreUnavailableError):
        harness.worker.on_approved(event)
    assert harness.completions(event) == ()

    result = harness.worker.on_approved(event)

    assert result.outcome is WorkOutcome.REPLAYED
    assert len(harness.completions(event)) == 1
    record = harness.projections.get_record(table="entities", record_id="entity-1")
    assert record.version == 1


def test_dead_letter_hook_appends_failed_completion() -> None:
    harness = _Harness()
    event = harness.approved("create", title="Hello")

    harness.worker.on_dead_letter(event, SimpleNamespace(last_error="TimeoutError: slow"))

    (failed,) = harness.completions(event)
    assert failed.type == "entities.create.failed"
    assert failed.metadata["failureReason"] == "TimeoutError: slow"


def test_other_family_events_are_ignored() -> None:
    harness = _Harness()
    event = harness.approved("create").model_copy(update={"type": "views.create.approved"})

    assert harness.worker.on_approved(event).outcome is WorkOutcome.IGNORED


def test_ownership_resolver_reads_owner_from_projection() -> None:
    harness = _Harness()
    harness.worker.on_approved(harness.approved("create", title="Hello"))
    resolver = ProjectionOwnershipResolver(harness.projections)

    assert resolver.is_sole_owner(
        workspace_id="ws-1", table="entities", subject_id="entity-1", actor_id="user-1"
    )
    assert not resolver.is_sole_owner(
        workspace_id="ws-1", table="entities", subject_id="entity-1", actor_id="user-2"
    )
    assert not resolver.is_sole_owner(
        workspace_id="ws-2", table="entities", subject_id="entity-1", actor_id="user-1"
    )


def test_created_record_is_owned_by_the_requester_not_the_approver() -> None:
    harness = _Harness()
    event = harness.approved("create", title="Hello")

    harness.worker.on_approved(event)

    assert event.actor_id == "system:permission-validator"
    record = harness.projections.get_record(table="entities", record_id="entity-1")
    assert record.owner_id == "user-1"


def test_completion_race_returns_the_recorded_completion() -> None:
    """A stale lookup must not produce a second completion for one approval."""
    harness = _Harness()
    event = harness.approved("create", title="Hello")
    first = harness.worker.on_approved(event)
    original_lookup = harness.publisher.find_caused_by
    stale = {"left": 1}

    def stale_find_caused_by(*, meta, causation_id, stages=()):
        if stale["left"]:
            stale["left"] -= 1
            return original_lookup(meta=meta, causation_id="none", stages=stages)
        return original_lookup(meta=meta, causation_id=causation_id, stages=stages)

    harness.publisher.find_caused_by = stale_find_caused_by
    completion = harness.worker.ensure_completion(event, outcome=MarkerOutcome.FAILED)

    assert completion.id == first.completion_event_id
    assert [item.type for item in harness.completions(event)] == [
        "entities.create.validated"
    ]
