"""Unit tests for the dual-write Event Publisher."""

from __future__ import annotations

import pytest

from packages.synap_shared.envelope import EnvelopeKind, new_meta
from packages.synap_shared.errors import codes
from services.state.event_store.config import EventStoreSettings
from services.state.event_store.data.repository import InMemoryEventRepository
from services.state.event_store.domain import (
    AppendEventRequest,
    DuplicateOutcomeError,
    Event,
    EventSource,
    append_outcome,
    follow_up_request,
)
from services.state.event_store.implementation import DefaultEventPublisher
from services.state.event_store.taxonomy import EventStage


def _meta():
    return new_meta(kind=EnvelopeKind.COMMAND, source="test", principal="operator")


class _RecordingTransport:
    """Transport double that records signals and can be switched off."""

    def __init__(self) -> None:
        self.sent: list[Event] = []
        self.available = True

    def send(self, event: Event) -> None:
        if not self.available:
            raise ConnectionError("bus unavailable")
        self.sent.append(event)


class _FailingRepository(InMemoryEventRepository):
    def append(self, *, event: Event) -> Event:
        raise ConnectionError("database down")


def _request(subject_id: str = "entity-1", **overrides) -> AppendEventRequest:
    payload = {
        "type": "entities.create.requested",
        "subject_id": subject_id,
        "subject_type": "entity",
        "data": {"title": "First"},
        "metadata": {"workspaceId": "ws-1"},
        "actor_id": "user-1",
        "source": EventSource.USER_API,
    }
    payload.update(overrides)
    return AppendEventRequest(**payload)


def _approved(publisher: DefaultEventPublisher, requested: Event) -> Event:
    return publisher.append(
        meta=_meta(),
        request=follow_up_request(
            requested,
            stage=EventStage.APPROVED,
            actor_id="system:permission-validator",
            source=EventSource.SYSTEM,
        ),
    ).payload.value


def _publisher(
    repository: InMemoryEventRepository | None = None,
    transport: _RecordingTransport | None = None,
) -> tuple[DefaultEventPublisher, InMemoryEventRepository, _RecordingTransport]:
    repo = repository or InMemoryEventRepository()
    bus = transport or _RecordingTransport()
    publisher = DefaultEventPublisher(
        settings=EventStoreSettings(), repository=repo, transport=bus
    )
    return publisher, repo, bus


def test_append_stores_event_then_signals_and_clears_outbox() -> None:
    """A successful signal should leave nothing pending."""
    publisher, repo, bus = _publisher()

    result = publisher.append(meta=_meta(), request=_request())

    assert result.ok is True
    event = result.payload.value
    assert event.sequence == 1
    assert event.correlation_id == event.id
    assert event.workspace_id == "ws-1"
    assert [item.id for item in bus.sent] == [event.id]
    assert repo.count_pending_dispatch() == 0


def test_append_canonicalizes_completed_alias() -> None:
    """Stored type should always use the validated stage."""
    publisher, _, _ = _publisher()
    approved = _approved(publisher, publisher.append(meta=_meta(), request=_request()).value)

    result = publisher.append(
        meta=_meta(),
        request=follow_up_request(
            approved,
            stage=EventStage.VALIDATED,
            actor_id="system:projection-worker",
            source=EventSource.SYSTEM,
        ).model_copy(update={"type": "entities.create.completed"}),
    )

    assert result.payload.value.type == "entities.create.validated"


def test_append_rejects_unknown_event_type() -> None:
    """Types outside the taxonomy should fail validation before any write."""
    publisher, repo, bus = _publisher()

    result = publisher.append(meta=_meta(), request=_request(type="widgets.create.requested"))

    assert result.ok is False
    assert result.errors[0].code == codes.UNKNOWN_EVENT_TYPE
    assert repo.count_events() == 0
    assert bus.sent == []


def test_append_reports_dependency_failure_when_durable_write_fails() -> None:
    """Nothing should be signalled when the event was not stored."""
    publisher, _, bus = _publisher(repository=_FailingRepository())

    result = publisher.append(meta=_meta(), request=_request())

    assert result.ok is False
    assert result.errors[0].code == codes.DEPENDENCY_FAILURE
    assert bus.sent == []


def test_failed_signal_keeps_event_durable_and_pending() -> None:
    """Dispatch failure must never roll back or fail the append."""
    publisher, repo, bus = _publisher()
    bus.available = False

    result = publisher.append(meta=_meta(), request=_request())

    assert result.ok is True
    event_id = result.payload.value.id
    assert publisher.get_event(meta=_meta(), event_id=event_id).ok is True
    assert repo.is_dispatch_pending(event_id=event_id) is True
    assert repo.dispatch_attempts(event_id=event_id) == 1


def test_newer_event_waits_behind_older_pending_event_for_same_subject() -> None:
    """Per-subject order should hold even once the transport recovers."""
    publisher, repo, bus = _publisher()
    bus.available = False
    first = publisher.append(meta=_meta(), request=_request()).payload.value
    bus.available = True
    second = publisher.append(
        meta=_meta(), request=_request(type="entities.update.requested")
    ).payload.value
    other = publisher.append(meta=_meta(), request=_request(subject_id="entity-2")).payload.value

    assert [item.id for item in bus.sent] == [other.id]
    assert repo.is_dispatch_pending(event_id=second.id) is True

    swept = publisher.redispatch_pending(meta=_meta())

    assert swept.payload.value.dispatched == 2
    assert [item.id for item in bus.sent] == [other.id, first.id, second.id]
    assert repo.count_pending_dispatch() == 0


def test_sweep_stops_per_subject_at_first_failure() -> None:
    """A failing subject should defer its later events to the next pass."""
    publisher, _, bus = _publisher()
    bus.available = False
    publisher.append(meta=_meta(), request=_request())
    publisher.append(meta=_meta(), request=_request(type="entities.update.requested"))

    swept = publisher.redispatch_pending(meta=_meta())

    assert swept.payload.value.failed == 1
    assert swept.payload.value.deferred == 1
    assert bus.sent == []


def test_find_caused_by_filters_on_stage() -> None:
    """Causation lookups should support stage filtering."""
    publisher, _, _ = _publisher()
    requested = publisher.append(meta=_meta(), request=_request()).payload.value
    _approved(publisher, requested)

    approved = publisher.find_caused_by(
        meta=_meta(), causation_id=requested.id, stages=(EventStage.APPROVED,)
    ).payload.value
    failed = publisher.find_caused_by(
        meta=_meta(), causation_id=requested.id, stages=(EventStage.FAILED,)
    ).payload.value

    assert len(approved) == 1
    assert approved[0].correlation_id == requested.id
    assert failed == ()


def test_list_events_pages_in_append_order() -> None:
    """Replay reads should page by sequence."""
    publisher, _, _ = _publisher()
    for index in range(5):
        publisher.append(meta=_meta(), request=_request(subject_id=f"entity-{index}"))

    first_page = publisher.list_events(meta=_meta(), limit=2).payload.value
    second_page = publisher.list_events(
        meta=_meta(), after_sequence=first_page[-1].sequence, limit=10
    ).payload.value

    assert [item.sequence for item in first_page] == [1, 2]
    assert [item.sequence for item in second_page] == [3, 4, 5]


def test_get_event_returns_not_found_for_unknown_id() -> None:
    publisher, _, _ = _publisher()
    result = publisher.get_event(meta=_meta(), event_id="01HZY0000000000000000000ZZ")
    assert result.errors[0].code == codes.RESOURCE_NOT_FOUND


def test_health_reports_outbox_counters() -> None:
    publisher, _, bus = _publisher()
    bus.available = False
    publisher.append(meta=_meta(), request=_request())

    health = publisher.health(meta=_meta()).payload.value

    assert health.event_count == 1
    assert health.pending_dispatch_count == 1


def test_append_rejects_missing_principal() -> None:
    """Envelope metadata must carry the acting principal."""
    publisher, _, _ = _publisher()
    meta = new_meta(kind=EnvelopeKind.COMMAND, source="test", principal="")
    result = publisher.append(meta=meta, request=_request())
    assert result.ok is False
    assert result.errors[0].code == codes.INVALID_ARGUMENT


def test_append_request_requires_subject() -> None:
    with pytest.raises(ValueError):
        _request(subject_id="")


@pytest.mark.parametrize("stage", ["approved", "rejected", "validated", "failed"])
def test_external_intelligence_may_only_append_requested_events(stage: str) -> None:
    """An agent cannot skip review by appending a later stage itself."""
    publisher, repo, bus = _publisher()
    requested = publisher.append(
        meta=_meta(),
        request=_request(actor_id="agent-1", source=EventSource.EXTERNAL_INTELLIGENCE),
    ).payload.value

    result = publisher.append(
        meta=_meta(),
        request=_request(
            type=f"entities.create.{stage}",
            actor_id="agent-1",
            source=EventSource.EXTERNAL_INTELLIGENCE,
            causation_id=requested.id,
        ),
    )

    assert result.ok is False
    assert result.errors[0].code == codes.INVALID_EVENT_CHAIN
    assert repo.count_events() == 1
    assert [item.id for item in bus.sent] == [requested.id]


def test_decision_requires_a_stored_request_for_the_same_subject() -> None:
    publisher, repo, _ = _publisher()
    other = publisher.append(meta=_meta(), request=_request(subject_id="entity-2")).payload.value
    decision = {
        "type": "entities.create.approved",
        "actor_id": "system:permission-validator",
        "source": EventSource.SYSTEM,
    }

    uncaused = publisher.append(meta=_meta(), request=_request(**decision))
    dangling = publisher.append(
        meta=_meta(),
        request=_request(causation_id="01HZY0000000000000000000ZZ", **decision),
    )
    wrong_subject = publisher.append(
        meta=_meta(), request=_request(causation_id=other.id, **decision)
    )

    for result in (uncaused, dangling, wrong_subject):
        assert result.ok is False
        assert result.errors[0].code == codes.INVALID_EVENT_CHAIN
    assert repo.count_events() == 1


def test_user_decision_needs_a_proposal_resolution() -> None:
    publisher, _, _ = _publisher()
    requested = publisher.append(meta=_meta(), request=_request()).payload.value

    direct = publisher.append(
        meta=_meta(),
        request=follow_up_request(
            requested,
            stage=EventStage.APPROVED,
            actor_id="user-1",
            source=EventSource.USER_API,
        ),
    )
    resolved = publisher.append(
        meta=_meta(),
        request=follow_up_request(
            requested,
            stage=EventStage.APPROVED,
            actor_id="reviewer-1",
            source=EventSource.USER_API,
            metadata={"proposalId": "01HZY00000000000000000PROP"},
        ),
    )

    assert direct.errors[0].code == codes.INVALID_EVENT_CHAIN
    assert resolved.ok is True


def test_agent_request_is_approved_only_through_a_proposal() -> None:
    publisher, _, _ = _publisher()
    requested = publisher.append(
        meta=_meta(),
        request=_request(actor_id="agent-1", source=EventSource.EXTERNAL_INTELLIGENCE),
    ).payload.value

    result = publisher.append(
        meta=_meta(),
        request=follow_up_request(
            requested,
            stage=EventStage.APPROVED,
            actor_id="system:permission-validator",
            source=EventSource.SYSTEM,
        ),
    )

    assert result.ok is False
    assert result.errors[0].code == codes.INVALID_EVENT_CHAIN


def test_completion_must_follow_an_approval_and_come_from_the_system() -> None:
    publisher, _, _ = _publisher()
    requested = publisher.append(meta=_meta(), request=_request()).payload.value
    approved = _approved(publisher, requested)

    skipped = publisher.append(
        meta=_meta(),
        request=follow_up_request(
            requested,
            stage=EventStage.VALIDATED,
            actor_id="system:projection-worker",
            source=EventSource.SYSTEM,
        ),
    )
    from_user = publisher.append(
        meta=_meta(),
        request=follow_up_request(
            approved,
            stage=EventStage.VALIDATED,
            actor_id="user-1",
            source=EventSource.USER_API,
        ),
    )

    assert skipped.errors[0].code == codes.INVALID_EVENT_CHAIN
    assert from_user.errors[0].code == codes.INVALID_EVENT_CHAIN


def test_second_decision_for_one_request_is_refused() -> None:
    """One cause gets one decision even when two handlers race to append it."""
    publisher, repo, _ = _publisher()
    requested = publisher.append(meta=_meta(), request=_request()).payload.value
    first = _approved(publisher, requested)

    again = publisher.append(
        meta=_meta(),
        request=follow_up_request(
            requested,
            stage=EventStage.REJECTED,
            actor_id="system:permission-validator",
            source=EventSource.SYSTEM,
        ),
    )

    assert again.ok is False
    assert again.errors[0].code == codes.OUTCOME_ALREADY_RECORDED
    assert repo.find_caused_by(causation_id=requested.id) == (first,)


def test_append_outcome_returns_the_recorded_event_on_a_lost_race() -> None:
    publisher, repo, _ = _publisher()
    requested = publisher.append(meta=_meta(), request=_request()).payload.value
    approved = _approved(publisher, requested)
    completion = {
        "stage": EventStage.VALIDATED,
        "actor_id": "system:projection-worker",
        "source": EventSource.SYSTEM,
    }
    first = append_outcome(
        publisher, meta=_meta(), request=follow_up_request(approved, **completion)
    )

    second = append_outcome(
        publisher, meta=_meta(), request=follow_up_request(approved, **completion)
    )

    assert second == first
    assert len(repo.find_caused_by(causation_id=approved.id)) == 1


def test_in_memory_store_allows_one_outcome_per_group() -> None:
    repo = InMemoryEventRepository()
    publisher, _, _ = _publisher(repository=repo)
    requested = publisher.append(meta=_meta(), request=_request()).payload.value
    approved = _approved(publisher, requested)
    duplicate = approved.model_copy(update={"id": "01HZY0000000000000000000DD"})

    with pytest.raises(DuplicateOutcomeError):
        repo.append(event=duplicate)
