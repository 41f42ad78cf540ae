"""Unit tests for projection reads and replay rebuilds."""

from __future__ import annotations

from packages.synap_shared.envelope import EnvelopeKind, new_meta
from packages.synap_shared.errors import codes
from services.state.event_store.config import EventStoreSettings
from services.state.event_store.data.repository import InMemoryEventRepository
from services.state.event_store.domain import (
    AppendEventRequest,
    Event,
    EventSource,
    follow_up_request,
)
from services.state.event_store.implementation import DefaultEventPublisher
from services.state.event_store.taxonomy import EventStage
from services.state.projection_worker.config import ProjectionWorkerSettings
from services.state.projection_worker.data.repository import (
    InMemoryProjectionRepository,
)
from services.state.projection_worker.implementation import DefaultProjectionService


def _meta():
    return new_meta(kind=EnvelopeKind.COMMAND, source="test", principal="operator")


class _NullTransport:
    def send(self, event: Event) -> None:
        return None


def _service(page_size: int = 500):
    publisher = DefaultEventPublisher(
        settings=EventStoreSettings(),
        repository=InMemoryEventRepository(),
        transport=_NullTransport(),
    )
    projections = InMemoryProjectionRepository()
    service = DefaultProjectionService(
        settings=ProjectionWorkerSettings(replay_page_size=page_size),
        publisher=publisher,
        repository=projections,
    )
    return service, publisher, projections


def _approved(publisher, action: str, subject_id: str, **data) -> Event:
    requested = publisher.append(
        meta=_meta(),
        request=AppendEventRequest(
            type=f"documents.{action}.requested",
            subject_id=subject_id,
            subject_type="document",
            data=data,
            metadata={"workspaceId": "ws-1"},
            actor_id="user-1",
            source=EventSource.USER_API,
        ),
    ).value
    return publisher.append(
        meta=_meta(),
        request=follow_up_request(
            requested,
            stage=EventStage.APPROVED,
            actor_id="system:permission-validator",
            source=EventSource.SYSTEM,
        ),
    ).value


def _worker(service: DefaultProjectionService):
    return next(item for item in service.workers if item.family == "documents")


def test_one_worker_per_configured_family() -> None:
    service, _, _ = _service()

    assert sorted(worker.family for worker in service.workers) == sorted(
        ProjectionWorkerSettings().families
    )


def test_get_and_list_records() -> None:
    service, publisher, _ = _service()
    worker = _worker(service)
    worker.on_approved(_approved(publisher, "create", "doc-1", title="A"))
    worker.on_approved(_approved(publisher, "create", "doc-2", title="B"))
    worker.on_approved(_approved(publisher, "delete", "doc-2"))

    record = service.get_record(meta=_meta(), table="documents", record_id="doc-1")
    deleted = service.get_record(meta=_meta(), table="documents", record_id="doc-2")
    listed = service.list_records(meta=_meta(), table="documents", workspace_id="ws-1")

    assert record.value.data == {"title": "A"}
    assert deleted.errors[0].code == codes.RESOURCE_NOT_FOUND
    assert [item.record_id for item in listed.value] == ["doc-1"]


def test_unknown_table_is_invalid_argument() -> None:
    service, _, _ = _service()

    result = service.list_records(meta=_meta(), table="gadgets")

    assert result.errors[0].code == codes.INVALID_ARGUMENT


def test_rebuild_reproduces_projection_from_validated_history() -> None:
    service, publisher, projections = _service(page_size=2)
    worker = _worker(service)
    worker.on_approved(_approved(publisher, "create", "doc-1", title="A"))
    worker.on_approved(_approved(publisher, "update", "doc-1", title="A2"))
    worker.on_approved(_approved(publisher, "create", "doc-1", title="dup"))
    worker.on_approved(_approved(publisher, "create", "doc-2", title="B"))
    before = service.list_records(meta=_meta(), table="documents").value

    projections.clear_table(table="documents")
    result = service.rebuild(meta=_meta(), table="documents")

    assert result.ok is True
    assert result.value.applied == 3
    assert result.value.skipped == 1
    assert service.list_records(meta=_meta(), table="documents").value == before


def test_rebuild_skips_approved_events_without_validated_completion() -> None:
    service, publisher, _ = _service()
    _approved(publisher, "create", "doc-9", title="never applied")

    result = service.rebuild(meta=_meta(), table="documents")

    assert result.value.applied == 0
    assert service.list_records(meta=_meta(), table="documents").value == ()
