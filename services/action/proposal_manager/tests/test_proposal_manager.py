"""Unit tests for proposal opening and single-resolution semantics."""

from __future__ import annotations

from packages.synap_shared.envelope import EnvelopeKind, new_meta
from packages.synap_shared.errors import codes
from services.action.proposal_manager.data.repository import (
    InMemoryProposalRepository,
)
from services.action.proposal_manager.config import ProposalManagerSettings
from services.action.proposal_manager.domain import ProposalDecision, ProposalStatus
from services.action.proposal_manager.implementation import DefaultProposalManager
from services.state.event_store.config import EventStoreSettings
from services.state.event_store.data.repository import InMemoryEventRepository
from services.state.event_store.domain import AppendEventRequest, Event, EventSource
from services.state.event_store.implementation import DefaultEventPublisher
from services.state.event_store.taxonomy import EventStage


def _meta():
    return new_meta(kind=EnvelopeKind.COMMAND, source="test", principal="reviewer")


class _NullTransport:
    def send(self, event: Event) -> None:
        return None


class _BrokenAppendRepository(InMemoryEventRepository):
    """Accepts the seeded request, then refuses every later append."""

    def __init__(self) -> None:
        super().__init__()
        self.refuse = False

    def append(self, *, event: Event) -> Event:
        if self.refuse:
            raise ConnectionError("database down")
        return super().append(event=event)


class _FlakyResolutionRepository(InMemoryProposalRepository):
    """Fails the next resolution write once when ``fail_next`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next = False

    def compare_and_set_resolution(self, **kwargs):
        if self.fail_next:
            self.fail_next = False
            raise ConnectionError("database down")
        return super().compare_and_set_resolution(**kwargs)


def _setup(
    events: InMemoryEventRepository | None = None,
    proposals: InMemoryProposalRepository | None = None,
):
    event_repo = events or InMemoryEventRepository()
    publisher = DefaultEventPublisher(
        settings=EventStoreSettings(), repository=event_repo, transport=_NullTransport()
    )
    manager = DefaultProposalManager(
        settings=ProposalManagerSettings(),
        repository=proposals or InMemoryProposalRepository(),
        publisher=publisher,
    )
    requested = publisher.append(
        meta=_meta(),
        request=AppendEventRequest(
            type="entities.delete.requested",
            subject_id="entity-9",
            subject_type="entity",
            data={"reason": "cleanup"},
            metadata={"workspaceId": "ws-1"},
            actor_id="agent-1",
            source=EventSource.EXTERNAL_INTELLIGENCE,
        ),
    ).value
    return manager, publisher, event_repo, requested


def _open(manager: DefaultProposalManager, requested: Event):
    return manager.open_proposal(
        meta=_meta(),
        requested=requested,
        reason="destructive action",
        decision={"requiresValidation": True, "source": "system"},
    )


def test_open_proposal_is_idempotent_per_originating_event() -> None:
    manager, _, _, requested = _setup()

    first = _open(manager, requested)
    second = _open(manager, requested)

    assert first.ok and second.ok
    assert first.value.id == second.value.id
    assert first.value.status is ProposalStatus.PENDING
    assert first.value.workspace_id == "ws-1"
    assert first.value.target_type == "entities"
    pending = manager.list_pending(meta=_meta(), workspace_id="ws-1").value
    assert [item.id for item in pending] == [first.value.id]


def test_open_proposal_rejects_non_requested_events() -> None:
    manager, _, _, requested = _setup()
    approved = requested.model_copy(update={"type": "entities.delete.approved"})

    result = _open(manager, approved)

    assert result.ok is False
    assert result.errors[0].code == codes.INVALID_ARGUMENT


def test_approve_appends_approved_event_with_proposal_metadata() -> None:
    manager, _, event_repo, requested = _setup()
    proposal = _open(manager, requested).value

    result = manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.APPROVE,
        resolved_by="user-7",
        reason="looks right",
    )

    assert result.ok is True
    assert result.value.status is ProposalStatus.VALIDATED
    assert result.value.resolved_by == "user-7"
    (approved,) = event_repo.find_caused_by(
        causation_id=requested.id, stages=(EventStage.APPROVED,)
    )
    assert approved.type == "entities.delete.approved"
    assert approved.metadata["proposalId"] == proposal.id
    assert approved.metadata["resolvedBy"] == "user-7"
    assert approved.metadata["workspaceId"] == "ws-1"
    assert approved.correlation_id == requested.correlation_id
    assert manager.list_pending(meta=_meta()).value == ()


def test_reject_appends_rejected_event() -> None:
    manager, _, event_repo, requested = _setup()
    proposal = _open(manager, requested).value

    result = manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.REJECT,
        resolved_by="user-7",
    )

    assert result.value.status is ProposalStatus.REJECTED
    caused = event_repo.find_caused_by(causation_id=requested.id)
    assert [item.type for item in caused] == ["entities.delete.rejected"]


def test_second_resolution_fails_without_state_change() -> None:
    manager, _, event_repo, requested = _setup()
    proposal = _open(manager, requested).value
    manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.APPROVE,
        resolved_by="user-7",
    )

    second = manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.REJECT,
        resolved_by="user-8",
    )

    assert second.ok is False
    assert second.errors[0].code == codes.PROPOSAL_ALREADY_RESOLVED
    assert manager.get_proposal(meta=_meta(), proposal_id=proposal.id).value.status is (
        ProposalStatus.VALIDATED
    )
    assert len(event_repo.find_caused_by(causation_id=requested.id)) == 1


def test_unknown_proposal_is_not_found() -> None:
    manager, _, _, _ = _setup()

    result = manager.resolve(
        meta=_meta(),
        proposal_id="01ARZ3NDEKTSV4RRFFQ69G5FAV",
        decision=ProposalDecision.APPROVE,
        resolved_by="user-7",
    )

    assert result.ok is False
    assert result.errors[0].code == codes.NOT_FOUND


def test_failed_resolution_append_leaves_proposal_untouched() -> None:
    events = _BrokenAppendRepository()
    manager, _, _, requested = _setup(events)
    proposal = _open(manager, requested).value
    events.refuse = True

    result = manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.APPROVE,
        resolved_by="user-7",
    )

    assert result.ok is False
    assert result.errors[0].code == codes.DEPENDENCY_FAILURE
    stored = manager.get_proposal(meta=_meta(), proposal_id=proposal.id).value
    assert stored == proposal


def test_recorded_decision_is_settled_by_the_next_resolve() -> None:
    """A proposal whose row update failed catches up with its decision event."""
    proposals = _FlakyResolutionRepository()
    manager, _, event_repo, requested = _setup(proposals=proposals)
    proposal = _open(manager, requested).value
    proposals.fail_next = True

    first = manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.APPROVE,
        resolved_by="user-7",
        reason="ship it",
    )
    assert first.ok is False
    assert manager.get_proposal(meta=_meta(), proposal_id=proposal.id).value.is_pending

    second = manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.REJECT,
        resolved_by="user-8",
    )

    assert second.ok is False
    assert second.errors[0].code == codes.PROPOSAL_ALREADY_RESOLVED
    stored = manager.get_proposal(meta=_meta(), proposal_id=proposal.id).value
    assert stored.status is ProposalStatus.VALIDATED
    assert stored.resolved_by == "user-7"
    assert stored.resolution_reason == "ship it"
    caused = event_repo.find_caused_by(causation_id=requested.id)
    assert [item.type for item in caused] == ["entities.delete.approved"]


def test_open_proposal_rejects_overlong_reason() -> None:
    manager, _, _, requested = _setup()

    result = manager.open_proposal(
        meta=_meta(),
        requested=requested,
        reason="x" * (ProposalManagerSettings().max_reason_length + 1),
        decision={"requiresValidation": True},
    )

    assert result.ok is False
    assert result.errors[0].code == codes.INVALID_ARGUMENT
    assert manager.find_by_originating_event(
        meta=_meta(), event_id=requested.id
    ).value is None


def test_resolve_requires_resolver_identity() -> None:
    manager, _, _, requested = _setup()
    proposal = _open(manager, requested).value

    result = manager.resolve(
        meta=_meta(),
        proposal_id=proposal.id,
        decision=ProposalDecision.APPROVE,
        resolved_by=" ",
    )

    assert result.ok is False
    assert result.errors[0].code == codes.INVALID_ARGUMENT
