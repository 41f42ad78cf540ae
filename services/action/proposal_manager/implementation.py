"""Concrete Proposal Manager implementation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping

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
from services.action.proposal_manager.component import SERVICE_COMPONENT_ID
from services.action.proposal_manager.config import (
    ProposalManagerSettings,
    resolve_proposal_manager_settings,
)
from services.action.proposal_manager.data import (
    PostgresProposalRepository,
    ProposalManagerPostgresRuntime,
)
from services.action.proposal_manager.domain import (
    POLICY_DECISION_KEY,
    RESOLUTION_REASON_KEY,
    RESOLVED_BY_KEY,
    Proposal,
    ProposalDecision,
    ProposalRequest,
    ProposalStatus,
)
from services.action.proposal_manager.interfaces import ProposalRepository
from services.action.proposal_manager.service import ProposalManager
from services.state.event_store.domain import (
    PROPOSAL_ID_KEY,
    Event,
    EventSource,
    follow_up_request,
)
from services.state.event_store.service import EventPublisher
from services.state.event_store.taxonomy import EventStage

_LOGGER = get_logger(__name__)


class DefaultProposalManager(ProposalManager):
    """Proposal Manager over a proposal repository and the event publisher.

    Resolution appends the decision event first. The event store accepts one
    decision per request, so concurrent resolvers race there and exactly one
    wins. The proposal row then moves out of ``pending`` to match the
    recorded event and never moves back.
    """

    def __init__(
        self,
        *,
        settings: ProposalManagerSettings,
        repository: ProposalRepository,
        publisher: EventPublisher,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._publisher = publisher
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        *,
        settings: SynapSettings,
        publisher: EventPublisher,
        runtime: ProposalManagerPostgresRuntime | None = None,
    ) -> "DefaultProposalManager":
        resolved_runtime = runtime or ProposalManagerPostgresRuntime.from_settings(
            settings
        )
        return cls(
            settings=resolve_proposal_manager_settings(settings),
            repository=PostgresProposalRepository(resolved_runtime.schema_sessions),
            publisher=publisher,
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def open_proposal(
        self,
        *,
        meta: EnvelopeMeta,
        requested: Event,
        reason: str,
        decision: Mapping[str, Any],
    ) -> Envelope[Proposal]:
        errors = _meta_errors(meta)
        if len(reason) > self._settings.max_reason_length:
            errors.append(
                validation_error(
                    "proposal reason is too long",
                    code=codes.INVALID_ARGUMENT,
                    metadata={"max_length": self._settings.max_reason_length},
                )
            )
        if errors:
            return failure(meta=meta, errors=errors)
        event_type = requested.event_type
        if event_type.stage is not EventStage.REQUESTED:
            return failure(
                meta=meta,
                errors=[
                    validation_error(
                        "proposals can only be opened for requested events",
                        code=codes.INVALID_ARGUMENT,
                        metadata={"type": requested.type},
                    )
                ],
            )
        candidate = Proposal(
            id=generate_ulid_str(),
            workspace_id=requested.workspace_id,
            target_type=event_type.resource,
            status=ProposalStatus.PENDING,
            originating_event_id=requested.id,
            request=ProposalRequest(
                event_type=requested.type,
                subject_id=requested.subject_id,
                data=dict(requested.data),
            ),
            reason=reason,
            decision=dict(decision),
            created_at=self._clock(),
        )
        try:
            stored = self._repository.insert_if_absent(proposal=candidate)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="open_proposal", exc=exc)
        with log_context(
            {fields.PROPOSAL_ID: stored.id, fields.EVENT_ID: requested.id}
        ):
            if stored.id == candidate.id:
                _LOGGER.info("Proposal opened: %s", reason)
            else:
                _LOGGER.info("Proposal already open for request")
        return success(meta=meta, payload=stored)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("proposal_id",),
    )
    def resolve(
        self,
        *,
        meta: EnvelopeMeta,
        proposal_id: str,
        decision: ProposalDecision,
        resolved_by: str,
        reason: str | None = None,
    ) -> Envelope[Proposal]:
        errors = _meta_errors(meta)
        if resolved_by.strip() == "":
            errors.append(
                validation_error("resolved_by is required", code=codes.INVALID_ARGUMENT)
            )
        if reason is not None and len(reason) > self._settings.max_reason_length:
            errors.append(
                validation_error(
                    "resolution reason is too long", code=codes.INVALID_ARGUMENT
                )
            )
        if errors:
            return failure(meta=meta, errors=errors)

        try:
            proposal = self._repository.get(proposal_id=proposal_id)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="resolve", exc=exc)
        if proposal is None:
            return failure(meta=meta, errors=[_not_found(proposal_id)])
        if not proposal.is_pending:
            return failure(meta=meta, errors=[_already_resolved(proposal)])

        originating = self._publisher.get_event(
            meta=meta, event_id=proposal.originating_event_id
        )
        if not originating.ok or originating.value is None:
            return failure(meta=meta, errors=list(originating.errors))

        stage = (
            EventStage.APPROVED
            if decision is ProposalDecision.APPROVE
            else EventStage.REJECTED
        )
        appended = self._publisher.append(
            meta=meta,
            request=follow_up_request(
                originating.value,
                stage=stage,
                actor_id=resolved_by,
                source=EventSource.USER_API,
                metadata={
                    PROPOSAL_ID_KEY: proposal.id,
                    RESOLVED_BY_KEY: resolved_by,
                    RESOLUTION_REASON_KEY: reason,
                    POLICY_DECISION_KEY: proposal.decision,
                },
            ),
        )
        with log_context({fields.PROPOSAL_ID: proposal.id}):
            if not appended.ok:
                if not any(
                    err.code == codes.OUTCOME_ALREADY_RECORDED for err in appended.errors
                ):
                    return failure(meta=meta, errors=list(appended.errors))
                _LOGGER.info("Request already decided; settling proposal from its event")
                settled = self._settle(meta=meta, proposal=proposal)
                if not settled.ok:
                    return settled
                return failure(meta=meta, errors=[_already_resolved(settled.value)])

            settled = self._mark_resolved(
                meta=meta, proposal=proposal, decided=appended.value
            )
            if settled.ok:
                _LOGGER.info(
                    "Proposal resolved as %s by %s", decision.status.value, resolved_by
                )
            return settled

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("proposal_id",),
    )
    def get_proposal(self, *, meta: EnvelopeMeta, proposal_id: str) -> Envelope[Proposal]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            proposal = self._repository.get(proposal_id=proposal_id)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="get_proposal", exc=exc)
        if proposal is None:
            return failure(meta=meta, errors=[_not_found(proposal_id)])
        return success(meta=meta, payload=proposal)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("event_id",),
    )
    def find_by_originating_event(
        self, *, meta: EnvelopeMeta, event_id: str
    ) -> Envelope[Proposal | None]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            proposal = self._repository.get_by_originating_event(event_id=event_id)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(
                meta=meta, operation="find_by_originating_event", exc=exc
            )
        return success(meta=meta, payload=proposal)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def list_pending(
        self, *, meta: EnvelopeMeta, workspace_id: str | None = None
    ) -> Envelope[tuple[Proposal, ...]]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            pending = self._repository.list_pending(
                workspace_id=workspace_id, limit=self._settings.list_pending_limit
            )
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="list_pending", exc=exc)
        return success(meta=meta, payload=pending)

    def _settle(self, *, meta: EnvelopeMeta, proposal: Proposal) -> Envelope[Proposal]:
        """Bring a proposal in line with the decision already recorded for it."""
        decided = self._publisher.find_caused_by(
            meta=meta,
            causation_id=proposal.originating_event_id,
            stages=(EventStage.APPROVED, EventStage.REJECTED),
        )
        if not decided.ok:
            return failure(meta=meta, errors=list(decided.errors))
        recorded = next(
            (
                item
                for item in decided.value or ()
                if item.metadata.get(PROPOSAL_ID_KEY) == proposal.id
            ),
            None,
        )
        if recorded is None:
            return success(meta=meta, payload=proposal)
        return self._mark_resolved(meta=meta, proposal=proposal, decided=recorded)

    def _mark_resolved(
        self, *, meta: EnvelopeMeta, proposal: Proposal, decided: Event
    ) -> Envelope[Proposal]:
        """Move ``proposal`` out of ``pending`` to match its decision event.

        The event is the source of truth, so this step only ever moves
        forward. If it fails the next ``resolve`` call settles it.
        """
        status = (
            ProposalStatus.VALIDATED
            if decided.event_type.stage is EventStage.APPROVED
            else ProposalStatus.REJECTED
        )
        reason = decided.metadata.get(RESOLUTION_REASON_KEY)
        try:
            resolved = self._repository.compare_and_set_resolution(
                proposal_id=proposal.id,
                status=status,
                resolved_by=str(decided.metadata.get(RESOLVED_BY_KEY) or decided.actor_id),
                resolution_reason=reason if isinstance(reason, str) else None,
                resolved_at=decided.timestamp,
            )
            if resolved is None:
                resolved = self._repository.get(proposal_id=proposal.id) or proposal
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error(
                "Decision %s recorded but proposal update failed", decided.id
            )
            return self._dependency_failure(meta=meta, operation="resolve", exc=exc)
        return success(meta=meta, payload=resolved)

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


def _not_found(proposal_id: str) -> ErrorDetail:
    return not_found_error(
        "proposal not found",
        code=codes.NOT_FOUND,
        metadata={"proposal_id": proposal_id},
    )


def _already_resolved(proposal: Proposal) -> ErrorDetail:
    return conflict_error(
        "proposal already resolved",
        code=codes.PROPOSAL_ALREADY_RESOLVED,
        metadata={"proposal_id": proposal.id, "status": proposal.status.value},
    )


def _is_postgres_error(exc: Exception) -> bool:
    module = type(exc).__module__
    return module.startswith("sqlalchemy") or module.startswith("psycopg")
