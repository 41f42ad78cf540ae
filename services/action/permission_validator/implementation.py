"""Concrete Permission Validator implementation."""

from __future__ import annotations

from typing import Any

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import (
    Envelope,
    EnvelopeKind,
    EnvelopeMeta,
    failure,
    new_meta,
    success,
    validate_meta,
)
from packages.synap_shared.errors import (
    ErrorDetail,
    codes,
    dependency_error,
    validation_error,
)
from packages.synap_shared.logging import (
    fields,
    get_logger,
    log_context,
    public_api_instrumented,
)
from services.action.dispatcher.domain import NonRetryableHandlerError
from services.action.permission_validator.component import SERVICE_COMPONENT_ID
from services.action.permission_validator.config import (
    PermissionValidatorSettings,
    resolve_permission_validator_settings,
)
from services.action.permission_validator.data import (
    PermissionValidatorPostgresRuntime,
    PostgresWorkspacePolicyRepository,
)
from services.action.permission_validator.domain import (
    POLICY_DECISION_KEY,
    PolicyDecision,
    ValidationOutcome,
    ValidationPolicyError,
    ValidationResult,
    WorkspacePolicy,
)
from services.action.permission_validator.interfaces import (
    OwnershipResolver,
    WorkspacePolicyRepository,
)
from services.action.permission_validator.policy import PolicyResolver, is_ai_originated
from services.action.permission_validator.service import PermissionValidator
from services.action.proposal_manager.service import ProposalManager
from services.state.event_store.domain import (
    Event,
    EventSource,
    RequestedEvent,
    append_outcome,
    decode_stage_event,
    follow_up_request,
    require_ok,
)
from services.state.event_store.service import EventPublisher
from services.state.event_store.taxonomy import EventStage

_LOGGER = get_logger(__name__)

_DECIDED_STAGES = (EventStage.APPROVED, EventStage.REJECTED)


class DefaultPermissionValidator(PermissionValidator):
    """Policy gate between ``.requested`` events and domain workers.

    Auto-approvals and denials are appended as sibling stage events caused by
    the request; everything else becomes a pending proposal. Redelivery of a
    request that already has a decision or a proposal changes nothing.
    """

    def __init__(
        self,
        *,
        settings: PermissionValidatorSettings,
        publisher: EventPublisher,
        proposals: ProposalManager,
        workspace_policies: WorkspacePolicyRepository,
        ownership: OwnershipResolver,
    ) -> None:
        self._settings = settings
        self._publisher = publisher
        self._proposals = proposals
        self._workspace_policies = workspace_policies
        self._resolver = PolicyResolver(
            settings=settings,
            workspace_policies=workspace_policies,
            ownership=ownership,
        )

    @classmethod
    def from_settings(
        cls,
        *,
        settings: SynapSettings,
        publisher: EventPublisher,
        proposals: ProposalManager,
        ownership: OwnershipResolver,
        runtime: PermissionValidatorPostgresRuntime | None = None,
    ) -> "DefaultPermissionValidator":
        resolved_runtime = runtime or PermissionValidatorPostgresRuntime.from_settings(
            settings
        )
        return cls(
            settings=resolve_permission_validator_settings(settings),
            publisher=publisher,
            proposals=proposals,
            workspace_policies=PostgresWorkspacePolicyRepository(
                resolved_runtime.schema_sessions
            ),
            ownership=ownership,
        )

    def handle_requested(self, event: Event) -> ValidationResult:
        view = decode_stage_event(event)
        if not isinstance(view, RequestedEvent):
            raise NonRetryableHandlerError(
                f"permission validator received {event.type}"
            )
        meta = self._handler_meta(event)

        with log_context({fields.EVENT_ID: event.id, fields.EVENT_TYPE: event.type}):
            existing = self._existing_result(meta, event)
            if existing is not None:
                _LOGGER.info("Request already handled; skipping")
                return existing

            decision = self._decide(event)
            if decision.denied:
                return self._append_decision(
                    meta, event, decision, stage=EventStage.REJECTED
                )
            if not decision.requires_validation:
                return self._append_decision(
                    meta, event, decision, stage=EventStage.APPROVED
                )

            proposal = require_ok(
                self._proposals.open_proposal(
                    meta=meta,
                    requested=event,
                    reason=decision.reason,
                    decision=decision.to_metadata(),
                ),
                operation="open_proposal",
            )
            return ValidationResult(
                event_id=event.id,
                outcome=ValidationOutcome.PROPOSED,
                decision=decision,
                proposal_id=proposal.id,
            )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def evaluate(self, *, meta: EnvelopeMeta, event: Event) -> Envelope[PolicyDecision]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        if event.event_type.stage is not EventStage.REQUESTED:
            return failure(
                meta=meta,
                errors=[
                    validation_error(
                        "only requested events carry a policy decision",
                        code=codes.INVALID_ARGUMENT,
                        metadata={"type": event.type},
                    )
                ],
            )
        try:
            decision = self._decide(event)
        except ValidationPolicyError as exc:
            return failure(
                meta=meta,
                errors=[
                    dependency_error(
                        str(exc),
                        code=codes.VALIDATION_POLICY_ERROR,
                        metadata={"event_id": event.id},
                    )
                ],
            )
        return success(meta=meta, payload=decision)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def put_workspace_policy(
        self, *, meta: EnvelopeMeta, policy: WorkspacePolicy
    ) -> Envelope[WorkspacePolicy]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            stored = self._workspace_policies.put(policy=policy)
        except Exception as exc:  # noqa: BLE001
            return _dependency_failure(meta=meta, operation="put_workspace_policy", exc=exc)
        _LOGGER.info("Workspace policy updated: workspace_id=%s", policy.workspace_id)
        return success(meta=meta, payload=stored)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def get_workspace_policy(
        self, *, meta: EnvelopeMeta, workspace_id: str
    ) -> Envelope[WorkspacePolicy | None]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            policy = self._workspace_policies.get(workspace_id=workspace_id)
        except Exception as exc:  # noqa: BLE001
            return _dependency_failure(meta=meta, operation="get_workspace_policy", exc=exc)
        return success(meta=meta, payload=policy)

    def _decide(self, event: Event) -> PolicyDecision:
        parsed = event.event_type
        return self._resolver.resolve(
            workspace_id=event.workspace_id,
            table=parsed.resource,
            action=parsed.action,
            actor_id=event.actor_id,
            subject_id=event.subject_id,
            subject_type=event.subject_type,
            ai_originated=is_ai_originated(event, self._settings),
        )

    def _existing_result(
        self, meta: EnvelopeMeta, event: Event
    ) -> ValidationResult | None:
        decided = require_ok(
            self._publisher.find_caused_by(
                meta=meta, causation_id=event.id, stages=_DECIDED_STAGES
            ),
            operation="find_caused_by",
        )
        if decided:
            follow_up = decided[0]
            outcome = (
                ValidationOutcome.APPROVED
                if follow_up.event_type.stage is EventStage.APPROVED
                else ValidationOutcome.REJECTED
            )
            return ValidationResult(
                event_id=event.id,
                outcome=outcome,
                follow_up_event_id=follow_up.id,
            )
        lookup = self._proposals.find_by_originating_event(meta=meta, event_id=event.id)
        if not lookup.ok:
            summary = "; ".join(f"{err.code}: {err.message}" for err in lookup.errors)
            raise ValidationPolicyError(f"proposal lookup failed: {summary}")
        if lookup.value is not None:
            return ValidationResult(
                event_id=event.id,
                outcome=ValidationOutcome.ALREADY_HANDLED,
                proposal_id=lookup.value.id,
            )
        return None

    def _append_decision(
        self,
        meta: EnvelopeMeta,
        event: Event,
        decision: PolicyDecision,
        *,
        stage: EventStage,
    ) -> ValidationResult:
        metadata: dict[str, Any] = {POLICY_DECISION_KEY: decision.to_metadata()}
        if decision.denied:
            metadata["errorCode"] = codes.PERMISSION_DENIED
        appended = append_outcome(
            self._publisher,
            meta=meta,
            request=follow_up_request(
                event,
                stage=stage,
                actor_id=self._settings.system_actor_id,
                source=EventSource.SYSTEM,
                metadata=metadata,
            ),
        )
        recorded = appended.event_type.stage
        if recorded is not stage:
            _LOGGER.warning(
                "Request already %s; %s decision dropped", recorded.value, stage.value
            )
        else:
            _LOGGER.info(
                "Request %s by %s policy: %s",
                stage.value,
                decision.source.value,
                decision.reason,
            )
        return ValidationResult(
            event_id=event.id,
            outcome=(
                ValidationOutcome.APPROVED
                if recorded is EventStage.APPROVED
                else ValidationOutcome.REJECTED
            ),
            decision=decision,
            follow_up_event_id=appended.id,
        )

    def _handler_meta(self, event: Event) -> EnvelopeMeta:
        return new_meta(
            kind=EnvelopeKind.EVENT,
            source=str(SERVICE_COMPONENT_ID),
            principal=self._settings.system_actor_id,
            trace_id=event.correlation_id or event.id,
        )


def _meta_errors(meta: EnvelopeMeta) -> list[ErrorDetail]:
    try:
        validate_meta(meta)
    except ValueError as exc:
        return [validation_error(str(exc), code=codes.INVALID_ARGUMENT)]
    return []


def _dependency_failure(
    *, meta: EnvelopeMeta, operation: str, exc: Exception
) -> Envelope[Any]:
    _LOGGER.warning(
        "%s failed due to dependency error: exception_type=%s",
        operation,
        type(exc).__name__,
        exc_info=exc,
    )
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
