"""Concrete Webhook Broker implementation."""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import (
    Envelope,
    EnvelopeKind,
    EnvelopeMeta,
    failure,
    new_meta,
    success,
    utc_now,
    validate_meta,
)
from packages.synap_shared.errors import (
    ErrorDetail,
    codes,
    dependency_error,
    describe_exception,
    not_found_error,
    validation_error,
)
from packages.synap_shared.http import HttpClient, HttpRequestError, HttpStatusError
from packages.synap_shared.ids import generate_ulid_str
from packages.synap_shared.logging import (
    fields,
    get_logger,
    log_context,
    public_api_instrumented,
)
from resources.substrates.postgres.errors import normalize_postgres_error
from services.action.dispatcher.domain import NonRetryableHandlerError
from services.action.dispatcher.patterns import EventPattern
from services.action.webhook_broker.component import SERVICE_COMPONENT_ID
from services.action.webhook_broker.config import (
    WebhookBrokerSettings,
    resolve_webhook_broker_settings,
)
from services.action.webhook_broker.data import (
    PostgresWebhookRepository,
    WebhookBrokerPostgresRuntime,
)
from services.action.webhook_broker.domain import (
    DeliveryAttempt,
    DeliveryFailure,
    DeliveryReport,
    DeliveryStatus,
    WebhookSubscription,
)
from services.action.webhook_broker.interfaces import WebhookRepository
from services.action.webhook_broker.service import WebhookBroker
from services.action.webhook_broker.signing import (
    EVENT_ID_HEADER,
    EVENT_TYPE_HEADER,
    SIGNATURE_HEADER,
    sign_payload,
)
from services.state.event_store.domain import Event
from services.state.event_store.service import EventPublisher
from services.state.event_store.taxonomy import EventStage

_LOGGER = get_logger(__name__)

_SYSTEM_PRINCIPAL = "system:webhook-broker"
_INACTIVE_SUBSCRIPTION = "subscription inactive or removed"


class DefaultWebhookBroker(WebhookBroker):
    """Webhook Broker over the attempt ledger, the event log and httpx.

    The dispatcher handler only writes attempt #1. All network I/O happens in
    ``process_due``, which leases due attempts, posts them on a bounded pool
    and records each outcome together with the next scheduled attempt.
    """

    def __init__(
        self,
        *,
        settings: WebhookBrokerSettings,
        repository: WebhookRepository,
        publisher: EventPublisher,
        http: HttpClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._publisher = publisher
        self._owns_http = http is None
        self._http = http or HttpClient(timeout_seconds=settings.request_timeout_seconds)
        self._clock = clock
        self._pool = ThreadPoolExecutor(
            max_workers=settings.delivery_pool_size,
            thread_name_prefix="webhook-delivery",
        )

    @classmethod
    def from_settings(
        cls,
        *,
        settings: SynapSettings,
        publisher: EventPublisher,
        runtime: WebhookBrokerPostgresRuntime | None = None,
        http: HttpClient | None = None,
    ) -> "DefaultWebhookBroker":
        resolved_runtime = runtime or WebhookBrokerPostgresRuntime.from_settings(settings)
        return cls(
            settings=resolve_webhook_broker_settings(settings),
            repository=PostgresWebhookRepository(resolved_runtime.schema_sessions),
            publisher=publisher,
            http=http,
        )

    @property
    def settings(self) -> WebhookBrokerSettings:
        return self._settings

    def handle_validated(self, event: Event) -> int:
        if event.event_type.stage is not EventStage.VALIDATED:
            raise NonRetryableHandlerError(f"webhook broker received {event.type}")
        now = self._clock()
        scheduled = 0
        with log_context({fields.EVENT_ID: event.id, fields.EVENT_TYPE: event.type}):
            if event.workspace_id == "":
                _LOGGER.warning("Validated event has no workspace; no webhooks scheduled")
                return 0
            for subscription in self._repository.list_active_subscriptions():
                if not _subscribed(subscription, event):
                    continue
                created = self._repository.schedule(
                    attempt=DeliveryAttempt(
                        id=generate_ulid_str(),
                        subscription_id=subscription.id,
                        event_id=event.id,
                        attempt_number=1,
                        status=DeliveryStatus.PENDING,
                        next_attempt_at=now
                        + timedelta(seconds=self._settings.retry_schedule_seconds[0]),
                        created_at=now,
                    )
                )
                if created:
                    scheduled += 1
            if scheduled:
                _LOGGER.info("Scheduled %d webhook delivery(ies)", scheduled)
        return scheduled

    def process_due(self, *, now: datetime | None = None) -> DeliveryReport:
        claimed_at = now or self._clock()
        attempts = self._repository.claim_due(
            now=claimed_at,
            limit=self._settings.batch_size,
            lease_seconds=self._settings.claim_lease_seconds,
        )
        if not attempts:
            return DeliveryReport()
        outcomes = list(self._pool.map(self._deliver_claimed, attempts))
        return DeliveryReport(
            claimed=len(attempts),
            succeeded=outcomes.count(DeliveryStatus.SUCCESS),
            failed=outcomes.count(DeliveryStatus.FAILED),
            dead_lettered=outcomes.count(DeliveryStatus.DEAD_LETTERED),
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def add_subscription(
        self,
        *,
        meta: EnvelopeMeta,
        workspace_id: str,
        url: str,
        event_type_patterns: Sequence[str],
        secret: str,
        active: bool = True,
    ) -> Envelope[WebhookSubscription]:
        errors = _meta_errors(meta)
        if workspace_id.strip() == "":
            errors.append(
                validation_error("workspace_id is required", code=codes.INVALID_ARGUMENT)
            )
        if not url.startswith(("http://", "https://")):
            errors.append(
                validation_error(
                    "url must be an http(s) URL",
                    code=codes.INVALID_ARGUMENT,
                    metadata={"url": url},
                )
            )
        if secret == "":
            errors.append(validation_error("secret is required", code=codes.INVALID_ARGUMENT))
        errors.extend(_pattern_errors(event_type_patterns))
        if errors:
            return failure(meta=meta, errors=errors)

        subscription = WebhookSubscription(
            id=generate_ulid_str(),
            workspace_id=workspace_id,
            url=url,
            event_type_patterns=tuple(pattern.strip() for pattern in event_type_patterns),
            secret=secret,
            active=active,
            created_at=self._clock(),
        )
        try:
            stored = self._repository.add_subscription(subscription=subscription)
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="add_subscription", exc=exc)
        with log_context({fields.SUBSCRIPTION_ID: stored.id}):
            _LOGGER.info("Webhook subscription added for workspace %s", workspace_id)
        return success(meta=meta, payload=stored)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("subscription_id",),
    )
    def set_subscription_active(
        self, *, meta: EnvelopeMeta, subscription_id: str, active: bool
    ) -> Envelope[WebhookSubscription]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            updated = self._repository.set_active(
                subscription_id=subscription_id, active=active
            )
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(
                meta=meta, operation="set_subscription_active", exc=exc
            )
        if updated is None:
            return failure(
                meta=meta,
                errors=[
                    not_found_error(
                        "subscription not found",
                        code=codes.NOT_FOUND,
                        metadata={"subscription_id": subscription_id},
                    )
                ],
            )
        return success(meta=meta, payload=updated)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("event_id", "subscription_id"),
    )
    def list_attempts(
        self,
        *,
        meta: EnvelopeMeta,
        event_id: str | None = None,
        subscription_id: str | None = None,
    ) -> Envelope[tuple[DeliveryAttempt, ...]]:
        errors = _meta_errors(meta)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            attempts = self._repository.list_attempts(
                event_id=event_id, subscription_id=subscription_id
            )
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="list_attempts", exc=exc)
        return success(meta=meta, payload=attempts)

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        if self._owns_http:
            self._http.close()

    def _deliver_claimed(self, attempt: DeliveryAttempt) -> DeliveryStatus | None:
        with log_context(
            {
                fields.SUBSCRIPTION_ID: attempt.subscription_id,
                fields.EVENT_ID: attempt.event_id,
                fields.ATTEMPT: attempt.attempt_number,
            }
        ):
            try:
                return self._deliver(attempt)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error(
                    "Recording delivery outcome failed; attempt stays leased: %s",
                    describe_exception(exc),
                    exc_info=exc,
                )
                return None

    def _deliver(self, attempt: DeliveryAttempt) -> DeliveryStatus:
        subscription = self._repository.get_subscription(
            subscription_id=attempt.subscription_id
        )
        if subscription is None or not subscription.active:
            _LOGGER.info("Skipping delivery: %s", _INACTIVE_SUBSCRIPTION)
            self._repository.complete(
                attempt_id=attempt.id,
                status=DeliveryStatus.FAILED,
                response_status=None,
                last_error=_INACTIVE_SUBSCRIPTION,
                completed_at=self._clock(),
            )
            return DeliveryStatus.FAILED

        try:
            response_status = self._post(subscription, attempt)
        except DeliveryFailure as exc:
            return self._record_failure(attempt, exc)

        self._repository.complete(
            attempt_id=attempt.id,
            status=DeliveryStatus.SUCCESS,
            response_status=response_status,
            last_error="",
            completed_at=self._clock(),
        )
        _LOGGER.info("Webhook delivered with HTTP %d", response_status)
        return DeliveryStatus.SUCCESS

    def _post(self, subscription: WebhookSubscription, attempt: DeliveryAttempt) -> int:
        event = self._load_event(attempt.event_id)
        body = build_delivery_body(event, subscription_id=subscription.id, attempt=attempt)
        try:
            response = self._http.post(
                subscription.url,
                content=body,
                headers={
                    "Content-Type": "application/json",
                    SIGNATURE_HEADER: sign_payload(subscription.secret, body),
                    EVENT_ID_HEADER: event.id,
                    EVENT_TYPE_HEADER: event.type,
                },
                timeout=self._settings.request_timeout_seconds,
            )
        except HttpStatusError as exc:
            raise DeliveryFailure(str(exc), status_code=exc.status_code) from exc
        except HttpRequestError as exc:
            raise DeliveryFailure(str(exc)) from exc
        if not response.is_success:
            raise DeliveryFailure(
                f"HTTP {response.status_code} for POST {subscription.url}",
                status_code=response.status_code,
            )
        return response.status_code

    def _load_event(self, event_id: str) -> Event:
        loaded = self._publisher.get_event(
            meta=new_meta(
                kind=EnvelopeKind.COMMAND,
                source=str(SERVICE_COMPONENT_ID),
                principal=_SYSTEM_PRINCIPAL,
            ),
            event_id=event_id,
        )
        if not loaded.ok or loaded.value is None:
            raise DeliveryFailure(
                "event lookup failed: "
                + "; ".join(error.message for error in loaded.errors)
            )
        return loaded.value

    def _record_failure(
        self, attempt: DeliveryAttempt, exc: DeliveryFailure
    ) -> DeliveryStatus:
        now = self._clock()
        schedule = self._settings.retry_schedule_seconds
        if attempt.attempt_number >= len(schedule):
            self._repository.complete(
                attempt_id=attempt.id,
                status=DeliveryStatus.DEAD_LETTERED,
                response_status=exc.status_code,
                last_error=str(exc),
                completed_at=now,
            )
            _LOGGER.error(
                "Webhook delivery dead-lettered after %d attempt(s): %s",
                attempt.attempt_number,
                exc,
            )
            return DeliveryStatus.DEAD_LETTERED

        next_attempt = DeliveryAttempt(
            id=generate_ulid_str(),
            subscription_id=attempt.subscription_id,
            event_id=attempt.event_id,
            attempt_number=attempt.attempt_number + 1,
            status=DeliveryStatus.PENDING,
            next_attempt_at=now + timedelta(seconds=schedule[attempt.attempt_number]),
            created_at=now,
        )
        self._repository.complete(
            attempt_id=attempt.id,
            status=DeliveryStatus.FAILED,
            response_status=exc.status_code,
            last_error=str(exc),
            completed_at=now,
            next_attempt=next_attempt,
        )
        _LOGGER.warning(
            "Webhook delivery failed; attempt %d scheduled at %s: %s",
            next_attempt.attempt_number,
            next_attempt.next_attempt_at.isoformat(),
            exc,
        )
        return DeliveryStatus.FAILED

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


def build_delivery_body(
    event: Event, *, subscription_id: str, attempt: DeliveryAttempt
) -> bytes:
    """Serialize the event wire JSON plus the ``delivery`` envelope field."""
    payload = event.to_wire()
    payload["delivery"] = {
        "subscriptionId": subscription_id,
        "attempt": attempt.attempt_number,
    }
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _subscribed(subscription: WebhookSubscription, event: Event) -> bool:
    if subscription.workspace_id != event.workspace_id:
        return False
    return any(
        EventPattern.compile(pattern).matches(event.type)
        for pattern in subscription.event_type_patterns
    )


def _pattern_errors(patterns: Sequence[str]) -> list[ErrorDetail]:
    if len(patterns) == 0:
        return [
            validation_error(
                "at least one event type pattern is required",
                code=codes.INVALID_ARGUMENT,
            )
        ]
    errors: list[ErrorDetail] = []
    for pattern in patterns:
        try:
            EventPattern.compile(pattern)
        except ValueError as exc:
            errors.append(
                validation_error(
                    str(exc),
                    code=codes.INVALID_ARGUMENT,
                    metadata={"pattern": pattern},
                )
            )
    return errors


def _meta_errors(meta: EnvelopeMeta) -> list[ErrorDetail]:
    try:
        validate_meta(meta)
    except ValueError as exc:
        return [validation_error(str(exc), code=codes.INVALID_ARGUMENT)]
    return []


def _is_postgres_error(exc: Exception) -> bool:
    module = type(exc).__module__
    return module.startswith("sqlalchemy") or module.startswith("psycopg")
