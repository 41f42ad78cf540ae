"""Composition root wiring every pipeline service into one process."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from sqlalchemy import Engine, MetaData

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.http import HttpClient
from packages.synap_shared.logging import get_logger
from resources.substrates.postgres import (
    create_postgres_engine,
    resolve_postgres_settings,
)
from services.action.dispatcher import (
    DefaultDispatcher,
    DispatcherPostgresRuntime,
    InMemoryDeadLetterRepository,
    InProcessDispatchTransport,
    PostgresDeadLetterRepository,
)
from services.action.dispatcher.data import metadata as dispatcher_metadata
from services.action.permission_validator import (
    DefaultPermissionValidator,
    InMemoryWorkspacePolicyRepository,
    PermissionValidatorPostgresRuntime,
    resolve_permission_validator_settings,
)
from services.action.permission_validator.data import (
    metadata as permission_validator_metadata,
)
from services.action.proposal_manager import (
    DefaultProposalManager,
    InMemoryProposalRepository,
    ProposalManagerPostgresRuntime,
    resolve_proposal_manager_settings,
)
from services.action.proposal_manager.data import metadata as proposal_metadata
from services.action.webhook_broker import (
    DefaultWebhookBroker,
    DeliveryPoller,
    InMemoryWebhookRepository,
    WebhookBrokerPostgresRuntime,
    resolve_webhook_broker_settings,
)
from services.action.webhook_broker.data import metadata as webhook_metadata
from services.state.event_store import (
    DefaultEventPublisher,
    DispatchSweeper,
    EventStorePostgresRuntime,
    InMemoryEventRepository,
    resolve_event_store_settings,
)
from services.state.event_store.data import metadata as event_store_metadata
from services.state.projection_worker import (
    DefaultProjectionService,
    InMemoryProjectionRepository,
    ProjectionWorkerPostgresRuntime,
    resolve_projection_worker_settings,
)
from services.state.projection_worker.data import metadata as projection_metadata

_LOGGER = get_logger(__name__)

Backend = Literal["memory", "postgres"]

VALIDATOR_SUBSCRIPTION = "permission-validator"
BROKER_SUBSCRIPTION = "webhook-broker"


def service_metadata() -> dict[str, MetaData]:
    """Map each service schema name to the metadata declaring its tables."""
    return {
        str(metadata.schema): metadata
        for metadata in (
            event_store_metadata,
            projection_metadata,
            dispatcher_metadata,
            permission_validator_metadata,
            proposal_metadata,
            webhook_metadata,
        )
    }


@dataclass
class Pipeline:
    """Every wired service plus the background loops that drive them."""

    settings: SynapSettings
    backend: Backend
    dispatcher: DefaultDispatcher
    publisher: DefaultEventPublisher
    proposals: DefaultProposalManager
    validator: DefaultPermissionValidator
    projections: DefaultProjectionService
    broker: DefaultWebhookBroker
    sweeper: DispatchSweeper
    poller: DeliveryPoller
    engine: Engine | None = None

    def start(self, *, background_loops: bool = True) -> None:
        """Start dispatch lanes, and optionally the sweeper and webhook poller."""
        self.dispatcher.start()
        if background_loops:
            self.sweeper.start()
            self.poller.start()
        _LOGGER.info(
            "Pipeline started: backend=%s background_loops=%s",
            self.backend,
            background_loops,
        )

    def drain(self, *, timeout: float | None = None) -> bool:
        """Wait until every dispatched event and its cascade has been handled."""
        return self.dispatcher.join(timeout=timeout)

    def stop(self, *, timeout: float = 10.0) -> None:
        """Stop loops, then dispatch lanes, then release pools and connections."""
        self.poller.stop(timeout=timeout)
        self.sweeper.stop(timeout=timeout)
        self.dispatcher.stop(timeout=timeout)
        self.broker.close()
        if self.engine is not None:
            self.engine.dispose()
        _LOGGER.info("Pipeline stopped")


def build_pipeline(
    settings: SynapSettings,
    *,
    backend: Backend | None = None,
    engine: Engine | None = None,
    http: HttpClient | None = None,
) -> Pipeline:
    """Wire all services for ``backend`` and subscribe their handlers.

    ``backend`` defaults to ``settings.storage.backend``. The Postgres backend
    shares one engine across every service schema.
    """
    resolved_backend: Backend = backend or settings.storage.backend
    if resolved_backend == "postgres":
        shared_engine = engine or create_postgres_engine(resolve_postgres_settings(settings))
        pipeline = _build_postgres(settings, engine=shared_engine, http=http)
    else:
        pipeline = _build_memory(settings, http=http)
    _subscribe_handlers(pipeline)
    return pipeline


def _build_memory(settings: SynapSettings, *, http: HttpClient | None) -> Pipeline:
    dispatcher = DefaultDispatcher.from_settings(
        settings=settings, dead_letter_repository=InMemoryDeadLetterRepository()
    )
    publisher = DefaultEventPublisher(
        settings=resolve_event_store_settings(settings),
        repository=InMemoryEventRepository(),
        transport=InProcessDispatchTransport(dispatcher),
    )
    proposals = DefaultProposalManager(
        settings=resolve_proposal_manager_settings(settings),
        repository=InMemoryProposalRepository(),
        publisher=publisher,
    )
    projections = DefaultProjectionService(
        settings=resolve_projection_worker_settings(settings),
        publisher=publisher,
        repository=InMemoryProjectionRepository(),
    )
    validator = DefaultPermissionValidator(
        settings=resolve_permission_validator_settings(settings),
        publisher=publisher,
        proposals=proposals,
        workspace_policies=InMemoryWorkspacePolicyRepository(),
        ownership=projections.ownership,
    )
    broker = DefaultWebhookBroker(
        settings=resolve_webhook_broker_settings(settings),
        repository=InMemoryWebhookRepository(),
        publisher=publisher,
        http=http,
    )
    return _assemble(
        settings,
        backend="memory",
        dispatcher=dispatcher,
        publisher=publisher,
        proposals=proposals,
        validator=validator,
        projections=projections,
        broker=broker,
        engine=None,
    )


def _build_postgres(
    settings: SynapSettings, *, engine: Engine, http: HttpClient | None
) -> Pipeline:
    dispatcher = DefaultDispatcher.from_settings(
        settings=settings,
        dead_letter_repository=PostgresDeadLetterRepository(
            DispatcherPostgresRuntime.from_settings(settings, engine=engine).schema_sessions
        ),
    )
    publisher = DefaultEventPublisher.from_settings(
        settings=settings,
        transport=InProcessDispatchTransport(dispatcher),
        runtime=EventStorePostgresRuntime.from_settings(settings, engine=engine),
    )
    proposals = DefaultProposalManager.from_settings(
        settings=settings,
        publisher=publisher,
        runtime=ProposalManagerPostgresRuntime.from_settings(settings, engine=engine),
    )
    projections = DefaultProjectionService.from_settings(
        settings=settings,
        publisher=publisher,
        runtime=ProjectionWorkerPostgresRuntime.from_settings(settings, engine=engine),
    )
    validator = DefaultPermissionValidator.from_settings(
        settings=settings,
        publisher=publisher,
        proposals=proposals,
        ownership=projections.ownership,
        runtime=PermissionValidatorPostgresRuntime.from_settings(settings, engine=engine),
    )
    broker = DefaultWebhookBroker.from_settings(
        settings=settings,
        publisher=publisher,
        runtime=WebhookBrokerPostgresRuntime.from_settings(settings, engine=engine),
        http=http,
    )
    return _assemble(
        settings,
        backend="postgres",
        dispatcher=dispatcher,
        publisher=publisher,
        proposals=proposals,
        validator=validator,
        projections=projections,
        broker=broker,
        engine=engine,
    )


def _assemble(
    settings: SynapSettings,
    *,
    backend: Backend,
    dispatcher: DefaultDispatcher,
    publisher: DefaultEventPublisher,
    proposals: DefaultProposalManager,
    validator: DefaultPermissionValidator,
    projections: DefaultProjectionService,
    broker: DefaultWebhookBroker,
    engine: Engine | None,
) -> Pipeline:
    return Pipeline(
        settings=settings,
        backend=backend,
        dispatcher=dispatcher,
        publisher=publisher,
        proposals=proposals,
        validator=validator,
        projections=projections,
        broker=broker,
        sweeper=DispatchSweeper(
            publisher=publisher, settings=resolve_event_store_settings(settings)
        ),
        poller=DeliveryPoller(
            broker=broker, interval_seconds=broker.settings.poll_interval_seconds
        ),
        engine=engine,
    )


def _subscribe_handlers(pipeline: Pipeline) -> None:
    dispatcher = pipeline.dispatcher
    dispatcher.subscribe(
        "*.*.requested",
        pipeline.validator.handle_requested,
        name=VALIDATOR_SUBSCRIPTION,
    )
    for worker in pipeline.projections.workers:
        dispatcher.subscribe(
            worker.pattern,
            worker.on_approved,
            name=worker.name,
            on_dead_letter=worker.on_dead_letter,
        )
    dispatcher.subscribe(
        "*.*.validated",
        pipeline.broker.handle_validated,
        name=BROKER_SUBSCRIPTION,
    )
