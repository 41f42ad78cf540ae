"""Projection Worker package exports."""

from services.state.projection_worker.component import MANIFEST, SERVICE_COMPONENT_ID
from services.state.projection_worker.config import (
    ProjectionWorkerSettings,
    resolve_projection_worker_settings,
)
from services.state.projection_worker.data import (
    InMemoryProjectionRepository,
    PostgresProjectionRepository,
    ProjectionWorkerPostgresRuntime,
)
from services.state.projection_worker.domain import (
    MarkerOutcome,
    MutationConflict,
    ProcessedEventMarker,
    ProjectionMutation,
    ProjectionRecord,
    ReplayResult,
    WorkOutcome,
    WorkResult,
)
from services.state.projection_worker.implementation import DefaultProjectionService
from services.state.projection_worker.interfaces import ProjectionRepository
from services.state.projection_worker.ownership import ProjectionOwnershipResolver
from services.state.projection_worker.replay import ProjectionReplayer
from services.state.projection_worker.service import ProjectionService
from services.state.projection_worker.worker import DomainWorker, RecordProjectionWorker

__all__ = [
    "DefaultProjectionService",
    "DomainWorker",
    "InMemoryProjectionRepository",
    "MANIFEST",
    "MarkerOutcome",
    "MutationConflict",
    "PostgresProjectionRepository",
    "ProcessedEventMarker",
    "ProjectionMutation",
    "ProjectionOwnershipResolver",
    "ProjectionRecord",
    "ProjectionReplayer",
    "ProjectionRepository",
    "ProjectionService",
    "ProjectionWorkerPostgresRuntime",
    "ProjectionWorkerSettings",
    "RecordProjectionWorker",
    "ReplayResult",
    "SERVICE_COMPONENT_ID",
    "WorkOutcome",
    "WorkResult",
    "resolve_projection_worker_settings",
]
