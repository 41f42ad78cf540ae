"""Projection Worker data layer exports."""

from services.state.projection_worker.data.repository import (
    InMemoryProjectionRepository,
    PostgresProjectionRepository,
)
from services.state.projection_worker.data.runtime import (
    ProjectionWorkerPostgresRuntime,
)
from services.state.projection_worker.data.schema import (
    metadata,
    processed_events,
    projection_records,
)

__all__ = [
    "InMemoryProjectionRepository",
    "PostgresProjectionRepository",
    "ProjectionWorkerPostgresRuntime",
    "metadata",
    "processed_events",
    "projection_records",
]
