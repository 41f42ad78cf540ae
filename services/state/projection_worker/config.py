"""Pydantic settings for projection workers and replay."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.synap_shared.config import SynapSettings, resolve_component_settings
from services.state.event_store.taxonomy import DEFAULT_TABLES
from services.state.projection_worker.component import SERVICE_COMPONENT_ID


class ProjectionWorkerSettings(BaseModel):
    """Which table families get a record worker, and replay paging."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    families: tuple[str, ...] = DEFAULT_TABLES
    worker_actor_id: str = Field(default="system:projection-worker", min_length=1)
    replay_page_size: int = Field(default=500, gt=0)
    list_limit: int = Field(default=500, gt=0)


def resolve_projection_worker_settings(
    settings: SynapSettings,
) -> ProjectionWorkerSettings:
    """Resolve worker settings from ``components.service.projection_worker``."""
    return resolve_component_settings(
        settings=settings,
        component_id=str(SERVICE_COMPONENT_ID),
        model=ProjectionWorkerSettings,
    )
