"""Pydantic settings for the Event Store and its dispatch sweeper."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packages.synap_shared.config import SynapSettings, resolve_component_settings
from services.state.event_store.component import SERVICE_COMPONENT_ID
from services.state.event_store.taxonomy import DEFAULT_ACTIONS, DEFAULT_TABLES


class EventStoreSettings(BaseModel):
    """Event taxonomy declaration and outbox sweep behavior."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tables: tuple[str, ...] = DEFAULT_TABLES
    actions: tuple[str, ...] = DEFAULT_ACTIONS
    sweep_interval_seconds: float = Field(default=5.0, gt=0)
    sweep_batch_size: int = Field(default=200, gt=0)
    list_page_size: int = Field(default=500, gt=0)


def resolve_event_store_settings(settings: SynapSettings) -> EventStoreSettings:
    """Resolve event store settings from ``components.service.event_store``."""
    return resolve_component_settings(
        settings=settings,
        component_id=str(SERVICE_COMPONENT_ID),
        model=EventStoreSettings,
    )
