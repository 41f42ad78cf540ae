"""Pydantic settings for Dispatcher lanes, retries and timeouts."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.synap_shared.config import SynapSettings, resolve_component_settings
from services.action.dispatcher.component import SERVICE_COMPONENT_ID


class DispatcherSettings(BaseModel):
    """Parallelism, handler timeout and retry policy for event delivery."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    lanes_per_subscription: int = Field(default=4, gt=0, le=256)
    handler_pool_size: int = Field(default=16, gt=0)
    handler_timeout_seconds: float = Field(default=30.0, gt=0)
    handler_stuck_grace_seconds: float = Field(default=30.0, ge=0)
    max_attempts: int = Field(default=5, gt=0)
    retry_backoff_base_seconds: float = Field(default=0.5, ge=0)
    retry_backoff_max_seconds: float = Field(default=30.0, ge=0)

    @model_validator(mode="after")
    def _validate_backoff(self) -> "DispatcherSettings":
        if self.retry_backoff_max_seconds < self.retry_backoff_base_seconds:
            raise ValueError(
                "retry_backoff_max_seconds must be >= retry_backoff_base_seconds"
            )
        return self

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number ``attempt``."""
        delay = self.retry_backoff_base_seconds * (2 ** max(attempt - 1, 0))
        return min(delay, self.retry_backoff_max_seconds)


def resolve_dispatcher_settings(settings: SynapSettings) -> DispatcherSettings:
    """Resolve dispatcher settings from ``components.service.dispatcher``."""
    return resolve_component_settings(
        settings=settings,
        component_id=str(SERVICE_COMPONENT_ID),
        model=DispatcherSettings,
    )
