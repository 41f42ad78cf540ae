"""Pydantic settings for webhook delivery."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from packages.synap_shared.config import SynapSettings, resolve_component_settings
from services.action.webhook_broker.component import SERVICE_COMPONENT_ID


class WebhookBrokerSettings(BaseModel):
    """Retry schedule, timeouts and polling for outbound deliveries.

    ``retry_schedule_seconds[n]`` is the delay before attempt ``n + 1``; its
    length is the maximum number of attempts.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    retry_schedule_seconds: tuple[float, ...] = (0.0, 1.0, 4.0, 16.0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    delivery_pool_size: int = Field(default=8, gt=0)
    poll_interval_seconds: float = Field(default=0.5, gt=0)
    claim_lease_seconds: float = Field(default=60.0, gt=0)
    batch_size: int = Field(default=50, gt=0)

    @field_validator("retry_schedule_seconds")
    @classmethod
    def _validate_schedule(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if len(value) == 0:
            raise ValueError("retry_schedule_seconds must not be empty")
        if any(delay < 0 for delay in value):
            raise ValueError("retry_schedule_seconds must be >= 0")
        return value

    @model_validator(mode="after")
    def _validate_lease(self) -> "WebhookBrokerSettings":
        if self.claim_lease_seconds <= self.request_timeout_seconds:
            raise ValueError("claim_lease_seconds must exceed request_timeout_seconds")
        return self

    @property
    def max_attempts(self) -> int:
        return len(self.retry_schedule_seconds)


def resolve_webhook_broker_settings(settings: SynapSettings) -> WebhookBrokerSettings:
    """Resolve broker settings from ``components.service.webhook_broker``."""
    return resolve_component_settings(
        settings=settings,
        component_id=str(SERVICE_COMPONENT_ID),
        model=WebhookBrokerSettings,
    )
