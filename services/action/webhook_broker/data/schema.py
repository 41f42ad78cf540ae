"""Table models for webhook subscriptions and delivery attempts."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from packages.synap_shared.ids import ulid_column, ulid_primary_key_column
from services.action.webhook_broker.component import SERVICE_COMPONENT_ID

metadata = MetaData(schema=str(SERVICE_COMPONENT_ID))

webhook_subscriptions = Table(
    "webhook_subscriptions",
    metadata,
    ulid_primary_key_column("id"),
    Column("workspace_id", String(128), nullable=False, index=True),
    Column("url", String(2048), nullable=False),
    Column("event_type_patterns", JSONB, nullable=False),
    Column("secret", String(256), nullable=False),
    Column("active", Boolean, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

delivery_attempts = Table(
    "delivery_attempts",
    metadata,
    ulid_primary_key_column("id"),
    Column(
        "subscription_id",
        String(26),
        ForeignKey(f"{SERVICE_COMPONENT_ID}.webhook_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    ulid_column("event_id", index=True),
    Column("attempt_number", Integer, nullable=False),
    Column("status", String(16), nullable=False),
    Column("last_error", String(2048), nullable=False, server_default=""),
    Column("next_attempt_at", DateTime(timezone=True), nullable=True),
    Column("response_status", Integer, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("claimed_until", DateTime(timezone=True), nullable=True),
    UniqueConstraint(
        "subscription_id",
        "event_id",
        "attempt_number",
        name="uq_delivery_attempts_subscription_event_attempt",
    ),
    Index("ix_delivery_attempts_due", "status", "next_attempt_at"),
)
