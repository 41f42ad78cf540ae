"""Table models for the event log and its dispatch outbox."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB

from packages.synap_shared.ids import ulid_column, ulid_primary_key_column
from services.state.event_store.component import SERVICE_COMPONENT_ID

metadata = MetaData(schema=str(SERVICE_COMPONENT_ID))
OUTCOME_INDEX_NAME = "uq_events_causation_outcome"

events = Table(
    "events",
    metadata,
    ulid_primary_key_column("id"),
    Column("sequence", BigInteger, Identity(always=True), nullable=False, unique=True),
    Column("schema_version", String(8), nullable=False),
    Column("type", String(160), nullable=False, index=True),
    Column("resource", String(64), nullable=False),
    Column("action", String(64), nullable=False),
    Column("stage", String(16), nullable=False),
    Column("subject_id", String(128), nullable=False, index=True),
    Column("subject_type", String(64), nullable=False),
    Column("data", JSONB, nullable=False),
    Column("metadata", JSONB, nullable=False),
    Column("actor_id", String(128), nullable=False),
    Column("source", String(32), nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    ulid_column("correlation_id", nullable=True, index=True),
    ulid_column("causation_id", nullable=True, index=True),
    Column("outcome_group", String(16), nullable=True),
    Index(
        OUTCOME_INDEX_NAME,
        "causation_id",
        "outcome_group",
        unique=True,
        postgresql_where=text("outcome_group IS NOT NULL"),
    ),
)

dispatch_outbox = Table(
    "dispatch_outbox",
    metadata,
    Column(
        "event_id",
        String(26),
        ForeignKey(f"{SERVICE_COMPONENT_ID}.events.id", ondelete="RESTRICT"),
        primary_key=True,
    ),
    Column("subject_id", String(128), nullable=False),
    Column("sequence", BigInteger, nullable=False),
    Column("dispatch_pending", Boolean, nullable=False),
    Column("attempts", Integer, nullable=False, server_default="0"),
    Column("last_error", String(2048), nullable=False, server_default=""),
    Column(
        "updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()
    ),
    Index("ix_dispatch_outbox_pending_subject", "dispatch_pending", "subject_id", "sequence"),
)
