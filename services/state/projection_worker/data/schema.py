"""Table models for record projections and processed-event markers."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from packages.synap_shared.ids import ulid_column
from services.state.projection_worker.component import SERVICE_COMPONENT_ID

metadata = MetaData(schema=str(SERVICE_COMPONENT_ID))

projection_records = Table(
    "projection_records",
    metadata,
    Column("table_name", String(64), nullable=False),
    Column("record_id", String(128), nullable=False),
    Column("workspace_id", String(128), nullable=False, server_default=""),
    Column("owner_id", String(128), nullable=False),
    Column("version", Integer, nullable=False),
    Column("data", JSONB, nullable=False),
    Column("deleted", Boolean, nullable=False, server_default="false"),
    ulid_column("updated_by_event_id"),
    Column(
        "updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()
    ),
    PrimaryKeyConstraint("table_name", "record_id"),
    Index("ix_projection_records_workspace", "table_name", "workspace_id"),
)

processed_events = Table(
    "processed_events",
    metadata,
    Column("worker", String(128), nullable=False),
    ulid_column("event_id"),
    Column("outcome", String(16), nullable=False),
    Column("detail", String(2048), nullable=False, server_default=""),
    Column("processed_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint("worker", "event_id"),
)
