"""Table models for Dispatcher dead letters."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, func

from packages.synap_shared.ids import ulid_column, ulid_primary_key_column
from services.action.dispatcher.component import SERVICE_COMPONENT_ID

metadata = MetaData(schema=str(SERVICE_COMPONENT_ID))

dead_letters = Table(
    "dead_letters",
    metadata,
    ulid_primary_key_column("id"),
    ulid_column("event_id", index=True),
    Column("event_type", String(160), nullable=False),
    Column("subject_id", String(128), nullable=False),
    Column("subscriber", String(128), nullable=False, index=True),
    Column("attempts", Integer, nullable=False),
    Column("last_error", String(2048), nullable=False),
    Column(
        "created_at", DateTime(timezone=True), nullable=False, server_default=func.now()
    ),
)
