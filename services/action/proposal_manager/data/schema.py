"""Table models for proposals."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, MetaData, String, Table
from sqlalchemy.dialects.postgresql import JSONB

from packages.synap_shared.ids import ulid_primary_key_column
from services.action.proposal_manager.component import SERVICE_COMPONENT_ID

metadata = MetaData(schema=str(SERVICE_COMPONENT_ID))

proposals = Table(
    "proposals",
    metadata,
    ulid_primary_key_column("id"),
    Column("workspace_id", String(128), nullable=False),
    Column("target_type", String(64), nullable=False),
    Column("status", String(16), nullable=False),
    Column("originating_event_id", String(26), nullable=False, unique=True),
    Column("request", JSONB, nullable=False),
    Column("reason", String(2000), nullable=False),
    Column("decision", JSONB, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
    Column("resolved_by", String(128), nullable=True),
    Column("resolution_reason", String(2000), nullable=True),
    Index("ix_proposals_status_workspace", "status", "workspace_id", "created_at"),
)
