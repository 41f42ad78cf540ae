"""Table models for workspace policy overrides."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, MetaData, String, Table, func
from sqlalchemy.dialects.postgresql import JSONB

from services.action.permission_validator.component import SERVICE_COMPONENT_ID

metadata = MetaData(schema=str(SERVICE_COMPONENT_ID))

workspace_policies = Table(
    "workspace_policies",
    metadata,
    Column("workspace_id", String(128), primary_key=True),
    Column("rules", JSONB, nullable=False),
    Column("owner_shortcut_enabled", Boolean, nullable=False, server_default="true"),
    Column(
        "updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()
    ),
)
