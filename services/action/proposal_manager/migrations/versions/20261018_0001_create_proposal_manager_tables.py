"""create proposal manager tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from packages.synap_shared.manifest import component_id_to_schema_name
from services.action.proposal_manager.component import SERVICE_COMPONENT_ID

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _schema() -> str:
    return component_id_to_schema_name(SERVICE_COMPONENT_ID)


def upgrade() -> None:
    """Create the proposals table."""
    schema = _schema()

    op.create_table(
        "proposals",
        sa.Column("id", sa.String(length=26), primary_key=True, nullable=False),
        sa.Column("workspace_id", sa.String(length=128), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("originating_event_id", sa.String(length=26), nullable=False),
        sa.Column("request", postgresql.JSONB(), nullable=False),
        sa.Column("reason", sa.String(length=2000), nullable=False),
        sa.Column("decision", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=128), nullable=True),
        sa.Column("resolution_reason", sa.String(length=2000), nullable=True),
        sa.CheckConstraint("length(id) = 26", name="ck_id_ulid_26"),
        sa.UniqueConstraint(
            "originating_event_id", name="uq_proposals_originating_event_id"
        ),
        schema=schema,
    )
    op.create_index(
        "ix_proposals_status_workspace",
        "proposals",
        ["status", "workspace_id", "created_at"],
        schema=schema,
    )


def downgrade() -> None:
    """Drop the proposals table."""
    op.drop_table("proposals", schema=_schema())
