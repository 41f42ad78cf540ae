"""create projection worker tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from packages.synap_shared.manifest import component_id_to_schema_name
from services.state.projection_worker.component import SERVICE_COMPONENT_ID

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _schema() -> str:
    return component_id_to_schema_name(SERVICE_COMPONENT_ID)


def upgrade() -> None:
    """Create record projections and processed-event markers."""
    schema = _schema()

    op.create_table(
        "projection_records",
        sa.Column("table_name", sa.String(length=64), nullable=False),
        sa.Column("record_id", sa.String(length=128), nullable=False),
        sa.Column("workspace_id", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("updated_by_event_id", sa.String(length=26), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("table_name", "record_id"),
        schema=schema,
    )
    op.create_index(
        "ix_projection_records_workspace",
        "projection_records",
        ["table_name", "workspace_id"],
        schema=schema,
    )

    op.create_table(
        "processed_events",
        sa.Column("worker", sa.String(length=128), nullable=False),
        sa.Column("event_id", sa.String(length=26), nullable=False),
        sa.Column("outcome", sa.String(length=16), nullable=False),
        sa.Column("detail", sa.String(length=2048), nullable=False, server_default=""),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("worker", "event_id"),
        schema=schema,
    )


def downgrade() -> None:
    """Drop record projections and processed-event markers."""
    schema = _schema()
    op.drop_table("processed_events", schema=schema)
    op.drop_table("projection_records", schema=schema)
