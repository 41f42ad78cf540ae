"""create event store tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from packages.synap_shared.manifest import component_id_to_schema_name
from services.state.event_store.component import SERVICE_COMPONENT_ID

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _schema() -> str:
    return component_id_to_schema_name(SERVICE_COMPONENT_ID)


def upgrade() -> None:
    """Create the event log and its dispatch outbox."""
    schema = _schema()

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=26), primary_key=True, nullable=False),
        sa.Column(
            "sequence",
            sa.BigInteger(),
            sa.Identity(always=True),
            nullable=False,
        ),
        sa.Column("schema_version", sa.String(length=8), nullable=False),
        sa.Column("type", sa.String(length=160), nullable=False),
        sa.Column("resource", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("stage", sa.String(length=16), nullable=False),
        sa.Column("subject_id", sa.String(length=128), nullable=False),
        sa.Column("subject_type", sa.String(length=64), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("correlation_id", sa.String(length=26), nullable=True),
        sa.Column("causation_id", sa.String(length=26), nullable=True),
        sa.Column("outcome_group", sa.String(length=16), nullable=True),
        sa.CheckConstraint("length(id) = 26", name="ck_id_ulid_26"),
        sa.UniqueConstraint("sequence", name="uq_events_sequence"),
        schema=schema,
    )
    op.create_index("ix_events_type", "events", ["type"], schema=schema)
    op.create_index("ix_events_subject_id", "events", ["subject_id"], schema=schema)
    op.create_index(
        "ix_events_correlation_id", "events", ["correlation_id"], schema=schema
    )
    op.create_index("ix_events_causation_id", "events", ["causation_id"], schema=schema)
    op.create_index(
        "uq_events_causation_outcome",
        "events",
        ["causation_id", "outcome_group"],
        unique=True,
        postgresql_where=sa.text("outcome_group IS NOT NULL"),
        schema=schema,
    )

    op.create_table(
        "dispatch_outbox",
        sa.Column("event_id", sa.String(length=26), primary_key=True, nullable=False),
        sa.Column("subject_id", sa.String(length=128), nullable=False),
        sa.Column("sequence", sa.BigInteger(), nullable=False),
        sa.Column("dispatch_pending", sa.Boolean(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.String(length=2048), nullable=False, server_default=""),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["event_id"], [f"{schema}.events.id"], ondelete="RESTRICT"
        ),
        schema=schema,
    )
    op.create_index(
        "ix_dispatch_outbox_pending_subject",
        "dispatch_outbox",
        ["dispatch_pending", "subject_id", "sequence"],
        schema=schema,
    )


def downgrade() -> None:
    """Drop the event log and its dispatch outbox."""
    schema = _schema()
    op.drop_table("dispatch_outbox", schema=schema)
    op.drop_table("events", schema=schema)
