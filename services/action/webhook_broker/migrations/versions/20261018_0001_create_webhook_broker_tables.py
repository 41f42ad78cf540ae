"""create webhook broker tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from packages.synap_shared.manifest import component_id_to_schema_name
from services.action.webhook_broker.component import SERVICE_COMPONENT_ID

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _schema() -> str:
    return component_id_to_schema_name(SERVICE_COMPONENT_ID)


def upgrade() -> None:
    """Create webhook subscriptions and the delivery attempt log."""
    schema = _schema()

    op.create_table(
        "webhook_subscriptions",
        sa.Column("id", sa.String(length=26), primary_key=True, nullable=False),
        sa.Column("workspace_id", sa.String(length=128), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("event_type_patterns", postgresql.JSONB(), nullable=False),
        sa.Column("secret", sa.String(length=256), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("length(id) = 26", name="ck_id_ulid_26"),
        schema=schema,
    )
    op.create_index(
        "ix_webhook_subscriptions_workspace_id",
        "webhook_subscriptions",
        ["workspace_id"],
        schema=schema,
    )

    op.create_table(
        "delivery_attempts",
        sa.Column("id", sa.String(length=26), primary_key=True, nullable=False),
        sa.Column("subscription_id", sa.String(length=26), nullable=False),
        sa.Column("event_id", sa.String(length=26), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("last_error", sa.String(length=2048), nullable=False, server_default=""),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_status", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_until", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("length(id) = 26", name="ck_id_ulid_26"),
        sa.ForeignKeyConstraint(
            ["subscription_id"],
            [f"{schema}.webhook_subscriptions.id"],
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "subscription_id",
            "event_id",
            "attempt_number",
            name="uq_delivery_attempts_subscription_event_attempt",
        ),
        schema=schema,
    )
    op.create_index(
        "ix_delivery_attempts_event_id",
        "delivery_attempts",
        ["event_id"],
        schema=schema,
    )
    op.create_index(
        "ix_delivery_attempts_due",
        "delivery_attempts",
        ["status", "next_attempt_at"],
        schema=schema,
    )


def downgrade() -> None:
    """Drop webhook subscriptions and the delivery attempt log."""
    schema = _schema()
    op.drop_table("delivery_attempts", schema=schema)
    op.drop_table("webhook_subscriptions", schema=schema)
