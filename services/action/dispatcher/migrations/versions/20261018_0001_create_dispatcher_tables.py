"""create dispatcher tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

from packages.synap_shared.manifest import component_id_to_schema_name
from services.action.dispatcher.component import SERVICE_COMPONENT_ID

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _schema() -> str:
    return component_id_to_schema_name(SERVICE_COMPONENT_ID)


def upgrade() -> None:
    """Create the dead-letter table."""
    schema = _schema()

    op.create_table(
        "dead_letters",
        sa.Column("id", sa.String(length=26), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=26), nullable=False),
        sa.Column("event_type", sa.String(length=160), nullable=False),
        sa.Column("subject_id", sa.String(length=128), nullable=False),
        sa.Column("subscriber", sa.String(length=128), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.String(length=2048), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("length(id) = 26", name="ck_id_ulid_26"),
        schema=schema,
    )
    op.create_index(
        "ix_dead_letters_event_id", "dead_letters", ["event_id"], schema=schema
    )
    op.create_index(
        "ix_dead_letters_subscriber", "dead_letters", ["subscriber"], schema=schema
    )


def downgrade() -> None:
    """Drop the dead-letter table."""
    op.drop_table("dead_letters", schema=_schema())
