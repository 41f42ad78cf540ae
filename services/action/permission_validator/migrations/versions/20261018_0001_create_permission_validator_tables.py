"""create permission validator tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from packages.synap_shared.manifest import component_id_to_schema_name
from services.action.permission_validator.component import SERVICE_COMPONENT_ID

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _schema() -> str:
    return component_id_to_schema_name(SERVICE_COMPONENT_ID)


def upgrade() -> None:
    """Create workspace policy overrides."""
    op.create_table(
        "workspace_policies",
        sa.Column("workspace_id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("rules", postgresql.JSONB(), nullable=False),
        sa.Column(
            "owner_shortcut_enabled",
            sa.Boolean(),
            nullable=False,
            server_default="true",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        schema=_schema(),
    )


def downgrade() -> None:
    """Drop workspace policy overrides."""
    op.drop_table("workspace_policies", schema=_schema())
