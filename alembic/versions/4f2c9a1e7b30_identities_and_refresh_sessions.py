"""identities and refresh sessions

Revision ID: 4f2c9a1e7b30
Revises:
Create Date: 2026-10-19 09:12:41.508317

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4f2c9a1e7b30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "identities",
        sa.Column("guid", sa.String(512), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("password_hash", sa.String(128), nullable=True),
        sa.Column("federated_subject", sa.String(255), nullable=True),
        sa.Column("is_verified", sa.Boolean, nullable=False, default=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_identities_email", "identities", ["email"], unique=True)
    op.create_index(
        "idx_identities_federated_subject",
        "identities",
        ["federated_subject"],
        unique=True,
    )

    op.create_table(
        "refresh_sessions",
        sa.Column("token", sa.String(128), primary_key=True),
        sa.Column(
            "guid",
            sa.String(512),
            sa.ForeignKey("identities.guid", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_refresh_sessions_guid", "refresh_sessions", ["guid"])
    op.create_index("idx_refresh_sessions_expires", "refresh_sessions", ["expires_at"])


def downgrade() -> None:
    op.drop_index("idx_refresh_sessions_expires", table_name="refresh_sessions")
    op.drop_index("idx_refresh_sessions_guid", table_name="refresh_sessions")
    op.drop_table("refresh_sessions")

    op.drop_index("idx_identities_federated_subject", table_name="identities")
    op.drop_index("idx_identities_email", table_name="identities")
    op.drop_table("identities")
