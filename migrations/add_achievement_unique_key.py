"""Add the achievements table with a unique (profile, key) constraint

The unique_profile_achievement constraint is what makes concurrent
milestone awards for the same profile a no-op instead of a duplicate row.
"""

from datetime import datetime, timezone

import sqlalchemy as sa
from alembic import op


def upgrade():
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("profile_ref", sa.Integer(), nullable=False),
        sa.Column("profile_id", sa.String(length=64), nullable=True),
        sa.Column("achievement_key", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("value", sa.Integer(), default=1),
        sa.Column(
            "created_at", sa.DateTime(), default=lambda: datetime.now(timezone.utc)
        ),
        sa.ForeignKeyConstraint(
            ["profile_ref"],
            ["profiles.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "profile_ref",
            "achievement_key",
            name="unique_profile_achievement",
        ),
    )

    op.create_index("idx_achievement_profile", "achievements", ["profile_ref"])


def downgrade():
    op.drop_index("idx_achievement_profile", table_name="achievements")
    op.drop_table("achievements")
