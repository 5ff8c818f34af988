"""Add the v_take_facts aggregate view

Flattens takes -> props -> packs -> pack events / prop teams into one
relation so scoped leaderboards need a single query. Readers fall back to
base-table joins while the view is absent, so this migration can be
applied at any time.
"""

import sqlalchemy as sa
from alembic import op

from takeboard.models.take_facts import (
    CREATE_TAKE_FACTS_VIEW_SQL,
    DROP_TAKE_FACTS_VIEW_SQL,
)


def upgrade():
    op.execute(sa.text(DROP_TAKE_FACTS_VIEW_SQL))
    op.execute(sa.text(CREATE_TAKE_FACTS_VIEW_SQL))


def downgrade():
    op.execute(sa.text(DROP_TAKE_FACTS_VIEW_SQL))
