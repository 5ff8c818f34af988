"""
Relational aggregate view over takes -> props -> packs -> events/teams.

The view is declared on its own MetaData so db.create_all() never tries to
create it as a table; it is installed by migrations/add_take_facts_view.py
or `manage.py view create`. One row per (take, linked event, linked team),
so consumers must de-duplicate on take_id.
"""

import sqlalchemy as sa

from takeboard.errors import TAKE_FACTS_VIEW

view_metadata = sa.MetaData()

take_facts = sa.Table(
    TAKE_FACTS_VIEW,
    view_metadata,
    sa.Column("take_id", sa.Integer),
    sa.Column("take_mobile", sa.String(20)),
    sa.Column("take_result", sa.String(20)),
    sa.Column("take_pts", sa.Integer),
    sa.Column("take_status", sa.String(20)),
    sa.Column("take_hide", sa.Boolean),
    sa.Column("profile_ref", sa.Integer),
    sa.Column("prop_id", sa.String(64)),
    sa.Column("prop_ref", sa.Integer),
    sa.Column("prop_status", sa.String(20)),
    sa.Column("pack_ref", sa.Integer),
    sa.Column("pack_id", sa.String(64)),
    sa.Column("pack_status", sa.String(20)),
    sa.Column("event_time", sa.DateTime),
    sa.Column("team_id", sa.Integer),
)

CREATE_TAKE_FACTS_VIEW_SQL = f"""
CREATE VIEW {TAKE_FACTS_VIEW} AS
SELECT t.id AS take_id,
       t.take_mobile,
       t.take_result,
       t.take_pts,
       t.take_status,
       t.take_hide,
       t.profile_ref,
       t.prop_id,
       pr.id AS prop_ref,
       pr.prop_status,
       pk.id AS pack_ref,
       pk.pack_id,
       pk.pack_status,
       e.event_time,
       pt.team_id
  FROM takes t
  JOIN props pr ON pr.id = t.prop_ref
  LEFT JOIN packs pk ON pk.id = pr.pack_ref
  LEFT JOIN packs_events pe ON pe.pack_id = pk.id
  LEFT JOIN events e ON e.id = pe.event_id
  LEFT JOIN props_teams pt ON pt.prop_id = pr.id
"""

DROP_TAKE_FACTS_VIEW_SQL = f"DROP VIEW IF EXISTS {TAKE_FACTS_VIEW}"


def create_take_facts_view(session):
    """(Re)create the view through the given session and commit"""
    session.execute(sa.text(DROP_TAKE_FACTS_VIEW_SQL))
    session.execute(sa.text(CREATE_TAKE_FACTS_VIEW_SQL))
    session.commit()


def drop_take_facts_view(session):
    session.execute(sa.text(DROP_TAKE_FACTS_VIEW_SQL))
    session.commit()


def take_facts_view_exists(bind):
    """Inspector-based check used by the CLI status command"""
    return TAKE_FACTS_VIEW in sa.inspect(bind).get_view_names()
