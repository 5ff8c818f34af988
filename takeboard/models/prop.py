from datetime import datetime, timezone

from takeboard import db

# Prop <-> Team links used by team-scoped leaderboards
props_teams = db.Table(
    "props_teams",
    db.Column("prop_id", db.Integer, db.ForeignKey("props.id"), primary_key=True),
    db.Column("team_id", db.Integer, db.ForeignKey("teams.id"), primary_key=True),
)


class Prop(db.Model):
    __tablename__ = "props"

    id = db.Column(db.Integer, primary_key=True)

    # Text identifier shared with takes
    prop_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    pack_ref = db.Column(db.Integer, db.ForeignKey("packs.id"), nullable=True)

    short_label = db.Column(db.String(200))
    prop_status = db.Column(db.String(20), default="open", nullable=False)

    # Set when grading writes results; drives the achievement sweep
    graded_at = db.Column(db.DateTime, nullable=True, index=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    teams = db.relationship("Team", secondary=props_teams, backref="props")
    takes = db.relationship("Take", backref="prop", lazy="dynamic")

    def __repr__(self):
        return f"<Prop {self.prop_id} ({self.prop_status})>"

    @staticmethod
    def get_graded_since(since):
        """Text ids of props graded at or after ``since`` (naive UTC)"""
        query = db.session.query(Prop.prop_id).filter(Prop.graded_at.isnot(None))
        if since is not None:
            query = query.filter(Prop.graded_at >= since)
        return [row.prop_id for row in query.order_by(Prop.id).all()]
