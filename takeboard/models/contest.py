from datetime import datetime, timezone

from takeboard import db

contests_packs = db.Table(
    "contests_packs",
    db.Column(
        "contest_id", db.Integer, db.ForeignKey("contests.id"), primary_key=True
    ),
    db.Column("pack_id", db.Integer, db.ForeignKey("packs.id"), primary_key=True),
)


class Contest(db.Model):
    __tablename__ = "contests"

    id = db.Column(db.Integer, primary_key=True)
    contest_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200))

    # open -> graded (terminal); winner is write-once
    contest_status = db.Column(db.String(20), default="open", nullable=False)
    winner_profile_ref = db.Column(
        db.Integer, db.ForeignKey("profiles.id"), nullable=True
    )
    graded_at = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    packs = db.relationship("Pack", secondary=contests_packs, backref="contests")
    winner = db.relationship("Profile", foreign_keys=[winner_profile_ref])

    def __repr__(self):
        return f"<Contest {self.contest_id} ({self.contest_status})>"

    @property
    def is_graded(self):
        return (self.contest_status or "").lower() == "graded"

    @staticmethod
    def find(identifier):
        """Find a contest by its text contest_id or internal id"""
        if identifier is None:
            return None
        ident = str(identifier).strip()
        contest = Contest.query.filter_by(contest_id=ident).first()
        if contest is None and ident.isdigit():
            contest = db.session.get(Contest, int(ident))
        return contest

    def to_dict(self):
        """Convert contest to dictionary for API responses"""
        return {
            "id": self.id,
            "contest_id": self.contest_id,
            "title": self.title or "",
            "contest_status": self.contest_status,
            "winner_profile_id": self.winner.profile_id if self.winner else None,
            "graded_at": self.graded_at.isoformat() if self.graded_at else None,
        }
