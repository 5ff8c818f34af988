from datetime import datetime, timezone

from takeboard import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    # Team identification
    team_slug = db.Column(db.String(100), nullable=False, unique=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    league = db.Column(db.String(20))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Team {self.team_slug}>"

    @staticmethod
    def resolve_slug(team_slug):
        """Case-insensitive exact match on the slug; None when unknown"""
        if not team_slug:
            return None
        return Team.query.filter(
            db.func.lower(Team.team_slug) == team_slug.strip().lower()
        ).first()

    def to_dict(self):
        """Convert team to dictionary for API responses"""
        return {
            "id": self.id,
            "team_slug": self.team_slug,
            "name": self.name,
            "league": self.league,
        }
