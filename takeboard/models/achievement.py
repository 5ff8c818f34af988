"""Achievement Model - one row per profile per milestone key"""

from datetime import datetime, timezone

from takeboard import db


class Achievement(db.Model):
    __tablename__ = "achievements"

    id = db.Column(db.Integer, primary_key=True)

    # Owner
    profile_ref = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    profile_id = db.Column(db.String(64), nullable=True)

    # Award details
    achievement_key = db.Column(db.String(100), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(500))
    value = db.Column(db.Integer, default=1)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Constraints
    __table_args__ = (
        db.UniqueConstraint(
            "profile_ref", "achievement_key", name="unique_profile_achievement"
        ),
        db.Index("idx_achievement_profile", "profile_ref"),
    )

    def __repr__(self):
        return f"<Achievement {self.achievement_key}: Profile {self.profile_ref}>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "achievement_key": self.achievement_key,
            "title": self.title,
            "description": self.description,
            "value": self.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
