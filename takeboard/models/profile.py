from datetime import datetime, timezone

from takeboard import db


class Profile(db.Model):
    """A participant. Takes join to profiles through the E.164 mobile number."""

    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    mobile_e164 = db.Column(db.String(20), unique=True, index=True)
    username = db.Column(db.String(80))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    takes = db.relationship("Take", backref="profile", lazy="dynamic")
    achievements = db.relationship(
        "Achievement", backref="profile", lazy="dynamic", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Profile {self.profile_id}>"

    @staticmethod
    def get_by_profile_id(profile_id):
        """Look up a profile by its public handle"""
        return Profile.query.filter_by(profile_id=profile_id).first()

    def to_dict(self):
        """Convert profile to dictionary for API responses"""
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "username": self.username,
        }
