import logging
from datetime import datetime, timezone

from sqlalchemy.orm import validates

from takeboard import db

logger = logging.getLogger(__name__)

GRADED_RESULTS = ("won", "lost", "pushed", "push")


class Take(db.Model):
    """One user's position on one prop.

    A subject may hold several rows for the same prop; only the row with
    take_status='latest' and take_hide=False counts. Overwritten rows are
    kept as history.
    """

    __tablename__ = "takes"

    id = db.Column(db.Integer, primary_key=True)

    # Take identification
    prop_ref = db.Column(db.Integer, db.ForeignKey("props.id"), nullable=False)
    prop_id = db.Column(db.String(64), nullable=False)
    take_mobile = db.Column(db.String(20), index=True)
    profile_ref = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)

    # Results (written by grading)
    take_pts = db.Column(db.Integer, default=0)
    take_result = db.Column(db.String(20), default="pending")

    # Visibility
    take_status = db.Column(db.String(20), default="latest", nullable=False)
    take_hide = db.Column(db.Boolean, default=False, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.Index("idx_take_prop_id", "prop_id"),
        db.Index("idx_take_prop_status", "prop_ref", "take_status"),
        db.Index("idx_take_profile", "profile_ref"),
    )

    def __repr__(self):
        return f"<Take {self.id} prop={self.prop_id} mobile={self.take_mobile} {self.take_status}>"

    @validates("take_pts")
    def _check_points_frozen(self, key, value):
        # Points are frozen once a result is graded; regrading goes through apply_grade
        if (
            self.id is not None
            and not getattr(self, "_regrading", False)
            and (self.take_result or "").lower() in GRADED_RESULTS
            and value != self.take_pts
        ):
            logger.warning(
                f"Take {self.id} points changed after grading "
                f"({self.take_pts} -> {value}); only grading may mutate points"
            )
        return value

    def apply_grade(self, result, points):
        """Write a graded result; the only sanctioned way to change points"""
        self._regrading = True
        try:
            self.take_result = result
            self.take_pts = points
        finally:
            self._regrading = False

    def to_dict(self):
        """Convert take to dictionary for API responses"""
        return {
            "id": self.id,
            "prop_id": self.prop_id,
            "take_mobile": self.take_mobile,
            "take_pts": self.take_pts,
            "take_result": self.take_result,
            "take_status": self.take_status,
            "take_hide": self.take_hide,
        }
