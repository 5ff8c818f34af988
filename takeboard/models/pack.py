from datetime import datetime, timezone

from takeboard import db

# Pack <-> Event links; a pack may cover several events
packs_events = db.Table(
    "packs_events",
    db.Column("pack_id", db.Integer, db.ForeignKey("packs.id"), primary_key=True),
    db.Column("event_id", db.Integer, db.ForeignKey("events.id"), primary_key=True),
)


class Pack(db.Model):
    __tablename__ = "packs"

    # Lifecycle: draft -> open -> closed -> graded; archived packs never count
    STATUSES = ("draft", "open", "closed", "graded", "archived")

    id = db.Column(db.Integer, primary_key=True)

    # External identifiers
    pack_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    pack_url = db.Column(db.String(200), unique=True, index=True)

    title = db.Column(db.String(200))
    pack_status = db.Column(db.String(20), default="open", nullable=False)

    # Write-once winner reference, set by the grading service
    winner_profile_ref = db.Column(
        db.Integer, db.ForeignKey("profiles.id"), nullable=True
    )

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    props = db.relationship("Prop", backref="pack", lazy="dynamic")
    events = db.relationship("Event", secondary=packs_events, backref="packs")
    winner = db.relationship("Profile", foreign_keys=[winner_profile_ref])

    __table_args__ = (db.Index("idx_pack_status", "pack_status"),)

    def __repr__(self):
        return f"<Pack {self.pack_id} ({self.pack_status})>"

    @property
    def is_graded(self):
        return (self.pack_status or "").lower() == "graded"

    @staticmethod
    def find(identifier):
        """Find a pack by URL, text pack_id, or internal id"""
        if identifier is None:
            return None
        ident = str(identifier).strip()
        if not ident:
            return None
        pack = Pack.query.filter(
            db.or_(Pack.pack_url == ident, Pack.pack_id == ident)
        ).first()
        if pack is None and ident.isdigit():
            pack = db.session.get(Pack, int(ident))
        return pack

    def linked_take_ids(self):
        """Identifiers of every take placed on this pack's props"""
        from .prop import Prop
        from .take import Take

        rows = (
            db.session.query(Take.id)
            .join(Prop, Take.prop_ref == Prop.id)
            .filter(Prop.pack_ref == self.id)
            .order_by(Take.id)
            .all()
        )
        return [row.id for row in rows]

    def to_dict(self):
        """Convert pack to dictionary for API responses"""
        return {
            "id": self.id,
            "pack_id": self.pack_id,
            "pack_url": self.pack_url,
            "title": self.title or "",
            "pack_status": self.pack_status,
            "winner_profile_id": self.winner.profile_id if self.winner else None,
            "props_count": self.props.count(),
        }
