from takeboard import db


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200))

    # Stored as naive UTC
    event_time = db.Column(db.DateTime, index=True)

    def __repr__(self):
        return f"<Event {self.id} {self.event_time}>"
