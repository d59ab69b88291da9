"""
Event model. Seat inventory lives on the event's CapacityRecord, not here.

Key design decisions:
- Index on `date` for range queries (e.g., "events this week")
- organizer_id is a plain reference; user accounts are managed elsewhere
"""

from sqlalchemy import Column, Integer, String, Index

from app.db.base import Base, TimestampMixin, UTCDateTime


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    date = Column(UTCDateTime, nullable=False)
    location = Column(String(255), nullable=True)
    organizer_id = Column(Integer, nullable=False, index=True)

    __table_args__ = (
        # Index on date for range queries (upcoming events, events this week)
        Index("ix_events_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title})>"
