import enum
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship

from eventlog.database import Base
from eventlog.models.user import new_uuid


class EventStatus(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    # wall-clock times kept as zero-padded "HH:MM[:SS]" strings
    start_time = Column(String(8), nullable=False)
    end_time = Column(String(8), nullable=True)
    duration = Column(Integer, nullable=True)  # minutes
    description = Column(Text, nullable=False)
    html_description = Column(Text, nullable=False, default="")
    text_description = Column(Text, nullable=False, default="")

    status = Column(String(16), nullable=False, default=EventStatus.ACTIVE.value, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="events", lazy="selectin")
    hash_tags = relationship(
        "HashTag",
        secondary="event_hash_tags",
        lazy="selectin",
        order_by="HashTag.name",
    )

    __table_args__ = (
        # previous-open-event lookup and per-day listings
        Index("ix_events_user_date_start", "user_id", "date", "start_time"),
        Index("ix_events_duration", "duration"),
    )

    # Not persisted: set on creation to close the user's previous open event.
    ends_previous = False

    @property
    def is_deleted(self) -> bool:
        return self.status == EventStatus.DELETED.value

    @property
    def hash_tag_names(self) -> list[str]:
        return [t.name for t in (self.hash_tags or [])]

    def __repr__(self) -> str:
        return f"<Event id={self.id} user={self.user_id} date={self.date} start={self.start_time}>"
