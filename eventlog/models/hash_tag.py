from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from eventlog.database import Base
from eventlog.event_rules import DESCRIPTION_MAX_LENGTH


class HashTag(Base):
    __tablename__ = "hash_tags"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # stored lower-cased, without the leading '#'; a tag can span a whole description
    name = Column(String(DESCRIPTION_MAX_LENGTH), nullable=False)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_hash_tag_user_name"),
    )

    user = relationship("User", back_populates="hash_tags")

    def __repr__(self) -> str:
        return f"<HashTag #{self.name} user={self.user_id}>"


class EventHashTag(Base):
    __tablename__ = "event_hash_tags"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    hash_tag_id = Column(Integer, ForeignKey("hash_tags.id", ondelete="CASCADE"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("event_id", "hash_tag_id", name="uq_event_hash_tag"),
    )
