import uuid

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression

from eventlog.database import Base
from eventlog.time_zones import DEFAULT_TIME_ZONE


def new_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    username = Column(String(64), unique=True, nullable=False)
    email = Column(String(255), unique=True)
    # IANA zone name; event times are anchored to it when computing durations
    time_zone = Column(String(64), nullable=False, default=DEFAULT_TIME_ZONE)
    online = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    created_at = Column(DateTime, default=func.now())

    events = relationship("Event", back_populates="user", lazy="noload")
    hash_tags = relationship("HashTag", back_populates="user", lazy="noload")

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username}>"
