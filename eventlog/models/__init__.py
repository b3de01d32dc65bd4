"""ORM models; importing this package registers every table with ``Base``."""

from eventlog.models.user import User
from eventlog.models.hash_tag import EventHashTag, HashTag
from eventlog.models.event import Event, EventStatus

__all__ = ["Event", "EventHashTag", "EventStatus", "HashTag", "User"]
