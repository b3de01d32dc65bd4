# eventlog/services/events.py
"""Save lifecycle for event records.

Every write goes through ``_apply``: the merged record is validated, times are
normalised, and derived fields are recomputed only for the fields that actually
changed between the stored snapshot and the new values. The service flushes but
never commits; the caller owns the transaction.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventlog.event_rules import (
    DESCRIPTION_FIELDS,
    TIME_FIELDS,
    EventValidationError,
    changed_fields,
    derive_duration,
    normalize_time,
    parse_date,
    validate,
)
from eventlog.models.event import Event, EventStatus
from eventlog.models.user import User
from eventlog.schemas import EventCreate, EventUpdate
from eventlog.services.hash_tags import HashTagExtractor, HashTagService
from eventlog.services.markdown import MarkdownRenderer, MarkdownService
from eventlog.time_zones import now_utc, resolve_time_zone

logger = logging.getLogger("events")

_RECORD_FIELDS = ("date", "start_time", "end_time", "description")


class EventNotFound(LookupError):
    pass


def _snapshot(event: Event) -> Dict[str, Any]:
    return {name: getattr(event, name) for name in _RECORD_FIELDS}


def _active_only(stmt, include_deleted: bool):
    if include_deleted:
        return stmt
    return stmt.where(Event.status == EventStatus.ACTIVE.value)


class EventService:
    def __init__(
        self,
        session: AsyncSession,
        hash_tags: Optional[HashTagExtractor] = None,
        renderer: Optional[MarkdownRenderer] = None,
    ) -> None:
        self.session = session
        self.hash_tags = hash_tags or HashTagService(session)
        self.renderer = renderer or MarkdownService()

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    async def create_event(self, user: User, data: EventCreate) -> Event:
        event = Event(user_id=user.id)
        await self._apply(event, user, before={}, after=data.model_dump(exclude={"ends_previous"}))
        event.ends_previous = data.ends_previous

        self.session.add(event)
        await self.session.flush()
        logger.info("Created event %s for user %s on %s", event.id, user.id, event.date)

        if event.ends_previous:
            await self.close_previous_open_event(user, event)
        return event

    async def update_event(self, user: User, event: Event, data: EventUpdate) -> Event:
        if event.user_id != user.id:
            raise EventNotFound(event.id)
        before = _snapshot(event)
        await self._apply(event, user, before=before, after={**before, **data.changes()})
        await self.session.flush()
        return event

    async def soft_delete_event(self, event: Event) -> Event:
        if event.status != EventStatus.DELETED.value:
            event.status = EventStatus.DELETED.value
            event.deleted_at = now_utc()
            await self.session.flush()
            logger.info("Soft-deleted event %s", event.id)
        return event

    async def restore_event(self, event: Event) -> Event:
        if event.status != EventStatus.ACTIVE.value:
            event.status = EventStatus.ACTIVE.value
            event.deleted_at = None
            await self.session.flush()
            logger.info("Restored event %s", event.id)
        return event

    async def close_previous_open_event(self, user: User, event: Event) -> Optional[Event]:
        """End the user's latest open event that started earlier on the same day.

        Ties on ``start_time`` go to the most recently created event. Returns
        the closed event, or ``None`` when there is nothing to close.
        """

        stmt = (
            select(Event)
            .where(
                Event.user_id == event.user_id,
                Event.date == event.date,
                Event.status == EventStatus.ACTIVE.value,
                or_(Event.end_time.is_(None), Event.end_time == ""),
                Event.start_time < event.start_time,
            )
            .order_by(Event.start_time.desc(), Event.created_at.desc(), Event.id.desc())
            .limit(1)
        )
        previous = (await self.session.execute(stmt)).scalar_one_or_none()
        if previous is None:
            return None

        await self.update_event(user, previous, EventUpdate(end_time=event.start_time))
        logger.info("Event %s ended previous event %s at %s", event.id, previous.id, event.start_time)
        return previous

    async def _apply(self, event: Event, user: User, before: Dict[str, Any], after: Dict[str, Any]) -> None:
        errors = validate(after)
        if errors:
            logger.info("Rejected event for user %s: %s", user.id, [e.as_dict() for e in errors])
            raise EventValidationError(errors)

        record = {
            "date": parse_date(after["date"]),
            "start_time": normalize_time(after["start_time"]),
            "end_time": normalize_time(after.get("end_time")),
            "description": after["description"],
        }
        changed = changed_fields(before, record)
        for name, value in record.items():
            setattr(event, name, value)

        if changed & TIME_FIELDS:
            event.duration = derive_duration(
                event.date, event.start_time, event.end_time, resolve_time_zone(user.time_zone)
            )
        if changed & DESCRIPTION_FIELDS:
            await self._derive_description_renderings(user, event)

    async def _derive_description_renderings(self, user: User, event: Event) -> None:
        tags = list(await self.hash_tags.extract(user, event.description))
        event.hash_tags = tags
        html, text = self.renderer.render(event.description, tags)
        event.html_description = html
        event.text_description = text

    # -------------------------------------------------------------------
    # Reads (soft-deleted rows are hidden unless asked for)
    # -------------------------------------------------------------------

    async def get_event(
        self,
        event_id: str,
        user: Optional[User] = None,
        include_deleted: bool = False,
    ) -> Event:
        stmt = select(Event).where(Event.id == event_id)
        if user is not None:
            stmt = stmt.where(Event.user_id == user.id)
        event = (await self.session.execute(_active_only(stmt, include_deleted))).scalar_one_or_none()
        if event is None:
            raise EventNotFound(event_id)
        return event

    async def list_events(
        self,
        user: User,
        day: Optional[dt.date] = None,
        include_deleted: bool = False,
    ) -> List[Event]:
        stmt = select(Event).where(Event.user_id == user.id)
        if day is not None:
            stmt = stmt.where(Event.date == day)
        stmt = _active_only(stmt, include_deleted).order_by(
            Event.date, Event.start_time, Event.created_at
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def longest_duration(
        self,
        limit: Optional[int] = None,
        user: Optional[User] = None,
    ) -> Dict[str, int]:
        """Map rendered text description -> duration, longest first.

        Events whose text renders identically share one key.
        """

        stmt = select(Event.text_description, Event.duration).where(Event.duration.is_not(None))
        if user is not None:
            stmt = stmt.where(Event.user_id == user.id)
        stmt = _active_only(stmt, False).order_by(Event.duration.desc(), Event.created_at)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = (await self.session.execute(stmt)).all()
        return {text: duration for text, duration in rows}


__all__ = ["EventNotFound", "EventService"]
