# eventlog/routes/events.py

import datetime as dt
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventlog.database import get_db
from eventlog.event_rules import EventValidationError
from eventlog.models.user import User
from eventlog.schemas import EventCreate, EventRead, EventUpdate
from eventlog.services.events import EventNotFound, EventService

logger = logging.getLogger("events")

router = APIRouter(tags=["Events"])

# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

async def load_user(user_id: str, db: AsyncSession) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def validation_failed(exc: EventValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=[error.as_dict() for error in exc.errors],
    )


async def load_event(
    service: EventService, user: User, event_id: str, include_deleted: bool = False
):
    try:
        return await service.get_event(event_id, user=user, include_deleted=include_deleted)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")

# Create event -------------------------------------------------------

@router.post("/users/{user_id}/events", response_model=EventRead, status_code=201)
async def create_event(
    user_id: str,
    payload: EventCreate,
    db: AsyncSession = Depends(get_db),
):
    user = await load_user(user_id, db)
    service = EventService(db)
    try:
        event = await service.create_event(user, payload)
    except EventValidationError as exc:
        await db.rollback()
        raise validation_failed(exc)

    await db.commit()
    return event

# List events --------------------------------------------------------

@router.get("/users/{user_id}/events", response_model=List[EventRead])
async def list_events(
    user_id: str,
    date: Optional[dt.date] = None,
    include_deleted: bool = False,
    db: AsyncSession = Depends(get_db),
):
    user = await load_user(user_id, db)
    return await EventService(db).list_events(user, day=date, include_deleted=include_deleted)

# Longest events report ----------------------------------------------

@router.get("/users/{user_id}/events/longest", response_model=Dict[str, int])
async def longest_events(
    user_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    user = await load_user(user_id, db)
    return await EventService(db).longest_duration(limit=limit, user=user)


@router.get("/events/longest", response_model=Dict[str, int])
async def longest_events_overall(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    return await EventService(db).longest_duration(limit=limit)

# Single event -------------------------------------------------------

@router.get("/users/{user_id}/events/{event_id}", response_model=EventRead)
async def get_event(
    user_id: str,
    event_id: str,
    include_deleted: bool = False,
    db: AsyncSession = Depends(get_db),
):
    user = await load_user(user_id, db)
    return await load_event(EventService(db), user, event_id, include_deleted)


@router.patch("/users/{user_id}/events/{event_id}", response_model=EventRead)
async def update_event(
    user_id: str,
    event_id: str,
    payload: EventUpdate,
    db: AsyncSession = Depends(get_db),
):
    user = await load_user(user_id, db)
    service = EventService(db)
    event = await load_event(service, user, event_id)
    try:
        await service.update_event(user, event, payload)
    except EventValidationError as exc:
        await db.rollback()
        raise validation_failed(exc)

    await db.commit()
    return event

# Soft delete / restore ----------------------------------------------

@router.delete("/users/{user_id}/events/{event_id}", status_code=204)
async def delete_event(
    user_id: str,
    event_id: str,
    db: AsyncSession = Depends(get_db),
):
    user = await load_user(user_id, db)
    service = EventService(db)
    event = await load_event(service, user, event_id)
    await service.soft_delete_event(event)
    await db.commit()
    return


@router.post("/users/{user_id}/events/{event_id}/restore", response_model=EventRead)
async def restore_event(
    user_id: str,
    event_id: str,
    db: AsyncSession = Depends(get_db),
):
    user = await load_user(user_id, db)
    service = EventService(db)
    event = await load_event(service, user, event_id, include_deleted=True)
    await service.restore_event(event)
    await db.commit()
    return event
