"""
Event service handling create and read operations.
"""

from datetime import datetime, timezone
from sqlalchemy import and_, select, func
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from app.core.errors import ResourceNotFound
from app.models.capacity import CapacityRecord
from app.models.event import Event
from app.schemas.event import EventCreate
from app.core.logging import get_logger

logger = get_logger(__name__)

CAPACITY_FIELDS = ("total_capacity", "available_capacity", "blocked_capacity")


def _with_capacity(event: Event, capacity: CapacityRecord | None) -> dict:
    data = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "date": event.date,
        "location": event.location,
        "organizer_id": event.organizer_id,
        "created_at": event.created_at,
    }
    for field in CAPACITY_FIELDS:
        data[field] = getattr(capacity, field) if capacity is not None else None
    return data


def _live_capacity_join():
    return and_(
        CapacityRecord.event_id == Event.id,
        CapacityRecord.deleted_at.is_(None),
        CapacityRecord.is_active.is_(True),
    )


async def create_event(db: AsyncSession, event_data: EventCreate) -> dict:
    """Create a new event. Capacity is configured separately."""
    if event_data.date <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event date must be in the future",
        )

    event = Event(
        title=event_data.title,
        description=event_data.description,
        date=event_data.date,
        location=event_data.location,
        organizer_id=event_data.organizer_id,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info("event_created", event_id=event.id, title=event.title, organizer_id=event.organizer_id)
    return _with_capacity(event, None)


async def get_event(db: AsyncSession, event_id: int) -> dict:
    """Get a single event by ID with its live capacity counters."""
    result = await db.execute(
        select(Event, CapacityRecord)
        .outerjoin(CapacityRecord, _live_capacity_join())
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    row = result.first()

    if row is None:
        raise ResourceNotFound(f"Event {event_id} not found", event_id=event_id)
    return _with_capacity(*row)


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[dict], int]:
    """
    List events with pagination.
    Uses the ix_events_date index for efficient date filtering.
    """
    query = select(Event)

    if upcoming_only:
        query = query.where(Event.date >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .add_columns(CapacityRecord)
        .outerjoin(CapacityRecord, _live_capacity_join())
        .order_by(Event.date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = [_with_capacity(event, capacity) for event, capacity in result.all()]

    return events, total
