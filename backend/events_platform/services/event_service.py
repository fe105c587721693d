"""
Event service handling CRUD operations and team permissions.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from events_platform.core.logging import get_logger
from events_platform.models.event import Event
from events_platform.models.registration import EventRegistration
from events_platform.models.team import TeamMember
from events_platform.schemas.event import EventCreate, EventUpdate
from events_platform.services.capacity import load_event

logger = get_logger(__name__)


async def get_membership(db: AsyncSession, user_id: int, team_id: Optional[int] = None) -> Optional[TeamMember]:
    """The caller's membership in `team_id`, or their first membership when no team is given."""
    query = select(TeamMember).where(TeamMember.user_id == user_id)
    if team_id is not None:
        query = query.where(TeamMember.team_id == team_id)
    result = await db.execute(query.order_by(TeamMember.id).limit(1))
    return result.scalar_one_or_none()


async def require_event_manager(db: AsyncSession, user_id: int, team_id: Optional[int]) -> TeamMember:
    membership = await get_membership(db, user_id, team_id) if team_id is not None else None
    if membership is None or not membership.can_manage_events:
        raise ForbiddenError("Forbidden - You don't have permission to manage events for this team")
    return membership


async def create_event(db: AsyncSession, event_data: EventCreate, user_id: int) -> Event:
    """
    Create an event owned by the caller's team.
    tickets_remaining starts equal to max_attendees (NULL means unlimited).
    """
    if event_data.team_id is None:
        membership = await get_membership(db, user_id)
        if membership is None:
            raise ForbiddenError("Forbidden - You are not a member of any team")
        team_id = membership.team_id
    else:
        team_id = event_data.team_id
    membership = await require_event_manager(db, user_id, team_id)

    if event_data.end_time <= event_data.start_time:
        raise ValidationError("End time must be after start time")

    event = Event(
        status=event_data.status,
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        start_time=event_data.start_time,
        end_time=event_data.end_time,
        max_attendees=event_data.max_attendees,
        tickets_remaining=event_data.max_attendees,
        price=event_data.price,
        is_public=event_data.is_public,
        team_id=team_id,
        created_by=membership.id,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info(
        "event_created",
        event_id=event.id,
        team_id=team_id,
        status=event.status,
        max_attendees=event.max_attendees,
    )
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    return await load_event(db, event_id)


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Event], int]:
    """Published, public events ordered by start time."""
    query = select(Event).where(Event.status == "published", Event.is_public.is_(True))

    if upcoming_only:
        query = query.where(Event.start_time >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.start_time.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total


async def update_event(db: AsyncSession, event_id: int, update_data: EventUpdate, user_id: int) -> Event:
    """
    Partial update. tickets_remaining may be changed on its own, which lets
    operators resize sellable inventory without touching max_attendees.
    """
    event = await load_event(db, event_id)
    await require_event_manager(db, user_id, event.team_id)

    changes = update_data.model_dump(exclude_unset=True)
    if "team_id" in changes and changes["team_id"] != event.team_id:
        await require_event_manager(db, user_id, changes["team_id"])

    start_time = changes.get("start_time", event.start_time)
    end_time = changes.get("end_time", event.end_time)
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")

    for field, value in changes.items():
        setattr(event, field, value)
    await db.flush()
    await db.refresh(event)

    logger.info("event_updated", event_id=event.id, fields=sorted(changes))
    return event


async def delete_event(db: AsyncSession, event_id: int, user_id: int) -> None:
    event = await load_event(db, event_id)
    await require_event_manager(db, user_id, event.team_id)

    await db.delete(event)
    await db.flush()
    logger.info("event_deleted", event_id=event_id, user_id=user_id)


async def list_event_registrations(db: AsyncSession, event_id: int, user_id: int) -> list[EventRegistration]:
    """Registrations for an event, visible to members of the owning team."""
    event = await load_event(db, event_id)
    if event.team_id is None or await get_membership(db, user_id, event.team_id) is None:
        raise ForbiddenError("Forbidden - Only team members can view registrations")

    result = await db.execute(
        select(EventRegistration)
        .where(EventRegistration.event_id == event_id)
        .order_by(EventRegistration.registration_time.asc(), EventRegistration.id.asc())
    )
    return list(result.scalars().all())
