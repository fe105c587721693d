"""
Event endpoints: CRUD, availability, and registration.

Listings and availability are cached in Redis; anything that moves
tickets_remaining invalidates the affected keys after the transaction
has committed.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.config import Settings, get_settings
from events_platform.core.logging import get_logger
from events_platform.core.security import get_current_user_id
from events_platform.db.session import get_db
from events_platform.schemas.event import (
    AvailabilityResponse,
    EventCreate,
    EventListResponse,
    EventResponse,
    EventUpdate,
)
from events_platform.schemas.registration import (
    CancelResponse,
    RegisterResponse,
    RegistrationCreate,
    RegistrationResponse,
    TicketInfo,
)
from events_platform.services import event_service, registration_service
from events_platform.services.cache_service import (
    get_cached_availability,
    get_cached_events,
    invalidate_event_cache,
    set_cached_availability,
    set_cached_events,
)
from events_platform.services.capacity import check_availability
from events_platform.services.notification_service import send_registration_confirmation
from events_platform.services.ticket_service import CodePolicy

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create an event for one of the caller's teams. Requires an owner/admin/event_manager role."""
    event = await event_service.create_event(db, event_data, user_id)
    await db.commit()
    await invalidate_event_cache()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """
    List published public events with pagination.
    Results are cached in Redis; registrations and event changes invalidate them.
    """
    cached = await get_cached_events(page, page_size, upcoming_only)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await event_service.list_events(db, page, page_size, upcoming_only)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump() for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(page, page_size, upcoming_only, response_data)

    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (needs a real-time tickets_remaining)."""
    return await event_service.get_event(db, event_id)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    update_data: EventUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.update_event(db, event_id, update_data, user_id)
    await db.commit()
    await invalidate_event_cache(event_id)
    return event


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_endpoint(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await event_service.delete_event(db, event_id, user_id)
    await db.commit()
    await invalidate_event_cache(event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{event_id}/availability", response_model=AvailabilityResponse)
async def event_availability_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Advisory pre-flight check. The answer may be a few seconds stale;
    registration re-checks under the event lock.
    """
    cached = await get_cached_availability(event_id)
    if cached is not None:
        return AvailabilityResponse(**cached)

    availability = await check_availability(db, event_id)
    response = AvailabilityResponse(available=availability.available, reason=availability.reason)
    await set_cached_availability(event_id, response.model_dump())
    return response


@router.get("/{event_id}/registrations", response_model=list[RegistrationResponse])
async def list_event_registrations_endpoint(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Registrations for an event. Team members only."""
    return await event_service.list_event_registrations(db, event_id, user_id)


@router.post(
    "/{event_id}/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"model": RegisterResponse, "description": "Cancelled registration reactivated"}},
)
async def register_for_event(
    event_id: int,
    response: Response,
    background_tasks: BackgroundTasks,
    payload: Optional[RegistrationCreate] = Body(None),
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Register for an event.

    Runs under a row lock on the event, so the last seat goes to exactly
    one caller. Returns 201 for a new registration and 200 when a
    previously cancelled registration is reactivated.
    """
    user_id = await registration_service.resolve_registrant(
        db, caller_id, payload.user_id if payload else None
    )
    result = await registration_service.register(
        db, event_id, user_id, code_policy=CodePolicy.from_settings(settings)
    )
    await invalidate_event_cache(event_id)

    ticket_info = result.ticket_info()
    background_tasks.add_task(send_registration_confirmation, settings, ticket_info)

    if result.reactivated:
        response.status_code = status.HTTP_200_OK

    registration = RegistrationResponse.model_validate(result.registration).model_copy(
        update={"reactivated": result.reactivated, "ticket_info": TicketInfo(**ticket_info)}
    )
    return RegisterResponse(
        msg="Registration reactivated successfully" if result.reactivated else "Registration successful",
        registration=registration,
    )


@router.patch("/registrations/{registration_id}/cancel", response_model=CancelResponse)
async def cancel_registration_endpoint(
    registration_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel your own registration. The seat returns to inventory."""
    registration = await registration_service.cancel(db, registration_id, caller_user_id=caller_id)
    await invalidate_event_cache(registration.event_id)
    return CancelResponse(
        msg="Registration cancelled successfully",
        registration=RegistrationResponse.model_validate(registration),
    )
