"""Event routes: the calling surface for the update orchestrator."""
from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

from schedule_engine.core.dependencies import get_collection, get_orchestrator
from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.orchestrator import UpdateOrchestrator
from schedule_engine.engine.recurrence import (
    RecurringDeleteOption,
    RecurringEditScope,
    expand_events,
)
from schedule_engine.errors import (
    EventNotFoundError,
    InvalidTimeRangeError,
    NoPendingConfirmationError,
)
from schedule_engine.models.event import Event, EventCreate, EventUpdate

router = APIRouter(prefix="/events", tags=["events"])

DEFAULT_RANGE_DAYS = 7


class RecurringDeleteRequest(SQLModel):
    option: RecurringDeleteOption


class RecurringUpdateRequest(SQLModel):
    changes: EventUpdate
    scope: RecurringEditScope = RecurringEditScope.SINGLE


def _get_event(collection: EventCollection, event_id: str) -> Event:
    event = collection.get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.get("")
async def list_events(
    start: date | None = None,
    end: date | None = None,
    collection: EventCollection = Depends(get_collection),
):
    """
    List occurrences in a date range.

    Recurring events are expanded into one occurrence per matching date.
    Defaults to the week starting today. Both bounds are inclusive dates.
    """
    start = start or date.today()
    end = end or start + timedelta(days=DEFAULT_RANGE_DAYS - 1)
    if end < start:
        raise HTTPException(status_code=422, detail="Range end must not be before range start")
    return expand_events(collection.all(), start, end)


@router.get("/confirmation")
async def pending_confirmation(orchestrator: UpdateOrchestrator = Depends(get_orchestrator)):
    """Describe the time change waiting for a participant decision, if any."""
    if orchestrator.pending is None:
        return {"pending": False}
    return {"pending": True, **orchestrator.pending.summary()}


@router.post("/confirmation/confirm")
async def confirm_pending(
    notify: bool = True,
    orchestrator: UpdateOrchestrator = Depends(get_orchestrator),
):
    """
    Commit the pending participant-affecting change.

    The notify flag is forwarded to the participant notifier. Returns the
    committed event, or 502 if the store rejected it (the change is kept
    locally).
    """
    try:
        event = await orchestrator.confirm(notify)
    except NoPendingConfirmationError:
        raise HTTPException(status_code=409, detail="No change is waiting for confirmation")
    if event is None:
        raise HTTPException(status_code=502, detail="Change kept locally; the event store rejected it")
    return event


@router.post("/confirmation/cancel")
async def cancel_pending(orchestrator: UpdateOrchestrator = Depends(get_orchestrator)):
    """Discard the pending participant-affecting change."""
    try:
        orchestrator.cancel()
    except NoPendingConfirmationError:
        raise HTTPException(status_code=409, detail="No change is waiting for confirmation")
    return {"cancelled": True}


@router.get("/{event_id}")
async def get_event(event_id: str, collection: EventCollection = Depends(get_collection)):
    """Get a single event by id."""
    return _get_event(collection, event_id)


@router.post("", status_code=201)
async def create_event(
    data: EventCreate,
    orchestrator: UpdateOrchestrator = Depends(get_orchestrator),
):
    """
    Create an event.

    The event is added locally under a provisional id at once. Returns the
    stored event, or 502 when the store failed (the provisional event stays).
    """
    try:
        event = await orchestrator.create_event(data)
    except InvalidTimeRangeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if event is None:
        raise HTTPException(status_code=502, detail="Event kept locally; the event store rejected it")
    return event


@router.patch("/{event_id}")
async def update_event(
    event_id: str,
    changes: EventUpdate,
    orchestrator: UpdateOrchestrator = Depends(get_orchestrator),
):
    """
    Apply a partial change to an event.

    Time changes to events with participants are not applied yet: the
    response is 202 describing the pending change, to be resolved through
    /events/confirmation/confirm or /events/confirmation/cancel.
    """
    try:
        result = orchestrator.submit_update(event_id, changes)
    except EventNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")
    except InvalidTimeRangeError as e:
        raise HTTPException(status_code=422, detail=str(e))

    pending = orchestrator.pending
    if pending is not None and pending.result is result:
        return JSONResponse(status_code=202, content={"pending": True, **pending.summary()})

    event = await result
    if event is None:
        raise HTTPException(status_code=502, detail="Change kept locally; the event store rejected it")
    return event


@router.delete("/{event_id}")
async def delete_event(
    event_id: str,
    collection: EventCollection = Depends(get_collection),
    orchestrator: UpdateOrchestrator = Depends(get_orchestrator),
):
    """Delete a single event. deleted is False when only the local copy went away."""
    _get_event(collection, event_id)
    deleted = await orchestrator.delete_event(event_id)
    return {"deleted": deleted}


@router.get("/{event_id}/related")
async def related_events(event_id: str, collection: EventCollection = Depends(get_collection)):
    """Events in the same recurrence group, ordered by start time."""
    return collection.cohort(_get_event(collection, event_id))


@router.post("/{event_id}/delete-recurring")
async def delete_recurring(
    event_id: str,
    request: RecurringDeleteRequest,
    collection: EventCollection = Depends(get_collection),
    orchestrator: UpdateOrchestrator = Depends(get_orchestrator),
):
    """
    Delete part of a recurrence group.

    Options: this_only, all_previous, this_and_following, all. If the store
    fails nothing is removed and the StoreError becomes a 502 so the caller
    can retry.
    """
    event = _get_event(collection, event_id)
    return await orchestrator.delete_recurring(event, request.option)


@router.patch("/{event_id}/recurring")
async def update_recurring(
    event_id: str,
    request: RecurringUpdateRequest,
    collection: EventCollection = Depends(get_collection),
    orchestrator: UpdateOrchestrator = Depends(get_orchestrator),
):
    """Apply a change to this event, this and following events, or the whole group."""
    event = _get_event(collection, event_id)
    try:
        return await orchestrator.update_recurring(event, request.changes, request.scope)
    except InvalidTimeRangeError as e:
        raise HTTPException(status_code=422, detail=str(e))
