"""Conflict routes for checking proposed times and finding free slots."""
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from sqlmodel import Field, SQLModel

from schedule_engine.core.config import settings
from schedule_engine.core.dependencies import get_collection
from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.conflicts import ProposedEvent, detect_conflicts, find_next_available_slot
from schedule_engine.engine.recurrence import project_events

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


class NextSlotRequest(SQLModel):
    start: datetime
    duration_minutes: int = Field(gt=0)
    work_hours_start: int | None = Field(default=None, ge=0, le=23)
    work_hours_end: int | None = Field(default=None, ge=1, le=24)
    interval_minutes: int | None = Field(default=None, gt=0)
    max_search_hours: int | None = Field(default=None, gt=0)


@router.post("/check")
async def check_conflicts(
    proposed: ProposedEvent,
    collection: EventCollection = Depends(get_collection),
):
    """
    Check a proposed time range against the calendar.

    Recurring events are checked at each of their occurrences. Conflicts
    are advisory: can_proceed is always true.
    """
    existing = project_events(
        collection.all(), proposed.start_time.date(), proposed.end_time.date()
    )
    return detect_conflicts(proposed, existing)


@router.post("/next-slot")
async def next_available_slot(
    request: NextSlotRequest,
    collection: EventCollection = Depends(get_collection),
):
    """
    Suggest the first conflict-free start at or after a proposed start.

    Returns {"start": null} when nothing is free within the search horizon.
    """
    horizon = request.max_search_hours or settings.slot_search_max_hours
    existing = project_events(
        collection.all(),
        request.start.date(),
        (request.start + timedelta(hours=horizon, minutes=request.duration_minutes)).date(),
    )
    start = find_next_available_slot(
        request.start,
        request.duration_minutes,
        existing,
        work_hours_start=request.work_hours_start,
        work_hours_end=request.work_hours_end,
        interval_minutes=request.interval_minutes,
        max_search_hours=horizon,
    )
    return {"start": start}
