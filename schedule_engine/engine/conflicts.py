"""Scheduling conflict detection.

Two events conflict when their half-open time ranges intersect: touching
endpoints (one ends at 10:00, the next starts at 10:00) are not a conflict.
Conflicts are advisory. They are returned as data for the caller to warn
about, never raised, and never block a save.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlmodel import SQLModel

from schedule_engine.core.config import settings
from schedule_engine.models.event import Event

logger = logging.getLogger(__name__)


class TimeOverlap(SQLModel):
    """The shared sub-interval of two overlapping ranges."""
    start: datetime
    end: datetime
    duration_minutes: int


class ProposedEvent(SQLModel):
    """A candidate time range checked against the calendar.

    Attributes:
        id: Set when the proposal is an edit of an existing event, which is
            then excluded from the comparison.
        title: Title shown in conflict messages.
        start_time: Proposed start.
        end_time: Proposed end.
        client_id: CRM client the proposal is for.
        client_name: Display name of that client.
    """
    id: str | None = None
    title: str
    start_time: datetime
    end_time: datetime
    client_id: str | None = None
    client_name: str | None = None


class ConflictDetail(SQLModel):
    id: str
    severity: str = "error"
    message: str
    conflicting_event: Event
    proposed_event: ProposedEvent
    time_overlap: TimeOverlap


class ConflictResult(SQLModel):
    """Outcome of a conflict check. can_proceed is always True."""
    has_conflicts: bool
    conflicts: list[ConflictDetail]
    can_proceed: bool = True


class OccupiedSlot(SQLModel):
    start: datetime
    end: datetime
    event_id: str


def ranges_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """True when two half-open ranges share at least one instant."""
    return start1 < end2 and start2 < end1


def calculate_overlap(
    start1: datetime, end1: datetime, start2: datetime, end2: datetime
) -> TimeOverlap | None:
    """Return the overlapping sub-interval of two ranges, or None."""
    if not ranges_overlap(start1, end1, start2, end2):
        return None

    overlap_start = max(start1, start2)
    overlap_end = min(end1, end2)
    duration_minutes = round((overlap_end - overlap_start).total_seconds() / 60)

    return TimeOverlap(start=overlap_start, end=overlap_end, duration_minutes=duration_minutes)


def format_duration(minutes: int) -> str:
    """Format a duration for display: "30 minutes", "1 hour", "1h 30m"."""
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours} hour{'s' if hours != 1 else ''}"
    return f"{hours}h {remaining}m"


def format_time(value: datetime) -> str:
    """Format a time of day as "9:30 AM"."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def detect_conflicts(proposed: ProposedEvent, existing: list[Event]) -> ConflictResult:
    """
    Detect conflicts between a proposed time range and existing events.

    When the proposal carries an id, the event with that id is skipped so an
    event never conflicts with its own previous position.

    Returns a ConflictResult with one ConflictDetail per overlapping event,
    in the order the events were given.
    """
    conflicts = []

    for event in existing:
        if proposed.id is not None and event.id == proposed.id:
            continue

        overlap = calculate_overlap(
            proposed.start_time, proposed.end_time, event.start_time, event.end_time
        )
        if overlap is None:
            continue

        conflicts.append(
            ConflictDetail(
                id=f"conflict_{event.id}",
                message=(
                    f'Overlaps with "{event.title}" by {format_duration(overlap.duration_minutes)} '
                    f"({format_time(overlap.start)} - {format_time(overlap.end)})"
                ),
                conflicting_event=event,
                proposed_event=proposed,
                time_overlap=overlap,
            )
        )

    if conflicts:
        logger.debug(f"Proposed range {proposed.start_time} - {proposed.end_time} has {len(conflicts)} conflicts")

    return ConflictResult(has_conflicts=len(conflicts) > 0, conflicts=conflicts)


def _proposal_for(event: Event, new_start: datetime, new_end: datetime) -> ProposedEvent:
    return ProposedEvent(
        id=event.id,
        title=event.title,
        start_time=new_start,
        end_time=new_end,
        client_id=event.client_id,
        client_name=event.client_name,
    )


def check_drag_conflicts(
    event: Event, new_start: datetime, new_end: datetime, existing: list[Event]
) -> ConflictResult:
    """Conflicts an existing event would have after being moved."""
    return detect_conflicts(_proposal_for(event, new_start, new_end), existing)


def check_resize_conflicts(
    event: Event, new_start: datetime, new_end: datetime, existing: list[Event]
) -> ConflictResult:
    """Conflicts an existing event would have after being resized."""
    return detect_conflicts(_proposal_for(event, new_start, new_end), existing)


def get_conflicting_events(
    start: datetime,
    end: datetime,
    existing: list[Event],
    exclude_id: str | None = None,
) -> list[Event]:
    """Events overlapping a range, used for live highlighting during drags."""
    return [
        event
        for event in existing
        if event.id != exclude_id
        and ranges_overlap(start, end, event.start_time, event.end_time)
    ]


def has_conflict_at_time(
    start: datetime,
    end: datetime,
    existing: list[Event],
    exclude_id: str | None = None,
) -> bool:
    return len(get_conflicting_events(start, end, existing, exclude_id)) > 0


def get_occupied_time_slots(day: date, existing: list[Event]) -> list[OccupiedSlot]:
    """Time ranges taken on a day, each clamped to the day's bounds."""
    day_start = datetime.combine(day, time.min)
    day_end = datetime.combine(day, time.max)

    return [
        OccupiedSlot(
            start=max(event.start_time, day_start),
            end=min(event.end_time, day_end),
            event_id=event.id,
        )
        for event in existing
        if event.start_time <= day_end and event.end_time >= day_start
    ]


def find_next_available_slot(
    start: datetime,
    duration_minutes: int,
    existing: list[Event],
    *,
    work_hours_start: int | None = None,
    work_hours_end: int | None = None,
    interval_minutes: int | None = None,
    max_search_hours: int | None = None,
) -> datetime | None:
    """
    Find the first conflict-free start at or after a proposed start.

    Walks forward in fixed steps. Instants before the working day jump to
    its start; instants at or after the end of the working day jump to the
    start of the next one. Search stops after max_search_hours measured from
    the proposed start.

    Returns the first start whose duration-sized window overlaps nothing,
    or None if no such start exists within the horizon.
    """
    if work_hours_start is None:
        work_hours_start = settings.work_hours_start
    if work_hours_end is None:
        work_hours_end = settings.work_hours_end
    if interval_minutes is None:
        interval_minutes = settings.slot_search_interval_minutes
    if max_search_hours is None:
        max_search_hours = settings.slot_search_max_hours

    horizon = start + timedelta(hours=max_search_hours)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=interval_minutes)
    current = start

    while current < horizon:
        if current.hour < work_hours_start:
            current = current.replace(hour=work_hours_start, minute=0, second=0, microsecond=0)
            continue
        if current.hour >= work_hours_end:
            next_day = current + timedelta(days=1)
            current = next_day.replace(hour=work_hours_start, minute=0, second=0, microsecond=0)
            continue

        if not get_conflicting_events(current, current + duration, existing):
            return current

        current += step

    return None
