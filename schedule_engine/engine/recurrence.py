"""Recurrence expansion.

A recurring event can be shown in two ways, and both are supported:

- Pattern occurrences: computed on demand from one stored source event and
  its RecurrenceRule. Nothing is persisted per occurrence; each gets a
  virtual id of the form ``<event id>@<YYYY-MM-DD>``.
- Linked occurrences: independently stored Events sharing one
  recurrence_group_id (the cohort). They are edited and deleted one by one
  and are displayed like any other event.

Every function here is pure: the same event and range always produce the
same occurrences.
"""

import calendar
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from enum import Enum
from uuid import uuid4

from sqlmodel import SQLModel

from schedule_engine.models.event import Event
from schedule_engine.models.recurrence import LAST_DAY_OF_MONTH, IntervalType, RecurrenceRule


class Occurrence(SQLModel):
    """A concrete, dated instance of an event.

    Attributes:
        id: Virtual occurrence id for pattern occurrences, or the event id
            for events that are not expanded.
        event_id: Id of the source event.
        day: Calendar date the occurrence starts on.
        start_time: Source start time-of-day projected onto day.
        end_time: start_time plus the source event's duration.
        index: Position of this occurrence within its series (0-based).
        event: The source event.
    """
    id: str
    event_id: str
    day: date
    start_time: datetime
    end_time: datetime
    index: int = 0
    event: Event


def occurrence_id(event_id: str, day: date) -> str:
    return f"{event_id}@{day.isoformat()}"


def _sunday_week_start(day: date) -> date:
    # date.weekday() is 0 for Monday; weeks here start on Sunday
    return day - timedelta(days=(day.weekday() + 1) % 7)


def sunday_weekday(day: date) -> int:
    """Weekday index with 0=Sunday ... 6=Saturday."""
    return (day.weekday() + 1) % 7


def _months_between(start: date, day: date) -> int:
    return (day.year - start.year) * 12 + (day.month - start.month)


def _matches_pattern(rule: RecurrenceRule, anchor: date, day: date) -> bool:
    """Whether a date falls on the rule's pattern, ignoring termination."""
    unit = rule.unit

    if unit == IntervalType.DAYS:
        return (day - anchor).days % rule.interval == 0

    if unit == IntervalType.WEEKS:
        week_days = rule.week_days or [sunday_weekday(anchor)]
        if sunday_weekday(day) not in week_days:
            return False
        weeks = (_sunday_week_start(day) - _sunday_week_start(anchor)).days // 7
        return weeks % rule.interval == 0

    if unit == IntervalType.MONTHS:
        month_day = rule.month_day if rule.month_day is not None else anchor.day
        if month_day == LAST_DAY_OF_MONTH:
            month_day = calendar.monthrange(day.year, day.month)[1]
        if day.day != month_day:
            return False
        return _months_between(anchor, day) % rule.interval == 0

    # Yearly
    if (day.month, day.day) != (anchor.month, anchor.day):
        return False
    return (day.year - anchor.year) % rule.interval == 0


def iter_occurrence_dates(event: Event, until: date) -> Iterator[tuple[int, date]]:
    """Yield (index, date) for each occurrence of a recurring event up to a date.

    Dates are walked from the event's start date so the occurrence count and
    the series index are always measured from the beginning of the series.
    """
    rule = event.recurrence
    anchor = event.start_time.date()
    last = until
    if rule.end_date is not None:
        last = min(last, rule.end_date)

    index = 0
    day = anchor
    while day <= last:
        if _matches_pattern(rule, anchor, day):
            if rule.occurrences is not None and index >= rule.occurrences:
                return
            yield index, day
            index += 1
        day += timedelta(days=1)


def _is_pattern_source(event: Event) -> bool:
    # Cohort members keep their rule but are already materialized
    return event.is_recurring and event.recurrence is not None and event.recurrence_group_id is None


def occurs_on(event: Event, day: date) -> bool:
    """
    Check whether an event has an occurrence on a given date.

    A non-recurring event occurs on every date its time range covers. A
    recurring event occurs on a date when the date is on or after the start
    date, not after the rule's end date, within the rule's occurrence count,
    and on the rule's pattern.
    """
    if not _is_pattern_source(event):
        return event.start_time.date() <= day <= event.end_time.date()

    anchor = event.start_time.date()
    rule = event.recurrence
    if day < anchor:
        return False
    if rule.end_date is not None and day > rule.end_date:
        return False
    if not _matches_pattern(rule, anchor, day):
        return False
    if rule.occurrences is None:
        return True

    return any(found == day for _, found in iter_occurrence_dates(event, day))


def _project(event: Event, day: date, index: int, virtual: bool) -> Occurrence:
    start = datetime.combine(day, event.start_time.time())
    return Occurrence(
        id=occurrence_id(event.id, day) if virtual else event.id,
        event_id=event.id,
        day=day,
        start_time=start,
        end_time=start + event.duration,
        index=index,
        event=event,
    )


def expand(event: Event, range_start: date, range_end: date) -> list[Occurrence]:
    """
    Expand an event into its occurrences within an inclusive date range.

    Recurring events yield one pattern occurrence per matching date, each
    carrying the source time-of-day and duration. A non-recurring event
    yields a single occurrence when it overlaps the range.

    Returns occurrences ordered by date.
    """
    if range_end < range_start:
        return []

    if not _is_pattern_source(event):
        if event.start_time.date() <= range_end and event.end_time.date() >= range_start:
            return [_project(event, event.start_time.date(), 0, virtual=False)]
        return []

    return [
        _project(event, day, index, virtual=True)
        for index, day in iter_occurrence_dates(event, range_end)
        if day >= range_start
    ]


def expand_events(events: list[Event], range_start: date, range_end: date) -> list[Occurrence]:
    """
    Expand a collection of events for display over a date range.

    Recurring sources without a cohort are expanded into pattern
    occurrences. Cohort members are already materialized, so they are shown
    as single occurrences like non-recurring events.

    Returns all occurrences sorted by start time.
    """
    occurrences = []
    for event in events:
        if event.recurrence_group_id is not None:
            if event.start_time.date() <= range_end and event.end_time.date() >= range_start:
                occurrences.append(_project(event, event.start_time.date(), 0, virtual=False))
        else:
            occurrences.extend(expand(event, range_start, range_end))

    occurrences.sort(key=lambda occurrence: (occurrence.start_time, occurrence.id))
    return occurrences


def project_events(events: list[Event], range_start: date, range_end: date) -> list[Event]:
    """Events positioned at each of their occurrences in a date range.

    Pattern occurrences become copies of their source event moved to the
    occurrence's times, keeping the source id, so they can be checked for
    conflicts like any stored event.
    """
    return [
        occurrence.event.model_copy(
            update={"start_time": occurrence.start_time, "end_time": occurrence.end_time}
        )
        for occurrence in expand_events(events, range_start, range_end)
    ]


def get_related_events(event: Event, events: list[Event]) -> list[Event]:
    """Return the event's cohort ordered by start time, or [event] if it has none."""
    if not event.recurrence_group_id:
        return [event]

    related = [e for e in events if e.recurrence_group_id == event.recurrence_group_id]
    if not related:
        return [event]
    return sorted(related, key=lambda e: e.start_time)


class RecurringDeleteOption(str, Enum):
    THIS_ONLY = "this_only"
    ALL_PREVIOUS = "all_previous"
    THIS_AND_FOLLOWING = "this_and_following"
    ALL = "all"


class RecurringEditScope(str, Enum):
    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


def _position(cohort: list[Event], target: Event) -> int:
    for index, member in enumerate(cohort):
        if member.id == target.id:
            return index
    raise ValueError(f"Event {target.id} is not part of its recurrence group")


def select_recurring_ids(
    cohort: list[Event], target: Event, option: RecurringDeleteOption
) -> list[str]:
    """
    Partition a cohort around a target for a recurring delete.

    The cohort must be ordered by start time. With the target at position k
    in a cohort of n events: this_only selects 1 id, all_previous the k ids
    strictly before it, this_and_following the n - k ids from it onward, and
    all every id.
    """
    index = _position(cohort, target)
    option = RecurringDeleteOption(option)

    if option == RecurringDeleteOption.THIS_ONLY:
        selected = [target]
    elif option == RecurringDeleteOption.ALL_PREVIOUS:
        selected = cohort[:index]
    elif option == RecurringDeleteOption.THIS_AND_FOLLOWING:
        selected = cohort[index:]
    else:
        selected = cohort

    return [event.id for event in selected]


def select_edit_targets(
    cohort: list[Event], target: Event, scope: RecurringEditScope
) -> list[Event]:
    """Cohort members a recurring edit applies to: the target, it and later ones, or all."""
    index = _position(cohort, target)
    scope = RecurringEditScope(scope)

    if scope == RecurringEditScope.SINGLE:
        return [cohort[index]]
    if scope == RecurringEditScope.FUTURE:
        return cohort[index:]
    return list(cohort)


def materialize_cohort(
    event: Event,
    range_start: date,
    range_end: date,
    group_id: str | None = None,
) -> list[Event]:
    """
    Turn the pattern occurrences of a recurring event into linked Events.

    Every generated event shares one recurrence_group_id and points back at
    the source through parent_event_id. The ids are the occurrence ids; the
    store assigns permanent ones on create.

    Returns the cohort ordered by start time.
    """
    group_id = group_id or str(uuid4())
    return [
        event.model_copy(
            update={
                "id": occurrence.id,
                "start_time": occurrence.start_time,
                "end_time": occurrence.end_time,
                "recurrence_group_id": group_id,
                "parent_event_id": event.id,
                "is_multi_day": occurrence.start_time.date() != occurrence.end_time.date(),
                "google_calendar_event_id": None,
                "outlook_calendar_event_id": None,
                "created_at": None,
                "updated_at": None,
            }
        )
        for occurrence in expand(event, range_start, range_end)
    ]
