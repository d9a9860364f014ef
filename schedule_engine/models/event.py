"""Event model for scheduled appointments, tasks, and milestones.

This module defines the Event model, the unit every other part of the engine
works with: the recurrence expander projects it onto dates, the conflict
detector compares its time range against the rest of the calendar, and the
gesture editor proposes new ranges for it.

Times are naive wall-clock instants in the calendar owner's zone. The
models here are plain (non-table) SQLModel classes; persistence is handled
by the event store, which keeps its own row type.
"""

from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlmodel import Field, SQLModel

from schedule_engine.core.config import settings
from schedule_engine.errors import InvalidTimeRangeError
from schedule_engine.models.recurrence import RecurrenceRule

END_OF_DAY = time(23, 59)


class EventType(str, Enum):
    EVENT = "event"
    TASK = "task"
    GOAL = "goal"
    MILESTONE = "milestone"


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class EventPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ParticipantRole(str, Enum):
    ORGANIZER = "organizer"
    ATTENDEE = "attendee"
    OPTIONAL = "optional"


class ResponseStatus(str, Enum):
    NEEDS_ACTION = "needs_action"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    TENTATIVE = "tentative"


class NotificationTrigger(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"


class Participant(SQLModel):
    """A person invited to an event.

    Attributes:
        id: Identifier of the participant within the event.
        name: Display name.
        email: Contact email, used for notification delivery.
        phone: Optional contact number.
        role: Organizer, attendee, or optional attendee.
        response_status: Participant's response to the invitation.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    email: str | None = None
    phone: str | None = None
    role: ParticipantRole = ParticipantRole.ATTENDEE
    response_status: ResponseStatus = ResponseStatus.NEEDS_ACTION


class NotificationRule(SQLModel):
    """A reminder fired some amount of time before the event starts."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    value: int = Field(ge=0)
    trigger: NotificationTrigger = NotificationTrigger.MINUTES
    enabled: bool = True


class EventBase(SQLModel):
    """Fields shared by stored events and creation payloads.

    Attributes:
        title: Event title shown on the grid.
        description: Free-form notes.
        location: Where the event takes place.
        status: Lifecycle status of an appointment.
        start_time: When the event starts.
        end_time: When the event ends. Must be after start_time.
        is_all_day: If True, the event covers whole days; times are
            normalized to 00:00 of the first day and 23:59 of the last.
        is_multi_day: True when the event crosses a calendar-day boundary.
            Derived by normalize_event, never trusted from input.
        type: Event, task, goal, or milestone. Tasks render as fixed
            30-minute blocks.
        priority: Optional urgency classification.
        service: Name of the service booked, for client appointments.
        client_id: Identifier of the CRM client this event belongs to.
        client_name: Display name of that client.
        is_recurring: True when the event carries a recurrence rule.
        recurrence: The rule generating this event's occurrences.
        recurrence_group_id: Shared by every materialized occurrence of one
            series (the cohort).
        parent_event_id: Source event a materialized occurrence was
            generated from. Lookup only.
        participants: People invited to the event, in invitation order.
        notifications: Reminder rules.
        google_calendar_event_id: Linked Google Calendar event, if any.
        outlook_calendar_event_id: Linked Outlook event, if any.
    """
    title: str
    description: str | None = None
    location: str | None = None
    status: EventStatus | None = None
    start_time: datetime
    end_time: datetime
    is_all_day: bool = False
    is_multi_day: bool = False
    type: EventType = EventType.EVENT
    priority: EventPriority | None = None
    service: str | None = None
    client_id: str | None = None
    client_name: str | None = None

    # Recurrence
    is_recurring: bool = False
    recurrence: RecurrenceRule | None = None
    recurrence_group_id: str | None = None
    parent_event_id: str | None = None

    # Collaboration
    participants: list[Participant] = Field(default_factory=list)
    notifications: list[NotificationRule] = Field(default_factory=list)

    # External linkage
    google_calendar_event_id: str | None = None
    outlook_calendar_event_id: str | None = None


class Event(EventBase):
    """A scheduled event as known to the store.

    Attributes:
        id: Stable identifier, unique within the owning account. Events
            created locally carry a provisional "local-" id until the store
            assigns one; externally synced events carry the sync prefix.
        created_at: Server-assigned creation time.
        updated_at: Server-assigned time of the last update.
    """
    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    @property
    def is_external(self) -> bool:
        """True for events pulled from an external calendar."""
        return self.id.startswith(settings.external_id_prefix)

    @property
    def has_participants(self) -> bool:
        return len(self.participants) > 0


class EventCreate(EventBase):
    """Payload for creating an event; the store assigns the id."""


class EventUpdate(SQLModel):
    """A partial change to an event.

    Every field is optional. Only fields explicitly set are applied, so a
    change is read with ``model_dump(exclude_unset=True)``.
    """
    title: str | None = None
    description: str | None = None
    location: str | None = None
    status: EventStatus | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    is_all_day: bool | None = None
    type: EventType | None = None
    priority: EventPriority | None = None
    service: str | None = None
    client_id: str | None = None
    client_name: str | None = None
    is_recurring: bool | None = None
    recurrence: RecurrenceRule | None = None
    recurrence_group_id: str | None = None
    parent_event_id: str | None = None
    participants: list[Participant] | None = None
    notifications: list[NotificationRule] | None = None
    google_calendar_event_id: str | None = None
    outlook_calendar_event_id: str | None = None


def as_changes(changes: EventUpdate | dict[str, Any]) -> dict[str, Any]:
    """Return the touched fields of a partial change as a plain dict."""
    if isinstance(changes, EventUpdate):
        return changes.model_dump(exclude_unset=True)
    return dict(changes)


def touches_times(changes: EventUpdate | dict[str, Any]) -> bool:
    """True when a change moves either boundary of the event."""
    touched = as_changes(changes)
    return "start_time" in touched or "end_time" in touched


def validate_time_range(start: datetime, end: datetime) -> None:
    """Raise InvalidTimeRangeError unless end is strictly after start."""
    if end <= start:
        raise InvalidTimeRangeError(start, end)


def normalize_event(event: Event) -> Event:
    """Apply the save-time normalization rules and return a new Event.

    - All-day events are stretched to 00:00 of the start date and 23:59 of
      the end date.
    - Tasks are fixed to the configured task duration from their start.
    - is_multi_day is derived from the normalized range.
    """
    start = event.start_time
    end = event.end_time

    if event.is_all_day:
        start = datetime.combine(start.date(), time.min)
        end = datetime.combine(end.date(), END_OF_DAY)
    elif event.type == EventType.TASK:
        end = start + timedelta(minutes=settings.task_duration_minutes)

    return event.model_copy(
        update={
            "start_time": start,
            "end_time": end,
            "is_multi_day": start.date() != end.date(),
        }
    )


def merge_changes(event: Event, changes: EventUpdate | dict[str, Any]) -> Event:
    """Return a new Event with the touched fields of a change applied.

    Fields not present in the change keep their current value.
    """
    data = event.model_dump()
    data.update(as_changes(changes))
    return Event.model_validate(data)
