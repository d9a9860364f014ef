from schedule_engine.models.event import (
    Event,
    EventCreate,
    EventPriority,
    EventStatus,
    EventType,
    EventUpdate,
    NotificationRule,
    NotificationTrigger,
    Participant,
    ParticipantRole,
    ResponseStatus,
    merge_changes,
    normalize_event,
    touches_times,
    validate_time_range,
)
from schedule_engine.models.record import EventRecord
from schedule_engine.models.recurrence import IntervalType, RecurrenceFrequency, RecurrenceRule

__all__ = [
    "Event",
    "EventCreate",
    "EventUpdate",
    "EventType",
    "EventStatus",
    "EventPriority",
    "Participant",
    "ParticipantRole",
    "ResponseStatus",
    "NotificationRule",
    "NotificationTrigger",
    "RecurrenceRule",
    "RecurrenceFrequency",
    "IntervalType",
    "EventRecord",
    "merge_changes",
    "normalize_event",
    "touches_times",
    "validate_time_range",
]
