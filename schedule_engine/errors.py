"""Exception hierarchy for the scheduling engine.

Conflicts are never raised; they are returned as data by the conflict
detector. Everything here is either a validation failure raised before any
mutation, a failure reported by a remote collaborator, or a protocol error
made by the calling surface.
"""


class ScheduleEngineError(Exception):
    """Base class for all engine errors."""


class InvalidTimeRangeError(ScheduleEngineError, ValueError):
    """A proposed time range ends at or before it starts."""

    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"End time {end} must be after start time {start}")


class StoreError(ScheduleEngineError):
    """A call to the event store failed."""


class EventNotFoundError(StoreError):
    """The event store does not know the requested identifier."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found in store")


class StoreTransportError(StoreError):
    """The event store could not be reached or returned an unusable reply."""


class ReauthenticationRequired(ScheduleEngineError):
    """External calendar credentials were rejected and must be renewed."""


class NoPendingConfirmationError(ScheduleEngineError):
    """A participant confirmation decision arrived with nothing pending."""
