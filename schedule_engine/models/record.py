"""Database row type backing the reference event store.

The engine itself never touches this table. SqlEventStore converts between
EventRecord rows and Event models at its boundary. Nested structures
(recurrence rule, participants, notifications) are stored as JSON columns
since they are always read and written together with the event.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from schedule_engine.models.event import Event


class EventRecord(SQLModel, table=True):
    """A persisted event.

    Attributes:
        id: Store-assigned identifier (string UUID, or the external id for
            synced events).
        recurrence_group_id: Cohort key, indexed for recurring deletes.
        start_time: Indexed for range queries.
        end_time: Indexed for range queries.
        recurrence: RecurrenceRule as JSON, or None.
        participants: List of Participant dicts.
        notifications: List of NotificationRule dicts.
        created_at: When the row was inserted.
        updated_at: When the row was last written.
    """
    __tablename__ = "events"

    id: str = Field(primary_key=True)
    title: str
    description: str | None = None
    location: str | None = None
    status: str | None = None
    start_time: datetime = Field(index=True)
    end_time: datetime = Field(index=True)
    is_all_day: bool = Field(default=False)
    is_multi_day: bool = Field(default=False)
    type: str = Field(default="event")
    priority: str | None = None
    service: str | None = None
    client_id: str | None = Field(default=None, index=True)
    client_name: str | None = None
    is_recurring: bool = Field(default=False)
    recurrence: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    recurrence_group_id: str | None = Field(default=None, index=True)
    parent_event_id: str | None = None
    participants: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    notifications: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    google_calendar_event_id: str | None = Field(default=None, index=True)
    outlook_calendar_event_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC).replace(tzinfo=None))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC).replace(tzinfo=None))

    def to_event(self) -> Event:
        return Event.model_validate(self.model_dump())

    @classmethod
    def from_event(cls, event: Event) -> "EventRecord":
        data = event.model_dump(mode="json", exclude={"created_at", "updated_at"})
        # Keep datetimes as datetime objects for the SQL columns
        data["start_time"] = event.start_time
        data["end_time"] = event.end_time
        return cls.model_validate(data)

    def apply(self, event: Event) -> None:
        """Overwrite this row's fields from an Event, keeping id and created_at."""
        data = EventRecord.from_event(event).model_dump(exclude={"id", "created_at", "updated_at"})
        for key, value in data.items():
            setattr(self, key, value)
        self.updated_at = datetime.now(UTC).replace(tzinfo=None)
