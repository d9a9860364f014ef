"""The shared in-memory event collection.

One EventCollection is passed by reference to the orchestrator, every
gesture editor, and the external sync. It is the only place local event
state lives; the orchestrator is the only component that writes to it on
behalf of user edits, and the sync replaces the externally owned subset.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import date, datetime

from schedule_engine.core.config import settings
from schedule_engine.engine.recurrence import get_related_events, occurs_on
from schedule_engine.models.event import Event

logger = logging.getLogger(__name__)


class EventCollection:
    """Ordered mapping of event id to Event with a narrow write API."""

    def __init__(self, events: Iterable[Event] = ()):
        self._events: dict[str, Event] = {}
        for event in events:
            self._events[event.id] = event

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._events

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events.values()))

    def get(self, event_id: str) -> Event | None:
        return self._events.get(event_id)

    def all(self) -> list[Event]:
        return list(self._events.values())

    def add(self, event: Event) -> None:
        self._events[event.id] = event

    def replace(self, event_id: str, event: Event) -> None:
        """Swap the event stored under event_id, which may change its id.

        The replacement keeps the original's position. If event_id is no
        longer present (removed meanwhile), the event is appended.
        """
        if event_id not in self._events:
            self._events[event.id] = event
            return
        if event_id == event.id:
            self._events[event_id] = event
            return

        self._events = {
            (event.id if key == event_id else key): (event if key == event_id else value)
            for key, value in self._events.items()
            if key != event.id
        }

    def remove(self, event_id: str) -> Event | None:
        return self._events.pop(event_id, None)

    def remove_many(self, event_ids: Iterable[str]) -> list[str]:
        """Remove several events, returning the ids that were present."""
        return [event_id for event_id in event_ids if self._events.pop(event_id, None) is not None]

    def in_range(self, start: datetime, end: datetime) -> list[Event]:
        """Events overlapping [start, end), ordered by start time."""
        found = [e for e in self._events.values() if e.start_time < end and start < e.end_time]
        return sorted(found, key=lambda e: e.start_time)

    def on_date(self, day: date) -> list[Event]:
        """Events with an occurrence on a date, including recurring sources."""
        return sorted(
            (e for e in self._events.values() if occurs_on(e, day)),
            key=lambda e: e.start_time.time(),
        )

    def cohort(self, event: Event) -> list[Event]:
        return get_related_events(event, self.all())

    def replace_external(self, events: Iterable[Event], prefix: str | None = None) -> int:
        """
        Replace every externally synced event with a fresh pull.

        Events whose id carries the external prefix are dropped wholesale and
        the pulled events are added. Locally owned events are untouched.

        Returns the number of external events now held.
        """
        prefix = prefix or settings.external_id_prefix
        kept = {key: value for key, value in self._events.items() if not key.startswith(prefix)}
        pulled = {event.id: event for event in events if event.id.startswith(prefix)}
        self._events = {**kept, **pulled}
        logger.debug(f"Replaced external events: {len(pulled)} now held")
        return len(pulled)

    def replace_local(self, events: Iterable[Event], prefix: str | None = None) -> int:
        """Replace every locally owned event, keeping the external subset."""
        prefix = prefix or settings.external_id_prefix
        external = {key: value for key, value in self._events.items() if key.startswith(prefix)}
        fetched = {event.id: event for event in events if not event.id.startswith(prefix)}
        self._events = {**fetched, **external}
        return len(fetched)
