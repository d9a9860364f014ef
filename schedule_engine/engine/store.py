"""Event store contract and the SQLModel reference store.

The orchestrator only depends on the EventStore protocol: every call is a
coroutine that may fail with EventNotFoundError or StoreTransportError.
SqlEventStore implements it over a SQLModel engine and backs the HTTP app
and the tests.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, Protocol, TypeVar
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, col, select

from schedule_engine.core.config import settings
from schedule_engine.engine.recurrence import RecurringDeleteOption, select_recurring_ids
from schedule_engine.errors import EventNotFoundError, StoreTransportError
from schedule_engine.models.event import Event, EventCreate, EventUpdate, merge_changes
from schedule_engine.models.record import EventRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecurringDeleteResult(SQLModel):
    deleted_count: int
    deleted_ids: list[str]


class EventStore(Protocol):
    """Remote collaborator holding the authoritative copy of events."""

    async def list(self, start: datetime | None = None, end: datetime | None = None) -> list[Event]: ...

    async def create(self, data: EventCreate) -> Event: ...

    async def update(self, event_id: str, changes: EventUpdate | dict[str, Any]) -> Event: ...

    async def delete(self, event_id: str) -> bool: ...

    async def delete_recurring(
        self, event_id: str, option: RecurringDeleteOption, group_id: str
    ) -> RecurringDeleteResult: ...


class SqlEventStore:
    """EventStore over a SQLModel engine.

    Each call opens its own short-lived session in a worker thread so the
    event loop keeps handling gestures and requests while the database
    works. Calls are serialized because SQLite allows one writer at a time.
    Database failures are reported as StoreTransportError so callers see the
    same errors they would from a networked store.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._lock = threading.Lock()

    async def _run(self, work: Callable[[Session], T]) -> T:
        def run_worker():
            with self._lock, Session(self.engine) as session:
                return work(session)

        return await asyncio.to_thread(run_worker)

    def _get_record(self, session: Session, event_id: str) -> EventRecord:
        record = session.get(EventRecord, event_id)
        if record is None:
            raise EventNotFoundError(event_id)
        return record

    async def get(self, event_id: str) -> Event:
        try:
            return await self._run(lambda session: self._get_record(session, event_id).to_event())
        except SQLAlchemyError as e:
            raise StoreTransportError(f"Failed to load event {event_id}: {e}") from e

    async def list(self, start: datetime | None = None, end: datetime | None = None) -> list[Event]:
        """
        Events overlapping a range, ordered by start time.

        Recurring sources starting before the range end are always included
        since their occurrences may fall inside the range.
        """
        statement = select(EventRecord)
        if start is not None:
            statement = statement.where(
                or_(EventRecord.end_time > start, EventRecord.is_recurring == True)  # noqa: E712
            )
        if end is not None:
            statement = statement.where(EventRecord.start_time < end)
        statement = statement.order_by(EventRecord.start_time)

        try:
            return await self._run(
                lambda session: [record.to_event() for record in session.exec(statement).all()]
            )
        except SQLAlchemyError as e:
            raise StoreTransportError(f"Failed to list events: {e}") from e

    async def create(self, data: EventCreate | Event | dict[str, Any]) -> Event:
        if isinstance(data, SQLModel):
            data = data.model_dump()
        data = {**data, "id": str(uuid4())}
        record = EventRecord.from_event(Event.model_validate(data))

        def insert(session: Session) -> Event:
            session.add(record)
            session.commit()
            session.refresh(record)
            return record.to_event()

        try:
            created = await self._run(insert)
        except SQLAlchemyError as e:
            raise StoreTransportError(f"Failed to create event: {e}") from e
        logger.info(f"Created event {created.id}: {created.title}")
        return created

    async def update(self, event_id: str, changes: EventUpdate | dict[str, Any]) -> Event:
        def apply_changes(session: Session) -> Event:
            record = self._get_record(session, event_id)
            record.apply(merge_changes(record.to_event(), changes))
            session.add(record)
            session.commit()
            session.refresh(record)
            return record.to_event()

        try:
            return await self._run(apply_changes)
        except SQLAlchemyError as e:
            raise StoreTransportError(f"Failed to update event {event_id}: {e}") from e

    async def delete(self, event_id: str) -> bool:
        def remove(session: Session) -> bool:
            session.delete(self._get_record(session, event_id))
            session.commit()
            return True

        try:
            return await self._run(remove)
        except SQLAlchemyError as e:
            raise StoreTransportError(f"Failed to delete event {event_id}: {e}") from e

    async def delete_recurring(
        self, event_id: str, option: RecurringDeleteOption, group_id: str
    ) -> RecurringDeleteResult:
        """Delete part of a recurrence group in one transaction."""

        def remove_selected(session: Session) -> list[str]:
            target = self._get_record(session, event_id)
            statement = (
                select(EventRecord)
                .where(EventRecord.recurrence_group_id == group_id)
                .order_by(EventRecord.start_time)
            )
            records = session.exec(statement).all()
            cohort = [record.to_event() for record in records]
            ids = select_recurring_ids(cohort, target.to_event(), option)

            for record in records:
                if record.id in ids:
                    session.delete(record)
            session.commit()
            return ids

        try:
            ids = await self._run(remove_selected)
        except SQLAlchemyError as e:
            raise StoreTransportError(f"Failed to delete recurring events for {event_id}: {e}") from e

        logger.info(f"Deleted {len(ids)} events from group {group_id} ({option})")
        return RecurringDeleteResult(deleted_count=len(ids), deleted_ids=ids)

    async def replace_external(self, events: Iterable[Event], prefix: str | None = None) -> int:
        """Replace every stored externally synced event with a fresh pull."""
        prefix = prefix or settings.external_id_prefix
        records = [EventRecord.from_event(event) for event in events]

        def swap(session: Session) -> int:
            statement = select(EventRecord).where(col(EventRecord.id).startswith(prefix))
            for record in session.exec(statement).all():
                session.delete(record)
            session.flush()
            session.add_all(records)
            session.commit()
            return len(records)

        try:
            return await self._run(swap)
        except SQLAlchemyError as e:
            raise StoreTransportError(f"Failed to store synced events: {e}") from e
