"""Update orchestrator: the single write path for event changes.

Every edit is applied to the shared EventCollection immediately and
synchronously, then committed to the event store in a background task.
When the store answers, the local record is reconciled with the
authoritative copy. When the store fails, the local change is kept as is:
optimistic writes are never rolled back, so local and remote may diverge
until the next fetch.

Time changes to events with participants go through a confirmation gate.
The change is held as a PendingConfirmation until the calling surface
decides with confirm(notify) or cancel(). There is no timeout.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from schedule_engine.core.config import settings
from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.recurrence import (
    RecurringDeleteOption,
    RecurringEditScope,
    select_edit_targets,
    select_recurring_ids,
)
from schedule_engine.engine.store import EventStore, RecurringDeleteResult
from schedule_engine.errors import EventNotFoundError, NoPendingConfirmationError, StoreError
from schedule_engine.models.event import (
    Event,
    EventCreate,
    EventUpdate,
    as_changes,
    merge_changes,
    normalize_event,
    touches_times,
    validate_time_range,
)

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local-"

ParticipantNotifier = Callable[[Event, bool], None]


def log_notification_intent(event: Event, notify: bool) -> None:
    """Default notifier: record the intent, delivery happens elsewhere."""
    if notify:
        logger.info(f"Participants of {event.id} ({len(event.participants)}) will be notified of the new time")
    else:
        logger.info(f"Time of {event.id} changed without notifying participants")


@dataclass
class PendingConfirmation:
    """A participant-affecting time change waiting for a decision.

    Attributes:
        event: The event as it was when the change was proposed.
        old_start: Current start time.
        old_end: Current end time.
        new_start: Proposed start time.
        new_end: Proposed end time.
        changes: The full partial change to apply on confirm.
        result: Resolved with the committed Event, or None when cancelled
            or superseded.
    """
    event: Event
    old_start: datetime
    old_end: datetime
    new_start: datetime
    new_end: datetime
    changes: dict[str, Any]
    result: asyncio.Future = field(repr=False)

    def summary(self) -> dict:
        return {
            "event_id": self.event.id,
            "title": self.event.title,
            "participants": len(self.event.participants),
            "old_start": self.old_start.isoformat(),
            "old_end": self.old_end.isoformat(),
            "new_start": self.new_start.isoformat(),
            "new_end": self.new_end.isoformat(),
        }


class UpdateOrchestrator:
    """
    Applies edits to the shared collection and commits them to the store.

    submit_update and submit_create must be called from inside a running
    event loop. They mutate local state before returning and hand back a
    future resolving to the reconciled Event, or None on failure.
    """

    def __init__(
        self,
        store: EventStore,
        collection: EventCollection,
        notifier: ParticipantNotifier = log_notification_intent,
    ):
        self.store = store
        self.collection = collection
        self.notifier = notifier
        self.pending: PendingConfirmation | None = None
        self._tasks: set[asyncio.Task] = set()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight remote commit to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # Updates

    def _prepare_update(self, event_id: str, changes: EventUpdate | dict[str, Any]):
        touched = as_changes(changes)
        current = self.collection.get(event_id)
        if current is None:
            raise EventNotFoundError(event_id)

        merged = normalize_event(merge_changes(current, touched))
        validate_time_range(merged.start_time, merged.end_time)

        # Normalization may move the times (tasks, all-day); the store gets the normalized ones
        if touches_times(touched) or "type" in touched or "is_all_day" in touched:
            touched["start_time"] = merged.start_time
            touched["end_time"] = merged.end_time
        if merged.is_multi_day != current.is_multi_day:
            touched["is_multi_day"] = merged.is_multi_day

        return current, merged, touched

    def submit_update(
        self, event_id: str, changes: EventUpdate | dict[str, Any], gated: bool = True
    ) -> asyncio.Future:
        """
        Apply a change locally now and commit it to the store in the background.

        Raises InvalidTimeRangeError before touching anything if the result
        would end at or before its start, and EventNotFoundError if the id
        is not in the collection.

        Returns a future resolving to the reconciled Event, or None when the
        store failed or a participant gate was cancelled. With gated=False
        the participant gate is skipped.
        """
        current, merged, touched = self._prepare_update(event_id, changes)

        if gated and current.has_participants and touches_times(touched):
            return self._open_gate(current, merged, touched)

        self.collection.replace(event_id, merged)
        return self._spawn(self._commit_update(event_id, merged, touched))

    async def update_event(self, event_id: str, changes: EventUpdate | dict[str, Any]) -> Event | None:
        """Apply a change and wait for the store (and any participant decision)."""
        return await self.submit_update(event_id, changes)

    async def _commit_update(self, event_id: str, merged: Event, touched: dict[str, Any]) -> Event | None:
        try:
            saved = await self.store.update(event_id, touched)
        except EventNotFoundError:
            if event_id not in self.collection:
                logger.info(f"Event {event_id} was deleted while its update was in flight")
                return None
            logger.info(f"Event {event_id} unknown to the store, creating it from local state")
            return await self._recreate(event_id, merged)
        except StoreError as e:
            logger.error(f"Failed to update event {event_id}, keeping local change: {e}")
            return None

        # A delete that ran meanwhile wins over the reconcile
        if event_id not in self.collection:
            logger.info(f"Event {event_id} was deleted while its update was in flight")
            return None
        self.collection.replace(event_id, saved)
        logger.debug(f"Reconciled event {event_id} with the store")
        return saved

    async def _recreate(self, event_id: str, merged: Event) -> Event | None:
        local = self.collection.get(event_id) or merged
        data = EventCreate.model_validate(local.model_dump(exclude={"id", "created_at", "updated_at"}))
        try:
            created = await self.store.create(data)
        except StoreError as e:
            logger.error(f"Failed to recreate event {event_id}, keeping local copy: {e}")
            return None

        if event_id not in self.collection:
            logger.warning(f"Event {event_id} was deleted while being recreated as {created.id}, removing it")
            await self._discard_remote(created.id)
            return None
        self.collection.replace(event_id, created)
        logger.info(f"Event {event_id} recreated in the store as {created.id}")
        return created

    async def _discard_remote(self, event_id: str) -> None:
        try:
            await self.store.delete(event_id)
        except StoreError as e:
            logger.error(f"Failed to remove orphaned event {event_id} from the store: {e}")

    # Participant gate

    def _open_gate(self, current: Event, merged: Event, touched: dict[str, Any]) -> asyncio.Future:
        if self.pending is not None and not self.pending.result.done():
            logger.info(f"Pending change for {self.pending.event.id} superseded by a change to {current.id}")
            self.pending.result.set_result(None)

        future = asyncio.get_running_loop().create_future()
        self.pending = PendingConfirmation(
            event=current,
            old_start=current.start_time,
            old_end=current.end_time,
            new_start=merged.start_time,
            new_end=merged.end_time,
            changes=touched,
            result=future,
        )
        logger.info(f"Time change to {current.id} waits for participant confirmation")
        return future

    async def confirm(self, notify: bool) -> Event | None:
        """
        Commit the pending participant-affecting change.

        Invokes the notifier with the notify decision, applies the change
        locally, and waits for the store. The suspended submit_update caller
        receives the same result.
        """
        pending = self.pending
        if pending is None:
            raise NoPendingConfirmationError("No change is waiting for confirmation")
        self.pending = None

        event_id = pending.event.id
        current = self.collection.get(event_id) or pending.event
        merged = normalize_event(merge_changes(current, pending.changes))
        self.collection.replace(event_id, merged)
        self.notifier(merged, notify)

        result = await self._commit_update(event_id, merged, pending.changes)
        if not pending.result.done():
            pending.result.set_result(result)
        return result

    def cancel(self) -> None:
        """Drop the pending change entirely; the waiting caller gets None."""
        pending = self.pending
        if pending is None:
            raise NoPendingConfirmationError("No change is waiting for confirmation")
        self.pending = None
        logger.info(f"Pending change to {pending.event.id} cancelled")
        if not pending.result.done():
            pending.result.set_result(None)

    # Creates and deletes

    def submit_create(self, data: EventCreate | dict[str, Any]) -> asyncio.Future:
        """
        Insert a new event locally under a provisional id and create it remotely.

        Returns a future resolving to the created Event (which replaces the
        provisional one), or None if the store failed; the provisional event
        then stays in the collection.
        """
        if isinstance(data, dict):
            data = EventCreate.model_validate(data)
        provisional = normalize_event(Event(id=f"{LOCAL_ID_PREFIX}{uuid4()}", **data.model_dump()))
        validate_time_range(provisional.start_time, provisional.end_time)

        self.collection.add(provisional)
        return self._spawn(self._commit_create(provisional))

    async def create_event(self, data: EventCreate | dict[str, Any]) -> Event | None:
        return await self.submit_create(data)

    async def _commit_create(self, provisional: Event) -> Event | None:
        data = EventCreate.model_validate(provisional.model_dump(exclude={"id", "created_at", "updated_at"}))
        try:
            created = await self.store.create(data)
        except StoreError as e:
            logger.error(f"Failed to create event {provisional.title}, keeping {provisional.id}: {e}")
            return None

        self.collection.replace(provisional.id, created)
        return created

    async def delete_event(self, event_id: str) -> bool:
        """Remove an event locally, then from the store. False if the store failed."""
        self.collection.remove(event_id)
        try:
            return await self.store.delete(event_id)
        except EventNotFoundError:
            logger.info(f"Event {event_id} was not in the store, nothing to delete remotely")
            return True
        except StoreError as e:
            logger.error(f"Failed to delete event {event_id}: {e}")
            return False

    async def delete_recurring(
        self, event: Event, option: RecurringDeleteOption
    ) -> RecurringDeleteResult:
        """
        Delete part of a recurrence group.

        Ids leave the local collection only once the store has confirmed
        them. A store failure propagates and removes nothing. When the store
        has no bulk delete, the selected ids are deleted one by one and only
        the successful ones are removed.
        """
        if not event.recurrence_group_id:
            deleted = await self.delete_event(event.id)
            ids = [event.id] if deleted else []
            return RecurringDeleteResult(deleted_count=len(ids), deleted_ids=ids)

        try:
            result = await self.store.delete_recurring(event.id, option, event.recurrence_group_id)
        except NotImplementedError:
            selected = select_recurring_ids(self.collection.cohort(event), event, option)
            result = await self._delete_each(selected)

        self.collection.remove_many(result.deleted_ids)
        logger.info(f"Recurring delete ({option}) removed {result.deleted_count} events")
        return result

    async def _delete_each(self, event_ids: list[str]) -> RecurringDeleteResult:
        deleted = []
        for event_id in event_ids:
            try:
                if await self.store.delete(event_id):
                    deleted.append(event_id)
            except StoreError as e:
                logger.warning(f"Failed to delete recurring event {event_id}: {e}")
        return RecurringDeleteResult(deleted_count=len(deleted), deleted_ids=deleted)

    # Recurring edits and reads

    async def update_recurring(
        self,
        event: Event,
        changes: EventUpdate | dict[str, Any],
        scope: RecurringEditScope,
    ) -> list[Event]:
        """
        Apply a change to a recurrence group member and, by scope, its siblings.

        Time changes are applied as a shift: each member moves by the same
        amount the target's boundaries move, so the series keeps its spacing.
        The scope choice stands in for the participant confirmation, so
        members are not gated individually.

        Returns the events the store accepted.
        """
        touched = as_changes(changes)
        targets = select_edit_targets(self.collection.cohort(event), event, scope)

        start_shift = touched["start_time"] - event.start_time if "start_time" in touched else None
        end_shift = touched["end_time"] - event.end_time if "end_time" in touched else None

        updated = []
        for member in targets:
            member_changes = dict(touched)
            if start_shift is not None:
                member_changes["start_time"] = member.start_time + start_shift
            if end_shift is not None:
                member_changes["end_time"] = member.end_time + end_shift
            saved = await self.submit_update(member.id, member_changes, gated=False)
            if saved is not None:
                updated.append(saved)
        return updated

    async def fetch_events(self, start: datetime | None = None, end: datetime | None = None) -> list[Event]:
        """Reload locally owned events from the store, keeping synced ones."""
        events = await self.store.list(start, end)
        self.collection.replace_local(events, settings.external_id_prefix)
        logger.info(f"Fetched {len(events)} events from the store")
        return events
