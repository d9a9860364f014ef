"""One-way calendar pull from Google Calendar.

Pulled events get ids carrying the external prefix ("gcal-" by default).
Each pull replaces the whole previously synced subset, both in the shared
collection and in the reference store. Local edits are never written back.
"""
import asyncio
import logging
from datetime import UTC, date, datetime, time, timedelta

from googleapiclient.errors import HttpError

from schedule_engine.calendar.client import get_calendar_service, has_valid_credentials, reset_client
from schedule_engine.core.config import settings
from schedule_engine.engine.collection import EventCollection
from schedule_engine.errors import ReauthenticationRequired
from schedule_engine.models.event import (
    Event,
    EventStatus,
    Participant,
    ParticipantRole,
    ResponseStatus,
    normalize_event,
)

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = {
    "needsAction": ResponseStatus.NEEDS_ACTION,
    "accepted": ResponseStatus.ACCEPTED,
    "declined": ResponseStatus.DECLINED,
    "tentative": ResponseStatus.TENTATIVE,
}

EVENT_STATUSES = {
    "confirmed": EventStatus.CONFIRMED,
    "tentative": EventStatus.SCHEDULED,
}


class SyncState:
    """Track the outcome of the most recent pull."""

    _last_sync_time: datetime | None = None
    _success: bool | None = None
    _error: str | None = None
    _requires_reauth: bool = False

    @classmethod
    def record_sync_success(cls) -> None:
        cls._last_sync_time = datetime.now(UTC)
        cls._success = True
        cls._error = None
        cls._requires_reauth = False

    @classmethod
    def record_sync_failure(cls, error: str, requires_reauth: bool = False) -> None:
        cls._last_sync_time = datetime.now(UTC)
        cls._success = False
        cls._error = error
        cls._requires_reauth = requires_reauth

    @classmethod
    def get_sync_status(cls) -> dict:
        return {
            "last_sync_time": cls._last_sync_time,
            "success": cls._success,
            "error": cls._error,
            "requires_reauth": cls._requires_reauth,
        }

    @classmethod
    def reset(cls) -> None:
        cls._last_sync_time = None
        cls._success = None
        cls._error = None
        cls._requires_reauth = False


def _parse_datetime(dt_dict: dict) -> tuple[datetime, bool]:
    """Parse a Google Calendar start/end into a naive wall-clock time.

    Returns the time and whether it was a date-only (all-day) value. Timed
    values keep the wall-clock time of the offset Google sent.
    """
    if "dateTime" in dt_dict:
        parsed = datetime.fromisoformat(dt_dict["dateTime"].replace("Z", "+00:00"))
        return parsed.replace(tzinfo=None), False
    return datetime.combine(date.fromisoformat(dt_dict["date"]), time.min), True


def _to_participant(attendee: dict) -> Participant:
    if attendee.get("organizer"):
        role = ParticipantRole.ORGANIZER
    elif attendee.get("optional"):
        role = ParticipantRole.OPTIONAL
    else:
        role = ParticipantRole.ATTENDEE

    email = attendee.get("email")
    return Participant(
        id=attendee.get("id") or email or attendee.get("displayName", "unknown"),
        name=attendee.get("displayName") or email or "Unknown",
        email=email,
        role=role,
        response_status=RESPONSE_STATUSES.get(attendee.get("responseStatus"), ResponseStatus.NEEDS_ACTION),
    )


def to_event(google_event: dict, prefix: str | None = None) -> Event:
    """Convert a Google Calendar event resource into an external Event."""
    prefix = prefix or settings.external_id_prefix
    start_time, is_all_day = _parse_datetime(google_event["start"])
    end_time, _ = _parse_datetime(google_event["end"])
    if is_all_day:
        # Google's all-day end date is exclusive
        end_time -= timedelta(days=1)

    recurring_id = google_event.get("recurringEventId")
    event = Event(
        id=f"{prefix}{google_event['id']}",
        title=google_event.get("summary", "Untitled"),
        description=google_event.get("description"),
        location=google_event.get("location"),
        status=EVENT_STATUSES.get(google_event.get("status")),
        start_time=start_time,
        end_time=end_time,
        is_all_day=is_all_day,
        is_recurring=recurring_id is not None,
        recurrence_group_id=f"{prefix}{recurring_id}" if recurring_id else None,
        participants=[_to_participant(a) for a in google_event.get("attendees", [])],
        google_calendar_event_id=google_event["id"],
    )
    return normalize_event(event)


def fetch_google_events(service, calendar_id: str, time_min: datetime, time_max: datetime) -> list[dict]:
    """List event instances in a window, following pagination."""
    items = []
    page_token = None

    while True:
        events_result = (
            service.events()
            .list(
                calendarId=calendar_id,
                timeMin=time_min.isoformat().replace("+00:00", "Z"),
                timeMax=time_max.isoformat().replace("+00:00", "Z"),
                singleEvents=True,
                orderBy="startTime",
                pageToken=page_token,
            )
            .execute()
        )
        items.extend(events_result.get("items", []))
        page_token = events_result.get("nextPageToken")
        if not page_token:
            return items


async def sync_calendar(collection: EventCollection, store=None) -> dict:
    """
    Pull events from Google Calendar and replace the synced subset.

    The pull covers sync_window_days on both sides of today. When a store is
    given, it receives the same replacement so the synced events survive a
    restart.

    Returns dict with sync statistics. Raises ReauthenticationRequired when
    Google rejects the credentials; other failures are recorded and re-raised.
    """
    if not has_valid_credentials():
        logger.warning("No valid credentials, skipping sync")
        SyncState.record_sync_failure("No valid credentials", requires_reauth=True)
        return {"error": "No valid credentials", "synced": 0}

    now = datetime.now(UTC)
    time_min = now - timedelta(days=settings.sync_window_days)
    time_max = now + timedelta(days=settings.sync_window_days)

    def pull() -> list[dict]:
        service = get_calendar_service()
        return fetch_google_events(service, settings.google_calendar_id, time_min, time_max)

    try:
        # The API client blocks on HTTP; keep the event loop free meanwhile
        items = await asyncio.to_thread(pull)
    except ReauthenticationRequired as e:
        SyncState.record_sync_failure(str(e), requires_reauth=True)
        raise
    except HttpError as e:
        if e.resp.status == 401:
            logger.warning("Google rejected the access token, reauthentication required")
            reset_client()
            SyncState.record_sync_failure("Session expired", requires_reauth=True)
            raise ReauthenticationRequired("Google Calendar session expired") from e
        logger.error(f"Sync failed: {e}")
        SyncState.record_sync_failure(str(e))
        raise

    events = [to_event(item) for item in items if item.get("status") != "cancelled"]

    try:
        if store is not None:
            await store.replace_external(events)
    except Exception as e:
        logger.error(f"Sync failed: {e}")
        SyncState.record_sync_failure(str(e))
        raise

    synced = collection.replace_external(events)
    SyncState.record_sync_success()

    stats = {"synced": synced, "skipped": len(items) - len(events)}
    logger.info(f"Sync completed: {stats}")
    return stats
