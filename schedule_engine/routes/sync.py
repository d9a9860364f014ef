"""Sync routes for triggering and monitoring calendar sync."""
from fastapi import APIRouter, Depends, HTTPException
from googleapiclient.errors import HttpError

from schedule_engine.calendar.client import has_valid_credentials
from schedule_engine.calendar.sync import SyncState, sync_calendar
from schedule_engine.core.config import settings
from schedule_engine.core.dependencies import get_collection, get_store
from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.store import SqlEventStore
from schedule_engine.errors import ReauthenticationRequired

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/now")
async def trigger_sync(
    collection: EventCollection = Depends(get_collection),
    store: SqlEventStore = Depends(get_store),
):
    """
    Manually trigger calendar sync.

    Pulls events from Google Calendar immediately and replaces the synced
    subset. Missing or rejected credentials surface as 401 with
    requires_reauth; Google API failures as 502.
    """
    if not has_valid_credentials():
        SyncState.record_sync_failure("No valid credentials", requires_reauth=True)
        raise ReauthenticationRequired("No valid credentials")

    try:
        return await sync_calendar(collection, store)
    except HttpError as e:
        raise HTTPException(status_code=502, detail=f"Google Calendar request failed: {e}")


@router.get("/status")
async def sync_status():
    """
    Get current sync status.

    Returns JSON with authentication status, sync interval configuration,
    the calendar ID being synced, and the outcome of the last pull.
    """
    status = SyncState.get_sync_status()

    return {
        "authenticated": has_valid_credentials(),
        "sync_interval_minutes": settings.sync_interval_minutes,
        "calendar_id": settings.google_calendar_id,
        "last_sync_time": status["last_sync_time"].isoformat() if status["last_sync_time"] else None,
        "last_sync_success": status["success"],
        "last_sync_error": status["error"],
        "requires_reauth": status["requires_reauth"],
    }
