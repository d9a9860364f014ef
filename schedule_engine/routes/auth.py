"""Authentication status routes."""
from fastapi import APIRouter

from schedule_engine.calendar.client import has_valid_credentials
from schedule_engine.calendar.sync import SyncState

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/status")
async def auth_status():
    """
    Check if calendar credentials are configured and still accepted.

    requires_reauth is true when no refresh token is configured or when the
    last sync was rejected by Google.
    """
    configured = has_valid_credentials()
    rejected = SyncState.get_sync_status()["requires_reauth"]

    if not configured:
        message = "Set GOOGLE_REFRESH_TOKEN to enable calendar sync"
    elif rejected:
        message = "Google rejected the credentials; renew GOOGLE_REFRESH_TOKEN"
    else:
        message = "Credentials configured"

    return {
        "authenticated": configured and not rejected,
        "requires_reauth": not configured or rejected,
        "message": message,
    }
