"""Google Calendar API client using pre-authorized credentials."""
import logging

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from schedule_engine.core.config import settings
from schedule_engine.errors import ReauthenticationRequired

logger = logging.getLogger(__name__)

# Pull-only: events are never written back to Google
SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]

TOKEN_URI = "https://oauth2.googleapis.com/token"

# Cached credentials and service
_credentials: Credentials | None = None
_service = None


def get_credentials() -> Credentials | None:
    """
    Get credentials using the refresh token from the environment.

    Returns None when no refresh token is configured. Raises
    ReauthenticationRequired when Google rejects the refresh token
    (revoked or expired), since retrying cannot fix that.
    """
    global _credentials

    if not settings.google_refresh_token:
        logger.warning("No GOOGLE_REFRESH_TOKEN configured")
        return None

    if _credentials and _credentials.valid:
        return _credentials

    _credentials = Credentials(
        token=None,
        refresh_token=settings.google_refresh_token,
        token_uri=TOKEN_URI,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        scopes=SCOPES,
    )

    try:
        _credentials.refresh(Request())
        logger.info("Refreshed Google API credentials")
    except RefreshError as e:
        logger.error(f"Google rejected the refresh token: {e}")
        _credentials = None
        raise ReauthenticationRequired("Google Calendar authorization expired or was revoked") from e

    return _credentials


def get_calendar_service():
    """Build authenticated Calendar API service."""
    global _service

    creds = get_credentials()
    if not creds:
        raise ReauthenticationRequired("No Google Calendar credentials configured")

    # Reuse service if credentials haven't changed
    if _service and not creds.expired:
        return _service

    _service = build("calendar", "v3", credentials=creds, cache_discovery=False)
    return _service


def has_valid_credentials() -> bool:
    """Check if calendar credentials are configured."""
    return bool(settings.google_refresh_token)


def reset_client() -> None:
    """Forget cached credentials and service, e.g. after reauthentication."""
    global _credentials, _service
    _credentials = None
    _service = None
