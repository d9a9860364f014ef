"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Schedule Engine"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"  # Bind to all interfaces for external access
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Reference event store
    database_url: str = "sqlite:///./schedule_engine.db"

    # Google Calendar API
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    google_calendar_id: str = "primary"

    # Sync settings
    sync_interval_minutes: int = 5
    sync_window_days: int = 30
    external_id_prefix: str = "gcal-"

    # Time grid geometry
    pixels_per_hour: float = 60.0
    snap_minutes: int = 15
    min_duration_minutes: int = 15
    max_create_duration_minutes: int = 12 * 60
    day_column_width: float = 50.0
    time_column_width: float = 40.0
    month_row_height: float = 100.0
    day_change_threshold: float = 0.6  # Fraction of a column to cross before switching days

    # Slot search
    work_hours_start: int = 8
    work_hours_end: int = 18
    slot_search_interval_minutes: int = 15
    slot_search_max_hours: int = 24

    # Tasks are displayed as fixed-length blocks
    task_duration_minutes: int = 30


settings = Settings()
