"""Database engine for the reference event store.

The engine only backs SqlEventStore; the scheduling engine itself works on
the in-memory EventCollection and never opens sessions directly.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: the background sync job replaces the
      synced subset while request handlers read, and WAL lets those readers
      proceed during the write.

    - **check_same_thread=False**: FastAPI may run a handler on a different
      thread from the one that opened the pooled connection.
"""

from sqlalchemy import event as sa_event
from sqlmodel import SQLModel, create_engine

from schedule_engine.core.config import settings

is_sqlite = settings.database_url.startswith("sqlite")

connect_args = {"check_same_thread": False} if is_sqlite else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)

if is_sqlite:

    @sa_event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """Enable WAL on each new connection; the pragma is per connection."""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def create_db_and_tables(bind=None):
    """Create all database tables."""
    # Registers EventRecord on the metadata
    import schedule_engine.models.record  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
