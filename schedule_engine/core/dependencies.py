"""Process-wide engine objects and their FastAPI dependencies.

The app holds one EventCollection, one store, and one UpdateOrchestrator.
Routes reach them through the get_* functions so tests can swap them with
app.dependency_overrides.
"""

from schedule_engine.core.database import engine
from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.orchestrator import UpdateOrchestrator
from schedule_engine.engine.store import SqlEventStore

collection = EventCollection()
store = SqlEventStore(engine)
orchestrator = UpdateOrchestrator(store, collection)


def get_collection() -> EventCollection:
    """Dependency for the shared event collection."""
    return collection


def get_store() -> SqlEventStore:
    """Dependency for the event store."""
    return store


def get_orchestrator() -> UpdateOrchestrator:
    """Dependency for the update orchestrator."""
    return orchestrator
