"""Shared test fixtures."""

import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool

from schedule_engine.calendar.sync import SyncState
from schedule_engine.core.database import create_db_and_tables
from schedule_engine.core.dependencies import get_collection, get_orchestrator, get_store
from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.orchestrator import UpdateOrchestrator
from schedule_engine.engine.store import SqlEventStore
from schedule_engine.main import app
from schedule_engine.models import Event, EventCreate, Participant


def make_event(
    event_id: str = "evt-1",
    title: str = "Meeting",
    start: datetime = datetime(2024, 1, 1, 9, 0),
    minutes: int = 60,
    **fields,
) -> Event:
    """Build an Event starting at start and lasting the given minutes."""
    return Event(
        id=event_id,
        title=title,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        **fields,
    )


@pytest.fixture(name="make_event")
def make_event_fixture():
    """Factory for in-memory events."""
    return make_event


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="store")
def store_fixture(engine) -> SqlEventStore:
    """Reference event store over the test database."""
    return SqlEventStore(engine)


@pytest.fixture(name="collection")
def collection_fixture() -> EventCollection:
    """An empty shared event collection."""
    return EventCollection()


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(store: SqlEventStore, collection: EventCollection) -> UpdateOrchestrator:
    """Orchestrator wired to the test store and collection."""
    return UpdateOrchestrator(store, collection)


@pytest.fixture(name="client")
def client_fixture(
    collection: EventCollection, store: SqlEventStore, orchestrator: UpdateOrchestrator
):
    """Create a test client using the test collection, store, and orchestrator."""
    app.dependency_overrides[get_collection] = lambda: collection
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_sync_state():
    """Sync outcome is process-wide; start every test from a clean slate."""
    SyncState.reset()
    yield
    SyncState.reset()


@pytest.fixture(name="stored_event")
def stored_event_fixture(store: SqlEventStore, collection: EventCollection) -> Event:
    """A 09:00-10:00 event present in both the store and the collection."""
    event = asyncio.run(
        store.create(
            EventCreate(
                title="Standup",
                start_time=datetime(2024, 1, 1, 9, 0),
                end_time=datetime(2024, 1, 1, 10, 0),
            )
        )
    )
    collection.add(event)
    return event


@pytest.fixture(name="shared_event")
def shared_event_fixture(store: SqlEventStore, collection: EventCollection) -> Event:
    """A stored event with two participants."""
    event = asyncio.run(
        store.create(
            EventCreate(
                title="Client Review",
                start_time=datetime(2024, 1, 2, 14, 0),
                end_time=datetime(2024, 1, 2, 15, 0),
                participants=[
                    Participant(name="Ada", email="ada@example.com"),
                    Participant(name="Grace", email="grace@example.com"),
                ],
            )
        )
    )
    collection.add(event)
    return event


@pytest.fixture(name="cohort")
def cohort_fixture(store: SqlEventStore, collection: EventCollection) -> list[Event]:
    """Five stored weekly events sharing one recurrence group."""
    events = []
    for week in range(5):
        start = datetime(2024, 1, 1, 9, 0) + timedelta(weeks=week)
        event = asyncio.run(
            store.create(
                EventCreate(
                    title="Weekly Sync",
                    start_time=start,
                    end_time=start + timedelta(hours=1),
                    recurrence_group_id="group-1",
                )
            )
        )
        collection.add(event)
        events.append(event)
    return events
