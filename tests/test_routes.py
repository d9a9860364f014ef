"""Tests for API routes."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from schedule_engine.core.config import settings
from schedule_engine.engine.collection import EventCollection
from schedule_engine.engine.orchestrator import UpdateOrchestrator
from schedule_engine.errors import ReauthenticationRequired
from schedule_engine.routes import sync as sync_routes
from schedule_engine.models import Event, RecurrenceFrequency, RecurrenceRule


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_redirects_to_events(self, client: TestClient):
        response = client.get("/", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/events"


class TestEventsRoutes:
    """Tests for event routes."""

    def test_list_range(self, client: TestClient, stored_event: Event):
        response = client.get("/events", params={"start": "2024-01-01", "end": "2024-01-07"})
        assert response.status_code == 200
        data = response.json()
        assert [o["id"] for o in data] == [stored_event.id]
        assert data[0]["day"] == "2024-01-01"

    def test_list_expands_recurring_events(
        self, client: TestClient, collection: EventCollection, make_event
    ):
        collection.add(
            make_event(
                "series",
                is_recurring=True,
                recurrence=RecurrenceRule(frequency=RecurrenceFrequency.DAILY, interval=2),
            )
        )
        response = client.get("/events", params={"start": "2024-01-01", "end": "2024-01-05"})
        assert [o["id"] for o in response.json()] == [
            "series@2024-01-01",
            "series@2024-01-03",
            "series@2024-01-05",
        ]

    def test_list_rejects_inverted_range(self, client: TestClient):
        response = client.get("/events", params={"start": "2024-01-07", "end": "2024-01-01"})
        assert response.status_code == 422

    def test_get_event(self, client: TestClient, stored_event: Event):
        response = client.get(f"/events/{stored_event.id}")
        assert response.status_code == 200
        assert response.json()["title"] == "Standup"

    def test_get_event_not_found(self, client: TestClient):
        assert client.get("/events/missing").status_code == 404

    def test_create_event(self, client: TestClient, collection: EventCollection):
        response = client.post(
            "/events",
            json={"title": "Lunch", "start_time": "2024-01-01T12:00:00", "end_time": "2024-01-01T13:00:00"},
        )
        assert response.status_code == 201
        data = response.json()
        assert not data["id"].startswith("local-")
        assert data["id"] in collection

    def test_create_rejects_inverted_range(self, client: TestClient, collection: EventCollection):
        response = client.post(
            "/events",
            json={"title": "Lunch", "start_time": "2024-01-01T13:00:00", "end_time": "2024-01-01T12:00:00"},
        )
        assert response.status_code == 422
        assert len(collection) == 0

    def test_update_event(self, client: TestClient, stored_event: Event, collection: EventCollection):
        response = client.patch(f"/events/{stored_event.id}", json={"title": "Daily Standup"})
        assert response.status_code == 200
        assert response.json()["title"] == "Daily Standup"
        assert collection.get(stored_event.id).title == "Daily Standup"

    def test_update_not_found(self, client: TestClient):
        assert client.patch("/events/missing", json={"title": "x"}).status_code == 404

    def test_update_rejects_inverted_range(self, client: TestClient, stored_event: Event):
        response = client.patch(f"/events/{stored_event.id}", json={"end_time": "2024-01-01T08:00:00"})
        assert response.status_code == 422

    def test_delete_event(self, client: TestClient, stored_event: Event, collection: EventCollection):
        response = client.delete(f"/events/{stored_event.id}")
        assert response.status_code == 200
        assert response.json() == {"deleted": True}
        assert stored_event.id not in collection

    def test_delete_not_found(self, client: TestClient):
        assert client.delete("/events/missing").status_code == 404


class TestConfirmationRoutes:
    """Tests for the participant confirmation flow."""

    @pytest.fixture(name="moved")
    def moved_fixture(self, client: TestClient, shared_event: Event):
        response = client.patch(
            f"/events/{shared_event.id}",
            json={"start_time": "2024-01-02T15:00:00", "end_time": "2024-01-02T16:00:00"},
        )
        return response

    def test_time_change_waits_for_confirmation(
        self, client: TestClient, moved, shared_event: Event, collection: EventCollection
    ):
        assert moved.status_code == 202
        assert moved.json()["pending"] is True
        assert moved.json()["new_start"] == "2024-01-02T15:00:00"
        assert collection.get(shared_event.id).start_time == shared_event.start_time

        pending = client.get("/events/confirmation").json()
        assert pending["event_id"] == shared_event.id
        assert pending["participants"] == 2

    def test_confirm(self, client: TestClient, moved, shared_event: Event, collection: EventCollection):
        response = client.post("/events/confirmation/confirm", params={"notify": "false"})

        assert response.status_code == 200
        assert response.json()["start_time"] == "2024-01-02T15:00:00"
        assert collection.get(shared_event.id).start_time.hour == 15
        assert client.get("/events/confirmation").json() == {"pending": False}

    def test_cancel(self, client: TestClient, moved, shared_event: Event, collection: EventCollection):
        response = client.post("/events/confirmation/cancel")

        assert response.json() == {"cancelled": True}
        assert collection.get(shared_event.id).start_time == shared_event.start_time

    def test_nothing_pending(self, client: TestClient):
        assert client.post("/events/confirmation/confirm").status_code == 409
        assert client.post("/events/confirmation/cancel").status_code == 409

    def test_title_change_is_not_gated(self, client: TestClient, shared_event: Event):
        response = client.patch(f"/events/{shared_event.id}", json={"title": "Renamed"})
        assert response.status_code == 200


class TestRecurringRoutes:
    """Tests for recurrence group routes."""

    def test_related(self, client: TestClient, cohort: list[Event]):
        response = client.get(f"/events/{cohort[1].id}/related")
        assert [e["id"] for e in response.json()] == [e.id for e in cohort]

    def test_delete_this_and_following(
        self, client: TestClient, cohort: list[Event], collection: EventCollection
    ):
        response = client.post(
            f"/events/{cohort[2].id}/delete-recurring", json={"option": "this_and_following"}
        )
        assert response.status_code == 200
        assert response.json()["deleted_count"] == 3
        assert len(collection) == 2

    def test_store_failure_is_502(
        self, client: TestClient, cohort: list[Event], collection: EventCollection, engine
    ):
        SQLModel.metadata.drop_all(engine)
        response = client.post(f"/events/{cohort[2].id}/delete-recurring", json={"option": "all"})

        assert response.status_code == 502
        assert len(collection) == 5

    def test_invalid_option(self, client: TestClient, cohort: list[Event]):
        response = client.post(f"/events/{cohort[2].id}/delete-recurring", json={"option": "some"})
        assert response.status_code == 422

    def test_update_future(self, client: TestClient, cohort: list[Event], collection: EventCollection):
        response = client.patch(
            f"/events/{cohort[3].id}/recurring",
            json={"changes": {"title": "Renamed Sync"}, "scope": "future"},
        )
        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == [cohort[3].id, cohort[4].id]
        assert collection.get(cohort[0].id).title == "Weekly Sync"


class TestConflictRoutes:
    def test_check(self, client: TestClient, stored_event: Event):
        response = client.post(
            "/conflicts/check",
            json={"title": "Call", "start_time": "2024-01-01T09:30:00", "end_time": "2024-01-01T10:30:00"},
        )
        data = response.json()
        assert data["has_conflicts"] is True
        assert data["can_proceed"] is True
        assert data["conflicts"][0]["time_overlap"]["duration_minutes"] == 30

    def test_next_slot(self, client: TestClient, stored_event: Event):
        response = client.post("/conflicts/next-slot", json={"start": "2024-01-01T09:00:00", "duration_minutes": 30})
        assert response.json() == {"start": "2024-01-01T10:00:00"}

    def test_next_slot_projects_the_configured_horizon(
        self, client: TestClient, collection: EventCollection, make_event, monkeypatch
    ):
        monkeypatch.setattr(settings, "slot_search_max_hours", 96)
        collection.add(
            make_event(
                "workday",
                start=datetime(2024, 1, 1, 8, 0),
                minutes=600,
                is_recurring=True,
                recurrence=RecurrenceRule(frequency=RecurrenceFrequency.DAILY, occurrences=3),
            )
        )
        response = client.post("/conflicts/next-slot", json={"start": "2024-01-01T08:00:00", "duration_minutes": 60})
        assert response.json() == {"start": "2024-01-04T08:00:00"}


class TestSyncRoutes:
    """Tests for sync and auth routes."""

    def test_sync_now_without_credentials(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "google_refresh_token", "")
        response = client.post("/sync/now")
        assert response.status_code == 401
        assert response.json()["requires_reauth"] is True

    def test_sync_now_with_rejected_token(self, client: TestClient, monkeypatch):
        async def expired(collection, store):
            raise ReauthenticationRequired("Google Calendar session expired")

        monkeypatch.setattr(sync_routes, "has_valid_credentials", lambda: True)
        monkeypatch.setattr(sync_routes, "sync_calendar", expired)

        response = client.post("/sync/now")
        assert response.status_code == 401
        assert response.json() == {"detail": "Google Calendar session expired", "requires_reauth": True}

    def test_sync_now_returns_stats(self, client: TestClient, monkeypatch):
        async def pulled(collection, store):
            return {"synced": 4, "skipped": 1}

        monkeypatch.setattr(sync_routes, "has_valid_credentials", lambda: True)
        monkeypatch.setattr(sync_routes, "sync_calendar", pulled)

        assert client.post("/sync/now").json() == {"synced": 4, "skipped": 1}

    def test_sync_status(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "google_refresh_token", "")
        data = client.get("/sync/status").json()

        assert data["authenticated"] is False
        assert data["last_sync_time"] is None
        assert data["sync_interval_minutes"] == settings.sync_interval_minutes

    def test_auth_status(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "google_refresh_token", "")
        data = client.get("/auth/status").json()
        assert data["authenticated"] is False
        assert data["requires_reauth"] is True

    def test_auth_status_configured(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "google_refresh_token", "token")
        data = client.get("/auth/status").json()
        assert data == {"authenticated": True, "requires_reauth": False, "message": "Credentials configured"}


class TestOrchestratorOverride:
    def test_routes_share_one_orchestrator(self, client: TestClient, orchestrator: UpdateOrchestrator):
        client.post(
            "/events",
            json={"title": "Lunch", "start_time": "2024-01-01T12:00:00", "end_time": "2024-01-01T13:00:00"},
        )
        assert len(orchestrator.collection) == 1
