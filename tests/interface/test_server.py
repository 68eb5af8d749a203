from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from lexicard import server
from lexicard.application.due_state import DueStateCache
from lexicard.application.factory import Services
from lexicard.application.lifecycle import CardLifecycleManager
from lexicard.application.migration import MigrationReport
from lexicard.application.queue_builder import ReviewQueueBuilder
from lexicard.consts import VERSION
from lexicard.domain.exceptions import StorageError
from lexicard.infrastructure.adapters.memory_store import InMemoryCardStore
from lexicard.server import app, get_services

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)

client = TestClient(app)


class BrokenStore(InMemoryCardStore):
    async def get_by_scope(self, scope_keys):
        raise StorageError("database is locked")


def make_services(store):
    cache = DueStateCache()
    clock = lambda: NOW  # noqa: E731
    return Services(
        store=store,
        lifecycle=CardLifecycleManager(store, clock=clock, cache=cache),
        queue=ReviewQueueBuilder(store, clock=clock, cache=cache),
        migration=MigrationReport(from_version=4, to_version=4),
    )


@pytest.fixture
def services():
    services = make_services(InMemoryCardStore(schema_version=4))
    app.dependency_overrides[get_services] = lambda: services
    yield services
    app.dependency_overrides.clear()
    server._sessions.clear()


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version():
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_add_and_list_cards(services):
    response = client.post("/cards", json={"word": "Run", "scope": "document:doc1"})
    assert response.status_code == 200
    data = response.json()
    assert data["created"] is True
    assert data["card"]["id"] == "document:doc1:run"

    response = client.post("/cards", json={"word": "run", "scope": "document:doc1"})
    assert response.json()["created"] is False

    cards = client.get("/cards", params={"scope": "document:doc1"}).json()
    assert [c["word"] for c in cards] == ["run"]
    assert cards[0]["due_state"] == "due"

    assert client.get("/cards").json() == []


def test_add_card_validation(services):
    assert client.post("/cards", json={"word": "run", "scope": "folder:x"}).status_code == 422
    assert client.post("/cards", json={"word": "   "}).status_code == 422


def test_review_session_flow(services):
    client.post("/cards", json={"word": "run", "scope": "document:doc1"})

    opened = client.post("/sessions", json={"scope": "document:doc1"}).json()
    assert opened["new_count"] == 1
    assert opened["review_count"] == 0
    assert opened["card"] is None
    session_id = opened["session_id"]

    step = client.post(f"/sessions/{session_id}/next").json()
    assert step["card"]["word"] == "run"

    rated = client.post(f"/sessions/{session_id}/rate", json={"rating": "good"})
    assert rated.status_code == 200
    data = rated.json()
    assert data["reviewed"] == 1
    assert data["remaining"] == 0
    assert data["finished"] is True

    card = client.get("/cards", params={"scope": "document:doc1"}).json()[0]
    assert card["repetitions"] == 1
    assert card["interval"] == 1
    assert card["status"] == "learning"
    assert card["due_date"] == "2024-03-11T00:00:00+00:00"
    assert card["due_state"] == "scheduled"

    # Finished sessions are released
    assert session_id not in server._sessions
    assert client.post(f"/sessions/{session_id}/next").status_code == 404
    assert client.delete(f"/sessions/{session_id}").status_code == 404


def test_empty_session_released_after_next(services):
    session_id = client.post("/sessions", json={"scope": "chat:nothing"}).json()["session_id"]

    done = client.post(f"/sessions/{session_id}/next").json()

    assert done["card"] is None
    assert done["finished"] is True
    assert client.post(f"/sessions/{session_id}/next").status_code == 404


def test_close_open_session(services):
    client.post("/cards", json={"word": "run"})
    session_id = client.post("/sessions", json={}).json()["session_id"]
    client.post(f"/sessions/{session_id}/next")

    closed = client.delete(f"/sessions/{session_id}")

    assert closed.json() == {"closed": True, "reviewed": 0}
    assert client.delete(f"/sessions/{session_id}").status_code == 404


def test_rate_errors(services):
    client.post("/cards", json={"word": "run"})
    session_id = client.post("/sessions", json={}).json()["session_id"]

    # No active card yet
    assert client.post(f"/sessions/{session_id}/rate", json={"rating": 3}).status_code == 409

    client.post(f"/sessions/{session_id}/next")
    assert client.post(f"/sessions/{session_id}/rate", json={"rating": "superb"}).status_code == 422
    assert client.post(f"/sessions/{session_id}/rate", json={"rating": 1}).status_code == 200


def test_unknown_session(services):
    assert client.post("/sessions/nope/next").status_code == 404
    assert client.post("/sessions/nope/rate", json={"rating": 3}).status_code == 404


def test_preview(services):
    client.post("/cards", json={"word": "run"})

    response = client.get("/cards/global:all:run/preview")

    assert response.status_code == 200
    data = response.json()
    assert list(data) == ["again", "hard", "good", "easy"]
    assert data["good"]["label"] == "1 day"
    assert data["easy"]["interval"] == 4
    assert client.get("/cards/global:all:ghost/preview").status_code == 404


def test_storage_failure_is_503():
    services = make_services(BrokenStore(schema_version=4))
    app.dependency_overrides[get_services] = lambda: services
    try:
        response = client.post("/sessions", json={"scope": "chat:1"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "database is locked" in response.json()["detail"]


def test_scope_with_separator_rejected(services):
    response = client.post("/cards", json={"word": "run", "scope": "chat:a:b"})
    assert response.status_code == 422
