"""
Tests for the onboarding HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from onboarding.api import create_app
from onboarding.loader import load_flow
from onboarding.storage import InMemoryStorage


@pytest.fixture
def storages():
    return {}


@pytest.fixture
def client(flow_yaml, storages):
    def factory(user_id):
        return storages.setdefault(user_id, InMemoryStorage())

    return TestClient(create_app(load_flow(flow_yaml), factory))


@pytest.fixture
def failing_client(flow_yaml, failing_storage):
    return TestClient(create_app(load_flow(flow_yaml), lambda user_id: failing_storage))


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "slides": 4}


class TestFlow:
    """Test driving a flow over HTTP."""

    def test_initial_state(self, client):
        data = client.get("/api/onboarding/state").json()
        assert data["current_slide"]["id"] == "welcome"
        assert data["total_count"] == 4
        assert data["next_button_label"] == "Continue"

    def test_answer_and_advance(self, client, storages):
        client.post("/api/onboarding/next")
        data = client.post("/api/onboarding/answer", json={"value": "no"}).json()
        assert data["is_answer_valid"] is True

        response = client.post("/api/onboarding/next").json()
        assert response["moved"] is True
        assert response["view"]["current_slide"]["id"] == "done"
        assert storages["local"].keys() == ["@onboarding:user_data"]

    def test_invalid_answer_blocks(self, client):
        client.post("/api/onboarding/next")
        response = client.post("/api/onboarding/next").json()
        assert response["moved"] is False
        assert response["view"]["can_go_next"] is False

    def test_toggle(self, client):
        client.post("/api/onboarding/next")
        data = client.post("/api/onboarding/toggle", json={"option_id": "yes"}).json()
        assert data["current_answer"] == "yes"

    def test_back(self, client):
        client.post("/api/onboarding/next")
        response = client.post("/api/onboarding/back").json()
        assert response["moved"] is True
        assert response["view"]["current_index"] == 0

    def test_skip_and_reset(self, client):
        skipped = client.post("/api/onboarding/skip").json()
        assert skipped["view"]["status"] == "skipped"
        assert skipped["view"]["is_onboarding_complete"] is True

        reset = client.post("/api/onboarding/reset").json()
        assert reset["status"] == "active"
        assert reset["is_onboarding_complete"] is False

    def test_sessions_per_user(self, client):
        client.post("/api/onboarding/next", headers={"X-User-Id": "alice"})
        bob = client.get("/api/onboarding/state", headers={"X-User-Id": "bob"}).json()
        alice = client.get("/api/onboarding/state", headers={"X-User-Id": "alice"}).json()
        assert alice["current_index"] == 1
        assert bob["current_index"] == 0

    def test_blank_user_id_rejected(self, client):
        response = client.get("/api/onboarding/state", headers={"X-User-Id": "  "})
        assert response.status_code == 400


class TestStorageFailures:
    def test_skip_failure_returns_500(self, failing_client):
        response = failing_client.post("/api/onboarding/skip")
        assert response.status_code == 500
        assert response.json()["detail"].startswith("Failed to skip onboarding")

        state = failing_client.get("/api/onboarding/state").json()
        assert state["status"] == "active"
        assert state["error"] is not None
