"""API tests for the cycle trigger endpoint"""

from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from studymatch.api.main import app, get_orchestrator
from studymatch.config import settings
from studymatch.errors import CycleAbortedError
from studymatch.pipeline.orchestrator import CycleOrchestrator
from studymatch.storage.memory_store import InMemoryDatabase


AUTH = {"Authorization": "Bearer cron-secret"}


@pytest.fixture
def orchestrator(make_member):
    db = InMemoryDatabase([make_member("a"), make_member("b"), make_member("c")])
    return CycleOrchestrator(db.stores())


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with patch.object(settings, "cycle_auth_token", ""):
        with TestClient(app) as test_client:
            yield test_client
    app.dependency_overrides.clear()


class TestCycleEndpoint:
    """POST /cycle"""

    def test_requires_bearer_token(self, client):
        assert client.post("/cycle", json={}).status_code == 401
        assert client.post("/cycle", json={}, headers={"Authorization": "Basic abc"}).status_code == 401
        assert client.post("/cycle", json={}, headers={"Authorization": "Bearer "}).status_code == 401

    def test_success_shape(self, client):
        response = client.post("/cycle", json={}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"success": True, "matchesCreated": 1}

    def test_not_enough_members_message(self, client):
        client.post("/cycle", json={}, headers=AUTH)

        response = client.post("/cycle", json={}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "matchesCreated": 0,
            "message": "Not enough eligible users",
        }

    def test_body_ignored(self, client):
        response = client.post("/cycle", headers=AUTH)

        assert response.status_code == 200

    def test_errors_reported_with_200(self, client, orchestrator):
        orchestrator.stores.analytics.db.fail("match_analytics")

        response = client.post("/cycle", json={}, headers=AUTH)

        body = response.json()
        assert response.status_code == 200
        assert body["matchesCreated"] == 1
        assert len(body["errors"]) == 1
        assert body["errors"][0].startswith("Failed to record analytics for match")

    def test_fatal_error_returns_500(self, client, orchestrator):
        orchestrator.stores.members.db.members_unreachable = True

        response = client.post("/cycle", json={}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "Error fetching users" in response.json()["error"]

    def test_unexpected_error_returns_500(self):
        broken = Mock()
        broken.run.side_effect = RuntimeError("boom")
        app.dependency_overrides[get_orchestrator] = lambda: broken
        try:
            with patch.object(settings, "cycle_auth_token", ""):
                response = TestClient(app).post("/cycle", json={}, headers=AUTH)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "boom"}

    def test_aborted_cycle_message(self):
        broken = Mock()
        broken.run.side_effect = CycleAbortedError("member store unreachable")
        app.dependency_overrides[get_orchestrator] = lambda: broken
        try:
            with patch.object(settings, "cycle_auth_token", ""):
                response = TestClient(app).post("/cycle", json={}, headers=AUTH)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "member store unreachable"}


class TestConfiguredToken:

    def test_token_must_match(self, client):
        with patch.object(settings, "cycle_auth_token", "cron-secret"):
            assert client.post("/cycle", json={}, headers={"Authorization": "Bearer wrong"}).status_code == 401
            assert client.post("/cycle", json={}, headers=AUTH).status_code == 200


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["opener_generation"] in ("template", "external")


class TestCycleSetup:

    def test_missing_store_config_returns_error_body(self):
        app.dependency_overrides.clear()
        app.state.orchestrator = None
        with patch("studymatch.api.main.build_supabase_stores",
                   side_effect=ValueError("Missing Supabase configuration.")):
            with patch.object(settings, "cycle_auth_token", ""):
                response = TestClient(app).post("/cycle", json={}, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Missing Supabase configuration."}
        assert app.state.orchestrator is None
