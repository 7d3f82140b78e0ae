"""Tests for the FastAPI API endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from micgain_manager.api.app import create_app
from micgain_manager.errors import ApplyError
from micgain_manager.execution.appliers import NoopApplier
from micgain_manager.scheduler.loop import ScheduleManager
from micgain_manager.settings import Settings
from micgain_manager.store.file_store import JsonFileStore


class FailingApplier:
    def apply(self, value: int) -> None:
        raise ApplyError("osascript failed with exit code 1")


def _make_client(tmp_path, applier):
    path = tmp_path / "config.json"
    manager = ScheduleManager.load(JsonFileStore(path), applier)
    settings = Settings(config_path=path, applier="noop")
    return TestClient(create_app(manager=manager, settings=settings))


@pytest.fixture
def applier():
    return NoopApplier()


@pytest.fixture
def client(tmp_path, applier):
    """Create a test client with a fresh store; the lifespan runs the loop."""
    with _make_client(tmp_path, applier) as client:
        yield client


class TestStatusEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "scheduler": "running"}

    def test_get_default_config(self, client):
        response = client.get("/api/config")
        assert response.status_code == 200
        data = response.json()
        assert data["config"]["targetValue"] == 50
        assert data["config"]["intervalSeconds"] == 90
        assert data["config"]["enabled"] is True
        assert data["config"]["lastApplyStatus"] == "never"
        assert data["idle"] is True


class TestConfigEndpoints:
    def test_partial_update(self, client, tmp_path):
        response = client.put("/api/config", json={"targetValue": 70})
        assert response.status_code == 200
        data = response.json()
        assert data["config"]["targetValue"] == 70
        assert data["config"]["intervalSeconds"] == 90
        assert data["nextRun"] is not None

        record = json.loads((tmp_path / "config.json").read_text())
        assert record["targetValue"] == 70

    def test_update_interval_and_disable(self, client):
        response = client.put("/api/config", json={
            "intervalSeconds": 30,
            "enabled": False,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["config"]["intervalSeconds"] == 30
        assert data["config"]["enabled"] is False
        assert data["nextRun"] is None

    def test_update_and_apply(self, client, applier):
        response = client.put("/api/config", json={"targetValue": 65, "applyNow": True})
        assert response.status_code == 200
        assert response.json()["config"]["lastApplyStatus"] == "ok"
        assert applier.applied == [65]

    def test_out_of_range_rejected(self, client):
        response = client.put("/api/config", json={"targetValue": 130})
        assert response.status_code == 400
        assert "between 0 and 100" in response.json()["detail"]

        # Nothing changed
        assert client.get("/api/config").json()["config"]["targetValue"] == 50

    def test_interval_too_short_rejected(self, client):
        response = client.put("/api/config", json={"intervalSeconds": 2})
        assert response.status_code == 400

    @pytest.mark.parametrize("interval", [1e20, 5.5, 0, -30, "soon"])
    def test_malformed_interval_is_422(self, client, interval):
        response = client.put("/api/config", json={"intervalSeconds": interval})
        assert response.status_code == 422
        assert client.get("/api/config").json()["config"]["intervalSeconds"] == 90

    def test_whole_float_interval_accepted(self, client, tmp_path):
        response = client.put("/api/config", json={"intervalSeconds": 45.0})
        assert response.status_code == 200

        record = json.loads((tmp_path / "config.json").read_text())
        assert record["intervalSeconds"] == 45

    def test_partial_updates_keep_each_other(self, client):
        client.put("/api/config", json={"targetValue": 70})
        client.put("/api/config", json={"enabled": False})

        config = client.get("/api/config").json()["config"]
        assert config["targetValue"] == 70
        assert config["enabled"] is False


class TestApplyEndpoint:
    def test_apply_configured_value(self, client, applier):
        response = client.post("/api/apply")
        assert response.status_code == 200
        data = response.json()
        assert data["config"]["lastApplyStatus"] == "ok"
        assert "lastApplied" in data["config"]
        assert applier.applied == [50]

    def test_apply_explicit_value(self, client, applier):
        response = client.post("/api/apply", json={"targetValue": 20})
        assert response.status_code == 200
        assert applier.applied == [20]
        # Manual apply never changes the configuration
        assert response.json()["config"]["targetValue"] == 50

    def test_apply_invalid_value(self, client, applier):
        response = client.post("/api/apply", json={"targetValue": 150})
        assert response.status_code == 422
        assert applier.applied == []

    def test_apply_failure(self, tmp_path):
        with _make_client(tmp_path, FailingApplier()) as client:
            response = client.post("/api/apply")
            assert response.status_code == 500
            assert "exit code 1" in response.json()["detail"]

            data = client.get("/api/config").json()
            assert data["config"]["lastApplyStatus"] == "error"
            assert data["config"]["lastError"] == "osascript failed with exit code 1"
            assert data["idle"] is True
