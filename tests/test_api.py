from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.main import AppComponents, app
from registry.definitions import JobDefinition, JobOptions
from registry.schema_validator import SchemaValidator

YEARLY = "0 0 0 1 1 *"


def failing(job):
    raise RuntimeError("handler exploded")


@pytest.fixture
def client(manager):
    # No context manager: startup would load config from the working directory.
    app.state.components = AppComponents(manager=manager, schema_validator=SchemaValidator.load_from_dir())
    yield TestClient(app, raise_server_exceptions=False)
    app.state.components = None


def document(name="api-job", **spec):
    body = {"pattern": YEARLY, "handler": "jobs.examples.heartbeat:beat"}
    body.update(spec)
    return {"kind": "JobDefinition", "metadata": {"name": name}, "spec": body}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_register_then_list_and_get(client):
    resp = client.post("/api/jobs", json=document())
    assert resp.status_code == 201
    assert resp.json()["job"]["name"] == "api-job"
    assert resp.json()["job"]["status"] == "idle"

    listed = client.get("/api/jobs").json()
    assert [j["name"] for j in listed] == ["api-job"]

    job = client.get("/api/jobs/api-job").json()
    assert job["pattern"] == YEARLY
    assert job["executions"] == []


def test_register_duplicate_conflicts(client):
    client.post("/api/jobs", json=document())
    resp = client.post("/api/jobs", json=document())
    assert resp.status_code == 409
    assert resp.json()["error"] == "CONFLICT"


def test_register_invalid_document(client):
    resp = client.post("/api/jobs", json={"kind": "JobDefinition", "metadata": {"name": "x"}})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "SCHEMA_VALIDATION_ERROR"
    assert body["violations"]


def test_register_invalid_pattern(client):
    resp = client.post("/api/jobs", json=document(pattern="99 * * * *"))
    assert resp.status_code == 422
    assert resp.json()["error"] == "PATTERN_ERROR"


def test_register_unknown_handler(client):
    resp = client.post("/api/jobs", json=document(handler="jobs.examples.heartbeat:nothing"))
    assert resp.status_code == 400
    assert resp.json()["error"] == "POLICY_VIOLATION"


def test_unknown_job_is_404(client):
    assert client.get("/api/jobs/ghost").status_code == 404
    for action in ("trigger", "pause", "resume", "stop"):
        resp = client.post(f"/api/jobs/ghost/{action}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "NOT_FOUND", "resource_type": "Job", "resource_id": "ghost"}


def test_invalid_job_name_is_400(client):
    assert client.get("/api/jobs/bad..name").status_code == 400


def test_trigger_pause_resume_stop(client, manager):
    manager.register(JobDefinition(name="ctl", pattern=YEARLY, handler=lambda job: None))

    resp = client.post("/api/jobs/ctl/trigger")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "job": "ctl", "message": "Job triggered successfully"}
    assert len(client.get("/api/jobs/ctl").json()["executions"]) == 1

    assert client.post("/api/jobs/ctl/pause").json()["message"] == "Job paused successfully"
    resp = client.post("/api/jobs/ctl/pause")
    assert resp.status_code == 409
    assert resp.json()["message"] == "Failed to pause job"

    assert client.post("/api/jobs/ctl/resume").status_code == 200
    assert client.post("/api/jobs/ctl/stop").json()["message"] == "Job stopped successfully"
    assert client.get("/api/jobs/ctl").status_code == 404


def test_trigger_without_catch_returns_handler_error(client, manager):
    manager.register(JobDefinition(name="loud", pattern=YEARLY, handler=failing, options=JobOptions(catch=False)))
    resp = client.post("/api/jobs/loud/trigger")
    assert resp.status_code == 500
    assert resp.json() == {"error": "HANDLER_ERROR", "job": "loud", "message": "handler exploded"}


def test_trigger_with_catch_reports_success_of_start(client, manager):
    manager.register(JobDefinition(name="quiet", pattern=YEARLY, handler=failing))
    resp = client.post("/api/jobs/quiet/trigger")
    assert resp.status_code == 200
    execution = client.get("/api/jobs/quiet").json()["executions"][0]
    assert execution["success"] is False
    assert execution["error"] == "handler exploded"


def test_stats(client, manager):
    manager.register(JobDefinition(name="one", pattern=YEARLY, handler=lambda job: None))
    manager.register(JobDefinition(name="two", pattern=YEARLY, handler=failing, enabled=False))
    client.post("/api/jobs/one/trigger")
    client.post("/api/jobs/two/trigger")

    stats = client.get("/api/stats").json()
    assert stats["total_jobs"] == 2
    assert stats["active_jobs"] == 1
    assert stats["paused_jobs"] == 1
    assert stats["total_executions"] == 2
    assert stats["successful_executions"] == 1
    assert stats["failed_executions"] == 1


def test_lifespan_loads_shipped_jobs_and_stops_them(monkeypatch):
    config_dir = Path(__file__).resolve().parents[1] / "runtime" / "core" / "config"
    monkeypatch.setenv("CRON_MANAGER_RUNTIME_CONFIG", str(config_dir / "runtime.yaml"))
    monkeypatch.setenv("CRON_MANAGER_LOGGING_CONFIG", str(config_dir / "logging.yaml"))
    for name in ("PORT", "TIMEZONE", "MAX_EXECUTION_LOGS"):
        monkeypatch.delenv(name, raising=False)

    try:
        with TestClient(app) as client:
            names = [j["name"] for j in client.get("/api/jobs").json()]
            assert names == ["example-cron-job", "heartbeat"]
            manager = app.state.components.manager
        assert len(manager) == 0
    finally:
        app.state.components = None
