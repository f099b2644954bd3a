"""Integration tests for the runner-event HTTP API."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import assertion_event, request_event, run_log
from core.config import Settings
from main import create_app


@pytest.fixture()
def client(settings: Settings) -> TestClient:
    return TestClient(create_app(settings))


def _start(client: TestClient) -> str:
    response = client.post("/api/runs", json={"timestamp": "2026-10-19T10:00:00Z"})
    assert response.status_code == 200
    return response.json()["run_id"]


class TestRunLifecycle:
    def test_streamed_run_produces_report(self, client: TestClient) -> None:
        run_id = _start(client)

        r = client.post(f"/api/runs/{run_id}/events", json=request_event())
        assert r.status_code == 200
        assert r.json()["status"] == "running"
        assert r.json()["total_requests"] == 1

        client.post(f"/api/runs/{run_id}/events", json=assertion_event("status is 200"))
        pending = client.get(f"/api/runs/{run_id}/report")
        assert pending.status_code == 409

        done = client.post(f"/api/runs/{run_id}/events", json={"event": "done", "timestamp": "2026-10-19T10:00:01Z"})
        assert done.status_code == 200
        body = done.json()
        assert body["status"] == "finished"
        assert body["persisted"] is True
        assert body["summary"]["totalTests"] == 1
        assert body["summary"]["passRate"] == "100.00%"

        report = client.get(f"/api/runs/{run_id}/report").json()
        assert report["performance"]["percentiles"]["p99"] == 150.0
        assert client.get("/api/report").json() == report

    def test_events_after_end_are_rejected(self, client: TestClient) -> None:
        run_id = _start(client)
        client.post(f"/api/runs/{run_id}/events", json={"event": "run-end"})
        r = client.post(f"/api/runs/{run_id}/events", json=request_event())
        assert r.status_code == 409

    def test_unknown_run(self, client: TestClient) -> None:
        r = client.post("/api/runs/nope/events", json=request_event())
        assert r.status_code == 404

    def test_unknown_event_kind(self, client: TestClient) -> None:
        run_id = _start(client)
        r = client.post(f"/api/runs/{run_id}/events", json={"event": "prerequest"})
        assert r.status_code == 400

    def test_persistence_failure_returns_in_memory_summary(self, tmp_path: Path) -> None:
        blocker = tmp_path / "reports"
        blocker.write_text("", encoding="utf-8")
        client = TestClient(create_app(Settings(reports_dir=str(blocker))))

        run_id = _start(client)
        client.post(f"/api/runs/{run_id}/events", json=assertion_event("ok"))
        r = client.post(f"/api/runs/{run_id}/events", json={"event": "done"})

        assert r.status_code == 500
        detail = r.json()["detail"]
        assert detail["summary"]["totalTests"] == 1
        assert "could not" in detail["error"]


class TestUpload:
    def test_upload_jsonl_replays_run(self, client: TestClient) -> None:
        events = run_log(request_event(), assertion_event("status is 200", error="expected 404 to equal 200"))
        content = "\n".join(json.dumps(e) for e in events).encode("utf-8")

        r = client.post("/api/runs/upload", files={"file": ("run.jsonl", content, "application/x-ndjson")})
        assert r.status_code == 200
        body = r.json()
        assert body["mode"] == "jsonl"
        assert body["events"] == 4
        assert body["summary"]["failed"] == 1

        dashboard = client.get("/api/dashboard")
        assert dashboard.status_code == 200
        assert "text/html" in dashboard.headers["content-type"]
        assert "expected 404 to equal 200" in dashboard.text

    def test_upload_without_run_end(self, client: TestClient) -> None:
        content = json.dumps(run_log(request_event())[:-1]).encode("utf-8")
        r = client.post("/api/runs/upload", files={"file": ("run.json", content, "application/json")})
        assert r.status_code == 422

    def test_upload_empty_file(self, client: TestClient) -> None:
        r = client.post("/api/runs/upload", files={"file": ("run.json", b"", "application/json")})
        assert r.status_code == 400


class TestReadEndpoints:
    def test_nothing_generated_yet(self, client: TestClient) -> None:
        assert client.get("/api/report").status_code == 404
        assert client.get("/api/dashboard").status_code == 404
        assert client.get("/api/trends").json() == {"trends": []}

    def test_health(self, client: TestClient) -> None:
        _start(client)
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["active_runs"] == 1
        assert body["trend_points"] == 0

    def test_coverage_and_reset(self, client: TestClient) -> None:
        run_id = _start(client)
        client.post(f"/api/runs/{run_id}/events", json=request_event(url="https://x.test/posts/42"))

        cov = client.get("/api/coverage").json()
        posts = [e for e in cov["endpoints"] if e["endpoint"] == "/posts/:id"][0]
        assert posts["testedMethods"] == 1

        reset = client.post("/api/coverage/reset").json()
        assert reset["summary"]["testedMethods"] == 0

    def test_trends_limit(self, client: TestClient) -> None:
        for _ in range(3):
            run_id = _start(client)
            client.post(f"/api/runs/{run_id}/events", json={"event": "done"})
        assert len(client.get("/api/trends").json()["trends"]) == 3
        assert len(client.get("/api/trends", params={"limit": 2}).json()["trends"]) == 2


class TestRegistryRetention:
    def test_finished_sessions_are_released_and_outcomes_bounded(self, client: TestClient) -> None:
        registry = client.app.state.registry
        registry.keep_finished = 2

        run_ids = []
        for _ in range(3):
            run_id = _start(client)
            client.post(f"/api/runs/{run_id}/events", json={"event": "done"})
            run_ids.append(run_id)

        assert registry.sessions == {}
        assert list(registry.outcomes) == run_ids[1:]
        assert client.get(f"/api/runs/{run_ids[0]}/report").status_code == 404
        assert client.get(f"/api/runs/{run_ids[2]}/report").status_code == 200
        assert client.post(f"/api/runs/{run_ids[2]}/events", json=request_event()).status_code == 409

    def test_rejected_uploads_leave_nothing_behind(self, client: TestClient) -> None:
        incomplete = json.dumps(run_log(request_event())[:-1]).encode("utf-8")
        unknown = json.dumps([{"event": "start"}, {"event": "prerequest"}]).encode("utf-8")

        assert client.post("/api/runs/upload", files={"file": ("a.json", incomplete, "application/json")}).status_code == 422
        assert client.post("/api/runs/upload", files={"file": ("b.json", unknown, "application/json")}).status_code == 400

        registry = client.app.state.registry
        assert registry.sessions == {}
        assert registry.outcomes == {}
        assert client.get("/api/health").json()["active_runs"] == 0

    def test_persistence_failure_keeps_the_outcome_only(self, tmp_path: Path) -> None:
        blocker = tmp_path / "reports"
        blocker.write_text("", encoding="utf-8")
        client = TestClient(create_app(Settings(reports_dir=str(blocker))))

        run_id = _start(client)
        assert client.post(f"/api/runs/{run_id}/events", json={"event": "done"}).status_code == 500

        registry = client.app.state.registry
        assert registry.sessions == {}
        assert client.get(f"/api/runs/{run_id}/report").json()["summary"]["totalTests"] == 0
