"""Tests for the workflow, event, audit and logs API routes.

Each test gets a fresh app against a throwaway home directory (see conftest.py).
"""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from conftest import build_client  # noqa: E402


NOTIFY_WORKFLOW = {
    "name": "Error alert",
    "description": "Tell me when something breaks",
    "trigger": {"type": "manual"},
    "actions": [{"type": "notify", "title": "Error", "message": "Something broke", "priority": "high"}],
}


def _create(client, **overrides) -> dict:
    body = {**NOTIFY_WORKFLOW, **overrides}
    resp = client.post("/api/workflows", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["workflow"]


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestWorkflowCrud:
    """Test workflow CRUD endpoints."""

    def test_create_workflow(self, client):
        workflow = _create(client)
        assert workflow["id"].startswith("wf-")
        assert workflow["name"] == "Error alert"
        assert workflow["enabled"] is False
        assert workflow["run_count"] == 0
        assert workflow["trigger"] == {"type": "manual"}
        assert workflow["actions"][0]["priority"] == "high"

    def test_create_invalid_workflow_reports_all_errors(self, client):
        resp = client.post("/api/workflows", json={
            "name": "",
            "trigger": {"type": "schedule", "cron": "whenever"},
            "actions": [{"type": "run_command", "command": "rm -rf /"}],
        })
        assert resp.status_code == 400
        assert resp.json() == {
            "error": "Validation failed",
            "details": [
                "Name must be 1-100 characters",
                "Invalid cron expression",
                "Action 1: Command contains forbidden pattern",
            ],
        }
        assert client.get("/api/workflows").json()["workflows"] == []

    def test_create_unknown_action_type(self, client):
        resp = client.post("/api/workflows", json={
            **NOTIFY_WORKFLOW,
            "actions": [{"type": "format_disk"}],
        })
        assert resp.status_code == 422

    def test_create_rejects_non_positive_command_timeout(self, client):
        resp = client.post("/api/workflows", json={
            **NOTIFY_WORKFLOW,
            "actions": [{"type": "run_command", "command": "date", "timeout": -10}],
        })
        assert resp.status_code == 422

    def test_list_workflows_empty(self, client):
        resp = client.get("/api/workflows")
        assert resp.status_code == 200
        assert resp.json() == {"workflows": []}

    def test_list_workflows_with_audit(self, client):
        _create(client, name="WF1")
        _create(client, name="WF2")
        data = client.get("/api/workflows", params={"audit": True}).json()
        assert {w["name"] for w in data["workflows"]} == {"WF1", "WF2"}
        assert [e["action"] for e in data["audit"]] == ["create", "create"]

    def test_get_workflow(self, client):
        created = _create(client)
        resp = client.get(f"/api/workflows/{created['id']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["workflow"]["id"] == created["id"]
        assert data["workflow"]["next_run"] is None
        assert "runs" not in data

    def test_get_workflow_not_found(self, client):
        resp = client.get("/api/workflows/nonexistent")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Workflow not found"

    def test_update_workflow(self, client):
        created = _create(client)
        resp = client.put(f"/api/workflows/{created['id']}", json={"name": "Renamed"})
        assert resp.status_code == 200
        updated = resp.json()["workflow"]
        assert updated["name"] == "Renamed"
        assert updated["description"] == "Tell me when something breaks"
        assert updated["created_at"] == created["created_at"]

    def test_update_validates_merged_workflow(self, client):
        created = _create(client)
        resp = client.put(f"/api/workflows/{created['id']}", json={
            "actions": [{"type": "spawn_agent", "agent_type": "coder", "prompt": "go", "max_turns": 500}],
        })
        assert resp.status_code == 400
        assert resp.json()["details"] == ["Action 1: Max turns must be 1-100"]
        detail = client.get(f"/api/workflows/{created['id']}").json()["workflow"]
        assert detail["actions"][0]["type"] == "notify"

    def test_update_not_found(self, client):
        resp = client.put("/api/workflows/nonexistent", json={"name": "x"})
        assert resp.status_code == 404

    def test_toggle_workflow(self, client):
        created = _create(client)
        resp = client.post(f"/api/workflows/{created['id']}/toggle")
        assert resp.status_code == 200
        assert resp.json()["workflow"]["enabled"] is True
        resp = client.post(f"/api/workflows/{created['id']}/toggle")
        assert resp.json()["workflow"]["enabled"] is False

        audit = client.get("/api/audit", params={"workflow_id": created["id"]}).json()["audit"]
        assert [e["action"] for e in audit] == ["disable", "enable", "create"]

    def test_delete_workflow(self, client):
        created = _create(client)
        resp = client.delete(f"/api/workflows/{created['id']}")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert client.get(f"/api/workflows/{created['id']}").status_code == 404
        assert client.delete(f"/api/workflows/{created['id']}").status_code == 404

        # The audit trail outlives the workflow
        audit = client.get("/api/audit", params={"workflow_id": created["id"]}).json()["audit"]
        assert audit[0]["action"] == "delete"
        assert audit[0]["workflow_name"] == "Error alert"

    def test_catalog(self, client):
        data = client.get("/api/workflows/catalog").json()
        assert {"label": "Every hour", "cron": "0 * * * *"} in data["cron_presets"]
        assert data["events"]["error"] == "When an error occurs"
        assert set(data["actions"]) == {"send_message", "spawn_agent", "pause_agent", "notify", "run_command"}


class TestWorkflowRuns:
    """Test run-now, run history and rate limiting."""

    def test_run_now(self, client):
        created = _create(client)
        resp = client.post(f"/api/workflows/{created['id']}/run")
        assert resp.status_code == 200
        data = resp.json()
        run = data["run"]
        assert run["id"].startswith("run-")
        assert run["status"] == "completed"
        assert run["trigger"] == "manual"
        assert run["results"][0]["status"] == "success"
        assert run["results"][0]["output"] == {"sent": True, "title": "Error"}
        assert data["workflow"]["run_count"] == 1
        assert data["workflow"]["last_run_status"] == "success"

    def test_run_disabled_workflow_manually(self, client):
        created = _create(client, enabled=False)
        assert client.post(f"/api/workflows/{created['id']}/run").status_code == 200

    def test_run_not_found(self, client):
        resp = client.post("/api/workflows/nonexistent/run")
        assert resp.status_code == 404

    def test_run_history(self, client):
        created = _create(client)
        run_ids = [client.post(f"/api/workflows/{created['id']}/run").json()["run"]["id"] for _ in range(3)]

        runs = client.get(f"/api/workflows/{created['id']}/runs").json()["runs"]
        assert [r["id"] for r in runs] == list(reversed(run_ids))
        limited = client.get(f"/api/workflows/{created['id']}/runs", params={"limit": 1}).json()["runs"]
        assert [r["id"] for r in limited] == [run_ids[-1]]
        assert client.get(f"/api/workflows/{created['id']}/runs", params={"limit": 51}).status_code == 422

        detail = client.get(f"/api/workflows/{created['id']}", params={"runs": True, "audit": True}).json()
        assert len(detail["runs"]) == 3
        assert detail["audit"][0]["action"] == "run"
        assert detail["audit"][0]["details"]["trigger"] == "manual"

    def test_run_history_not_found(self, client):
        assert client.get("/api/workflows/nonexistent/runs").status_code == 404

    def test_rate_limit(self, monkeypatch, tmp_path):
        with build_client(monkeypatch, tmp_path, CLAW_WORKFLOWS_RATE_LIMIT_MAX="2") as client:
            created = _create(client)
            for _ in range(2):
                assert client.post(f"/api/workflows/{created['id']}/run").status_code == 200

            resp = client.post(f"/api/workflows/{created['id']}/run")
            assert resp.status_code == 429
            body = resp.json()
            assert body["error"] == "Rate limit exceeded"
            assert 0 < body["retry_after"] <= 60
            assert resp.headers["retry-after"] == str(body["retry_after"])

            # Denied attempts do not run the workflow
            assert client.get(f"/api/workflows/{created['id']}").json()["workflow"]["run_count"] == 2
            # Other workflows have their own window
            other = _create(client, name="Other")
            assert client.post(f"/api/workflows/{other['id']}/run").status_code == 200


class TestScheduling:

    def test_enabled_schedule_workflow_has_next_run(self, client):
        created = _create(client, enabled=True, trigger={"type": "schedule", "cron": "*/5 * * * *", "timezone": "UTC"})
        assert created["trigger"]["cron"] == "*/5 * * * *"
        detail = client.get(f"/api/workflows/{created['id']}").json()["workflow"]
        assert detail["next_run"] is not None

        client.post(f"/api/workflows/{created['id']}/toggle")
        detail = client.get(f"/api/workflows/{created['id']}").json()["workflow"]
        assert detail["next_run"] is None

    def test_six_field_cron_is_scheduled(self, client):
        created = _create(client, enabled=True, trigger={"type": "schedule", "cron": "30 */5 * * * *", "timezone": "UTC"})
        assert created["next_run"] is not None
        assert created["schedule_error"] is None

    def test_unschedulable_cron_reports_why(self, client):
        created = _create(client, enabled=True, trigger={"type": "schedule", "cron": "99 * * * *", "timezone": "UTC"})
        assert created["next_run"] is None
        assert created["schedule_error"].startswith("Cannot schedule cron '99 * * * *'")

        detail = client.get(f"/api/workflows/{created['id']}").json()["workflow"]
        assert detail["next_run"] is None
        assert detail["schedule_error"] == created["schedule_error"]

        updated = client.put(f"/api/workflows/{created['id']}", json={
            "trigger": {"type": "schedule", "cron": "0 9 * * *", "timezone": "UTC"},
        }).json()["workflow"]
        assert updated["next_run"] is not None
        assert updated["schedule_error"] is None


class TestEvents:

    def test_dispatch_runs_matching_workflows(self, client):
        matching = _create(client, enabled=True, trigger={
            "type": "event", "event_type": "error", "filter": {"severity": "high"},
        })
        _create(client, enabled=True, trigger={"type": "event", "event_type": "tool_call"})
        _create(client, enabled=False, trigger={"type": "event", "event_type": "error"})

        resp = client.post("/api/events/error", json={"severity": "high", "source": "gateway"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["matched"] == [matching["id"]]
        assert data["skipped"] == []
        assert data["runs"][0]["trigger"] == "event"
        assert data["runs"][0]["status"] == "completed"

    def test_dispatch_filter_mismatch(self, client):
        _create(client, enabled=True, trigger={
            "type": "event", "event_type": "error", "filter": {"severity": "high"},
        })
        data = client.post("/api/events/error", json={"severity": "low"}).json()
        assert data == {"matched": [], "runs": [], "skipped": []}

    def test_dispatch_without_body_ignores_filters(self, client):
        created = _create(client, enabled=True, trigger={
            "type": "event", "event_type": "session_end", "filter": {"user": "alice"},
        })
        data = client.post("/api/events/session_end").json()
        assert data["matched"] == [created["id"]]

    def test_unknown_event_type(self, client):
        assert client.post("/api/events/solar_flare").status_code == 422


class TestAuditAndLogs:

    def test_audit_limit(self, client):
        for i in range(3):
            _create(client, name=f"WF{i}")
        audit = client.get("/api/audit", params={"limit": 2}).json()["audit"]
        assert [e["workflow_name"] for e in audit] == ["WF2", "WF1"]

    def test_server_logs(self, client):
        data = client.get("/api/logs/server").json()
        assert data["count"] == len(data["lines"])

    def test_workflow_logs(self, client):
        created = _create(client)
        client.post(f"/api/workflows/{created['id']}/run")
        data = client.get(f"/api/logs/workflows/{created['id']}").json()
        assert data["workflow_id"] == created["id"]
        assert any("Starting workflow" in line for line in data["lines"])


class TestStartup:

    def test_sample_workflow_is_seeded(self, monkeypatch, tmp_path):
        with build_client(monkeypatch, tmp_path, CLAW_WORKFLOWS_SEED_SAMPLE="1") as client:
            workflows = client.get("/api/workflows").json()["workflows"]
            assert [w["id"] for w in workflows] == ["wf-sample-1"]
            assert workflows[0]["enabled"] is False

    def test_json_storage_backend(self, monkeypatch, tmp_path):
        with build_client(monkeypatch, tmp_path, CLAW_WORKFLOWS_STORAGE="json") as client:
            created = _create(client)
        stored = tmp_path / "claw-workflows-home" / "workflows" / f"{created['id']}.json"
        assert stored.exists()


class TestAuth:

    def test_remote_requests_need_token(self, monkeypatch, tmp_path):
        with build_client(monkeypatch, tmp_path, bypass_auth=False, CLAW_WORKFLOWS_API_TOKEN="s3cret") as client:
            assert client.get("/health").status_code == 200

            resp = client.get("/api/workflows")
            assert resp.status_code == 401

            resp = client.get("/api/workflows", headers={"Authorization": "Bearer wrong"})
            assert resp.status_code == 403

            resp = client.get("/api/workflows", headers={"Authorization": "Bearer s3cret"})
            assert resp.status_code == 200
