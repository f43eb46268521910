"""
NexusQA
Tests — automation ingestion API (key gate, run creation, result reporting,
Maestro trigger).
"""

import pytest

from nexusqa.models.testing import TestRun


@pytest.fixture()
def keyed(app):
    app.config["AUTOMATION_API_KEY"] = "s3cret"
    yield {"X-Automation-Key": "s3cret"}
    app.config["AUTOMATION_API_KEY"] = ""


class TestAutomationGate:
    def test_missing_key_rejected_before_validation(self, client, keyed):
        res = client.post("/api/v1/automation/runs", json={})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_wrong_key_rejected(self, client, keyed):
        res = client.post("/api/v1/automation/results", json={"status": "PASSED"},
                          headers={"X-Automation-Key": "nope"})
        assert res.status_code == 401

    def test_correct_key_reaches_validation(self, client, keyed):
        res = client.post("/api/v1/automation/runs", json={}, headers=keyed)
        assert res.status_code == 400

    def test_gate_open_without_configured_key(self, client):
        res = client.post("/api/v1/automation/runs", json={})
        assert res.status_code == 400

    def test_gate_only_covers_automation_paths(self, client, keyed):
        res = client.get("/api/v1/health")
        assert res.status_code == 200


class TestAutomationRuns:
    def test_create_and_report(self, client, keyed, project, make_case):
        a = make_case(title="A")
        b = make_case(title="B", steps=[("Click Login", "")])
        res = client.post("/api/v1/automation/runs", headers=keyed, json={
            "project_id": project.id, "test_case_ids": [a.id, b.id],
        })
        assert res.status_code == 201
        body = res.get_json()
        run_id = body["test_run"]["id"]
        assert len(body["results"]) == 2

        res = client.post("/api/v1/automation/results", headers=keyed, json={
            "test_run_id": run_id, "test_case_id": a.id, "status": "PASSED",
        })
        assert res.status_code == 200
        assert res.get_json()["result"]["defects"] == []

        res = client.post("/api/v1/automation/results", headers=keyed, json={
            "test_run_id": run_id, "test_case_id": b.id, "status": "FAILED",
            "actual_result": "Button missing",
        })
        defects = res.get_json()["result"]["defects"]
        assert len(defects) == 1
        assert defects[0]["title"] == (
            "[Auto defect] B (Mobile Banking · automation) · Actual: Button missing"
        )

    @pytest.mark.parametrize("payload", [
        {"test_case_ids": [1]},
        {"project_id": 1},
        {"project_id": 1, "test_case_ids": []},
        {"project_id": 1, "test_case_ids": ["abc"]},
        {"project_id": "1", "test_case_ids": [1]},
    ])
    def test_invalid_payload(self, client, payload):
        res = client.post("/api/v1/automation/runs", json=payload)
        assert res.status_code == 400
        assert TestRun.query.count() == 0

    def test_unknown_project(self, client, make_case):
        a = make_case()
        res = client.post("/api/v1/automation/runs",
                          json={"project_id": 9999, "test_case_ids": [a.id]})
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_report_bad_status(self, client, project, make_case):
        a = make_case()
        run_id = client.post("/api/v1/automation/runs", json={
            "project_id": project.id, "test_case_ids": [a.id],
        }).get_json()["test_run"]["id"]
        res = client.post("/api/v1/automation/results", json={
            "test_run_id": run_id, "test_case_id": a.id, "status": "DONE",
        })
        assert res.status_code == 400

    def test_report_unknown_result(self, client):
        res = client.post("/api/v1/automation/results", json={
            "test_run_id": 9999, "test_case_id": 1, "status": "PASSED",
        })
        assert res.status_code == 404

    def test_non_json_body(self, client):
        res = client.post("/api/v1/automation/runs", data="project_id=1",
                          content_type="application/x-www-form-urlencoded")
        assert res.status_code == 415


class TestMaestroRunEndpoint:
    def test_case_mode(self, client, make_case):
        a = make_case(title="Checkout")
        res = client.post("/api/v1/maestro/run", json={"case_id": a.id})
        assert res.status_code == 201
        assert res.get_json()["test_run"]["name"] == "Maestro Run - Checkout"

    def test_unknown_case(self, client):
        res = client.post("/api/v1/maestro/run", json={"mode": "case", "case_id": 9999})
        assert res.status_code == 404

    def test_unknown_mode(self, client):
        res = client.post("/api/v1/maestro/run", json={"mode": "farm"})
        assert res.status_code == 400
