"""
NexusQA
Tests — automation runner: mapping, Maestro CLI wrapper, status derivation,
ledger gateway and the run/report loop.

All outbound HTTP goes through a mocked requests.Session; subprocess is
patched on the runner module.
"""

import importlib
import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from nexusqa.core.exceptions import ValidationError
from nexusqa.integrations import automation_runner as runner_module
from nexusqa.integrations.automation_runner import (
    AutomationMapping, AutomationRunner, MaestroCli, ToolOutcome, derive_status, outcome_note,
)
from nexusqa.integrations.ledger_gateway import LedgerGateway, LedgerGatewayError

run_automation = importlib.import_module("scripts.run_automation")


def _response(status=200, body=None):
    resp = MagicMock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.reason = "OK" if resp.ok else "Error"
    resp.text = json.dumps(body or {})
    resp.json.return_value = body or {}
    return resp


def _mapping(**overrides):
    data = {
        "projectId": 1,
        "testCases": [
            {"testCaseId": 10, "flowPath": "flows/a.yaml"},
            {"testCaseId": 11, "flowPath": "flows/b.yaml", "expectedStatus": "FAILED"},
        ],
    }
    data.update(overrides)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# MAPPING
# ═════════════════════════════════════════════════════════════════════════════

class TestAutomationMapping:
    def test_parses_camel_case_file(self, tmp_path):
        path = tmp_path / "mapping.json"
        path.write_text(json.dumps(_mapping(environment="pixel")), encoding="utf-8")
        mapping = AutomationMapping.load(path)
        assert mapping.project_id == 1
        assert mapping.environment == "pixel"
        assert [c.test_case_id for c in mapping.test_cases] == [10, 11]
        assert [c.expected_status for c in mapping.test_cases] == ["PASSED", "FAILED"]

    @pytest.mark.parametrize("data", [
        _mapping(projectId=None),
        _mapping(testCases=[]),
        _mapping(testCases=[{"testCaseId": 1}]),
        _mapping(testCases=[{"flowPath": "x.yaml"}]),
        _mapping(testCases=[{"testCaseId": 1, "flowPath": "x.yaml", "expectedStatus": "MAYBE"}]),
        [],
    ])
    def test_invalid_mapping(self, data):
        with pytest.raises(ValidationError):
            AutomationMapping.from_dict(data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError):
            AutomationMapping.load(tmp_path / "nope.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "mapping.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValidationError):
            AutomationMapping.load(path)


# ═════════════════════════════════════════════════════════════════════════════
# MAESTRO CLI & STATUS
# ═════════════════════════════════════════════════════════════════════════════

class TestMaestroCli:
    def test_exit_zero_is_success(self):
        with patch.object(runner_module.subprocess, "run",
                          return_value=subprocess.CompletedProcess([], 0)) as mock_run:
            outcome = MaestroCli("maestro").run("flows/a.yaml")
        assert outcome == ToolOutcome(success=True, exit_code=0)
        assert mock_run.call_args.args[0] == ["maestro", "test", "flows/a.yaml"]

    def test_nonzero_exit_is_failure(self):
        with patch.object(runner_module.subprocess, "run",
                          return_value=subprocess.CompletedProcess([], 3)):
            outcome = MaestroCli().run("flows/a.yaml")
        assert not outcome.success
        assert outcome.exit_code == 3

    def test_spawn_failure_is_exit_minus_one(self):
        with patch.object(runner_module.subprocess, "run",
                          side_effect=FileNotFoundError("maestro")):
            outcome = MaestroCli().run("flows/a.yaml")
        assert not outcome.success
        assert outcome.exit_code == -1
        assert "Failed to start Maestro" in outcome.error

    def test_unspawnable_flow_path_is_failure(self):
        with patch.object(runner_module.subprocess, "run",
                          side_effect=ValueError("embedded null byte")):
            outcome = MaestroCli().run("flows/a\x00.yaml")
        assert not outcome.success
        assert outcome.exit_code == -1
        assert "embedded null byte" in outcome.error

    def test_timeout_is_failure(self):
        with patch.object(runner_module.subprocess, "run",
                          side_effect=subprocess.TimeoutExpired(["maestro"], 5)) as mock_run:
            outcome = MaestroCli(timeout=5).run("flows/a.yaml")
        assert outcome.exit_code == -1
        assert not outcome.success
        assert mock_run.call_args.kwargs["timeout"] == 5


class TestDeriveStatus:
    @pytest.mark.parametrize("expected, success, status", [
        ("PASSED", True, "PASSED"),
        ("PASSED", False, "FAILED"),
        ("FAILED", True, "FAILED"),
        ("FAILED", False, "PASSED"),
    ])
    def test_negation(self, expected, success, status):
        assert derive_status(expected, success) == status

    def test_notes(self):
        assert outcome_note("PASSED", ToolOutcome(True, 0)) == \
            "Maestro completed. Expected: PASSED. Exit code: 0"
        assert outcome_note("FAILED", ToolOutcome(False, -1)) == \
            "Maestro failed. Expected: FAILED. Exit code: -1"


# ═════════════════════════════════════════════════════════════════════════════
# GATEWAY
# ═════════════════════════════════════════════════════════════════════════════

class TestLedgerGateway:
    def test_create_run_sends_key_and_default_environment(self):
        session = MagicMock()
        session.post.return_value = _response(201, {"test_run": {"id": 7}, "results": []})
        gw = LedgerGateway("http://nexusqa.local/", "secret", session=session)

        assert gw.create_run(1, [10, 11]) == 7
        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url == "http://nexusqa.local/api/v1/automation/runs"
        assert kwargs["headers"] == {"X-Automation-Key": "secret"}
        assert kwargs["json"] == {"project_id": 1, "environment": "MAESTRO-STUDIO",
                                  "test_case_ids": [10, 11]}

    def test_http_error_raises(self):
        session = MagicMock()
        session.post.return_value = _response(401, {"error": "Unauthorized"})
        gw = LedgerGateway("http://nexusqa.local", "bad", session=session)
        with pytest.raises(LedgerGatewayError) as exc:
            gw.report_result(7, 10, "PASSED")
        assert exc.value.status_code == 401

    def test_network_error_raises(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        gw = LedgerGateway("http://nexusqa.local", "k", session=session)
        with pytest.raises(LedgerGatewayError):
            gw.create_run(1, [10])


# ═════════════════════════════════════════════════════════════════════════════
# RUNNER LOOP
# ═════════════════════════════════════════════════════════════════════════════

class TestAutomationRunner:
    def _runner(self, gateway, outcomes):
        cli = MagicMock()
        cli.run.side_effect = outcomes
        mapping = AutomationMapping.from_dict(_mapping())
        return AutomationRunner(mapping, gateway, cli), cli

    def test_reports_each_case_with_derived_status(self):
        gateway = MagicMock()
        gateway.create_run.return_value = 5
        gateway.report_result.return_value = {"status": "PASSED"}
        runner, cli = self._runner(gateway, [ToolOutcome(True, 0), ToolOutcome(False, 1)])

        summary = runner.run()

        gateway.create_run.assert_called_once_with(1, [10, 11], environment=None)
        calls = gateway.report_result.call_args_list
        assert calls[0].args == (5, 10, "PASSED", "Maestro completed. Expected: PASSED. Exit code: 0")
        assert calls[1].args == (5, 11, "PASSED", "Maestro failed. Expected: FAILED. Exit code: 1")
        assert summary.to_dict()["reported"] == 2
        assert summary.report_failures == 0

    def test_report_failure_does_not_abort_batch(self):
        gateway = MagicMock()
        gateway.create_run.return_value = 5
        gateway.report_result.side_effect = [LedgerGatewayError("boom", 500), {"status": "PASSED"}]
        runner, cli = self._runner(gateway, [ToolOutcome(True, 0), ToolOutcome(True, 0)])

        summary = runner.run()

        assert cli.run.call_count == 2
        assert summary.reported == 1
        assert summary.report_failures == 1
        assert summary.outcomes[0].error == "boom"

    def test_run_creation_failure_aborts(self):
        gateway = MagicMock()
        gateway.create_run.side_effect = LedgerGatewayError("down")
        runner, cli = self._runner(gateway, [])
        with pytest.raises(LedgerGatewayError):
            runner.run()
        cli.run.assert_not_called()


class TestRunAutomationScript:
    def test_missing_key_exits_1(self, monkeypatch, tmp_path):
        monkeypatch.delenv("AUTOMATION_API_KEY", raising=False)
        assert run_automation.main(["--mapping", str(tmp_path / "m.json")]) == 1

    def test_invalid_mapping_exits_1(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AUTOMATION_API_KEY", "k")
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"projectId": 1, "testCases": []}), encoding="utf-8")
        assert run_automation.main(["--mapping", str(path)]) == 1

    def test_run_creation_failure_exits_1(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AUTOMATION_API_KEY", "k")
        path = tmp_path / "m.json"
        path.write_text(json.dumps(_mapping()), encoding="utf-8")
        with patch.object(run_automation.AutomationRunner, "run",
                          side_effect=LedgerGatewayError("refused")):
            assert run_automation.main(["--mapping", str(path)]) == 1
