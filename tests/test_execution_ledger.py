"""
NexusQA
Tests — execution ledger: run creation, result reporting, auto defects.
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy.orm.exc import StaleDataError

from nexusqa.core.exceptions import NotFoundError, ValidationError
from nexusqa.models import db
from nexusqa.models.project import Project
from nexusqa.models.testing import (
    DEFECT_STATE_PRESENT,
    Defect,
    TestResult,
    TestRun,
    TestSuite,
)
from nexusqa.services import execution_ledger as ledger


def _defects(run_id, case_id):
    result = TestResult.query.filter_by(test_run_id=run_id, test_case_id=case_id).one()
    return result.defects.all()


# ═════════════════════════════════════════════════════════════════════════════
# RUN CREATION
# ═════════════════════════════════════════════════════════════════════════════

class TestCreateRun:
    def test_automation_run_creates_untested_results(self, project, make_case):
        a = make_case(title="A")
        b = make_case(title="B")
        payload = ledger.create_automation_run(project.id, [a.id, b.id])

        assert payload["test_run"]["name"] == "Automation run - Mobile Banking"
        assert payload["test_run"]["environment"] == "automation"
        assert [r["test_case_id"] for r in payload["results"]] == [a.id, b.id]
        assert {r["status"] for r in payload["results"]} == {"UNTESTED"}

    def test_automation_run_caller_name_and_environment(self, project, make_case):
        a = make_case()
        payload = ledger.create_automation_run(project.id, [a.id], name="  Nightly ",
                                               environment="staging")
        assert payload["test_run"]["name"] == "Nightly"
        assert payload["test_run"]["environment"] == "staging"

    def test_automation_run_missing_project(self, make_case):
        a = make_case()
        with pytest.raises(NotFoundError):
            ledger.create_automation_run(9999, [a.id])

    def test_automation_run_no_matching_cases(self, project):
        with pytest.raises(NotFoundError):
            ledger.create_automation_run(project.id, [9998, 9999])

    def test_automation_run_case_from_other_project(self, project, make_case):
        other = Project(name="Other")
        db.session.add(other)
        db.session.flush()
        other_suite = TestSuite(project_id=other.id, title="Elsewhere")
        db.session.add(other_suite)
        db.session.commit()

        own = make_case(title="own")
        foreign = make_case(title="foreign", suite_obj=other_suite)
        with pytest.raises(ValidationError) as exc:
            ledger.create_automation_run(project.id, [own.id, foreign.id])
        assert exc.value.details["invalid_ids"] == [foreign.id]
        assert TestRun.query.count() == 0

    def test_automation_run_empty_ids(self, project):
        with pytest.raises(ValidationError):
            ledger.create_automation_run(project.id, [])

    def test_manual_run_default_name(self, make_case):
        a = make_case(title="A")
        b = make_case(title="B")
        assert ledger.create_manual_run([a.id])["test_run"]["name"] == "Manual run - Mobile Banking (1 case)"
        payload = ledger.create_manual_run([a.id, 9999, b.id])
        assert payload["test_run"]["name"] == "Manual run - Mobile Banking (2 cases)"
        assert payload["test_run"]["environment"] == "Manual"
        assert len(payload["results"]) == 2

    def test_manual_run_caps_name_and_environment(self, make_case):
        a = make_case()
        payload = ledger.create_manual_run([a.id], name="n" * 300, environment="e" * 150)
        assert len(payload["test_run"]["name"]) == 200
        assert len(payload["test_run"]["environment"]) == 100

    def test_manual_run_nothing_found(self):
        with pytest.raises(NotFoundError):
            ledger.create_manual_run([9999])

    def test_maestro_case_mode(self, make_case):
        a = make_case(title="Checkout")
        payload = ledger.create_maestro_run(mode="case", case_id=a.id)
        assert payload["test_run"]["name"] == "Maestro Run - Checkout"
        assert payload["test_run"]["environment"] == "Maestro default"
        assert len(payload["results"]) == 1

    def test_maestro_suite_mode(self, suite, make_case):
        make_case(title="A")
        make_case(title="B")
        payload = ledger.create_maestro_run(mode="suite", suite_id=suite.id, environment="pixel-8")
        assert payload["test_run"]["name"] == "Maestro Run - Login"
        assert payload["test_run"]["environment"] == "pixel-8"
        assert len(payload["results"]) == 2

    def test_maestro_empty_suite(self, suite):
        with pytest.raises(ValidationError):
            ledger.create_maestro_run(mode="suite", suite_id=suite.id)

    def test_maestro_unknown_mode(self):
        with pytest.raises(ValidationError):
            ledger.create_maestro_run(mode="device-farm", case_id=1)

    def test_get_run_missing(self):
        with pytest.raises(NotFoundError):
            ledger.get_run(9999)


# ═════════════════════════════════════════════════════════════════════════════
# RESULT REPORTING
# ═════════════════════════════════════════════════════════════════════════════

class TestReportResult:
    def test_two_case_scenario(self, project, make_case):
        a = make_case(title="A", steps=[("Open app", "")])
        b = make_case(title="B", steps=[("Click Login", "Form shown"), ("Tap submit", "")])
        run_id = ledger.create_automation_run(project.id, [a.id, b.id])["test_run"]["id"]

        ledger.report_result(run_id, a.id, "PASSED")
        result = ledger.report_result(run_id, b.id, "FAILED", "Button missing")

        run = ledger.get_run(run_id)
        assert len(run["results"]) == 2
        assert _defects(run_id, a.id) == []
        assert len(result["defects"]) == 1
        defect = result["defects"][0]
        assert defect["title"].startswith("[Auto defect] ")
        assert "Steps to reproduce:" in defect["description"]
        assert defect["severity"] == "Major"
        assert defect["status"] == "OPEN"
        assert defect["evidence_url"] is None
        assert defect["auto_created"] is True

    def test_repeated_failed_creates_one_defect(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        ledger.report_result(run_id, a.id, "FAILED")
        ledger.report_result(run_id, a.id, "FAILED")
        assert len(_defects(run_id, a.id)) == 1

    def test_failed_passed_failed_creates_one_defect(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        for status in ("FAILED", "PASSED", "FAILED"):
            ledger.report_result(run_id, a.id, status)
        assert len(_defects(run_id, a.id)) == 1

    def test_no_second_auto_defect_after_manual_defect_closed(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        result = ledger.report_result(run_id, a.id, "FAILED")
        ledger.update_defect_status(result["defects"][0]["id"], "CLOSED")
        ledger.report_result(run_id, a.id, "FAILED")
        assert Defect.query.count() == 1

    def test_omitted_actual_result_keeps_previous(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        ledger.report_result(run_id, a.id, "BLOCKED", "Env down")
        result = ledger.report_result(run_id, a.id, "PASSED")
        assert result["actual_result"] == "Env down"

    def test_invalid_status(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        with pytest.raises(ValidationError):
            ledger.report_result(run_id, a.id, "BROKEN")

    def test_result_never_created_ad_hoc(self, project, make_case):
        a = make_case()
        b = make_case(title="not in run")
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        with pytest.raises(NotFoundError):
            ledger.report_result(run_id, b.id, "PASSED")
        assert TestResult.query.count() == 1

    def test_result_vanished_before_commit(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        with patch.object(db.session, "flush", side_effect=StaleDataError("row gone")):
            with pytest.raises(NotFoundError):
                ledger.report_result(run_id, a.id, "FAILED", "Crash")

        result = TestResult.query.filter_by(test_run_id=run_id, test_case_id=a.id).one()
        assert result.status == "UNTESTED"
        assert result.actual_result is None
        assert Defect.query.count() == 0

    def test_claimed_slot_blocks_synthesis(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        result = TestResult.query.filter_by(test_run_id=run_id, test_case_id=a.id).one()
        result.defect_state = DEFECT_STATE_PRESENT
        db.session.commit()

        payload = ledger.report_result(run_id, a.id, "FAILED", "Crash")
        assert payload["status"] == "FAILED"
        assert payload["defects"] == []
        assert Defect.query.count() == 0

    def test_worst_case_title_is_stored(self, make_case):
        long_project = Project(name="p" * 200)
        db.session.add(long_project)
        db.session.flush()
        long_suite = TestSuite(project_id=long_project.id, title="S")
        db.session.add(long_suite)
        db.session.commit()
        tc = make_case(title="t" * 200, suite_obj=long_suite)
        run_id = ledger.create_manual_run([tc.id], environment="e" * 100)["test_run"]["id"]

        payload = ledger.report_result(run_id, tc.id, "FAILED", "a" * 120)
        title = payload["defects"][0]["title"]
        assert len(title) > 500
        assert title.endswith("a" * 77 + "...")
        assert getattr(Defect.__table__.c.title.type, "length", None) is None


# ═════════════════════════════════════════════════════════════════════════════
# DEFECT TEMPLATE
# ═════════════════════════════════════════════════════════════════════════════

class TestDefectTemplate:
    def test_title_with_full_context(self):
        title = ledger.build_defect_title("Login", "Mobile Banking", "staging", "  Button missing ")
        assert title == "[Auto defect] Login (Mobile Banking · staging) · Actual: Button missing"

    def test_title_without_context_or_actual(self):
        assert ledger.build_defect_title("Login") == "[Auto defect] Login"

    def test_title_truncates_long_actual(self):
        actual = "x" * 81
        title = ledger.build_defect_title("Login", actual_result=actual)
        assert title == "[Auto defect] Login · Actual: " + "x" * 77 + "..."

    def test_title_keeps_80_char_actual(self):
        actual = "y" * 80
        assert ledger.build_defect_title("Login", actual_result=actual).endswith("y" * 80)

    def test_description_layout(self):
        steps = [
            SimpleNamespace(order=2, action="Click Login", expected=""),
            SimpleNamespace(order=1, action=" Open app ", expected="Home shown"),
        ]
        text = ledger.build_defect_description(
            "Login", steps, project_name="Mobile Banking", suite_title="Auth",
            environment="staging", actual_result="Crash",
        )
        assert text.split("\n") == [
            "Project: Mobile Banking",
            "Suite: Auth",
            "Test case: Login",
            "",
            "Environment: staging",
            "Actual result: Crash",
            "",
            "Steps to reproduce:",
            "1. Open app (Expected: Home shown)",
            "2. Click Login",
        ]

    def test_description_without_context_or_steps(self):
        text = ledger.build_defect_description("Login", [])
        assert text.split("\n") == [
            "Test case: Login",
            "",
            "No defined steps; manual execution only.",
        ]


class TestDefectStatus:
    def test_invalid_status(self, project, make_case):
        a = make_case()
        run_id = ledger.create_automation_run(project.id, [a.id])["test_run"]["id"]
        defect_id = ledger.report_result(run_id, a.id, "FAILED")["defects"][0]["id"]
        with pytest.raises(ValidationError):
            ledger.update_defect_status(defect_id, "DONE")
        assert ledger.update_defect_status(defect_id, "IN_PROGRESS")["status"] == "IN_PROGRESS"

    def test_missing_defect(self):
        with pytest.raises(NotFoundError):
            ledger.update_defect_status(9999, "CLOSED")
