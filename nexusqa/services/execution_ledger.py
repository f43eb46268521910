"""Execution ledger — test runs, results and defect synthesis.

Transaction policy: every public mutation is one ``atomic`` unit and owns
its commit. A run is created together with all of its results; a result
update and the defect it may synthesize commit together.

Defect synthesis runs at most once per result. ``TestResult.defect_state``
is claimed with a conditional UPDATE (NO_DEFECT → HAS_DEFECT); only the
writer whose UPDATE matched a row creates the defect, so concurrent FAILED
reports on the same result cannot both create one.
"""
import logging

import sqlalchemy as sa
from sqlalchemy.orm.exc import StaleDataError

from nexusqa.core.exceptions import NotFoundError, ValidationError
from nexusqa.models import db
from nexusqa.models.project import Project
from nexusqa.models.testing import (
    TestCase, TestSuite, TestRun, TestResult, Defect,
    RESULT_STATUSES, DEFECT_STATUSES, DEFAULT_DEFECT_SEVERITY,
    DEFECT_STATE_NONE, DEFECT_STATE_PRESENT,
)
from nexusqa.utils.helpers import atomic

logger = logging.getLogger(__name__)

RUN_NAME_MAX = 200
RUN_ENVIRONMENT_MAX = 100

AUTOMATION_DEFAULT_ENVIRONMENT = "automation"
MANUAL_DEFAULT_ENVIRONMENT = "Manual"
MAESTRO_DEFAULT_ENVIRONMENT = "Maestro default"
MAESTRO_MODES = {"case", "suite"}

AUTO_DEFECT_PREFIX = "[Auto defect] "
ACTUAL_SNIPPET_LIMIT = 80
ACTUAL_SNIPPET_KEEP = 77
NO_STEPS_NOTE = "No defined steps; manual execution only."


# ═════════════════════════════════════════════════════════════════════════════
# RUN CREATION
# ═════════════════════════════════════════════════════════════════════════════

def _clean(value):
    return value.strip() if isinstance(value, str) else ""


def _is_id(value):
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def create_run(test_cases, *, name, environment):
    """Create one TestRun plus one UNTESTED TestResult per test case.

    Args:
        test_cases: Non-empty list of TestCase rows (already validated).
        name: Final run name (callers derive defaults).
        environment: Final environment label.

    Returns:
        The committed TestRun.
    """
    if not test_cases:
        raise ValidationError("a run requires at least one test case")

    with atomic("create_run"):
        run = TestRun(
            name=name[:RUN_NAME_MAX],
            environment=environment[:RUN_ENVIRONMENT_MAX],
        )
        db.session.add(run)
        db.session.flush()
        for tc in test_cases:
            db.session.add(TestResult(test_run_id=run.id, test_case_id=tc.id, status="UNTESTED"))

    logger.info("TestRun created id=%s name=%r cases=%d", run.id, run.name, len(test_cases),
                extra={"test_run_id": run.id})
    return run


def _run_payload(run):
    return {
        "test_run": run.to_dict(),
        "results": [
            {"id": r.id, "test_case_id": r.test_case_id, "status": r.status}
            for r in run.results
        ],
    }


def create_automation_run(project_id, test_case_ids, name=None, environment=None):
    """Create a run for the automation runner; every case must belong to the project.

    Raises:
        ValidationError: empty id list, or some ids are outside the project.
        NotFoundError: project missing, or none of the ids match its cases.
    """
    if not test_case_ids:
        raise ValidationError("project_id and non-empty test_case_ids are required")

    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)

    cases = (
        TestCase.query
        .join(TestSuite, TestSuite.id == TestCase.suite_id)
        .filter(TestSuite.project_id == project_id, TestCase.id.in_(test_case_ids))
        .all()
    )
    if not cases:
        raise NotFoundError("TestCase", ",".join(str(i) for i in test_case_ids))
    if len(cases) != len(test_case_ids):
        found = {tc.id for tc in cases}
        raise ValidationError(
            "Some test_case_ids do not belong to the specified project",
            details={"invalid_ids": [i for i in test_case_ids if i not in found]},
        )

    by_id = {tc.id: tc for tc in cases}
    ordered = [by_id[i] for i in test_case_ids]
    run = create_run(
        ordered,
        name=_clean(name) or f"Automation run - {project.name}",
        environment=_clean(environment) or AUTOMATION_DEFAULT_ENVIRONMENT,
    )
    return _run_payload(run)


def create_manual_run(test_case_ids, name=None, environment=None):
    """Create a manual run over existing test cases (any project).

    Unknown ids are ignored as long as at least one matches.
    """
    if not test_case_ids:
        raise ValidationError("test_case_ids must be a non-empty array")

    found = {tc.id: tc for tc in TestCase.query.filter(TestCase.id.in_(test_case_ids)).all()}
    cases = [found[i] for i in test_case_ids if i in found]
    if not cases:
        raise NotFoundError("TestCase", ",".join(str(i) for i in test_case_ids))

    final_name = _clean(name)
    if not final_name:
        count = len(cases)
        project_name = cases[0].suite.project.name
        final_name = f"Manual run - {project_name} ({count} case{'s' if count > 1 else ''})"

    run = create_run(
        cases,
        name=final_name,
        environment=_clean(environment) or MANUAL_DEFAULT_ENVIRONMENT,
    )
    return _run_payload(run)


def create_maestro_run(mode="case", case_id=None, suite_id=None, environment=None):
    """Create a Maestro run for a single case or for every case in a suite."""
    mode = mode or "case"
    if mode not in MAESTRO_MODES:
        raise ValidationError("Unsupported mode", details={"mode": mode})

    if mode == "case":
        if not _is_id(case_id):
            raise ValidationError("case_id is required for mode=case")
        tc = db.session.get(TestCase, case_id)
        if tc is None:
            raise NotFoundError("TestCase", case_id)
        cases, label = [tc], tc.title
    else:
        if not _is_id(suite_id):
            raise ValidationError("suite_id is required for mode=suite")
        suite = db.session.get(TestSuite, suite_id)
        if suite is None:
            raise NotFoundError("TestSuite", suite_id)
        cases = suite.test_cases.all()
        if not cases:
            raise ValidationError("Test suite has no test cases", details={"suite_id": suite_id})
        label = suite.title

    run = create_run(
        cases,
        name=f"Maestro Run - {label}",
        environment=_clean(environment) or MAESTRO_DEFAULT_ENVIRONMENT,
    )
    return _run_payload(run)


def get_run(run_id):
    """Return a run with its results and their defects."""
    run = db.session.get(TestRun, run_id)
    if run is None:
        raise NotFoundError("TestRun", run_id)
    return run.to_dict(include_results=True)


# ═════════════════════════════════════════════════════════════════════════════
# AUTO DEFECT TEMPLATE
# ═════════════════════════════════════════════════════════════════════════════

def _actual_text(actual_result):
    if isinstance(actual_result, str) and actual_result.strip():
        return actual_result.strip()
    return None


def build_defect_title(case_title, project_name=None, environment=None, actual_result=None):
    """``[Auto defect] <case> (<project> · <env>) · Actual: <snippet>``."""
    context = [part for part in (project_name, environment) if part]
    title = f"{AUTO_DEFECT_PREFIX}{case_title}"
    if context:
        title += f" ({' · '.join(context)})"

    actual = _actual_text(actual_result)
    if actual:
        if len(actual) > ACTUAL_SNIPPET_LIMIT:
            actual = f"{actual[:ACTUAL_SNIPPET_KEEP].rstrip()}..."
        title += f" · Actual: {actual}"
    return title


def build_defect_description(case_title, steps, project_name=None, suite_title=None,
                             environment=None, actual_result=None):
    """Build the reproduction block for an auto defect.

    ``steps`` is an iterable of objects with ``order``, ``action`` and
    ``expected``; they are emitted sorted by ``order``.
    """
    lines = []
    if project_name:
        lines.append(f"Project: {project_name}")
    if suite_title:
        lines.append(f"Suite: {suite_title}")
    lines.append(f"Test case: {case_title}")

    actual = _actual_text(actual_result)
    if environment or actual:
        lines.append("")
        if environment:
            lines.append(f"Environment: {environment}")
        if actual:
            lines.append(f"Actual result: {actual}")

    ordered = sorted(steps, key=lambda s: s.order or 0)
    lines.append("")
    if ordered:
        lines.append("Steps to reproduce:")
        for step in ordered:
            line = f"{step.order}. {(step.action or '').strip()}"
            expected = (step.expected or "").strip()
            if expected:
                line += f" (Expected: {expected})"
            lines.append(line)
    else:
        lines.append(NO_STEPS_NOTE)

    return "\n".join(lines)


def _synthesize_defect(result, actual_result):
    tc = result.test_case
    suite = tc.suite
    project_name = suite.project.name if suite and suite.project else None
    suite_title = suite.title if suite else None
    environment = result.test_run.environment if result.test_run else None

    defect = Defect(
        test_result_id=result.id,
        title=build_defect_title(tc.title, project_name, environment, actual_result),
        description=build_defect_description(
            tc.title, tc.steps,
            project_name=project_name,
            suite_title=suite_title,
            environment=environment,
            actual_result=actual_result,
        ),
        severity=DEFAULT_DEFECT_SEVERITY,
        status="OPEN",
        evidence_url=None,
        auto_created=True,
    )
    db.session.add(defect)
    return defect


# ═════════════════════════════════════════════════════════════════════════════
# RESULT REPORTING
# ═════════════════════════════════════════════════════════════════════════════

def _claim_defect_slot(result_id):
    """Flip NO_DEFECT → HAS_DEFECT; True only for the writer that flipped it."""
    outcome = db.session.execute(
        sa.update(TestResult)
        .where(
            TestResult.id == result_id,
            TestResult.defect_state == DEFECT_STATE_NONE,
        )
        .values(defect_state=DEFECT_STATE_PRESENT)
        .execution_options(synchronize_session=False)
    )
    return outcome.rowcount == 1


def report_result(test_run_id, test_case_id, status, actual_result=None):
    """Record a status for an existing result; synthesize a defect on first failure.

    ``actual_result`` of None keeps the previously stored text.

    Returns:
        The updated result with its defects.

    Raises:
        ValidationError: status outside the allowed set.
        NotFoundError: no result for (run, case), or it vanished before commit.
    """
    if status not in RESULT_STATUSES:
        raise ValidationError("Invalid status", details={"status": status,
                                                         "allowed": sorted(RESULT_STATUSES)})
    if actual_result is not None and not isinstance(actual_result, str):
        raise ValidationError("actual_result must be a string")

    label = f"run={test_run_id} case={test_case_id}"
    created = None
    with atomic("report_result"):
        result = (
            TestResult.query
            .filter_by(test_run_id=test_run_id, test_case_id=test_case_id)
            .with_for_update()
            .first()
        )
        if result is None:
            raise NotFoundError("TestResult", label)

        next_actual = actual_result if actual_result is not None else result.actual_result
        result.status = status
        result.actual_result = next_actual
        try:
            db.session.flush()
        except StaleDataError as exc:
            raise NotFoundError("TestResult", label) from exc

        if status == "FAILED" and result.defects.count() == 0 and _claim_defect_slot(result.id):
            created = _synthesize_defect(result, next_actual)

    if created is not None:
        logger.info("Auto defect created id=%s result=%s", created.id, result.id,
                    extra={"test_run_id": test_run_id, "test_case_id": test_case_id})
    logger.info("Result reported %s status=%s", label, status,
                extra={"test_run_id": test_run_id, "test_case_id": test_case_id})
    return result.to_dict(include_defects=True)


# ═════════════════════════════════════════════════════════════════════════════
# DEFECT STATUS
# ═════════════════════════════════════════════════════════════════════════════

def update_defect_status(defect_id, status):
    """Set a defect's workflow status (OPEN | IN_PROGRESS | RESOLVED | CLOSED)."""
    if status not in DEFECT_STATUSES:
        raise ValidationError("Invalid status value", details={"status": status,
                                                               "allowed": sorted(DEFECT_STATUSES)})
    with atomic("update_defect_status"):
        defect = db.session.get(Defect, defect_id)
        if defect is None:
            raise NotFoundError("Defect", defect_id)
        defect.status = status
    return defect.to_dict()
