"""Traceability aggregator — requirement coverage and milestone window metrics.

Read-only: nothing here mutates the session. All figures come from SQL
aggregates; percentages are rounded half-up to whole numbers.
"""
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from nexusqa.core.exceptions import NotFoundError
from nexusqa.models import db
from nexusqa.models.project import Project, Requirement, Milestone, requirement_test_cases
from nexusqa.models.testing import (
    TestCase, TestSuite, TestRun, TestResult, Defect,
    OPEN_DEFECT_STATUSES,
)

WINDOW_STATUSES = ("PASSED", "FAILED", "BLOCKED", "SKIPPED", "UNTESTED")


def _round_pct(numerator, denominator):
    """Whole-number percentage, half-up; 0 when the denominator is 0."""
    if not denominator:
        return 0
    value = Decimal(numerator) * 100 / Decimal(denominator)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _get_project(project_id):
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def _project_case_ids(project_id):
    return (
        db.session.query(TestCase.id)
        .join(TestSuite, TestSuite.id == TestCase.suite_id)
        .filter(TestSuite.project_id == project_id)
    )


# ═════════════════════════════════════════════════════════════════════════════
# REQUIREMENT COVERAGE
# ═════════════════════════════════════════════════════════════════════════════

def requirement_coverage(project_id):
    """Requirements with >=1 linked test case over all project requirements."""
    _get_project(project_id)
    total = Requirement.query.filter_by(project_id=project_id).count()
    covered = (
        db.session.query(db.func.count(db.distinct(requirement_test_cases.c.requirement_id)))
        .join(Requirement, Requirement.id == requirement_test_cases.c.requirement_id)
        .filter(Requirement.project_id == project_id)
        .scalar()
    ) or 0
    return {
        "total_requirements": total,
        "covered_requirements": covered,
        "coverage_pct": _round_pct(covered, total),
    }


def requirement_matrix(project_id):
    """Coverage summary plus one row per requirement, ordered by code."""
    summary = requirement_coverage(project_id)
    link_counts = dict(
        db.session.query(
            requirement_test_cases.c.requirement_id,
            db.func.count(requirement_test_cases.c.test_case_id),
        )
        .join(Requirement, Requirement.id == requirement_test_cases.c.requirement_id)
        .filter(Requirement.project_id == project_id)
        .group_by(requirement_test_cases.c.requirement_id)
        .all()
    )
    rows = []
    for req in Requirement.query.filter_by(project_id=project_id).order_by(
        Requirement.code.asc(), Requirement.id.asc()
    ):
        linked = link_counts.get(req.id, 0)
        rows.append({
            "id": req.id,
            "code": req.code,
            "title": req.title,
            "linked_test_cases": linked,
            "covered": linked > 0,
        })
    return {**summary, "requirements": rows}


def project_stats(project_id):
    """Headline counters for a project; ``pass_rate`` is a 0..1 fraction."""
    coverage = requirement_coverage(project_id)
    case_ids_sq = _project_case_ids(project_id).subquery()

    total_cases = db.session.query(db.func.count()).select_from(case_ids_sq).scalar() or 0
    status_counts = dict(
        db.session.query(TestResult.status, db.func.count(TestResult.id))
        .filter(TestResult.test_case_id.in_(db.session.query(case_ids_sq)))
        .group_by(TestResult.status)
        .all()
    )
    total_results = sum(status_counts.values())
    passed = status_counts.get("PASSED", 0)

    return {
        "project_id": project_id,
        "requirements": coverage["total_requirements"],
        "total_test_cases": total_cases,
        "total_results": total_results,
        "passed": passed,
        "failed": status_counts.get("FAILED", 0),
        "pass_rate": round(passed / total_results, 4) if total_results else 0,
        "coverage_pct": coverage["coverage_pct"],
    }


# ═════════════════════════════════════════════════════════════════════════════
# MILESTONE WINDOWS
# ═════════════════════════════════════════════════════════════════════════════

def _window_bounds(milestone):
    """[start 00:00 UTC, end + 1 day 00:00 UTC), inclusive of both calendar days."""
    lower = datetime.combine(milestone.start_date, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(milestone.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper


def milestone_metrics(milestone):
    """Execution metrics for results whose run was created inside the window.

    Attribution follows ``TestRun.created_at`` only; later result updates do
    not move a run into another window.
    """
    project_id = milestone.project_id
    lower, upper = _window_bounds(milestone)

    window_q = (
        db.session.query(TestResult.id)
        .join(TestRun, TestRun.id == TestResult.test_run_id)
        .join(TestCase, TestCase.id == TestResult.test_case_id)
        .join(TestSuite, TestSuite.id == TestCase.suite_id)
        .filter(
            TestSuite.project_id == project_id,
            TestRun.created_at >= lower,
            TestRun.created_at < upper,
        )
    )
    window_ids_sq = window_q.subquery()

    run_count = (
        db.session.query(db.func.count(db.distinct(TestResult.test_run_id)))
        .filter(TestResult.id.in_(db.session.query(window_ids_sq)))
        .scalar()
    ) or 0
    status_rows = dict(
        db.session.query(TestResult.status, db.func.count(TestResult.id))
        .filter(TestResult.id.in_(db.session.query(window_ids_sq)))
        .group_by(TestResult.status)
        .all()
    )
    status_counts = {s: status_rows.get(s, 0) for s in WINDOW_STATUSES}
    total_results = sum(status_rows.values())

    passed_case_ids = (
        db.session.query(TestResult.test_case_id)
        .filter(
            TestResult.id.in_(db.session.query(window_ids_sq)),
            TestResult.status == "PASSED",
        )
    )
    total_requirements = Requirement.query.filter_by(project_id=project_id).count()
    covered_requirements = (
        db.session.query(db.func.count(db.distinct(requirement_test_cases.c.requirement_id)))
        .join(Requirement, Requirement.id == requirement_test_cases.c.requirement_id)
        .filter(
            Requirement.project_id == project_id,
            requirement_test_cases.c.test_case_id.in_(passed_case_ids),
        )
        .scalar()
    ) or 0

    defect_q = Defect.query.filter(Defect.test_result_id.in_(db.session.query(window_ids_sq)))
    defect_count = defect_q.count()
    open_defect_count = defect_q.filter(Defect.status.in_(OPEN_DEFECT_STATUSES)).count()

    return {
        "milestone": milestone.to_dict(),
        "run_count": run_count,
        "total_results": total_results,
        "status_counts": status_counts,
        "pass_rate": _round_pct(status_counts["PASSED"], total_results),
        "total_requirements": total_requirements,
        "covered_requirements": covered_requirements,
        "requirement_coverage": _round_pct(covered_requirements, total_requirements),
        "defect_count": defect_count,
        "open_defect_count": open_defect_count,
    }


def get_milestone_metrics(milestone_id):
    milestone = db.session.get(Milestone, milestone_id)
    if milestone is None:
        raise NotFoundError("Milestone", milestone_id)
    return milestone_metrics(milestone)


def project_milestone_metrics(project_id):
    """Window metrics for every milestone of a project, by start date."""
    _get_project(project_id)
    milestones = (
        Milestone.query.filter_by(project_id=project_id)
        .order_by(Milestone.start_date.asc(), Milestone.id.asc())
        .all()
    )
    return [milestone_metrics(m) for m in milestones]
