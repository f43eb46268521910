"""Catalog service — projects, requirements, suites, test cases and milestones.

Thin CRUD needed around the execution ledger. Each mutation is one
``atomic`` unit; validation happens before the transaction opens.
"""
import logging

from nexusqa.core.exceptions import NotFoundError, ValidationError
from nexusqa.models import db
from nexusqa.models.project import Project, Requirement, Milestone
from nexusqa.models.testing import TestCase, TestSuite, TEST_CASE_PRIORITIES, DEFAULT_PRIORITY
from nexusqa.utils.helpers import atomic, parse_date_input

logger = logging.getLogger(__name__)

NAME_MAX = 200
CODE_MAX = 50


def _required_text(data, field, max_len=NAME_MAX):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters",
                              details={"field": field})
    return value


def _optional_text(data, field):
    value = data.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={"field": field})
    return value.strip()


def _get_or_404(model, ident, label):
    obj = db.session.get(model, ident)
    if obj is None:
        raise NotFoundError(label, ident)
    return obj


# ── Projects ─────────────────────────────────────────────────────────────

def create_project(data):
    name = _required_text(data, "name")
    strategy = _optional_text(data, "strategy")
    with atomic("create_project"):
        project = Project(name=name, strategy=strategy)
        db.session.add(project)
    logger.info("Project created id=%s", project.id, extra={"project_id": project.id})
    return project.to_dict()


# ── Requirements ─────────────────────────────────────────────────────────

def create_requirement(project_id, data):
    _get_or_404(Project, project_id, "Project")
    code = _required_text(data, "code", CODE_MAX)
    title = _required_text(data, "title")
    with atomic("create_requirement"):
        req = Requirement(
            project_id=project_id, code=code, title=title,
            description=_optional_text(data, "description"),
        )
        db.session.add(req)
    return req.to_dict()


def set_requirement_test_cases(requirement_id, test_case_ids):
    """Replace a requirement's linked test cases.

    Every id must exist (404) and belong to the requirement's project (400).
    """
    req = _get_or_404(Requirement, requirement_id, "Requirement")

    cases = TestCase.query.filter(TestCase.id.in_(test_case_ids)).all() if test_case_ids else []
    by_id = {tc.id: tc for tc in cases}
    missing = [i for i in test_case_ids if i not in by_id]
    if missing:
        raise NotFoundError("TestCase", missing[0])
    foreign = [tc.id for tc in cases if tc.suite.project_id != req.project_id]
    if foreign:
        raise ValidationError("Test cases must belong to the requirement's project",
                              details={"invalid_ids": foreign})

    with atomic("set_requirement_test_cases"):
        req.test_cases = [by_id[i] for i in test_case_ids]
    return req.to_dict(include_cases=True)


def delete_requirement(requirement_id):
    with atomic("delete_requirement"):
        req = _get_or_404(Requirement, requirement_id, "Requirement")
        req.test_cases = []
        db.session.delete(req)


# ── Suites & test cases ──────────────────────────────────────────────────

def create_suite(project_id, data):
    _get_or_404(Project, project_id, "Project")
    title = _required_text(data, "title")
    with atomic("create_suite"):
        suite = TestSuite(project_id=project_id, title=title,
                          description=_optional_text(data, "description"))
        db.session.add(suite)
    return suite.to_dict()


def delete_suite(suite_id):
    """Delete an empty suite; a suite that still owns test cases is refused."""
    with atomic("delete_suite"):
        suite = _get_or_404(TestSuite, suite_id, "TestSuite")
        owned = suite.test_cases.count()
        if owned:
            raise ValidationError("Cannot delete a suite that still has test cases",
                                  details={"suite_id": suite_id, "test_case_count": owned})
        db.session.delete(suite)


def create_test_case(suite_id, data):
    _get_or_404(TestSuite, suite_id, "TestSuite")
    title = _required_text(data, "title")
    priority = data.get("priority") or DEFAULT_PRIORITY
    if not isinstance(priority, str) or priority not in TEST_CASE_PRIORITIES:
        raise ValidationError("Invalid priority", details={"priority": priority,
                                                           "allowed": sorted(TEST_CASE_PRIORITIES)})
    with atomic("create_test_case"):
        tc = TestCase(
            suite_id=suite_id,
            title=title,
            priority=priority,
            pre_condition=_optional_text(data, "pre_condition"),
            post_condition=_optional_text(data, "post_condition"),
        )
        db.session.add(tc)
    return tc.to_dict(include_steps=True)


def get_test_case(test_case_id):
    tc = _get_or_404(TestCase, test_case_id, "TestCase")
    return tc.to_dict(include_steps=True)


# ── Milestones ───────────────────────────────────────────────────────────

def _date_field(data, field, required):
    raw = data.get(field)
    try:
        value = parse_date_input(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"field": field}) from exc
    if value is None and required:
        raise ValidationError(f"{field} is required", details={"field": field})
    return value


def _check_window(start, end):
    if end < start:
        raise ValidationError("end_date must be on or after start_date",
                              details={"start_date": start.isoformat(),
                                       "end_date": end.isoformat()})


def create_milestone(project_id, data):
    _get_or_404(Project, project_id, "Project")
    name = _required_text(data, "name")
    start = _date_field(data, "start_date", required=True)
    end = _date_field(data, "end_date", required=True)
    _check_window(start, end)

    with atomic("create_milestone"):
        milestone = Milestone(project_id=project_id, name=name, start_date=start, end_date=end)
        db.session.add(milestone)
    return milestone.to_dict()


def update_milestone(milestone_id, data):
    """Partial update; the date order is checked on the merged values."""
    milestone = _get_or_404(Milestone, milestone_id, "Milestone")
    name = _required_text(data, "name") if "name" in data else milestone.name
    start = _date_field(data, "start_date", required=True) if "start_date" in data else milestone.start_date
    end = _date_field(data, "end_date", required=True) if "end_date" in data else milestone.end_date
    _check_window(start, end)

    with atomic("update_milestone"):
        milestone.name = name
        milestone.start_date = start
        milestone.end_date = end
    return milestone.to_dict()


def delete_milestone(milestone_id):
    with atomic("delete_milestone"):
        milestone = _get_or_404(Milestone, milestone_id, "Milestone")
        db.session.delete(milestone)
