"""
NexusQA
Testing domain models — catalog (suite, case, step) and execution ledger
(run, result, defect).

Models:
    - TestSuite:   grouping of test cases within a project
    - TestCase:    catalog entry with ordered steps and a cached automation script
    - TestStep:    ordered step; ``order`` is dense 1..N per test case
    - TestRun:     one execution batch; ``created_at`` anchors milestone windows
    - TestResult:  per-case outcome inside a run
    - Defect:      defect raised against a result (auto-created on first failure)

Architecture ref:
    TestSuite ──1:N──▶ TestCase ──1:N──▶ TestStep
    TestRun   ──1:N──▶ TestResult ◀──N:1── TestCase
    TestResult ──1:N──▶ Defect
"""

from datetime import datetime, timezone

from nexusqa.models import db
from nexusqa.models.project import requirement_test_cases


# ── Constants ────────────────────────────────────────────────────────────

TEST_CASE_PRIORITIES = {"P1", "P2", "P3"}
DEFAULT_PRIORITY = "P2"

RESULT_STATUSES = {"UNTESTED", "PASSED", "FAILED", "BLOCKED", "SKIPPED"}

DEFECT_STATUSES = {"OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED"}
OPEN_DEFECT_STATUSES = ("OPEN", "IN_PROGRESS")
DEFAULT_DEFECT_SEVERITY = "Major"

# Per-result defect synthesis state: flips once, never back
DEFECT_STATE_NONE = "NO_DEFECT"
DEFECT_STATE_PRESENT = "HAS_DEFECT"
DEFECT_STATES = {DEFECT_STATE_NONE, DEFECT_STATE_PRESENT}


# ═════════════════════════════════════════════════════════════════════════════
# TEST SUITE
# ═════════════════════════════════════════════════════════════════════════════

class TestSuite(db.Model):
    """
    Logical grouping of test cases within a project.

    A suite cannot be deleted while it still owns test cases.
    """

    __tablename__ = "test_suites"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    test_cases = db.relationship(
        "TestCase", backref="suite", lazy="dynamic",
        cascade="save-update, merge",
        order_by="TestCase.id",
    )

    def to_dict(self, include_cases=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "case_count": self.test_cases.count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_cases:
            result["test_cases"] = [tc.to_dict() for tc in self.test_cases]
        return result

    def __repr__(self):
        return f"<TestSuite {self.id}: {self.title}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(db.Model):
    """
    Catalog test case.

    ``automation_yaml`` caches the last compiled automation script; it is
    derived from the steps and regenerated on every compile.
    """

    __tablename__ = "test_cases"

    id = db.Column(db.Integer, primary_key=True)
    suite_id = db.Column(
        db.Integer, db.ForeignKey("test_suites.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    priority = db.Column(
        db.String(2), default=DEFAULT_PRIORITY, nullable=False,
        comment="P1 | P2 | P3",
    )
    pre_condition = db.Column(db.Text, default="")
    post_condition = db.Column(db.Text, default="")
    automation_yaml = db.Column(db.Text, nullable=True, comment="Cached compiled automation script")

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    steps = db.relationship(
        "TestStep", backref="test_case", lazy="select",
        cascade="all, delete-orphan",
        order_by="TestStep.order",
    )
    results = db.relationship(
        "TestResult", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    requirements = db.relationship(
        "Requirement",
        secondary=requirement_test_cases,
        back_populates="test_cases",
        order_by="Requirement.code",
    )

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "suite_id": self.suite_id,
            "title": self.title,
            "priority": self.priority,
            "pre_condition": self.pre_condition,
            "post_condition": self.post_condition,
            "has_automation": bool(self.automation_yaml),
            "requirement_codes": [r.code for r in self.requirements],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result

    def __repr__(self):
        return f"<TestCase {self.id}: [{self.priority}] {self.title}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST STEP
# ═════════════════════════════════════════════════════════════════════════════

class TestStep(db.Model):
    """
    Ordered step within a test case.

    ``order`` is kept dense (1..N) by the step sequencer; the unique
    constraint guards against duplicates left by a concurrent writer.
    """

    __tablename__ = "test_steps"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False, comment="1-based dense position")
    action = db.Column(db.Text, nullable=False, default="")
    expected = db.Column(db.Text, nullable=False, default="")

    __table_args__ = (
        db.UniqueConstraint("test_case_id", "order", name="uq_test_steps_case_order"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "order": self.order,
            "action": self.action,
            "expected": self.expected,
        }

    def __repr__(self):
        return f"<TestStep {self.id}: case#{self.test_case_id} step#{self.order}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST RUN
# ═════════════════════════════════════════════════════════════════════════════

class TestRun(db.Model):
    """
    Execution batch. Created together with one TestResult per test case.

    ``created_at`` is never updated; milestone reporting windows are
    evaluated against it.
    """

    __tablename__ = "test_runs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    environment = db.Column(db.String(100), nullable=False, default="Manual")

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        nullable=False, index=True,
    )

    results = db.relationship(
        "TestResult", backref="test_run", lazy="select",
        cascade="all, delete-orphan",
        order_by="TestResult.id",
    )

    def to_dict(self, include_results=False):
        d = {
            "id": self.id,
            "name": self.name,
            "environment": self.environment,
            "result_count": len(self.results),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_results:
            d["results"] = [r.to_dict(include_defects=True) for r in self.results]
        return d

    def __repr__(self):
        return f"<TestRun {self.id}: {self.name} [{self.environment}]>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST RESULT
# ═════════════════════════════════════════════════════════════════════════════

class TestResult(db.Model):
    """
    Outcome of one test case within one run.

    Results are only created with their run. ``defect_state`` moves from
    NO_DEFECT to HAS_DEFECT exactly once, guarded by a conditional UPDATE,
    so at most one defect is ever synthesized per result.
    """

    __tablename__ = "test_results"

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(
        db.String(20), default="UNTESTED", nullable=False, index=True,
        comment="UNTESTED | PASSED | FAILED | BLOCKED | SKIPPED",
    )
    actual_result = db.Column(db.Text, nullable=True)
    defect_state = db.Column(
        db.String(20), default=DEFECT_STATE_NONE, nullable=False,
        comment="NO_DEFECT | HAS_DEFECT",
    )

    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    defects = db.relationship(
        "Defect", backref="test_result", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="Defect.id",
    )

    __table_args__ = (
        db.UniqueConstraint("test_run_id", "test_case_id", name="uq_test_results_run_case"),
    )

    def to_dict(self, include_defects=False):
        d = {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "status": self.status,
            "actual_result": self.actual_result,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_defects:
            d["defects"] = [df.to_dict() for df in self.defects]
        return d

    def __repr__(self):
        return f"<TestResult {self.id}: run#{self.test_run_id} case#{self.test_case_id} → {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# DEFECT
# ═════════════════════════════════════════════════════════════════════════════

class Defect(db.Model):
    """Defect attached to a test result."""

    __tablename__ = "defects"

    id = db.Column(db.Integer, primary_key=True)
    test_result_id = db.Column(
        db.Integer, db.ForeignKey("test_results.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(30), default=DEFAULT_DEFECT_SEVERITY, nullable=False)
    status = db.Column(
        db.String(20), default="OPEN", nullable=False, index=True,
        comment="OPEN | IN_PROGRESS | RESOLVED | CLOSED",
    )
    description = db.Column(db.Text, nullable=True)
    evidence_url = db.Column(db.String(500), nullable=True)
    auto_created = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "test_result_id": self.test_result_id,
            "title": self.title,
            "severity": self.severity,
            "status": self.status,
            "description": self.description,
            "evidence_url": self.evidence_url,
            "auto_created": self.auto_created,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Defect {self.id}: [{self.status}] {self.title[:40]}>"
