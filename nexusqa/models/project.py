"""
NexusQA
Project domain models.

Models:
    - Project:      top-level container; owns requirements, suites, milestones
    - Requirement:  traceable requirement, N:M with TestCase
    - Milestone:    project-scoped date window used for execution reporting

Architecture ref:
    Project ──1:N──▶ Requirement ──N:M──▶ TestCase
    Project ──1:N──▶ TestSuite ──1:N──▶ TestCase
    Project ──1:N──▶ Milestone   (read-side window only)
"""

from datetime import datetime, timezone

from nexusqa.models import db


# ── Association: Requirement ↔ TestCase ─────────────────────────────────────

requirement_test_cases = db.Table(
    "requirement_test_cases",
    db.Column(
        "requirement_id", db.Integer,
        db.ForeignKey("requirements.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "test_case_id", db.Integer,
        db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


# ═════════════════════════════════════════════════════════════════════════════
# PROJECT
# ═════════════════════════════════════════════════════════════════════════════

class Project(db.Model):
    """A test-management project. Deletion is not handled by this service."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    strategy = db.Column(db.Text, default="", comment="Free-text test strategy")

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    requirements = db.relationship(
        "Requirement", backref="project", lazy="dynamic",
        order_by="Requirement.code",
    )
    suites = db.relationship(
        "TestSuite", backref="project", lazy="dynamic",
        order_by="TestSuite.id",
    )
    milestones = db.relationship(
        "Milestone", backref="project", lazy="dynamic",
        order_by="Milestone.start_date",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "strategy": self.strategy,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# REQUIREMENT
# ═════════════════════════════════════════════════════════════════════════════

class Requirement(db.Model):
    """
    Traceable requirement.

    ``code`` is the display key; uniqueness is a convention, not a constraint.
    Deleting a requirement removes its link rows only.
    """

    __tablename__ = "requirements"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    code = db.Column(db.String(50), nullable=False, comment="e.g. REQ-001")
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    test_cases = db.relationship(
        "TestCase",
        secondary=requirement_test_cases,
        back_populates="requirements",
        order_by="TestCase.id",
    )

    def to_dict(self, include_cases=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "test_case_count": len(self.test_cases),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_cases:
            result["test_cases"] = [
                {"id": tc.id, "title": tc.title} for tc in self.test_cases
            ]
        return result

    def __repr__(self):
        return f"<Requirement {self.id}: {self.code}>"


# ═════════════════════════════════════════════════════════════════════════════
# MILESTONE
# ═════════════════════════════════════════════════════════════════════════════

class Milestone(db.Model):
    """
    Project-scoped reporting window.

    Runs are attributed to a milestone by ``TestRun.created_at``; the window
    is inclusive on both ends. ``end_date >= start_date`` is checked on write.
    """

    __tablename__ = "milestones"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint("end_date >= start_date", name="ck_milestones_date_order"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    def __repr__(self):
        return f"<Milestone {self.id}: {self.name} {self.start_date}..{self.end_date}>"
