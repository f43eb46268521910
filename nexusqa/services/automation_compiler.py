"""Automation compiler — manual test steps to a Maestro flow script.

The translation is pure: the same test case (title, context, steps) always
yields byte-identical text. ``compile_test_case`` caches the result on
``TestCase.automation_yaml``; ``export_script`` serves that cache.

Step actions are matched against an ordered rule list. The first rule whose
predicate accepts the action builds the instruction; the last rule always
matches and emits a comment.
"""
import logging
import re

from nexusqa.core.exceptions import NotFoundError, ValidationError
from nexusqa.models import db
from nexusqa.models.testing import TestCase
from nexusqa.utils.helpers import atomic

logger = logging.getLogger(__name__)

NO_STEPS_COMMENT = "No defined steps; manual execution only."
DEFAULT_FILENAME = "test-case"

# Leading verbs, English and Indonesian
CLICK_VERBS = frozenset({"click", "klik"})
TYPE_VERBS = frozenset({"input", "isi", "ketik"})


def quote(value):
    """Double-quoted scalar; ``\\`` and ``"`` are escaped."""
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def _split_verb(action):
    """Return (lower-cased leading verb, remainder) or (None, None) without a remainder separator."""
    parts = action.strip().split(None, 1)
    if len(parts) < 2:
        return None, None
    return parts[0].lower(), parts[1].strip()


def _verb_rule(verbs, instruction):
    def predicate(action):
        verb, _ = _split_verb(action)
        return verb in verbs

    def build(action, order):
        _, rest = _split_verb(action)
        return f"  - {instruction}: {quote(rest or action)}"

    return predicate, build


def _comment_rule():
    def predicate(action):
        return True

    def build(action, order):
        return f"  - comment: {quote(action or f'Step {order}')}"

    return predicate, build


STEP_RULES = [
    _verb_rule(CLICK_VERBS, "tapOn"),
    _verb_rule(TYPE_VERBS, "inputText"),
    _comment_rule(),
]


def compile_step(action, order, rules=None):
    action = action if isinstance(action, str) else ""
    for predicate, build in rules or STEP_RULES:
        if predicate(action):
            return build(action, order)
    raise ValueError("rule list must end with a catch-all rule")


def build_script(title, steps, project_name=None, suite_title=None, requirement_codes=()):
    """Render the flow script.

    Args:
        title: Test case title (always in the header).
        steps: Objects with ``order`` and ``action``, in execution order.
        project_name: Added to the header when known.
        suite_title: Added to the header when known.
        requirement_codes: Linked requirement codes, comma-joined in the header.
    """
    lines = [f"name: {quote(title)}"]
    if project_name:
        lines.append(f"project: {quote(project_name)}")
    if suite_title:
        lines.append(f"suite: {quote(suite_title)}")
    codes = ", ".join(c for c in requirement_codes if c)
    if codes:
        lines.append(f"requirements: {quote(codes)}")

    lines.append("steps:")
    steps = list(steps)
    for step in steps:
        lines.append(compile_step(step.action, step.order))
    if not steps:
        lines.append(f"  - comment: {quote(NO_STEPS_COMMENT)}")
    return "\n".join(lines)


def script_for(tc):
    suite = tc.suite
    return build_script(
        tc.title,
        sorted(tc.steps, key=lambda s: (s.order, s.id)),
        project_name=suite.project.name if suite and suite.project else None,
        suite_title=suite.title if suite else None,
        requirement_codes=[r.code for r in tc.requirements],
    )


def compile_test_case(test_case_id):
    """Compile and cache the script for one test case; returns the script text."""
    with atomic("compile_automation"):
        tc = db.session.get(TestCase, test_case_id)
        if tc is None:
            raise NotFoundError("TestCase", test_case_id)
        script = script_for(tc)
        tc.automation_yaml = script

    logger.info("Automation script compiled case=%s lines=%d",
                test_case_id, script.count("\n") + 1,
                extra={"test_case_id": test_case_id})
    return script


def safe_filename(title):
    stem = re.sub(r"[^A-Za-z0-9_-]+", "-", title or "") or DEFAULT_FILENAME
    return f"{stem}.yaml"


def export_script(test_case_id):
    """Return (filename, cached script) for download."""
    tc = db.session.get(TestCase, test_case_id)
    if tc is None:
        raise NotFoundError("TestCase", test_case_id)
    if not tc.automation_yaml:
        raise ValidationError("No automation script generated for this test case",
                              details={"test_case_id": test_case_id})
    return safe_filename(tc.title), tc.automation_yaml
