"""Step sequencer — dense 1..N ordering of a test case's steps.

Transaction policy: ``insert_step`` and ``delete_step`` each run in one
``atomic`` unit scoped to the test case; the test case row is locked
(``SELECT ... FOR UPDATE`` where the backend supports it) so two editors of
the same case serialise. Renumbering happens inside that unit, so a partial
renumber is never visible.

``update_steps`` rewrites step text only and never renumbers.
"""
import logging

import sqlalchemy as sa

from nexusqa.core.exceptions import HistoryExistsError, NotFoundError, ValidationError
from nexusqa.models import db
from nexusqa.models.testing import TestCase, TestResult, TestStep
from nexusqa.utils.helpers import atomic

logger = logging.getLogger(__name__)


def _lock_test_case(test_case_id: int) -> TestCase:
    tc = (
        db.session.query(TestCase)
        .filter(TestCase.id == test_case_id)
        .with_for_update()
        .first()
    )
    if tc is None:
        raise NotFoundError("TestCase", test_case_id)
    return tc


def _ordered_steps(test_case_id: int) -> list[TestStep]:
    return (
        TestStep.query
        .filter_by(test_case_id=test_case_id)
        .order_by(TestStep.order.asc(), TestStep.id.asc())
        .all()
    )


def _renumber(test_case_id: int) -> None:
    """Rewrite ``order`` to 1..N following the current (order, id) sequence.

    Updates are issued one at a time in ascending position. With distinct
    positive orders every target value is <= the row's current value and
    greater than all values already assigned, so the unique
    (test_case_id, order) constraint holds after each statement.
    """
    rows = db.session.execute(
        sa.select(TestStep.id, TestStep.order)
        .where(TestStep.test_case_id == test_case_id)
        .order_by(TestStep.order.asc(), TestStep.id.asc())
    ).all()
    for position, (step_id, current) in enumerate(rows, start=1):
        if current == position:
            continue
        db.session.execute(
            sa.update(TestStep)
            .where(TestStep.id == step_id)
            .values(order=position)
            .execution_options(synchronize_session=False)
        )
    # ORM instances loaded earlier in this session may carry stale orders
    db.session.expire_all()


def list_steps(test_case_id: int) -> list[dict]:
    """Return the steps of a test case ordered by position."""
    if db.session.get(TestCase, test_case_id) is None:
        raise NotFoundError("TestCase", test_case_id)
    return [s.to_dict() for s in _ordered_steps(test_case_id)]


def insert_step(test_case_id: int) -> list[dict]:
    """Append an empty step and renumber the case's steps to 1..N.

    Returns:
        The full renumbered step list.

    Raises:
        NotFoundError: test case does not exist.
    """
    with atomic("insert_step"):
        _lock_test_case(test_case_id)
        last_order = (
            db.session.query(db.func.max(TestStep.order))
            .filter(TestStep.test_case_id == test_case_id)
            .scalar()
        ) or 0
        step = TestStep(test_case_id=test_case_id, order=last_order + 1, action="", expected="")
        db.session.add(step)
        db.session.flush()
        _renumber(test_case_id)

    steps = _ordered_steps(test_case_id)
    logger.info("Step inserted case=%s step=%s total=%d", test_case_id, step.id, len(steps),
                extra={"test_case_id": test_case_id})
    return [s.to_dict() for s in steps]


def delete_step(test_case_id: int, step_id: int) -> list[dict]:
    """Remove one step and renumber the remainder to 1..N.

    Steps of a case that already has results are frozen.

    Raises:
        NotFoundError: test case, or the step within that case, does not exist.
        HistoryExistsError: the test case has at least one TestResult.
    """
    with atomic("delete_step"):
        _lock_test_case(test_case_id)

        history = (
            db.session.query(db.func.count(TestResult.id))
            .filter(TestResult.test_case_id == test_case_id)
            .scalar()
        )
        if history:
            raise HistoryExistsError(test_case_id)

        step = TestStep.query.filter_by(id=step_id, test_case_id=test_case_id).first()
        if step is None:
            raise NotFoundError("TestStep", step_id)

        db.session.delete(step)
        db.session.flush()
        _renumber(test_case_id)

    steps = _ordered_steps(test_case_id)
    logger.info("Step deleted case=%s step=%s remaining=%d", test_case_id, step_id, len(steps),
                extra={"test_case_id": test_case_id})
    return [s.to_dict() for s in steps]


def update_steps(test_case_id: int, steps: list[dict]) -> list[dict]:
    """Batch-rewrite action/expected text. Does not touch ``order``.

    Args:
        test_case_id: Owning test case.
        steps: Non-empty list of ``{"id", "action", "expected"}`` dicts.

    Raises:
        ValidationError: empty list or malformed entries.
        NotFoundError: test case missing, or an id is not a step of this case.
    """
    if not isinstance(steps, list) or not steps:
        raise ValidationError("steps must be a non-empty array")

    wanted = {}
    for entry in steps:
        if not isinstance(entry, dict) or not isinstance(entry.get("id"), int) or isinstance(entry.get("id"), bool):
            raise ValidationError("each step requires an integer id", details={"step": entry})
        for field in ("action", "expected"):
            if field in entry and entry[field] is not None and not isinstance(entry[field], str):
                raise ValidationError(f"{field} must be a string", details={"id": entry["id"]})
        wanted[entry["id"]] = entry

    with atomic("update_steps"):
        _lock_test_case(test_case_id)
        found = {
            s.id: s
            for s in TestStep.query.filter(
                TestStep.test_case_id == test_case_id,
                TestStep.id.in_(list(wanted)),
            ).all()
        }
        missing = [sid for sid in wanted if sid not in found]
        if missing:
            raise NotFoundError("TestStep", missing[0])

        for sid, entry in wanted.items():
            step = found[sid]
            if "action" in entry:
                step.action = entry["action"] or ""
            if "expected" in entry:
                step.expected = entry["expected"] or ""

    return [s.to_dict() for s in _ordered_steps(test_case_id)]
