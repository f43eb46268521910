"""Shared utility functions for services and blueprints.

atomic:            one transaction per logical operation, rollback on any exit by error
parse_date_input:  strict date parsing for milestone windows
coerce_id_list:    normalise an id array from a JSON body
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from nexusqa.core.exceptions import StoreFailureError
from nexusqa.models import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic(operation):
    """Run the body as one unit of work on ``db.session``.

    Commits when the body completes. On any exception the session is rolled
    back first; database errors are re-raised as ``StoreFailureError`` and
    domain errors propagate unchanged.

    Usage::

        with atomic("insert_step"):
            db.session.add(step)
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error during %s", operation)
        raise StoreFailureError(operation) from exc
    except Exception:
        db.session.rollback()
        raise


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS (date part), DD.MM.YYYY, date objects.
    Returns None for empty input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Invalid date format. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValueError(
            "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
        ) from exc


def coerce_id_list(values):
    """Return positive int ids from a JSON array, deduplicated in order.

    Raises ValueError for entries that are not integers (bools included).
    """
    out = []
    for value in values or []:
        if isinstance(value, (bool, float)):
            raise ValueError(f"Invalid id: {value!r}")
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        try:
            ident = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid id: {value!r}") from exc
        if ident <= 0:
            raise ValueError(f"Invalid id: {value!r}")
        out.append(ident)
    # Preserve order while deduplicating
    return list(dict.fromkeys(out))
