"""
NexusQA
Blueprint registry and shared request helpers.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from nexusqa.core.exceptions import (
    ConflictError, HistoryExistsError, NotFoundError, StoreFailureError, ValidationError,
)
from nexusqa.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def json_body():
    """Return the JSON object body, or raise ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_error_handlers(bp):
    """Map service exceptions to the standard error envelope for one blueprint."""

    @bp.errorhandler(HistoryExistsError)
    def _handle_history(error):
        return api_error(E.HISTORY_EXISTS, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error):
        return api_error(E.CONFLICT_STATE, str(error))

    @bp.errorhandler(StoreFailureError)
    def _handle_store(error):
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
