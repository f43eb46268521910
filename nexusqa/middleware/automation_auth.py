"""Shared-secret gate for the automation ingestion endpoints.

When ``AUTOMATION_API_KEY`` is configured, every request under
``/api/v1/automation/`` must carry the same value in ``X-Automation-Key``.
The check runs as the first request hook, ahead of body parsing and
validation. With no key configured the gate is open.
"""
import hmac
import logging

from flask import current_app, request

from nexusqa.utils.errors import E, api_error

logger = logging.getLogger(__name__)

AUTOMATION_PATH_PREFIX = "/api/v1/automation/"
AUTOMATION_KEY_HEADER = "X-Automation-Key"


def automation_key_valid(expected: str, supplied: str | None) -> bool:
    """Constant-time comparison; a missing header never matches."""
    if not supplied:
        return False
    return hmac.compare_digest(supplied.encode(), expected.encode())


def init_automation_auth(app):
    """Register the gate. The key is read per request so tests can toggle it."""

    @app.before_request
    def require_automation_key():
        if not request.path.startswith(AUTOMATION_PATH_PREFIX):
            return None

        expected = current_app.config.get("AUTOMATION_API_KEY") or ""
        if not expected:
            return None

        if not automation_key_valid(expected, request.headers.get(AUTOMATION_KEY_HEADER)):
            logger.warning(
                "Rejected automation request without a valid key: %s %s",
                request.method, request.path,
                extra={"method": request.method, "path": request.path,
                       "remote_addr": request.remote_addr},
            )
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        return None
