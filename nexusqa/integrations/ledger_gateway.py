"""
NexusQA ledger HTTP gateway for the automation runner.

All outbound calls from the runner to the NexusQA service go through this
class: run creation and per-case result reporting, both authenticated with
the shared automation key.

Testability: pass a mock ``session`` to LedgerGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging

import requests

from nexusqa.middleware.automation_auth import AUTOMATION_KEY_HEADER

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
DEFAULT_ENVIRONMENT = "MAESTRO-STUDIO"


class LedgerGatewayError(Exception):
    """Raised when the service rejects a call or cannot be reached.

    Attributes:
        status_code: HTTP status, or None for network-level failures.
        body:        Response text when one was received.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class LedgerGateway:
    """Client for ``/api/v1/automation/*``.

    Usage:
        gateway = LedgerGateway("http://localhost:5000", api_key)
        run_id = gateway.create_run(project_id=1, test_case_ids=[3, 4])
        gateway.report_result(run_id, 3, "PASSED", "Maestro completed. ...")
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.post(
                url,
                json=payload,
                headers={AUTOMATION_KEY_HEADER: self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise LedgerGatewayError(f"POST {path} failed: {exc}") from exc

        if not resp.ok:
            raise LedgerGatewayError(
                f"POST {path} returned {resp.status_code} {resp.reason}",
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise LedgerGatewayError(f"POST {path} returned a non-JSON body",
                                     status_code=resp.status_code, body=resp.text) from exc

    def create_run(
        self,
        project_id: int,
        test_case_ids: list[int],
        environment: str | None = None,
        name: str | None = None,
    ) -> int:
        """Create a run for the batch; returns the new test run id."""
        payload = {
            "project_id": project_id,
            "environment": environment or DEFAULT_ENVIRONMENT,
            "test_case_ids": list(test_case_ids),
        }
        if name:
            payload["name"] = name
        body = self._post("/api/v1/automation/runs", payload)
        run_id = (body.get("test_run") or {}).get("id")
        if not run_id:
            raise LedgerGatewayError("Run creation response did not include test_run.id")
        logger.info("Created TestRun %s for project %s", run_id, project_id)
        return run_id

    def report_result(
        self,
        test_run_id: int,
        test_case_id: int,
        status: str,
        actual_result: str | None = None,
    ) -> dict:
        """Report one case; returns the updated result (with defects)."""
        payload = {
            "test_run_id": test_run_id,
            "test_case_id": test_case_id,
            "status": status,
        }
        if actual_result is not None:
            payload["actual_result"] = actual_result
        body = self._post("/api/v1/automation/results", payload)
        return body.get("result") or {}
