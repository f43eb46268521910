"""
Automation runner — drives Maestro flows and reports into the ledger.

One batch per mapping file:
  1. create one test run for every mapped test case,
  2. run each flow sequentially through the Maestro CLI,
  3. derive PASSED/FAILED from the exit code and the case's expected status,
  4. report the result with a fixed-format note naming the exit code.

A reporting failure for one case is logged and counted; the batch moves on.
A flow that cannot be started, or that exceeds the timeout, counts as a
failed flow with exit code -1.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field

from nexusqa.core.exceptions import ExternalToolFailure, ValidationError
from nexusqa.integrations.ledger_gateway import LedgerGateway, LedgerGatewayError
from nexusqa.models.testing import RESULT_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_STATUS = "PASSED"
SPAWN_FAILURE_EXIT_CODE = -1


# ═════════════════════════════════════════════════════════════════════════════
# MAPPING
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MappedTestCase:
    test_case_id: int
    flow_path: str
    expected_status: str = DEFAULT_EXPECTED_STATUS


@dataclass(frozen=True)
class AutomationMapping:
    """Static mapping of test cases to Maestro flow files.

    File format (camelCase keys, shared with other runner tooling)::

        {"projectId": 1, "environment": "MAESTRO-STUDIO",
         "testCases": [{"testCaseId": 3, "flowPath": "flows/login.yaml",
                        "expectedStatus": "PASSED"}]}
    """

    project_id: int
    test_cases: tuple[MappedTestCase, ...]
    environment: str | None = None

    @classmethod
    def from_dict(cls, data) -> "AutomationMapping":
        if not isinstance(data, dict):
            raise ValidationError("Mapping must be a JSON object")
        project_id = data.get("projectId")
        cases = data.get("testCases")
        if not _is_id(project_id) or not isinstance(cases, list) or not cases:
            raise ValidationError(
                "Invalid mapping. Ensure projectId and a non-empty testCases array are provided."
            )

        parsed = []
        for index, entry in enumerate(cases):
            if not isinstance(entry, dict):
                raise ValidationError("testCases entries must be objects", details={"index": index})
            case_id = entry.get("testCaseId")
            flow_path = entry.get("flowPath")
            expected = entry.get("expectedStatus") or DEFAULT_EXPECTED_STATUS
            if not _is_id(case_id):
                raise ValidationError("testCaseId is required", details={"index": index})
            if not isinstance(flow_path, str) or not flow_path.strip():
                raise ValidationError("flowPath is required", details={"index": index})
            if expected not in RESULT_STATUSES:
                raise ValidationError("Invalid expectedStatus",
                                      details={"index": index, "expectedStatus": expected})
            parsed.append(MappedTestCase(case_id, flow_path.strip(), expected))

        environment = data.get("environment")
        return cls(
            project_id=project_id,
            test_cases=tuple(parsed),
            environment=environment if isinstance(environment, str) and environment else None,
        )

    @classmethod
    def load(cls, path) -> "AutomationMapping":
        """Read and validate a mapping file; any problem is a ValidationError."""
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError as exc:
            raise ValidationError(f"Mapping file not found: {path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Cannot read mapping file {path}: {exc}") from exc
        return cls.from_dict(data)


def _is_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


# ═════════════════════════════════════════════════════════════════════════════
# MAESTRO CLI
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ToolOutcome:
    success: bool
    exit_code: int
    error: str | None = None


class MaestroCli:
    """Runs ``<cli> test <flow>`` and reports success/failure by exit code.

    ``timeout`` is in seconds; None waits for the process indefinitely.
    """

    def __init__(self, cli_path: str = "maestro", timeout: float | None = None) -> None:
        self.cli_path = cli_path
        self.timeout = timeout

    def _invoke(self, flow_path: str) -> int:
        try:
            completed = subprocess.run(
                [self.cli_path, "test", flow_path],
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            # subprocess.run kills the child before re-raising
            raise ExternalToolFailure(
                f"Maestro timed out after {self.timeout}s on {flow_path}"
            ) from exc
        except (OSError, ValueError) as exc:
            raise ExternalToolFailure(f"Failed to start Maestro: {exc}") from exc
        return completed.returncode

    def run(self, flow_path: str) -> ToolOutcome:
        logger.info("Running Maestro flow: %s", flow_path)
        try:
            code = self._invoke(flow_path)
        except ExternalToolFailure as exc:
            logger.error("%s", exc)
            return ToolOutcome(success=False, exit_code=exc.exit_code, error=str(exc))
        logger.info("Maestro exited with code %s", code)
        return ToolOutcome(success=code == 0, exit_code=code)


def derive_status(expected_status: str, success: bool) -> str:
    """Status to report for a flow outcome.

    Success reports the expected status. Failure flips PASSED to FAILED and
    anything else to PASSED, so a negative-path flow that fails as designed
    still counts as a pass.
    """
    if success:
        return expected_status
    return "FAILED" if expected_status == "PASSED" else "PASSED"


def outcome_note(expected_status: str, outcome: ToolOutcome) -> str:
    verb = "completed" if outcome.success else "failed"
    return f"Maestro {verb}. Expected: {expected_status}. Exit code: {outcome.exit_code}"


# ═════════════════════════════════════════════════════════════════════════════
# RUNNER LOOP
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class CaseOutcome:
    test_case_id: int
    status: str
    exit_code: int
    reported: bool
    error: str | None = None


@dataclass
class RunnerSummary:
    test_run_id: int
    outcomes: list[CaseOutcome] = field(default_factory=list)

    @property
    def reported(self) -> int:
        return sum(1 for o in self.outcomes if o.reported)

    @property
    def report_failures(self) -> int:
        return sum(1 for o in self.outcomes if not o.reported)

    def to_dict(self) -> dict:
        return {
            "test_run_id": self.test_run_id,
            "reported": self.reported,
            "report_failures": self.report_failures,
            "outcomes": [o.__dict__.copy() for o in self.outcomes],
        }


class AutomationRunner:
    """Sequential run/report loop over one mapping.

    Raises LedgerGatewayError from ``run`` only when the run itself cannot be
    created; later failures are recorded per case.
    """

    def __init__(self, mapping: AutomationMapping, gateway: LedgerGateway, cli: MaestroCli) -> None:
        self.mapping = mapping
        self.gateway = gateway
        self.cli = cli

    def run(self) -> RunnerSummary:
        mapping = self.mapping
        logger.info("Loaded mapping for project %s (%d cases)",
                    mapping.project_id, len(mapping.test_cases),
                    extra={"project_id": mapping.project_id})

        run_id = self.gateway.create_run(
            mapping.project_id,
            [c.test_case_id for c in mapping.test_cases],
            environment=mapping.environment,
        )
        summary = RunnerSummary(test_run_id=run_id)

        for case in mapping.test_cases:
            logger.info("=== Running test case %s ===", case.test_case_id,
                        extra={"test_run_id": run_id, "test_case_id": case.test_case_id})
            outcome = self.cli.run(case.flow_path)
            status = derive_status(case.expected_status, outcome.success)
            note = outcome_note(case.expected_status, outcome)

            try:
                result = self.gateway.report_result(run_id, case.test_case_id, status, note)
            except LedgerGatewayError as exc:
                logger.error("Failed to report result for %s: %s", case.test_case_id, exc,
                             extra={"test_run_id": run_id, "test_case_id": case.test_case_id})
                summary.outcomes.append(
                    CaseOutcome(case.test_case_id, status, outcome.exit_code, False, str(exc))
                )
                continue

            logger.info("Reported result for %s -> %s", case.test_case_id,
                        result.get("status", status),
                        extra={"test_run_id": run_id, "test_case_id": case.test_case_id})
            summary.outcomes.append(CaseOutcome(case.test_case_id, status, outcome.exit_code, True))

        logger.info("All test cases processed: reported=%d failures=%d",
                    summary.reported, summary.report_failures,
                    extra={"test_run_id": run_id})
        return summary
