"""Automation ingestion blueprint.

Endpoint groups:
  Run creation       POST /api/v1/automation/runs
  Result reporting   POST /api/v1/automation/results
  Maestro trigger    POST /api/v1/maestro/run

The /automation/* routes sit behind the shared-secret gate
(``nexusqa.middleware.automation_auth``) when AUTOMATION_API_KEY is set.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

import nexusqa.services.execution_ledger as ledger
from nexusqa.blueprints import json_body, register_error_handlers
from nexusqa.core.exceptions import ValidationError
from nexusqa.utils.helpers import coerce_id_list

logger = logging.getLogger(__name__)

automation_bp = Blueprint("automation", __name__, url_prefix="/api/v1")
register_error_handlers(automation_bp)


def _positive_int(data: dict, field: str) -> int:
    value = data.get(field)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} is required", details={"field": field})
    return value


def _id_list(data: dict, field: str) -> list[int]:
    raw = data.get(field)
    if not isinstance(raw, list):
        raise ValidationError(f"{field} must be a non-empty array", details={"field": field})
    try:
        ids = coerce_id_list(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"field": field}) from exc
    if not ids:
        raise ValidationError(f"{field} must be a non-empty array", details={"field": field})
    return ids


@automation_bp.route("/automation/runs", methods=["POST"])
def create_automation_run():
    """Create a run plus UNTESTED result stubs for an automation batch.

    Body: {project_id, name?, environment?, test_case_ids: [int, ...]}
    Returns: {test_run, results} (201).
    """
    data = json_body()
    project_id = _positive_int(data, "project_id")
    test_case_ids = _id_list(data, "test_case_ids")
    payload = ledger.create_automation_run(
        project_id, test_case_ids,
        name=data.get("name"),
        environment=data.get("environment"),
    )
    return jsonify(payload), 201


@automation_bp.route("/automation/results", methods=["POST"])
def report_automation_result():
    """Report one case's status into an existing run.

    Body: {test_run_id, test_case_id, status, actual_result?}
    Returns: updated result with defects (200).
    """
    data = json_body()
    test_run_id = _positive_int(data, "test_run_id")
    test_case_id = _positive_int(data, "test_case_id")
    status = data.get("status")
    if not isinstance(status, str) or not status:
        raise ValidationError("status is required", details={"field": "status"})

    result = ledger.report_result(test_run_id, test_case_id, status, data.get("actual_result"))
    return jsonify({"result": result}), 200


@automation_bp.route("/maestro/run", methods=["POST"])
def create_maestro_run():
    """Create a Maestro run for one case or a whole suite.

    Body: {mode?: "case"|"suite", case_id?, suite_id?, environment?}
    Returns: {test_run, results} (201).
    """
    data = json_body()
    payload = ledger.create_maestro_run(
        mode=data.get("mode") or "case",
        case_id=data.get("case_id"),
        suite_id=data.get("suite_id"),
        environment=data.get("environment"),
    )
    return jsonify(payload), 201
