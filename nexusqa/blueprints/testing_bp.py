"""Testing blueprint — runs, defects, steps and automation scripts.

Endpoint groups:
  Manual runs        POST /api/v1/test-runs
                     GET  /api/v1/test-runs/<id>
  Defects            PATCH /api/v1/defects/<id>
  Test case          GET  /api/v1/test-cases/<id>
  Steps              GET/POST/PATCH /api/v1/test-cases/<id>/steps
                     DELETE /api/v1/test-cases/<id>/steps/<step_id>
  Automation script  POST /api/v1/test-cases/<id>/maestro
                     GET  /api/v1/test-cases/<id>/export-maestro
"""

import logging

from flask import Blueprint, Response, jsonify

import nexusqa.services.automation_compiler as compiler
import nexusqa.services.catalog_service as catalog
import nexusqa.services.execution_ledger as ledger
import nexusqa.services.step_sequencer as sequencer
from nexusqa.blueprints import json_body, register_error_handlers
from nexusqa.core.exceptions import ValidationError
from nexusqa.utils.helpers import coerce_id_list

logger = logging.getLogger(__name__)

testing_bp = Blueprint("testing", __name__, url_prefix="/api/v1")
register_error_handlers(testing_bp)


# ═════════════════════════════════════════════════════════════════════════════
# RUNS & DEFECTS
# ═════════════════════════════════════════════════════════════════════════════

@testing_bp.route("/test-runs", methods=["POST"])
def create_manual_run():
    """Body: {test_case_ids: [...], name?, environment?}. Returns 201."""
    data = json_body()
    raw = data.get("test_case_ids")
    if not isinstance(raw, list):
        raise ValidationError("test_case_ids must be a non-empty array")
    try:
        ids = coerce_id_list(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"field": "test_case_ids"}) from exc
    if not ids:
        raise ValidationError("test_case_ids must contain at least one id")

    payload = ledger.create_manual_run(ids, name=data.get("name"),
                                       environment=data.get("environment"))
    return jsonify(payload), 201


@testing_bp.route("/test-runs/<int:run_id>", methods=["GET"])
def get_run(run_id):
    return jsonify(ledger.get_run(run_id))


@testing_bp.route("/defects/<int:defect_id>", methods=["PATCH"])
def update_defect(defect_id):
    data = json_body()
    return jsonify(ledger.update_defect_status(defect_id, data.get("status")))


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE & STEPS
# ═════════════════════════════════════════════════════════════════════════════

@testing_bp.route("/test-cases/<int:case_id>", methods=["GET"])
def get_test_case(case_id):
    return jsonify(catalog.get_test_case(case_id))


@testing_bp.route("/test-cases/<int:case_id>/steps", methods=["GET"])
def list_steps(case_id):
    return jsonify({"steps": sequencer.list_steps(case_id)})


@testing_bp.route("/test-cases/<int:case_id>/steps", methods=["POST"])
def insert_step(case_id):
    """Append an empty step; returns the renumbered list (201)."""
    return jsonify({"steps": sequencer.insert_step(case_id)}), 201


@testing_bp.route("/test-cases/<int:case_id>/steps", methods=["PATCH"])
def update_steps(case_id):
    """Body: {steps: [{id, action, expected}, ...]}; text only, no reordering."""
    data = json_body()
    return jsonify({"steps": sequencer.update_steps(case_id, data.get("steps"))})


@testing_bp.route("/test-cases/<int:case_id>/steps/<int:step_id>", methods=["DELETE"])
def delete_step(case_id, step_id):
    return jsonify({"steps": sequencer.delete_step(case_id, step_id)})


# ═════════════════════════════════════════════════════════════════════════════
# AUTOMATION SCRIPT
# ═════════════════════════════════════════════════════════════════════════════

@testing_bp.route("/test-cases/<int:case_id>/maestro", methods=["POST"])
def compile_script(case_id):
    return jsonify({"automation_yaml": compiler.compile_test_case(case_id)})


@testing_bp.route("/test-cases/<int:case_id>/export-maestro", methods=["GET"])
def export_script(case_id):
    filename, body = compiler.export_script(case_id)
    return Response(
        body,
        status=200,
        mimetype="text/yaml",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
