"""Project catalog blueprint.

Endpoint groups:
  Projects       POST   /api/v1/projects
  Requirements   POST   /api/v1/projects/<id>/requirements
                 PUT    /api/v1/requirements/<id>/test-cases
                 DELETE /api/v1/requirements/<id>
  Suites         POST   /api/v1/projects/<id>/suites
                 DELETE /api/v1/suites/<id>
  Test cases     POST   /api/v1/suites/<id>/test-cases
  Milestones     POST   /api/v1/projects/<id>/milestones
                 PATCH  /api/v1/milestones/<id>
                 DELETE /api/v1/milestones/<id>
"""

import logging

from flask import Blueprint, jsonify

import nexusqa.services.catalog_service as catalog
from nexusqa.blueprints import json_body, register_error_handlers
from nexusqa.core.exceptions import ValidationError
from nexusqa.utils.helpers import coerce_id_list

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["POST"])
def create_project():
    return jsonify(catalog.create_project(json_body())), 201


# ── Requirements ─────────────────────────────────────────────────────────

@project_bp.route("/projects/<int:project_id>/requirements", methods=["POST"])
def create_requirement(project_id):
    return jsonify(catalog.create_requirement(project_id, json_body())), 201


@project_bp.route("/requirements/<int:req_id>/test-cases", methods=["PUT"])
def set_requirement_links(req_id):
    """Body: {test_case_ids: [...]}; replaces the full link set (may be empty)."""
    raw = json_body().get("test_case_ids")
    if not isinstance(raw, list):
        raise ValidationError("test_case_ids must be an array")
    try:
        ids = coerce_id_list(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"field": "test_case_ids"}) from exc
    return jsonify(catalog.set_requirement_test_cases(req_id, ids))


@project_bp.route("/requirements/<int:req_id>", methods=["DELETE"])
def delete_requirement(req_id):
    catalog.delete_requirement(req_id)
    return jsonify({"deleted": True})


# ── Suites & test cases ──────────────────────────────────────────────────

@project_bp.route("/projects/<int:project_id>/suites", methods=["POST"])
def create_suite(project_id):
    return jsonify(catalog.create_suite(project_id, json_body())), 201


@project_bp.route("/suites/<int:suite_id>", methods=["DELETE"])
def delete_suite(suite_id):
    catalog.delete_suite(suite_id)
    return jsonify({"deleted": True})


@project_bp.route("/suites/<int:suite_id>/test-cases", methods=["POST"])
def create_test_case(suite_id):
    return jsonify(catalog.create_test_case(suite_id, json_body())), 201


# ── Milestones ───────────────────────────────────────────────────────────

@project_bp.route("/projects/<int:project_id>/milestones", methods=["POST"])
def create_milestone(project_id):
    """Body: {name, start_date, end_date}; ISO dates, end >= start."""
    return jsonify(catalog.create_milestone(project_id, json_body())), 201


@project_bp.route("/milestones/<int:milestone_id>", methods=["PATCH"])
def update_milestone(milestone_id):
    return jsonify(catalog.update_milestone(milestone_id, json_body()))


@project_bp.route("/milestones/<int:milestone_id>", methods=["DELETE"])
def delete_milestone(milestone_id):
    catalog.delete_milestone(milestone_id)
    return jsonify({"deleted": True})
