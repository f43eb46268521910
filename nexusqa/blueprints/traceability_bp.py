"""Traceability and reporting blueprint (read-only).

  GET /api/v1/projects/<id>/stats
  GET /api/v1/projects/<id>/traceability
  GET /api/v1/projects/<id>/milestones/metrics
  GET /api/v1/milestones/<id>/metrics
"""

from flask import Blueprint, jsonify

import nexusqa.services.traceability as traceability
from nexusqa.blueprints import register_error_handlers

traceability_bp = Blueprint("traceability", __name__, url_prefix="/api/v1")
register_error_handlers(traceability_bp)


@traceability_bp.route("/projects/<int:project_id>/stats", methods=["GET"])
def project_stats(project_id):
    return jsonify(traceability.project_stats(project_id))


@traceability_bp.route("/projects/<int:project_id>/traceability", methods=["GET"])
def project_traceability(project_id):
    return jsonify(traceability.requirement_matrix(project_id))


@traceability_bp.route("/projects/<int:project_id>/milestones/metrics", methods=["GET"])
def project_milestone_metrics(project_id):
    return jsonify({"milestones": traceability.project_milestone_metrics(project_id)})


@traceability_bp.route("/milestones/<int:milestone_id>/metrics", methods=["GET"])
def milestone_metrics(milestone_id):
    return jsonify(traceability.get_milestone_metrics(milestone_id))
