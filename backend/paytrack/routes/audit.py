# Overview: Flask API routes for reading the audit trail.

from flask import Blueprint, jsonify, request

from ..decorators import int_arg, json_errors
from ..services.audit_service import AuditRecorder


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@json_errors("Failed to list audit entries")
def recent_audit_route():
    entries = AuditRecorder().recent(table_name=request.args.get("table"), limit=int_arg("limit", 50))
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200


@audit_bp.get("/<string:table_name>/<int:record_id>")
@json_errors("Failed to get audit history")
def history_route(table_name: str, record_id: int):
    """Most recent first; still available after the record was purged."""
    entries = AuditRecorder().history(table_name, record_id, limit=int_arg("limit"))
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200
