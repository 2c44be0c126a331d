# Overview: Read-only API over the audit trail of the caller's location.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_module
from ..permissions import MODULE_AUDIT
from ..services import audit_service


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_module(MODULE_AUDIT)
def list_audit_logs_route():
    logs = audit_service.list_audit_logs(
        g.location_id,
        module=request.args.get("module"),
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        action_type=request.args.get("action_type"),
        limit=min(request.args.get("limit", 200, type=int), 1000),
    )
    return {"audit_logs": [log.to_dict() for log in logs]}, 200


@audit_bp.get("/<int:audit_log_id>")
@require_auth
@require_module(MODULE_AUDIT)
def get_audit_log_route(audit_log_id: int):
    log = audit_service.get_audit_log(g.location_id, audit_log_id)
    return {"audit_log": log.to_dict()}, 200
