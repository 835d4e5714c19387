# backend/replenish/routes/audit.py
from flask import Blueprint, request, jsonify

from ..errors import ReplenishError
from ..decorators import require_actor
from ..services import audit_service
from ..validation import MAX_PAGE_SIZE, int_arg


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-events")


@audit_bp.get("")
@require_actor
def list_audit_events_route():
    """
    Read the audit trail, oldest first.

    Query: entity_type, entity_id, action, limit, offset
    """
    try:
        events, total = audit_service.list_audit_events(
            entity_type=request.args.get("entity_type") or None,
            entity_id=request.args.get("entity_id") or None,
            action=request.args.get("action") or None,
            limit=int_arg("limit", 100, maximum=MAX_PAGE_SIZE),
            offset=int_arg("offset", 0),
        )
        return jsonify({"events": [e.to_dict() for e in events], "total": total}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
