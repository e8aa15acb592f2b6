# Overview: Flask API routes for dashboard counters and recent activity.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import notification_service, stats_service
from ..services.errors import LedgerError, error_payload
from ..models.auth import ROLE_CLIENT
from ..decorators import require_auth


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
def stats_route():
    """Client accounts get spending counters; ladies and clubs get earnings."""
    user = g.current_user
    try:
        if user.role == ROLE_CLIENT:
            stats = stats_service.get_client_stats(user.id)
        else:
            stats = stats_service.get_recipient_stats(user.id)
        return jsonify({"role": user.role, "stats": stats}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load dashboard stats")
        return jsonify({"error": "Internal server error"}), 500


@dashboard_bp.get("/activity")
@require_auth
def activity_route():
    limit = request.args.get("limit", default=20, type=int)
    try:
        rows = notification_service.recent_activity(g.current_user.id, limit=limit)
        items = []
        for row in rows:
            item = row.to_dict()
            item["description"] = notification_service.describe_activity(row)
            items.append(item)
        return jsonify({"items": items}), 200
    except Exception:
        current_app.logger.exception("Failed to load recent activity")
        return jsonify({"error": "Internal server error"}), 500
