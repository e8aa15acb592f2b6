# Overview: Flask API routes for the caller's notification inbox.

"""
Notification API Routes

- Notifications are created by the gift, review and reply flows
- Only the owner can list, mark or delete them
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import notification_service
from ..services.errors import LedgerError, error_payload
from ..decorators import require_auth


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    Query params:
        limit: 1..100 (default 20)
        unread: "true" to return unread notifications only
    """
    limit = request.args.get("limit", default=20, type=int)
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    try:
        items = notification_service.list_notifications(g.current_user.id, limit=limit, unread_only=unread_only)
        return jsonify({
            "items": [n.to_dict() for n in items],
            "unread_count": notification_service.unread_count(g.current_user.id),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return jsonify({"unread_count": notification_service.unread_count(g.current_user.id)}), 200


@notifications_bp.post("/read")
@require_auth
def mark_read_route():
    """Request body: {"ids": [1, 2, 3]}"""
    try:
        data = request.get_json(silent=True) or {}
        if "ids" not in data:
            return jsonify({"error": "ids is required", "code": "VALIDATION_ERROR"}), 400
        changed = notification_service.mark_read(g.current_user.id, data.get("ids"))
        return jsonify({
            "updated": changed,
            "unread_count": notification_service.unread_count(g.current_user.id),
        }), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark notifications as read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    try:
        changed = notification_service.mark_read(g.current_user.id)
        return jsonify({"updated": changed, "unread_count": 0}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark all notifications as read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_notification_route(notification_id: int):
    try:
        notification_service.delete_notification(g.current_user.id, notification_id)
        return jsonify({"message": "Notification deleted"}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete notification")
        return jsonify({"error": "Internal server error"}), 500
