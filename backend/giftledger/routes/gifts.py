# Overview: Flask API routes for gift sending, collection and reply threads.

# backend/giftledger/routes/gifts.py
"""
Gift API Routes

- Catalog of gift types
- Multi-line sends: each line debits and records independently
- Recipient inbox with collection
- Reply threads between sender and recipient
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import gift_service
from ..services.errors import LedgerError, error_payload
from ..decorators import require_auth


gifts_bp = Blueprint("gifts", __name__, url_prefix="/api/gifts")


@gifts_bp.get("/types")
def list_types_route():
    try:
        return jsonify({"types": [t.to_dict() for t in gift_service.list_gift_types()]}), 200
    except Exception:
        current_app.logger.exception("Failed to list gift types")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.get("/recent/<string:recipient_handle>")
def recent_route(recipient_handle: str):
    limit = request.args.get("limit", default=20, type=int)
    try:
        return jsonify({"items": gift_service.recent_gifts_received(recipient_handle, limit=limit)}), 200
    except Exception:
        current_app.logger.exception("Failed to list recent gifts")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.post("")
@require_auth
def send_gift_route():
    """
    Send gifts to a profile.

    Request body:
    {
        "recipient": "Alice",
        "gifts": [{"kind": "rose", "credits": 5}, {"kind": "star", "credits": 25}],
        "message": "Thanks!"          (optional)
    }

    Returns:
        201: At least one line succeeded (per-line results in "lines")
        402/500: Every line failed; status of the first failure
        400/404/402: Request rejected before any line was attempted
    """
    try:
        data = request.get_json(silent=True) or {}
        result = gift_service.send_gift(
            g.current_user.id,
            data.get("recipient"),
            data.get("gifts") or [],
            message=data.get("message"),
        )

        body = result.to_dict()
        if result.succeeded:
            return jsonify(body), 201

        first_error = result.failed[0].error
        body.update(error_payload(first_error))
        return jsonify(body), first_error.status_code

    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send gift")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.get("/sent")
@require_auth
def list_sent_route():
    limit = request.args.get("limit", default=100, type=int)
    try:
        gifts = gift_service.list_sent(g.current_user.id, limit=limit)
        return jsonify({"items": [gift.to_dict() for gift in gifts]}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sent gifts")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.get("/received")
@require_auth
def list_received_route():
    """Query params: status (pending | collected), limit."""
    status = request.args.get("status")
    limit = request.args.get("limit", default=100, type=int)
    try:
        gifts = gift_service.list_received(g.current_user.id, status=status, limit=limit)
        return jsonify({"items": [gift.to_dict() for gift in gifts]}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list received gifts")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.post("/<int:gift_id>/collect")
@require_auth
def collect_route(gift_id: int):
    try:
        gift = gift_service.collect_gift(gift_id, g.current_user.id)
        return jsonify({"gift": gift.to_dict()}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to collect gift")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.get("/<int:gift_id>/replies")
@require_auth
def list_replies_route(gift_id: int):
    try:
        replies = gift_service.list_replies(gift_id, g.current_user.id)
        return jsonify({"items": [reply.to_dict() for reply in replies]}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list gift replies")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.post("/<int:gift_id>/replies")
@require_auth
def send_reply_route(gift_id: int):
    try:
        data = request.get_json(silent=True) or {}
        reply = gift_service.send_reply(gift_id, g.current_user.id, data.get("message"))
        return jsonify({"reply": reply.to_dict()}), 201
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send gift reply")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.patch("/replies/<int:reply_id>")
@require_auth
def update_reply_route(reply_id: int):
    try:
        data = request.get_json(silent=True) or {}
        reply = gift_service.update_reply(reply_id, g.current_user.id, data.get("message"))
        return jsonify({"reply": reply.to_dict()}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update gift reply")
        return jsonify({"error": "Internal server error"}), 500


@gifts_bp.delete("/replies/<int:reply_id>")
@require_auth
def delete_reply_route(reply_id: int):
    try:
        gift_service.delete_reply(reply_id, g.current_user.id)
        return jsonify({"message": "Reply deleted"}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete gift reply")
        return jsonify({"error": "Internal server error"}), 500
