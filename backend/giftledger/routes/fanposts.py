# Overview: Flask API routes for fan post unlocks.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import fanpost_service
from ..services.errors import LedgerError, error_payload
from ..decorators import require_auth


fanposts_bp = Blueprint("fanposts", __name__, url_prefix="/api/fanposts")


@fanposts_bp.post("/<int:post_id>/unlock")
@require_auth
def unlock_route(post_id: int):
    """
    Pay a fan post's price once to unlock it.

    Returns:
        201: Unlocked
        402: Insufficient credits
        404: Post not found
        409: Already unlocked
    """
    try:
        unlock = fanpost_service.unlock_post(g.current_user.id, post_id)
        return jsonify({
            "unlock": unlock.to_dict(),
            "balance": g.current_user.credits,
        }), 201
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to unlock fan post")
        return jsonify({"error": "Internal server error"}), 500


@fanposts_bp.get("/unlocked")
@require_auth
def list_unlocked_route():
    limit = request.args.get("limit", default=100, type=int)
    try:
        unlocks = fanpost_service.list_unlocks(g.current_user.id, limit=limit)
        return jsonify({
            "post_ids": [u.fan_post_id for u in unlocks],
            "items": [u.to_dict() for u in unlocks],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list unlocked fan posts")
        return jsonify({"error": "Internal server error"}), 500
