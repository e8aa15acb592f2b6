# Overview: Flask API routes for reviews and review likes/dislikes.

# backend/giftledger/routes/reviews.py
"""
Review API Routes

- One review per author per profile, gated on a completed booking
- One like or dislike per user per review; PUT replaces, DELETE clears
- The reviewed profile's owner may post one reply per review
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import review_service
from ..services.errors import LedgerError, error_payload
from ..decorators import require_auth


reviews_bp = Blueprint("reviews", __name__, url_prefix="/api/reviews")


@reviews_bp.post("")
@require_auth
def create_review_route():
    """
    Request body:
    {
        "profile_id": 3,
        "rating": 8,
        "positives": ["Punctual"],
        "negatives": []
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        profile_id = data.get("profile_id")
        if not isinstance(profile_id, int) or isinstance(profile_id, bool):
            return jsonify({"error": "profile_id is required", "code": "VALIDATION_ERROR"}), 400

        review = review_service.create_review(
            g.current_user.id,
            profile_id,
            data.get("rating"),
            positives=data.get("positives"),
            negatives=data.get("negatives"),
        )
        return jsonify({"review": review.to_dict()}), 201
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create review")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.delete("/<int:review_id>")
@require_auth
def delete_review_route(review_id: int):
    try:
        review_service.delete_review(review_id, g.current_user.id)
        return jsonify({"message": "Review deleted"}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete review")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.get("/<int:review_id>/interaction")
@require_auth
def get_interaction_route(review_id: int):
    interaction = review_service.get_user_interaction(review_id, g.current_user.id)
    return jsonify({"review_id": review_id, "interaction": interaction}), 200


@reviews_bp.put("/<int:review_id>/interaction")
@require_auth
def set_interaction_route(review_id: int):
    """Request body: {"interaction": "like" | "dislike"}"""
    try:
        data = request.get_json(silent=True) or {}
        review = review_service.set_interaction(review_id, g.current_user.id, data.get("interaction"))
        return jsonify({
            "review": review.to_dict(),
            "interaction": data.get("interaction"),
        }), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set review interaction")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.delete("/<int:review_id>/interaction")
@require_auth
def clear_interaction_route(review_id: int):
    try:
        review = review_service.clear_interaction(review_id, g.current_user.id)
        return jsonify({"review": review.to_dict(), "interaction": None}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clear review interaction")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.get("/profile/<int:profile_id>")
def list_profile_reviews_route(profile_id: int):
    """Public: reviews of a profile with the owner's replies."""
    limit = request.args.get("limit", default=50, type=int)
    reviews = review_service.list_reviews(profile_id, limit=limit)
    return jsonify({"items": [r.to_dict() for r in reviews]}), 200


@reviews_bp.post("/<int:review_id>/reply")
@require_auth
def create_reply_route(review_id: int):
    """Request body: {"message": "Thank you!"} (profile owner only)"""
    try:
        data = request.get_json(silent=True) or {}
        reply = review_service.create_reply(review_id, g.current_user.id, data.get("message"))
        return jsonify({"reply": reply.to_dict()}), 201
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reply to review")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.patch("/replies/<int:reply_id>")
@require_auth
def update_reply_route(reply_id: int):
    try:
        data = request.get_json(silent=True) or {}
        reply = review_service.update_reply(reply_id, g.current_user.id, data.get("message"))
        return jsonify({"reply": reply.to_dict()}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update review reply")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.delete("/replies/<int:reply_id>")
@require_auth
def delete_reply_route(reply_id: int):
    try:
        review_service.delete_reply(reply_id, g.current_user.id)
        return jsonify({"message": "Reply deleted"}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete review reply")
        return jsonify({"error": "Internal server error"}), 500
