# Overview: Flask API routes for credit balance, statements, purchases and refunds.

# backend/giftledger/routes/credits.py
"""
Credit Ledger API Routes

DESIGN:
- Balance and statement reads for the caller
- Package purchases credit the caller (Idempotency-Key header supported)
- Refunds are admin-only and reverse one debit at most once
- Reconciliation compares the stored balance with the ledger sum
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import credit_service
from ..services.errors import LedgerError, error_payload
from ..models.auth import ROLE_ADMIN
from ..decorators import require_auth, require_role


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


@credits_bp.get("/balance")
@require_auth
def get_balance_route():
    try:
        balance = credit_service.get_balance(g.current_user.id)
        return jsonify({"user_id": g.current_user.id, "balance": balance}), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load balance")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/transactions")
@require_auth
def list_transactions_route():
    """
    Credit statement, newest first.

    Query params:
        limit: 1..200 (default 50)
        kind: purchase | spend | gift | fanpost | refund
        cursor: id returned as next_cursor by the previous page
    """
    limit = request.args.get("limit", default=50, type=int)
    kind = request.args.get("kind")
    cursor = request.args.get("cursor", type=int)

    try:
        rows, next_cursor = credit_service.list_transactions(
            g.current_user.id, limit=limit, kind=kind, before_id=cursor
        )
        return jsonify({
            "items": [r.to_dict() for r in rows],
            "next_cursor": next_cursor,
            "limit": limit,
        }), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list credit transactions")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/packages")
@require_auth
def list_packages_route():
    return jsonify({"packages": credit_service.list_credit_packages()}), 200


@credits_bp.get("/check")
@require_auth
def check_balance_route():
    """Advisory pre-check for the UI. Query params: required (int)."""
    required = request.args.get("required", type=int)
    if required is None or required < 0:
        return jsonify({"error": "required must be a non-negative integer", "code": "VALIDATION_ERROR"}), 400
    try:
        return jsonify(credit_service.check_balance(g.current_user.id, required)), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check balance")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.post("/purchase")
@require_auth
def purchase_route():
    """
    Buy credit packages.

    Request body:
    {
        "packages": [{"id": "popular", "quantity": 1}]
    }

    Headers:
        Idempotency-Key: payment reference (optional); replays credit once

    Returns:
        201: Credits added
        400: Unknown package / bad quantity
    """
    try:
        data = request.get_json(silent=True) or {}
        result = credit_service.purchase_credits(
            g.current_user.id,
            data.get("packages") or [],
            idempotency_key=request.headers.get("Idempotency-Key") or data.get("idempotency_key"),
        )
        return jsonify(result), 201
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to purchase credits")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/reconcile")
@require_auth
def reconcile_route():
    try:
        return jsonify(credit_service.reconcile_user(g.current_user.id)), 200
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile ledger")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.post("/transactions/<int:transaction_id>/refund")
@require_auth
@require_role(ROLE_ADMIN)
def refund_route(transaction_id: int):
    """
    Refund a debit (admin only).

    Request body:
    {
        "reason": "Duplicate charge"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        tx = credit_service.refund_transaction(
            transaction_id,
            actor_user_id=g.current_user.id,
            reason=data.get("reason") or "",
        )
        return jsonify({"transaction": tx.to_dict()}), 201
    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund transaction")
        return jsonify({"error": "Internal server error"}), 500
