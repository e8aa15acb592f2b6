# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/giftledger/routes/auth.py
"""
Authentication API routes

- Self-registration for client, lady and club accounts (admins via CLI)
- Token login/logout
- Current identity
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.errors import LedgerError, error_payload
from ..models.auth import ROLE_ADMIN, ROLE_CLIENT
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Create an account.

    Request body:
    {
        "username": "alice",
        "email": "alice@example.com",
        "password": "Password123!",
        "role": "client",            (client | lady | club)
        "profile_name": "Alice"      (optional, lady/club)
    }

    Returns:
        201: User created
        400: Invalid input / weak password
        403: Admin accounts cannot self-register
        409: Username, email or profile name taken
    """
    try:
        data = request.get_json(silent=True) or {}
        role = data.get("role") or ROLE_CLIENT

        if role == ROLE_ADMIN:
            return jsonify({"error": "Admin accounts are created by operators", "code": "UNAUTHORIZED"}), 403

        user = auth_service.create_user(
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
            role=role,
            profile_name=data.get("profile_name"),
        )
        return jsonify({"user": user.to_dict()}), 201

    except LedgerError as e:
        return jsonify(error_payload(e)), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be sent as `Authorization: Bearer <token>` on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required", "code": "VALIDATION_ERROR"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials", "code": "UNAUTHENTICATED"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.expires_at.isoformat() + "Z",
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
