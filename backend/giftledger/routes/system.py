# backend/giftledger/routes/system.py
"""
System health endpoint.

Checks database reachability and the gift catalog so deployments can tell
an empty schema from a broken one.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import GiftType, SessionToken, User
from giftledger.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Run a couple of cheap counts; report latency either way."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at > utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_gift_catalog_health() -> dict:
    try:
        active_types = db.session.query(GiftType).filter(GiftType.is_active.is_(True)).count()
    except Exception:
        current_app.logger.exception("Gift catalog health check failed")
        return {"status": "unhealthy", "error": "Gift catalog error"}

    if active_types == 0:
        return {
            "status": "degraded",
            "warning": "No active gift types. Run: flask system init",
        }
    return {"status": "healthy", "details": {"active_gift_types": active_types}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (catalog empty)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    catalog_health = (
        check_gift_catalog_health()
        if database_health["status"] == "healthy"
        else {"status": "unhealthy", "error": "Database unavailable"}
    )

    all_checks = [database_health, catalog_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "gift_catalog": catalog_health,
        }
    }

    return response, http_status
