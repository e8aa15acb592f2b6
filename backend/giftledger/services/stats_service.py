# Overview: Aggregate statistics for the client and recipient dashboards.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import FanPostUnlock, Gift, Review
from ..models.gifts import GIFT_STATUS_COLLECTED, GIFT_STATUS_PENDING
from . import credit_service, fanpost_service


def get_client_stats(user_id: int) -> dict:
    """Counters for the client dashboard header."""
    gifts_given, credits_on_gifts = (
        db.session.query(func.count(Gift.id), func.coalesce(func.sum(Gift.credits_cost), 0))
        .filter(Gift.sender_id == user_id)
        .one()
    )
    fanposts_unlocked = (
        db.session.query(func.count(FanPostUnlock.id))
        .filter(FanPostUnlock.client_id == user_id)
        .scalar()
    )
    reviews_written = db.session.query(func.count(Review.id)).filter(Review.author_id == user_id).scalar()

    return {
        "reviews_written": int(reviews_written or 0),
        "gifts_given": int(gifts_given),
        "credits_spent_on_gifts": int(credits_on_gifts),
        "fanposts_unlocked": int(fanposts_unlocked or 0),
        "credits_remaining": credit_service.get_balance(user_id),
    }


def get_recipient_stats(user_id: int) -> dict:
    """Counters for lady/club dashboards: gifts received and fan post earnings."""
    by_status = dict(
        db.session.query(Gift.status, func.count(Gift.id))
        .filter(Gift.recipient_id == user_id)
        .group_by(Gift.status)
        .all()
    )
    credits_received = (
        db.session.query(func.coalesce(func.sum(Gift.credits_cost), 0))
        .filter(Gift.recipient_id == user_id)
        .scalar()
    )
    earnings = fanpost_service.author_earnings(user_id)

    return {
        "gifts_received": sum(by_status.values()),
        "gifts_pending": by_status.get(GIFT_STATUS_PENDING, 0),
        "gifts_collected": by_status.get(GIFT_STATUS_COLLECTED, 0),
        "credits_received": int(credits_received or 0),
        "fanpost_unlocks": earnings["unlocks"],
        "fanpost_earnings": earnings["credits"],
    }
