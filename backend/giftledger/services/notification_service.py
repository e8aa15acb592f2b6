# Overview: Best-effort side effects (notifications, activity feed) for ledger flows.

"""
Notifications and activity rows are written AFTER the ledger unit of work
has committed, in their own commit. A failure here is logged and rolled
back; it never undoes the gift, unlock or purchase that triggered it.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ClientActivity, Notification
from giftledger.time_utils import utcnow
from .errors import NotFoundError, StorageError, ValidationError


def notify(
    user_id: int,
    type: str,
    message: str,
    *,
    actor_user_id: int | None = None,
    payload: dict | None = None,
) -> Notification | None:
    """Create an in-app notification. Returns None when skipped or failed."""
    if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
        return None

    try:
        notification = Notification(
            user_id=user_id,
            actor_user_id=actor_user_id,
            type=type,
            message=message[:255],
            payload=payload,
            created_at=utcnow(),
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to create %s notification for user %s", type, user_id, exc_info=True
        )
        return None


def log_activity(
    user_id: int,
    activity_type: str,
    *,
    target_id: int | None = None,
    target_name: str | None = None,
) -> ClientActivity | None:
    """Append a dashboard activity row. Returns None on failure."""
    try:
        activity = ClientActivity(
            user_id=user_id,
            activity_type=activity_type,
            target_id=target_id,
            target_name=(target_name or "")[:128] or None,
            created_at=utcnow(),
        )
        db.session.add(activity)
        db.session.commit()
        return activity
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to record %s activity for user %s", activity_type, user_id, exc_info=True
        )
        return None


def recent_activity(user_id: int, limit: int = 20) -> list[ClientActivity]:
    limit = max(1, min(limit, 100))
    return (
        db.session.query(ClientActivity)
        .filter(ClientActivity.user_id == user_id)
        .order_by(ClientActivity.id.desc())
        .limit(limit)
        .all()
    )


def describe_activity(activity: ClientActivity) -> str:
    target = activity.target_name or "someone"
    if activity.activity_type == "review":
        return f"Reviewed {target}"
    if activity.activity_type == "gift":
        return f"Sent a gift to {target}"
    if activity.activity_type == "fanPost":
        return f"Unlocked {target}'s fan post"
    if activity.activity_type == "purchase":
        return f"Purchased {target}"
    return f"Activity with {target}"


# =============================================================================
# INBOX
# =============================================================================

def list_notifications(user_id: int, limit: int = 20, unread_only: bool = False) -> list[Notification]:
    """Newest first; unread_only filters to is_read = false."""
    limit = max(1, min(limit, 100))
    q = db.session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification.id)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(user_id: int, notification_ids: list[int] | None = None) -> int:
    """
    Mark the user's notifications as read.

    Args:
        notification_ids: Ids to mark; None marks every unread notification.
            Ids owned by other users are ignored.

    Returns:
        Number of notifications changed
    """
    if notification_ids is not None:
        if not isinstance(notification_ids, list) or any(
            isinstance(n, bool) or not isinstance(n, int) for n in notification_ids
        ):
            raise ValidationError("ids must be a list of notification ids")
        if not notification_ids:
            return 0

    q = db.session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    if notification_ids is not None:
        q = q.filter(Notification.id.in_(notification_ids))

    try:
        changed = q.update({Notification.is_read: True}, synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to update notifications") from exc
    return changed


def delete_notification(user_id: int, notification_id: int) -> None:
    notification = db.session.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    try:
        db.session.delete(notification)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to delete notification") from exc
