# Overview: Service-layer operations for reviews and review interactions.

"""
Review Service

WHY: Only clients with a completed booking may review a profile or rate
other reviews of it. Like/dislike counters on a review are denormalized;
they are recounted from review_interactions in the same transaction that
changes an interaction, so they never drift from the interaction rows.
"""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Booking, Profile, Review, ReviewInteraction, ReviewReply
from ..models.directory import BOOKING_STATUS_COMPLETED
from ..models.reviews import INTERACTION_DISLIKE, INTERACTION_LIKE, VALID_INTERACTIONS
from giftledger.time_utils import utcnow
from . import notification_service
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    AlreadyReviewedError,
    ConflictError,
    LedgerError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)


MIN_RATING = 1
MAX_RATING = 10
MAX_POINTS = 10
MAX_POINT_LENGTH = 200
MAX_REPLY_LENGTH = 1000


def has_completed_booking(user_id: int, profile_id: int) -> bool:
    return (
        db.session.query(Booking.id)
        .filter_by(client_id=user_id, profile_id=profile_id, status=BOOKING_STATUS_COMPLETED)
        .first()
        is not None
    )


def can_interact(review_id: int, user_id: int) -> bool:
    review = db.session.get(Review, review_id)
    if not review:
        return False
    return has_completed_booking(user_id, review.profile_id)


# =============================================================================
# REVIEWS
# =============================================================================

def _clean_points(points, label: str) -> list[str]:
    if points is None:
        return []
    if not isinstance(points, list):
        raise ValidationError(f"{label} must be a list of strings")
    cleaned = [str(p).strip() for p in points if str(p).strip()]
    if len(cleaned) > MAX_POINTS:
        raise ValidationError(f"At most {MAX_POINTS} {label.lower()} are allowed")
    if any(len(p) > MAX_POINT_LENGTH for p in cleaned):
        raise ValidationError(f"{label} must be at most {MAX_POINT_LENGTH} characters each")
    return cleaned


def create_review(
    author_id: int,
    profile_id: int,
    rating: int,
    positives: list[str] | None = None,
    negatives: list[str] | None = None,
) -> Review:
    """
    Submit a review of a profile.

    Raises:
        NotFoundError: Profile does not exist
        ValidationError: Rating outside 1..10 or malformed points
        UnauthorizedError: No completed booking with the profile
        AlreadyReviewedError: Author already reviewed this profile
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    positives = _clean_points(positives, "Positives")
    negatives = _clean_points(negatives, "Negatives")

    profile = db.session.get(Profile, profile_id)
    if not profile:
        raise NotFoundError("Profile not found")

    if not has_completed_booking(author_id, profile_id):
        raise UnauthorizedError("You can only review profiles you have a completed booking with")

    existing = db.session.query(Review.id).filter_by(author_id=author_id, profile_id=profile_id).first()
    if existing:
        raise AlreadyReviewedError("You have already reviewed this profile")

    now = utcnow()
    review = Review(
        author_id=author_id,
        profile_id=profile_id,
        rating=rating,
        positives=positives,
        negatives=negatives,
        likes=0,
        dislikes=0,
        created_at=now,
        updated_at=now,
    )
    try:
        db.session.add(review)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise AlreadyReviewedError("You have already reviewed this profile") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to submit review. Please try again.") from exc

    profile_name = profile.name
    notification_service.log_activity(author_id, "review", target_id=review.id, target_name=profile_name)
    notification_service.notify(
        profile.user_id,
        "review",
        "New review received",
        actor_user_id=author_id,
        payload={"review_id": review.id, "rating": rating},
    )
    return review


def list_reviews(profile_id: int, limit: int = 50) -> list[Review]:
    """Reviews of a profile, newest first; each carries its reply, if any."""
    limit = max(1, min(limit, 200))
    return (
        db.session.query(Review)
        .filter(Review.profile_id == profile_id)
        .order_by(Review.id.desc())
        .limit(limit)
        .all()
    )


def delete_review(review_id: int, user_id: int) -> None:
    review = db.session.get(Review, review_id)
    if not review:
        raise NotFoundError("Review not found")
    if review.author_id != user_id:
        raise UnauthorizedError("You can only delete your own reviews")
    try:
        db.session.query(ReviewInteraction).filter_by(review_id=review_id).delete(synchronize_session=False)
        db.session.delete(review)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to delete review. Please try again.") from exc


# =============================================================================
# INTERACTIONS
# =============================================================================

def get_user_interaction(review_id: int, user_id: int) -> str | None:
    row = (
        db.session.query(ReviewInteraction.interaction_type)
        .filter_by(review_id=review_id, user_id=user_id)
        .first()
    )
    return row[0] if row else None


def _recount_locked(review: Review) -> None:
    counts = dict(
        db.session.query(ReviewInteraction.interaction_type, func.count(ReviewInteraction.id))
        .filter(ReviewInteraction.review_id == review.id)
        .group_by(ReviewInteraction.interaction_type)
        .all()
    )
    review.likes = counts.get(INTERACTION_LIKE, 0)
    review.dislikes = counts.get(INTERACTION_DISLIKE, 0)


def _mutate_interaction(review_id: int, user_id: int, kind: str | None) -> Review:
    def _op():
        review = lock_for_update(db.session.query(Review).filter_by(id=review_id)).first()
        if not review:
            raise NotFoundError("Review not found")
        if not has_completed_booking(user_id, review.profile_id):
            raise UnauthorizedError("You can only interact with reviews of profiles you have booked")

        # Replace semantics: drop any prior interaction by this user
        db.session.query(ReviewInteraction).filter_by(
            review_id=review_id, user_id=user_id
        ).delete(synchronize_session=False)

        if kind is not None:
            db.session.add(ReviewInteraction(
                review_id=review_id,
                user_id=user_id,
                interaction_type=kind,
                created_at=utcnow(),
            ))
        db.session.flush()

        _recount_locked(review)
        db.session.commit()
        return review

    try:
        return run_with_retry(_op)
    except LedgerError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to update review interaction. Please try again.") from exc


def set_interaction(review_id: int, user_id: int, kind: str) -> Review:
    """
    Like or dislike a review, replacing any earlier interaction by the user.

    Returns:
        The review with recounted likes/dislikes

    Raises:
        ValidationError: kind is not like/dislike
        NotFoundError: Review does not exist
        UnauthorizedError: User has no completed booking with the reviewed profile
    """
    if kind not in VALID_INTERACTIONS:
        raise ValidationError(f"Invalid interaction: {kind}. Must be one of {list(VALID_INTERACTIONS)}")
    return _mutate_interaction(review_id, user_id, kind)


def clear_interaction(review_id: int, user_id: int) -> Review:
    """Remove the user's like/dislike from a review."""
    return _mutate_interaction(review_id, user_id, None)


def recompute_counts(review_id: int) -> Review:
    """Rewrite a review's counters from its interaction rows (drift repair)."""
    review = lock_for_update(db.session.query(Review).filter_by(id=review_id)).first()
    if not review:
        raise NotFoundError("Review not found")
    _recount_locked(review)
    db.session.commit()
    return review


# =============================================================================
# REPLIES
# =============================================================================

def _normalize_reply(message) -> str:
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Reply message is required")
    message = message.strip()
    if len(message) > MAX_REPLY_LENGTH:
        raise ValidationError(f"Reply must be at most {MAX_REPLY_LENGTH} characters")
    return message


def create_reply(review_id: int, user_id: int, message: str) -> ReviewReply:
    """
    Answer a review of your own profile. One reply per review.

    Raises:
        ValidationError: Empty or overlong message
        NotFoundError: Review does not exist
        UnauthorizedError: Caller does not own the reviewed profile
        ConflictError: The review already has a reply
    """
    message = _normalize_reply(message)

    review = db.session.get(Review, review_id)
    if not review:
        raise NotFoundError("Review not found")
    if review.profile is None or review.profile.user_id != user_id:
        raise UnauthorizedError("You can only reply to reviews of your own profile")
    if review.reply is not None:
        raise ConflictError("You have already replied to this review")

    now = utcnow()
    reply = ReviewReply(review=review, author_id=user_id, message=message, created_at=now, updated_at=now)
    try:
        db.session.add(reply)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("You have already replied to this review") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to submit reply. Please try again.") from exc

    notification_service.notify(
        review.author_id,
        "review_reply",
        f"{review.profile.name} replied to your review",
        actor_user_id=user_id,
        payload={"review_id": review_id, "reply_id": reply.id},
    )
    return reply


def _get_own_reply(reply_id: int, user_id: int) -> ReviewReply:
    reply = db.session.get(ReviewReply, reply_id)
    if not reply:
        raise NotFoundError("Reply not found")
    if reply.author_id != user_id:
        raise UnauthorizedError("You can only change your own replies")
    return reply


def update_reply(reply_id: int, user_id: int, message: str) -> ReviewReply:
    message = _normalize_reply(message)
    reply = _get_own_reply(reply_id, user_id)
    try:
        reply.message = message
        reply.updated_at = utcnow()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to update reply. Please try again.") from exc
    return reply


def delete_reply(reply_id: int, user_id: int) -> None:
    reply = _get_own_reply(reply_id, user_id)
    try:
        db.session.delete(reply)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to delete reply. Please try again.") from exc
