# Overview: Service-layer operations for fan post unlocks; encapsulates business logic and database work.

"""
Fan Post Unlock Service

WHY: Unlocking a fan post is a one-time purchase. The debit and the unlock
row are written in one transaction, and UNIQUE(client_id, fan_post_id)
guarantees a post is paid for at most once per client, even when two
unlock requests race.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import FanPost, FanPostUnlock, User
from giftledger.time_utils import utcnow
from . import credit_service, notification_service
from .concurrency import run_with_retry
from .errors import (
    AlreadyUnlockedError,
    InsufficientCreditsError,
    LedgerError,
    NotFoundError,
    StorageError,
    UnauthenticatedError,
    ValidationError,
)


def is_unlocked(client_id: int, post_id: int) -> bool:
    return (
        db.session.query(FanPostUnlock.id)
        .filter_by(client_id=client_id, fan_post_id=post_id)
        .first()
        is not None
    )


def unlock_post(client_id: int, post_id: int) -> FanPostUnlock:
    """
    Unlock a fan post for a client.

    Returns:
        The FanPostUnlock row

    Raises:
        UnauthenticatedError: Client missing or inactive
        NotFoundError: Post does not exist
        ValidationError: Client is the post's author
        AlreadyUnlockedError: Client already unlocked this post (no charge)
        InsufficientCreditsError: Balance below the post's cost
        StorageError: Database failure (nothing was charged)
    """
    client = db.session.get(User, client_id)
    if not client or not client.is_active:
        raise UnauthenticatedError("You must be logged in to unlock a fan post")

    post = db.session.get(FanPost, post_id)
    if not post:
        raise NotFoundError("Fan post not found")
    if post.author_id == client_id:
        raise ValidationError("You cannot unlock your own fan post")

    if is_unlocked(client_id, post_id):
        raise AlreadyUnlockedError("You have already unlocked this fan post")

    cost = post.credits_cost
    author_name = post.author.username if post.author else None

    balance = credit_service.get_balance(client_id)
    if balance < cost:
        raise InsufficientCreditsError(
            f"Insufficient credits. You need {cost} credits but only have {balance}.",
            required=cost,
            available=balance,
        )

    def _op():
        debit_id = None
        if cost > 0:
            tx = credit_service.apply_transaction(
                client_id,
                -cost,
                credit_service.KIND_FANPOST,
                f"Unlocked fan post: {post.title}",
                reference_id=str(post_id),
                commit=False,
            )
            debit_id = tx.id

        unlock = FanPostUnlock(
            client_id=client_id,
            fan_post_id=post_id,
            credits_spent=cost,
            debit_transaction_id=debit_id,
            created_at=utcnow(),
        )
        db.session.add(unlock)
        db.session.flush()
        db.session.commit()
        return unlock

    try:
        unlock = run_with_retry(_op)
    except LedgerError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        # Lost a race against a concurrent unlock of the same post
        if is_unlocked(client_id, post_id):
            raise AlreadyUnlockedError("You have already unlocked this fan post") from exc
        current_app.logger.exception("Unlock of fan post %s for user %s violated a constraint", post_id, client_id)
        raise StorageError("Unable to unlock fan post") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to unlock fan post %s for user %s", post_id, client_id)
        raise StorageError("Unable to unlock fan post") from exc

    notification_service.log_activity(client_id, "fanPost", target_id=post_id, target_name=author_name)
    return unlock


def list_unlocked_post_ids(client_id: int) -> list[int]:
    return [
        post_id
        for (post_id,) in db.session.query(FanPostUnlock.fan_post_id)
        .filter(FanPostUnlock.client_id == client_id)
        .order_by(FanPostUnlock.id)
        .all()
    ]


def list_unlocks(client_id: int, limit: int = 100) -> list[FanPostUnlock]:
    limit = max(1, min(limit, 500))
    return (
        db.session.query(FanPostUnlock)
        .filter(FanPostUnlock.client_id == client_id)
        .order_by(FanPostUnlock.id.desc())
        .limit(limit)
        .all()
    )


def author_earnings(author_id: int) -> dict:
    """Unlock count and credits spent on an author's fan posts."""
    count, total = (
        db.session.query(func.count(FanPostUnlock.id), func.coalesce(func.sum(FanPostUnlock.credits_spent), 0))
        .join(FanPost, FanPost.id == FanPostUnlock.fan_post_id)
        .filter(FanPost.author_id == author_id)
        .one()
    )
    return {"unlocks": int(count), "credits": int(total)}
