# Overview: Service-layer operations for gifts; encapsulates business logic and database work.

"""
Gift Transfer Service

WHY: Sending a gift spends credits. The sender's debit and the gift record
are one unit of work per gift line: both commit together or neither does,
so a sender is never charged for a gift that does not exist.

DESIGN PRINCIPLES:
- Recipient handle is a profile name (case-insensitive)
- Each line is debited through credit_service.apply_transaction(commit=False)
  and committed together with its Gift row
- Lines are independent: an early line can succeed while a later one fails
  for insufficient credits
- Notifications and activity rows are best-effort and written after commit
- Gift status moves pending -> collected only by the recipient
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Gift, GiftReply, GiftType, Profile, User
from ..models.gifts import GIFT_STATUS_COLLECTED, GIFT_STATUS_PENDING
from giftledger.time_utils import utcnow
from . import credit_service, notification_service
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    ConflictError,
    InsufficientCreditsError,
    LedgerError,
    NotFoundError,
    RecipientNotFoundError,
    StorageError,
    UnauthenticatedError,
    UnauthorizedError,
    ValidationError,
)


MAX_MESSAGE_LENGTH = 500
MAX_REPLY_LENGTH = 1000
MAX_LINES_PER_SEND = 20

LINE_SUCCEEDED = "succeeded"
LINE_FAILED = "failed"

DEFAULT_GIFT_TYPES = [
    {"slug": "rose", "name": "Rose", "emoji": "\U0001F339", "credits_cost": 5},
    {"slug": "heart", "name": "Heart", "emoji": "❤️", "credits_cost": 10},
    {"slug": "kiss", "name": "Kiss", "emoji": "\U0001F48B", "credits_cost": 15},
    {"slug": "flower", "name": "Flower", "emoji": "\U0001F338", "credits_cost": 20},
    {"slug": "star", "name": "Star", "emoji": "⭐", "credits_cost": 25},
    {"slug": "gift", "name": "Gift", "emoji": "\U0001F381", "credits_cost": 30},
    {"slug": "crown", "name": "Crown", "emoji": "\U0001F451", "credits_cost": 50},
    {"slug": "diamond", "name": "Diamond", "emoji": "\U0001F48E", "credits_cost": 100},
]


@dataclass
class GiftLine:
    kind: str
    name: str
    credits: int


@dataclass
class GiftLineResult:
    kind: str
    credits: int
    status: str
    gift: Gift | None = None
    error: LedgerError | None = None

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "credits": self.credits, "status": self.status}
        if self.gift is not None:
            data["gift"] = self.gift.to_dict()
        if self.error is not None:
            data["error"] = str(self.error)
            data["code"] = self.error.code
        return data


@dataclass
class GiftSendResult:
    recipient_user_id: int
    recipient_name: str
    lines: list[GiftLineResult] = field(default_factory=list)
    balance: int = 0

    @property
    def succeeded(self) -> list[GiftLineResult]:
        return [line for line in self.lines if line.status == LINE_SUCCEEDED]

    @property
    def failed(self) -> list[GiftLineResult]:
        return [line for line in self.lines if line.status == LINE_FAILED]

    @property
    def credits_spent(self) -> int:
        return sum(line.credits for line in self.succeeded)

    def to_dict(self) -> dict:
        return {
            "recipient": {"user_id": self.recipient_user_id, "name": self.recipient_name},
            "lines": [line.to_dict() for line in self.lines],
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "credits_spent": self.credits_spent,
            "balance": self.balance,
        }


# =============================================================================
# GIFT CATALOG
# =============================================================================

def list_gift_types(active_only: bool = True) -> list[GiftType]:
    q = db.session.query(GiftType)
    if active_only:
        q = q.filter(GiftType.is_active.is_(True))
    return q.order_by(GiftType.sort_order, GiftType.credits_cost).all()


def seed_gift_types() -> int:
    """Create missing default gift types. Safe to call repeatedly; returns count created."""
    existing = {slug for (slug,) in db.session.query(GiftType.slug).all()}
    created = 0
    for order, entry in enumerate(DEFAULT_GIFT_TYPES):
        if entry["slug"] in existing:
            continue
        db.session.add(GiftType(sort_order=order, is_active=True, **entry))
        created += 1
    db.session.commit()
    return created


def _gift_type_map() -> dict[str, GiftType]:
    return {gift_type.slug: gift_type for gift_type in list_gift_types(active_only=False)}


def gift_emoji(slug: str, catalog: dict[str, GiftType] | None = None) -> str:
    catalog = catalog if catalog is not None else _gift_type_map()
    gift_type = catalog.get(slug)
    return gift_type.emoji if gift_type else "\U0001F381"


# =============================================================================
# SENDING
# =============================================================================

def resolve_recipient(recipient_handle: str) -> Profile:
    """
    Resolve a profile name to the active profile it names.

    Raises:
        RecipientNotFoundError: No active profile (with an active owner) has that name
    """
    if recipient_handle is not None and not isinstance(recipient_handle, str):
        raise ValidationError("Recipient must be a profile name")
    handle = (recipient_handle or "").strip()
    if not handle:
        raise ValidationError("Recipient is required")

    profile = (
        db.session.query(Profile)
        .join(User, User.id == Profile.user_id)
        .filter(
            func.lower(Profile.name) == handle.lower(),
            Profile.is_active.is_(True),
            User.is_active.is_(True),
        )
        .first()
    )
    if not profile:
        raise RecipientNotFoundError("Recipient not found")
    return profile


def _validate_lines(gift_lines: list[dict]) -> list[GiftLine]:
    if not gift_lines or not isinstance(gift_lines, list):
        raise ValidationError("At least one gift is required")
    if len(gift_lines) > MAX_LINES_PER_SEND:
        raise ValidationError(f"At most {MAX_LINES_PER_SEND} gifts can be sent at once")

    catalog = _gift_type_map()
    lines = []
    for raw in gift_lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each gift must be an object with a kind")
        kind = raw.get("kind") or raw.get("type") or ""
        if not isinstance(kind, str):
            raise ValidationError("Gift kind must be a string")
        kind = kind.strip().lower()
        gift_type = catalog.get(kind)
        if gift_type is None or not gift_type.is_active:
            raise ValidationError(f"Unknown gift type: {kind or '(missing)'}")

        credits = raw.get("credits", gift_type.credits_cost)
        if isinstance(credits, bool) or not isinstance(credits, int) or credits <= 0:
            raise ValidationError("Gift credits must be a positive integer")
        if credits != gift_type.credits_cost:
            raise ValidationError(
                f"{gift_type.name} costs {gift_type.credits_cost} credits, not {credits}"
            )
        lines.append(GiftLine(kind=gift_type.slug, name=gift_type.name, credits=credits))
    return lines


def send_gift(
    sender_id: int,
    recipient_handle: str,
    gift_lines: list[dict],
    message: str | None = None,
) -> GiftSendResult:
    """
    Send one or more gifts to the owner of a profile.

    Args:
        sender_id: Paying user
        recipient_handle: Profile name of the recipient
        gift_lines: [{"kind": "rose", "credits": 5}, ...]
        message: Optional note attached to every gift of this send

    Returns:
        GiftSendResult with one outcome per line and the sender's final balance

    Raises:
        UnauthenticatedError: Sender missing or inactive
        RecipientNotFoundError: Handle does not name an active profile
        ValidationError: Bad lines, message too long, or gifting yourself
        InsufficientCreditsError: Balance cannot cover even the cheapest line
    """
    sender = db.session.get(User, sender_id)
    if not sender or not sender.is_active:
        raise UnauthenticatedError("You must be logged in to send a gift")
    sender_name = sender.username

    profile = resolve_recipient(recipient_handle)
    if profile.user_id == sender_id:
        raise ValidationError("You cannot send a gift to yourself")

    lines = _validate_lines(gift_lines)

    if message is not None and not isinstance(message, str):
        raise ValidationError("Message must be a string")
    message = (message or "").strip() or None
    if message and len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    # Advisory pre-check; the authoritative check is the conditional update per line
    total_cost = sum(line.credits for line in lines)
    balance = credit_service.get_balance(sender_id)
    if balance < min(line.credits for line in lines):
        raise InsufficientCreditsError(
            f"Insufficient credits. You need {total_cost} credits but only have {balance}.",
            required=total_cost,
            available=balance,
        )

    result = GiftSendResult(recipient_user_id=profile.user_id, recipient_name=profile.name)
    recipient_user_id = profile.user_id
    recipient_name = profile.name
    profile_id = profile.id

    for line in lines:
        def _op(line=line):
            return _send_gift_line(sender_id, recipient_user_id, profile_id, recipient_name, line, message)

        try:
            gift = run_with_retry(_op)
        except LedgerError as exc:
            db.session.rollback()
            result.lines.append(GiftLineResult(line.kind, line.credits, LINE_FAILED, error=exc))
            continue
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Failed to send %s gift from user %s", line.kind, sender_id)
            result.lines.append(GiftLineResult(
                line.kind, line.credits, LINE_FAILED,
                error=StorageError("Unable to create gift record"),
            ))
            continue

        result.lines.append(GiftLineResult(line.kind, line.credits, LINE_SUCCEEDED, gift=gift))

        notification_service.notify(
            recipient_user_id,
            "gift",
            f"{sender_name} sent you a {line.name}",
            actor_user_id=sender_id,
            payload={"gift_id": gift.id, "gift_type": line.kind, "credits": line.credits},
        )
        notification_service.log_activity(sender_id, "gift", target_id=gift.id, target_name=recipient_name)

    result.balance = credit_service.get_balance(sender_id)
    current_app.logger.info(
        "Gift send from user %s to %s: %d succeeded, %d failed",
        sender_id, recipient_name, len(result.succeeded), len(result.failed),
    )
    return result


def _send_gift_line(
    sender_id: int,
    recipient_user_id: int,
    profile_id: int,
    recipient_name: str,
    line: GiftLine,
    message: str | None,
) -> Gift:
    """Debit + gift insert for one line, committed as one transaction."""
    tx = credit_service.apply_transaction(
        sender_id,
        -line.credits,
        credit_service.KIND_GIFT,
        f"Sent {line.name} gift to {recipient_name}",
        commit=False,
    )
    gift = _create_gift_record(
        sender_id=sender_id,
        recipient_id=recipient_user_id,
        profile_id=profile_id,
        gift_type=line.kind,
        credits_cost=line.credits,
        message=message,
        debit_transaction_id=tx.id,
    )
    db.session.commit()
    return gift


def _create_gift_record(**fields) -> Gift:
    gift = Gift(status=GIFT_STATUS_PENDING, created_at=utcnow(), **fields)
    db.session.add(gift)
    db.session.flush()
    return gift


# =============================================================================
# COLLECTION
# =============================================================================

def collect_gift(gift_id: int, user_id: int) -> Gift:
    """
    Mark a received gift as collected.

    Raises:
        NotFoundError: Gift does not exist
        UnauthorizedError: Caller is not the recipient
        ConflictError: Gift already collected
    """
    def _op():
        gift = lock_for_update(db.session.query(Gift).filter_by(id=gift_id)).first()
        if not gift:
            raise NotFoundError("Gift not found")
        if gift.recipient_id != user_id:
            raise UnauthorizedError("You can only collect gifts you received")
        if gift.status == GIFT_STATUS_COLLECTED:
            raise ConflictError("Gift has already been collected")

        gift.status = GIFT_STATUS_COLLECTED
        gift.collected_at = utcnow()
        db.session.commit()
        return gift

    try:
        gift = run_with_retry(_op)
    except LedgerError:
        db.session.rollback()
        raise

    notification_service.notify(
        gift.sender_id,
        "gift_collected",
        "Your gift was collected",
        actor_user_id=user_id,
        payload={"gift_id": gift.id},
    )
    return gift


# =============================================================================
# QUERIES
# =============================================================================

def list_sent(user_id: int, limit: int = 100) -> list[Gift]:
    limit = max(1, min(limit, 500))
    return (
        db.session.query(Gift)
        .filter(Gift.sender_id == user_id)
        .order_by(Gift.id.desc())
        .limit(limit)
        .all()
    )


def list_received(user_id: int, status: str | None = None, limit: int = 100) -> list[Gift]:
    limit = max(1, min(limit, 500))
    q = db.session.query(Gift).filter(Gift.recipient_id == user_id)
    if status:
        if status not in (GIFT_STATUS_PENDING, GIFT_STATUS_COLLECTED):
            raise ValidationError(f"Invalid gift status: {status}")
        q = q.filter(Gift.status == status)
    return q.order_by(Gift.id.desc()).limit(limit).all()


def recent_gifts_received(recipient_handle: str, limit: int = 20) -> list[dict]:
    """Public feed of the latest gifts a profile received (send-gift page)."""
    try:
        profile = resolve_recipient(recipient_handle)
    except (RecipientNotFoundError, ValidationError):
        return []

    limit = max(1, min(limit, 100))
    rows = (
        db.session.query(Gift, User.username)
        .outerjoin(User, User.id == Gift.sender_id)
        .filter(Gift.recipient_id == profile.user_id)
        .order_by(Gift.id.desc())
        .limit(limit)
        .all()
    )
    catalog = _gift_type_map()
    return [
        {
            "emoji": gift_emoji(gift.gift_type, catalog),
            "gift_type": gift.gift_type,
            "sender": username or "Anonymous",
            "created_at": gift.to_dict()["created_at"],
        }
        for gift, username in rows
    ]


# =============================================================================
# REPLIES
# =============================================================================

def _normalize_reply(message: str | None) -> str:
    message = (message or "").strip()
    if not message:
        raise ValidationError("Reply message is required")
    if len(message) > MAX_REPLY_LENGTH:
        raise ValidationError(f"Reply must be at most {MAX_REPLY_LENGTH} characters")
    return message


def _get_gift_for_participant(gift_id: int, user_id: int) -> Gift:
    gift = db.session.get(Gift, gift_id)
    if not gift:
        raise NotFoundError("Gift not found")
    if user_id not in (gift.sender_id, gift.recipient_id):
        raise UnauthorizedError("You can only view or reply to gifts you sent or received")
    return gift


def send_reply(gift_id: int, user_id: int, message: str) -> GiftReply:
    """
    Add a reply to a gift thread.

    The recipient opens the thread; afterwards the sender may answer.
    """
    message = _normalize_reply(message)
    gift = _get_gift_for_participant(gift_id, user_id)

    has_replies = db.session.query(GiftReply.id).filter_by(gift_id=gift.id).first() is not None
    if not has_replies and user_id != gift.recipient_id:
        raise UnauthorizedError("Only the recipient can start a conversation on a gift")

    now = utcnow()
    reply = GiftReply(gift_id=gift.id, sender_id=user_id, message=message, created_at=now, updated_at=now)
    try:
        db.session.add(reply)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to send gift reply. Please try again.") from exc

    other_party = gift.sender_id if user_id == gift.recipient_id else gift.recipient_id
    notification_service.notify(
        other_party,
        "gift_reply",
        "New reply to your gift",
        actor_user_id=user_id,
        payload={"gift_id": gift.id, "reply_id": reply.id},
    )
    return reply


def list_replies(gift_id: int, user_id: int) -> list[GiftReply]:
    gift = _get_gift_for_participant(gift_id, user_id)
    return (
        db.session.query(GiftReply)
        .filter(GiftReply.gift_id == gift.id)
        .order_by(GiftReply.created_at.asc(), GiftReply.id.asc())
        .all()
    )


def _get_own_reply(reply_id: int, user_id: int) -> GiftReply:
    reply = db.session.get(GiftReply, reply_id)
    if not reply:
        raise NotFoundError("Reply not found")
    if reply.sender_id != user_id:
        raise UnauthorizedError("You can only change your own replies")
    return reply


def update_reply(reply_id: int, user_id: int, message: str) -> GiftReply:
    message = _normalize_reply(message)
    reply = _get_own_reply(reply_id, user_id)
    reply.message = message
    reply.updated_at = utcnow()
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to update gift reply. Please try again.") from exc
    return reply


def delete_reply(reply_id: int, user_id: int) -> None:
    reply = _get_own_reply(reply_id, user_id)
    try:
        db.session.delete(reply)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to delete gift reply. Please try again.") from exc
