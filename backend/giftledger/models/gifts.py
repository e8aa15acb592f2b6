from __future__ import annotations

from ..extensions import db
from giftledger.time_utils import to_utc_z


GIFT_STATUS_PENDING = "pending"
GIFT_STATUS_COLLECTED = "collected"


class GiftType(db.Model):
    """Catalog of sendable gifts and their credit cost."""
    __tablename__ = "gift_types"
    __table_args__ = (
        db.UniqueConstraint("slug", name="uq_gift_types_slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    emoji = db.Column(db.String(16), nullable=False, default="\U0001F381")
    credits_cost = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "slug": self.slug,
            "name": self.name,
            "emoji": self.emoji,
            "credits": self.credits_cost,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


class Gift(db.Model):
    """
    A credit-costing gift addressed to a profile owner.

    Created in the same transaction as the ledger debit that paid for it
    (debit_transaction_id). Status moves pending -> collected only when the
    recipient collects it.
    """
    __tablename__ = "gifts"
    __table_args__ = (
        db.Index("ix_gifts_recipient_created", "recipient_id", "created_at"),
        db.Index("ix_gifts_sender_created", "sender_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)

    gift_type = db.Column(db.String(32), nullable=False)
    credits_cost = db.Column(db.Integer, nullable=False)
    message = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=GIFT_STATUS_PENDING, index=True)
    collected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    debit_transaction_id = db.Column(db.Integer, db.ForeignKey("credit_transactions.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sender = db.relationship("User", foreign_keys=[sender_id])
    recipient = db.relationship("User", foreign_keys=[recipient_id])
    profile = db.relationship("Profile")
    debit_transaction = db.relationship("CreditTransaction")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "profile_id": self.profile_id,
            "gift_type": self.gift_type,
            "credits_cost": self.credits_cost,
            "message": self.message,
            "status": self.status,
            "collected_at": to_utc_z(self.collected_at) if self.collected_at else None,
            "debit_transaction_id": self.debit_transaction_id,
            "created_at": to_utc_z(self.created_at),
        }


class GiftReply(db.Model):
    """Message in the reply thread attached to a gift."""
    __tablename__ = "gift_replies"
    __table_args__ = (
        db.Index("ix_gift_replies_gift_created", "gift_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gift_id = db.Column(db.Integer, db.ForeignKey("gifts.id"), nullable=False)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    message = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    gift = db.relationship("Gift", backref=db.backref("replies", lazy=True, order_by="GiftReply.id"))
    sender = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gift_id": self.gift_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender.username if self.sender else "Anonymous",
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
