from __future__ import annotations

from ..extensions import db
from giftledger.time_utils import to_utc_z


class FanPost(db.Model):
    """Credit-gated content published by a lady account."""
    __tablename__ = "fan_posts"
    __table_args__ = (
        db.CheckConstraint("credits_cost >= 0", name="ck_fan_posts_cost_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=True)
    credits_cost = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    author = db.relationship("User", backref=db.backref("fan_posts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author_id": self.author_id,
            "title": self.title,
            "credits_cost": self.credits_cost,
            "created_at": to_utc_z(self.created_at),
        }


class FanPostUnlock(db.Model):
    """
    One-time access grant to a fan post.

    UNIQUE(client_id, fan_post_id) makes a second unlock of the same post
    fail at the database instead of charging twice.
    """
    __tablename__ = "fan_post_unlocks"
    __table_args__ = (
        db.UniqueConstraint("client_id", "fan_post_id", name="uq_fan_post_unlocks_client_post"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    fan_post_id = db.Column(db.Integer, db.ForeignKey("fan_posts.id"), nullable=False, index=True)
    credits_spent = db.Column(db.Integer, nullable=False)
    debit_transaction_id = db.Column(db.Integer, db.ForeignKey("credit_transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    fan_post = db.relationship("FanPost", backref=db.backref("unlocks", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "fan_post_id": self.fan_post_id,
            "credits_spent": self.credits_spent,
            "debit_transaction_id": self.debit_transaction_id,
            "created_at": to_utc_z(self.created_at),
        }
