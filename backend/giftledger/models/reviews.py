from __future__ import annotations

from ..extensions import db
from giftledger.time_utils import to_utc_z


INTERACTION_LIKE = "like"
INTERACTION_DISLIKE = "dislike"

VALID_INTERACTIONS = (INTERACTION_LIKE, INTERACTION_DISLIKE)


class Review(db.Model):
    """
    Client review of a profile.

    `likes` / `dislikes` are denormalized from review_interactions and are
    rewritten from a recount whenever an interaction changes.
    """
    __tablename__ = "reviews"
    __table_args__ = (
        db.UniqueConstraint("author_id", "profile_id", name="uq_reviews_author_profile"),
        db.CheckConstraint("rating >= 1 AND rating <= 10", name="ck_reviews_rating_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)

    rating = db.Column(db.Integer, nullable=False)
    positives = db.Column(db.JSON, nullable=False, default=list)
    negatives = db.Column(db.JSON, nullable=False, default=list)

    likes = db.Column(db.Integer, nullable=False, default=0)
    dislikes = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    author = db.relationship("User")
    profile = db.relationship("Profile", backref=db.backref("reviews", lazy=True))
    reply = db.relationship("ReviewReply", uselist=False, back_populates="review", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author_id": self.author_id,
            "profile_id": self.profile_id,
            "rating": self.rating,
            "positives": list(self.positives or []),
            "negatives": list(self.negatives or []),
            "likes": self.likes,
            "dislikes": self.dislikes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "reply": self.reply.to_dict() if self.reply else None,
        }


class ReviewInteraction(db.Model):
    """One like or dislike per (review, user)."""
    __tablename__ = "review_interactions"
    __table_args__ = (
        db.UniqueConstraint("review_id", "user_id", name="uq_review_interactions_review_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(db.Integer, db.ForeignKey("reviews.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    interaction_type = db.Column(db.String(16), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class ReviewReply(db.Model):
    """The reviewed profile owner's public answer; at most one per review."""
    __tablename__ = "review_replies"
    __table_args__ = (
        db.UniqueConstraint("review_id", name="uq_review_replies_review"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(db.Integer, db.ForeignKey("reviews.id"), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    review = db.relationship("Review", back_populates="reply")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_id": self.review_id,
            "author_id": self.author_id,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
