from __future__ import annotations

from ..extensions import db
from giftledger.time_utils import to_utc_z


PROFILE_KIND_LADY = "lady"
PROFILE_KIND_CLUB = "club"

BOOKING_STATUS_PENDING = "pending"
BOOKING_STATUS_CONFIRMED = "confirmed"
BOOKING_STATUS_COMPLETED = "completed"
BOOKING_STATUS_CANCELLED = "cancelled"


class Profile(db.Model):
    """
    Directory listing owned by a lady or club account.

    The profile name is the public handle gifts are addressed to; lookups
    match it case-insensitively.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_profiles_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default=PROFILE_KIND_LADY)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("profiles", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "kind": self.kind,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Booking(db.Model):
    """
    Client booking of a profile.

    A completed booking is the relationship that lets a client review the
    profile and like/dislike its reviews.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_client_profile_status", "client_id", "profile_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=BOOKING_STATUS_PENDING)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    client = db.relationship("User", backref=db.backref("bookings", lazy=True))
    profile = db.relationship("Profile", backref=db.backref("bookings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "profile_id": self.profile_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
