from __future__ import annotations

from ..extensions import db
from giftledger.time_utils import to_utc_z


class CreditTransaction(db.Model):
    """
    Append-only credit ledger.

    TRANSACTION KINDS:
    - purchase: Credits bought with a package (positive)
    - spend: Generic spend (negative)
    - gift: Gift sent to a profile (negative)
    - fanpost: Fan post unlocked (negative)
    - refund: Credits returned for an earlier negative row (positive)

    IMMUTABLE: Records are never updated or deleted. For any user the sum of
    `amount` equals users.credits, and `balance_after` is the balance
    immediately after the row was applied.
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.UniqueConstraint("idempotency_key", name="uq_credit_txns_idempotency_key"),
        db.UniqueConstraint("refunds_transaction_id", name="uq_credit_txns_refunds"),
        db.Index("ix_credit_txns_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)  # Positive for credit, negative for debit
    kind = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False, default="")
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    balance_after = db.Column(db.Integer, nullable=False)

    idempotency_key = db.Column(db.String(128), nullable=True)
    refunds_transaction_id = db.Column(db.Integer, db.ForeignKey("credit_transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("credit_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "kind": self.kind,
            "description": self.description,
            "reference_id": self.reference_id,
            "balance_after": self.balance_after,
            "refunds_transaction_id": self.refunds_transaction_id,
            "created_at": to_utc_z(self.created_at),
        }
