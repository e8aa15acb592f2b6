# Overview: Service-layer operations for the credit ledger; encapsulates business logic and database work.

"""
Credit Ledger Service

WHY: Credits are the platform's only shared mutable resource. Every feature
that moves credits (purchases, gifts, fan post unlocks, refunds) goes
through apply_transaction, which is the single writer of users.credits.

LEDGER INVARIANTS:
- users.credits is never negative (conditional UPDATE plus a CHECK constraint)
- Every balance change appends exactly one credit_transactions row in the
  same database transaction; the row is never updated or deleted
- For every user, SUM(credit_transactions.amount) == users.credits
- A transaction with an idempotency key is applied at most once
- A debit is refunded at most once
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import CreditTransaction, User
from giftledger.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    ConflictError,
    InsufficientCreditsError,
    LedgerError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from . import notification_service


# =============================================================================
# TRANSACTION KINDS (CONSTANTS)
# =============================================================================

KIND_PURCHASE = "purchase"
KIND_SPEND = "spend"
KIND_GIFT = "gift"
KIND_FANPOST = "fanpost"
KIND_REFUND = "refund"

VALID_KINDS = [
    KIND_PURCHASE,
    KIND_SPEND,
    KIND_GIFT,
    KIND_FANPOST,
    KIND_REFUND,
]

# Kinds that may only move credits in one direction
CREDIT_ONLY_KINDS = {KIND_PURCHASE, KIND_REFUND}
DEBIT_ONLY_KINDS = {KIND_SPEND, KIND_GIFT, KIND_FANPOST}


# =============================================================================
# CREDIT PACKAGES
# =============================================================================

CREDIT_PACKAGES = {
    "lite": {"name": "Lite", "credits": 25, "price_eur": 5, "bonus": 0},
    "lite-plus": {"name": "Lite+", "credits": 50, "price_eur": 10, "bonus": 0},
    "popular": {"name": "Popular", "credits": 125, "price_eur": 25, "bonus": 10, "popular": True},
    "power": {"name": "Power", "credits": 250, "price_eur": 50, "bonus": 25},
    "pro": {"name": "Pro", "credits": 500, "price_eur": 100, "bonus": 50},
    "ultra": {"name": "Ultra", "credits": 1250, "price_eur": 250, "bonus": 100},
}


def list_credit_packages() -> list[dict]:
    return [
        {"id": package_id, **package}
        for package_id, package in sorted(CREDIT_PACKAGES.items(), key=lambda item: item[1]["price_eur"])
    ]


# =============================================================================
# BALANCE
# =============================================================================

def get_balance(user_id: int) -> int:
    """
    Current credit balance of a user, read straight from the database.

    Raises:
        NotFoundError: If the user does not exist
    """
    balance = db.session.query(User.credits).filter(User.id == user_id).scalar()
    if balance is None:
        raise NotFoundError(f"User {user_id} not found")
    return balance


def check_balance(user_id: int, required: int) -> dict:
    """Advisory balance check for UI pre-validation (never authoritative)."""
    current = get_balance(user_id)
    has_enough = current >= required
    return {
        "has_enough": has_enough,
        "current_balance": current,
        "shortfall": 0 if has_enough else required - current,
    }


# =============================================================================
# TRANSACTION RECORDER
# =============================================================================

def apply_transaction(
    user_id: int,
    amount: int,
    kind: str,
    description: str = "",
    reference_id: str | None = None,
    *,
    idempotency_key: str | None = None,
    refunds_transaction_id: int | None = None,
    commit: bool = True,
) -> CreditTransaction:
    """
    Atomically adjust a user's balance and append one ledger row.

    WHY: The balance update is a single conditional UPDATE
    (credits = credits + amount WHERE credits + amount >= 0) on a locked row,
    so concurrent spends serialize in the database and cannot race past zero.

    Args:
        user_id: Account whose balance changes
        amount: Signed credit delta (negative for debits)
        kind: purchase, spend, gift, fanpost, refund
        description: Statement text
        reference_id: Entity the transaction pays for (fan post id, ...)
        idempotency_key: Apply at most once per key; repeats return the original row
        refunds_transaction_id: Ledger row this refund reverses
        commit: False when the caller composes this debit with its own writes
            into one unit of work and commits (or rolls back) itself

    Returns:
        CreditTransaction row (flushed; committed when commit=True)

    Raises:
        ValidationError: Unknown kind, zero amount or wrong sign for the kind
        NotFoundError: User does not exist
        InsufficientCreditsError: A debit would make the balance negative
        ConflictError: Idempotency key already used by another user
        StorageError: Database failure (nothing was applied)
    """
    _validate_transaction(amount, kind)

    if not commit:
        return _apply_transaction_locked(
            user_id, amount, kind, description, reference_id,
            idempotency_key=idempotency_key,
            refunds_transaction_id=refunds_transaction_id,
        )

    def _op():
        tx = _apply_transaction_locked(
            user_id, amount, kind, description, reference_id,
            idempotency_key=idempotency_key,
            refunds_transaction_id=refunds_transaction_id,
        )
        db.session.commit()
        return tx

    try:
        return run_with_retry(_op)
    except LedgerError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if idempotency_key:
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                if existing.user_id != user_id:
                    raise ConflictError("Idempotency key already used for another account") from exc
                return existing
        if refunds_transaction_id is not None:
            raise ConflictError(f"Transaction {refunds_transaction_id} has already been refunded") from exc
        raise StorageError("Credit transaction could not be recorded") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Credit transaction failed for user %s", user_id)
        raise StorageError("Credit transaction could not be recorded") from exc


def _validate_transaction(amount: int, kind: str) -> None:
    if kind not in VALID_KINDS:
        raise ValidationError(f"Invalid transaction kind: {kind}. Must be one of {VALID_KINDS}")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Transaction amount must be an integer")
    if amount == 0:
        raise ValidationError("Transaction amount must not be zero")
    if kind in CREDIT_ONLY_KINDS and amount < 0:
        raise ValidationError(f"A {kind} transaction must add credits")
    if kind in DEBIT_ONLY_KINDS and amount > 0:
        raise ValidationError(f"A {kind} transaction must remove credits")


def _find_by_idempotency_key(idempotency_key: str) -> CreditTransaction | None:
    return db.session.query(CreditTransaction).filter_by(idempotency_key=idempotency_key).first()


def _apply_transaction_locked(
    user_id: int,
    amount: int,
    kind: str,
    description: str,
    reference_id: str | None,
    *,
    idempotency_key: str | None,
    refunds_transaction_id: int | None,
) -> CreditTransaction:
    """Balance update + ledger append inside the caller's transaction (no commit)."""
    if idempotency_key:
        existing = _find_by_idempotency_key(idempotency_key)
        if existing is not None:
            if existing.user_id != user_id:
                raise ConflictError("Idempotency key already used for another account")
            return existing

    user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
    if not user:
        raise NotFoundError(f"User {user_id} not found")

    result = db.session.execute(
        update(User)
        .where(User.id == user_id, User.credits + amount >= 0)
        .values(credits=User.credits + amount)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(user, ["credits"])

    if result.rowcount == 0:
        available = get_balance(user_id)
        raise InsufficientCreditsError(
            f"Insufficient credits. You need {-amount} credits but only have {available}.",
            required=-amount,
            available=available,
        )

    tx = CreditTransaction(
        user_id=user_id,
        amount=amount,
        kind=kind,
        description=(description or "")[:255],
        reference_id=str(reference_id) if reference_id is not None else None,
        balance_after=get_balance(user_id),
        idempotency_key=idempotency_key,
        refunds_transaction_id=refunds_transaction_id,
        created_at=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()  # ensures tx.id is assigned without committing

    current_app.logger.info(
        "Credit transaction %s: user=%s kind=%s amount=%s balance_after=%s",
        tx.id, user_id, kind, amount, tx.balance_after,
    )
    return tx


# =============================================================================
# PURCHASES, SPENDS, REFUNDS
# =============================================================================

def purchase_credits(
    user_id: int,
    packages: list[dict],
    idempotency_key: str | None = None,
) -> dict:
    """
    Credit the user with one or more credit packages.

    Args:
        packages: [{"id": "popular", "quantity": 2}, ...]
        idempotency_key: Payment reference; a replayed purchase credits once

    Returns:
        {"transaction": ..., "credits": int, "cost_eur": float, "balance": int,
         "replayed": bool}

    Raises:
        ValidationError: Unknown package or bad quantity
        ConflictError: Idempotency key already used for a different purchase
    """
    if not packages or not isinstance(packages, list):
        raise ValidationError("At least one credit package is required")

    total_credits = 0
    total_cost = 0
    for line in packages:
        if not isinstance(line, dict):
            raise ValidationError("Each package must be an object with an id")
        package_id = line.get("id")
        package = CREDIT_PACKAGES.get(package_id) if isinstance(package_id, str) else None
        if package is None:
            raise ValidationError(f"Unknown credit package: {package_id}")
        quantity = line.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Package quantity must be a positive integer")
        total_credits += (package["credits"] + package.get("bonus", 0)) * quantity
        total_cost += package["price_eur"] * quantity

    replayed = False
    if idempotency_key:
        existing = _find_by_idempotency_key(idempotency_key)
        if existing is not None:
            if existing.user_id != user_id:
                raise ConflictError("Idempotency key already used for another account")
            replayed = True

    tx = apply_transaction(
        user_id,
        total_credits,
        KIND_PURCHASE,
        f"Credit purchase: €{total_cost:.2f} for {total_credits} credits",
        idempotency_key=idempotency_key,
    )

    # A replayed key returns the stored row; it must describe this same purchase
    if tx.kind != KIND_PURCHASE or tx.amount != total_credits:
        raise ConflictError("Idempotency key already used for a different purchase")

    if not replayed:
        notification_service.log_activity(user_id, "purchase", target_id=tx.id, target_name=f"{total_credits} credits")

    return {
        "transaction": tx.to_dict(),
        "credits": tx.amount,
        "cost_eur": float(total_cost),
        "balance": get_balance(user_id),
        "replayed": replayed,
    }


def spend_credits(user_id: int, amount: int, description: str, reference_id: str | None = None) -> CreditTransaction:
    """Generic debit for features without their own orchestrator."""
    if amount <= 0:
        raise ValidationError("Spend amount must be positive")
    return apply_transaction(user_id, -amount, KIND_SPEND, description, reference_id)


def refund_transaction(transaction_id: int, actor_user_id: int, reason: str) -> CreditTransaction:
    """
    Return the credits of an earlier debit to its owner.

    WHY: Support corrections without touching the immutable ledger: the
    refund is a new positive row pointing at the debit it reverses.

    Raises:
        UnauthorizedError: Actor is not an admin
        NotFoundError: Transaction does not exist
        ValidationError: Transaction is not a debit
        ConflictError: Transaction was already refunded
    """
    actor = db.session.get(User, actor_user_id)
    if not actor or not actor.is_admin:
        raise UnauthorizedError("Only administrators can refund transactions")

    original = db.session.get(CreditTransaction, transaction_id)
    if not original:
        raise NotFoundError(f"Transaction {transaction_id} not found")

    if original.amount >= 0 or original.kind == KIND_REFUND:
        raise ValidationError("Only debit transactions can be refunded")

    already = db.session.query(CreditTransaction.id).filter_by(refunds_transaction_id=original.id).first()
    if already:
        raise ConflictError(f"Transaction {transaction_id} has already been refunded")

    reason = (reason or "").strip() or "Refund"
    return apply_transaction(
        original.user_id,
        -original.amount,
        KIND_REFUND,
        f"Refund: {reason}",
        reference_id=str(original.id),
        refunds_transaction_id=original.id,
    )


# =============================================================================
# STATEMENTS & RECONCILIATION
# =============================================================================

def list_transactions(
    user_id: int,
    limit: int = 50,
    kind: str | None = None,
    before_id: int | None = None,
) -> tuple[list[CreditTransaction], int | None]:
    """
    Statement rows for a user, newest first.

    Returns:
        (rows, next_cursor) where next_cursor is the id to pass as before_id
    """
    limit = max(1, min(limit, 200))

    q = db.session.query(CreditTransaction).filter(CreditTransaction.user_id == user_id)
    if kind:
        if kind not in VALID_KINDS:
            raise ValidationError(f"Invalid transaction kind: {kind}")
        q = q.filter(CreditTransaction.kind == kind)
    if before_id is not None:
        q = q.filter(CreditTransaction.id < before_id)

    rows = q.order_by(CreditTransaction.id.desc()).limit(limit + 1).all()
    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        next_cursor = rows[-1].id
    return rows, next_cursor


def reconcile_user(user_id: int) -> dict:
    """Compare the stored balance with the sum of the user's ledger rows."""
    balance = get_balance(user_id)
    ledger_sum = (
        db.session.query(func.coalesce(func.sum(CreditTransaction.amount), 0))
        .filter(CreditTransaction.user_id == user_id)
        .scalar()
    )
    return {
        "user_id": user_id,
        "balance": balance,
        "ledger_sum": int(ledger_sum),
        "drift": balance - int(ledger_sum),
    }


def find_drift() -> list[dict]:
    """All users whose balance does not reconcile with their ledger."""
    sums = (
        db.session.query(
            CreditTransaction.user_id.label("user_id"),
            func.sum(CreditTransaction.amount).label("ledger_sum"),
        )
        .group_by(CreditTransaction.user_id)
        .subquery()
    )
    rows = (
        db.session.query(User.id, User.username, User.credits, func.coalesce(sums.c.ledger_sum, 0))
        .outerjoin(sums, sums.c.user_id == User.id)
        .filter(User.credits != func.coalesce(sums.c.ledger_sum, 0))
        .order_by(User.id)
        .all()
    )
    return [
        {
            "user_id": user_id,
            "username": username,
            "balance": balance,
            "ledger_sum": int(ledger_sum),
            "drift": balance - int(ledger_sum),
        }
        for user_id, username, balance, ledger_sum in rows
    ]
