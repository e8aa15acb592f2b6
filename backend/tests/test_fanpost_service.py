import pytest

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from giftledger.extensions import db
from giftledger.models import CreditTransaction, FanPostUnlock
from giftledger.services import credit_service, fanpost_service
from giftledger.services.errors import (
    AlreadyUnlockedError,
    InsufficientCreditsError,
    NotFoundError,
    StorageError,
    ValidationError,
)


def test_unlock_charges_once(make_user, lady, make_fan_post, db_session):
    client = make_user(credits=15)
    post = make_fan_post(lady, credits_cost=15)

    unlock = fanpost_service.unlock_post(client.id, post.id)

    assert unlock.credits_spent == 15
    assert credit_service.get_balance(client.id) == 0
    assert db_session.query(FanPostUnlock).filter_by(client_id=client.id).count() == 1
    debit = db_session.get(CreditTransaction, unlock.debit_transaction_id)
    assert debit.kind == credit_service.KIND_FANPOST
    assert debit.reference_id == str(post.id)

    with pytest.raises(AlreadyUnlockedError):
        fanpost_service.unlock_post(client.id, post.id)

    assert credit_service.get_balance(client.id) == 0
    assert db_session.query(FanPostUnlock).filter_by(client_id=client.id).count() == 1


def test_insufficient_credits_creates_nothing(make_user, lady, make_fan_post, db_session):
    client = make_user(credits=14)
    post = make_fan_post(lady, credits_cost=15)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        fanpost_service.unlock_post(client.id, post.id)

    assert exc_info.value.required == 15
    assert exc_info.value.available == 14
    assert credit_service.get_balance(client.id) == 14
    assert not fanpost_service.is_unlocked(client.id, post.id)


def test_free_post_unlocks_without_ledger_row(make_user, lady, make_fan_post, db_session):
    client = make_user()
    post = make_fan_post(lady, credits_cost=0)

    unlock = fanpost_service.unlock_post(client.id, post.id)

    assert unlock.debit_transaction_id is None
    assert db_session.query(CreditTransaction).filter_by(user_id=client.id).count() == 0
    assert fanpost_service.list_unlocked_post_ids(client.id) == [post.id]


def test_unknown_post(client_user):
    with pytest.raises(NotFoundError):
        fanpost_service.unlock_post(client_user.id, 4242)


def test_author_cannot_unlock_own_post(lady, make_fan_post):
    post = make_fan_post(lady)
    with pytest.raises(ValidationError):
        fanpost_service.unlock_post(lady.id, post.id)


def test_author_earnings(make_user, lady, make_fan_post):
    post_a = make_fan_post(lady, credits_cost=15)
    post_b = make_fan_post(lady, credits_cost=5, title="Outtakes")
    for _ in range(2):
        client = make_user(credits=20)
        fanpost_service.unlock_post(client.id, post_a.id)
        fanpost_service.unlock_post(client.id, post_b.id)

    assert fanpost_service.author_earnings(lady.id) == {"unlocks": 4, "credits": 40}
    # Unlock payments are not transferred to the author
    assert credit_service.get_balance(lady.id) == 0


def _fail_unlock_insert(monkeypatch, exc):
    """Let the debit flush through, then fail the unlock insert."""
    real_flush = db.session.flush
    calls = {"n": 0}

    def _flush(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise exc
        return real_flush(*args, **kwargs)

    monkeypatch.setattr(db.session, "flush", _flush)


def test_storage_failure_after_debit_charges_nothing(make_user, lady, make_fan_post, db_session, monkeypatch):
    client = make_user(credits=20)
    post = make_fan_post(lady, credits_cost=15)
    _fail_unlock_insert(monkeypatch, SQLAlchemyError("disk full"))

    with pytest.raises(StorageError):
        fanpost_service.unlock_post(client.id, post.id)

    monkeypatch.undo()
    assert credit_service.get_balance(client.id) == 20
    assert not fanpost_service.is_unlocked(client.id, post.id)
    assert db_session.query(CreditTransaction).filter_by(user_id=client.id).count() == 1
    assert credit_service.reconcile_user(client.id)["drift"] == 0


def test_constraint_failure_without_unlock_is_storage_error(make_user, lady, make_fan_post, db_session, monkeypatch):
    client = make_user(credits=20)
    post = make_fan_post(lady, credits_cost=15)
    _fail_unlock_insert(monkeypatch, IntegrityError("INSERT INTO fan_post_unlocks", {}, Exception("FOREIGN KEY constraint failed")))

    with pytest.raises(StorageError):
        fanpost_service.unlock_post(client.id, post.id)

    monkeypatch.undo()
    assert credit_service.get_balance(client.id) == 20
    assert not fanpost_service.is_unlocked(client.id, post.id)


def test_concurrent_unlock_loses_without_charge(make_user, lady, make_fan_post, db_session, monkeypatch):
    client = make_user(credits=20)
    post = make_fan_post(lady, credits_cost=15)
    real_is_unlocked = fanpost_service.is_unlocked
    calls = {"n": 0}

    def _is_unlocked(client_id, post_id):
        calls["n"] += 1
        if calls["n"] == 1:
            # Another request commits its unlock right after our check
            db_session.add(FanPostUnlock(client_id=client_id, fan_post_id=post_id, credits_spent=15))
            db_session.commit()
            return False
        return real_is_unlocked(client_id, post_id)

    monkeypatch.setattr(fanpost_service, "is_unlocked", _is_unlocked)

    with pytest.raises(AlreadyUnlockedError):
        fanpost_service.unlock_post(client.id, post.id)

    assert credit_service.get_balance(client.id) == 20
    assert db_session.query(FanPostUnlock).filter_by(client_id=client.id).count() == 1
    assert db_session.query(CreditTransaction).filter_by(user_id=client.id).count() == 1
