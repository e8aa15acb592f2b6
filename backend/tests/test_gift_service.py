"""
Gift sending, collection and reply thread tests.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from giftledger.models import CreditTransaction, Gift, Notification
from giftledger.models.gifts import GIFT_STATUS_COLLECTED
from giftledger.services import credit_service, gift_service
from giftledger.services.errors import (
    ConflictError,
    InsufficientCreditsError,
    NotFoundError,
    RecipientNotFoundError,
    UnauthorizedError,
    ValidationError,
)


class TestSendGift:

    def test_partial_success_when_balance_runs_out(self, make_user, lady, gift_types, db_session):
        sender = make_user(credits=30)

        result = gift_service.send_gift(
            sender.id, "Alice", [{"kind": "heart", "credits": 10}, {"kind": "star", "credits": 25}]
        )

        assert [line.status for line in result.lines] == ["succeeded", "failed"]
        assert isinstance(result.lines[1].error, InsufficientCreditsError)
        assert result.balance == 20
        assert credit_service.get_balance(sender.id) == 20
        assert db_session.query(Gift).filter_by(sender_id=sender.id).count() == 1

    def test_gift_recorded_with_debit(self, client_user, lady, gift_types, db_session):
        result = gift_service.send_gift(client_user.id, "alice", [{"kind": "rose"}], message="Hi!")

        gift = result.lines[0].gift
        assert gift.recipient_id == lady.id
        assert gift.credits_cost == 5
        assert gift.message == "Hi!"
        debit = db_session.get(CreditTransaction, gift.debit_transaction_id)
        assert debit.amount == -5
        assert debit.kind == credit_service.KIND_GIFT
        assert db_session.query(Notification).filter_by(user_id=lady.id, type="gift").count() == 1

    def test_failure_after_debit_rolls_back_debit(self, client_user, lady, gift_types, db_session, monkeypatch):
        def _boom(**fields):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(gift_service, "_create_gift_record", _boom)

        result = gift_service.send_gift(client_user.id, "Alice", [{"kind": "crown"}])

        assert result.lines[0].status == "failed"
        assert result.lines[0].error.code == "STORAGE_ERROR"
        assert credit_service.get_balance(client_user.id) == 100
        assert db_session.query(Gift).count() == 0
        assert db_session.query(CreditTransaction).filter_by(kind="gift").count() == 0

    def test_balance_below_cheapest_line(self, make_user, lady, gift_types):
        sender = make_user(credits=4)
        with pytest.raises(InsufficientCreditsError):
            gift_service.send_gift(sender.id, "Alice", [{"kind": "rose"}, {"kind": "heart"}])
        assert credit_service.get_balance(sender.id) == 4

    def test_unknown_recipient(self, client_user, gift_types):
        with pytest.raises(RecipientNotFoundError):
            gift_service.send_gift(client_user.id, "Nobody", [{"kind": "rose"}])
        assert credit_service.get_balance(client_user.id) == 100

    def test_inactive_profile_is_not_a_recipient(self, client_user, lady_profile, gift_types, db_session):
        lady_profile.is_active = False
        db_session.commit()
        with pytest.raises(RecipientNotFoundError):
            gift_service.send_gift(client_user.id, "Alice", [{"kind": "rose"}])

    def test_cannot_gift_yourself(self, lady, gift_types):
        with pytest.raises(ValidationError):
            gift_service.send_gift(lady.id, "Alice", [{"kind": "rose"}])

    @pytest.mark.parametrize(
        "lines",
        [
            [],
            [{"kind": "unicorn"}],
            [{"kind": "rose", "credits": 1}],
            [{"kind": "rose", "credits": "5"}],
        ],
    )
    def test_invalid_lines(self, client_user, lady, gift_types, lines):
        with pytest.raises(ValidationError):
            gift_service.send_gift(client_user.id, "Alice", lines)
        assert credit_service.get_balance(client_user.id) == 100

    def test_recent_feed(self, client_user, lady, gift_types):
        gift_service.send_gift(client_user.id, "Alice", [{"kind": "rose"}, {"kind": "crown"}])
        feed = gift_service.recent_gifts_received("ALICE")
        assert [item["gift_type"] for item in feed] == ["crown", "rose"]
        assert feed[0]["sender"] == client_user.username
        assert gift_service.recent_gifts_received("ghost") == []


class TestCollect:

    def _send(self, sender):
        return gift_service.send_gift(sender.id, "Alice", [{"kind": "rose"}]).lines[0].gift

    def test_recipient_collects_once(self, client_user, lady, gift_types):
        gift = self._send(client_user)

        collected = gift_service.collect_gift(gift.id, lady.id)
        assert collected.status == GIFT_STATUS_COLLECTED
        assert collected.collected_at is not None

        with pytest.raises(ConflictError):
            gift_service.collect_gift(gift.id, lady.id)

    def test_sender_cannot_collect(self, client_user, lady, gift_types):
        gift = self._send(client_user)
        with pytest.raises(UnauthorizedError):
            gift_service.collect_gift(gift.id, client_user.id)

    def test_collect_moves_no_credits(self, client_user, lady, gift_types):
        gift = self._send(client_user)
        gift_service.collect_gift(gift.id, lady.id)
        assert credit_service.get_balance(lady.id) == 0
        assert credit_service.get_balance(client_user.id) == 95

    def test_list_received_by_status(self, client_user, lady, gift_types):
        first = self._send(client_user)
        self._send(client_user)
        gift_service.collect_gift(first.id, lady.id)

        assert len(gift_service.list_received(lady.id)) == 2
        assert [g.id for g in gift_service.list_received(lady.id, status="collected")] == [first.id]
        with pytest.raises(ValidationError):
            gift_service.list_received(lady.id, status="lost")


class TestReplies:

    @pytest.fixture
    def gift(self, client_user, lady, gift_types):
        return gift_service.send_gift(client_user.id, "Alice", [{"kind": "rose"}]).lines[0].gift

    def test_recipient_opens_thread(self, gift, client_user, lady):
        with pytest.raises(UnauthorizedError):
            gift_service.send_reply(gift.id, client_user.id, "Did you like it?")

        gift_service.send_reply(gift.id, lady.id, "Thank you!")
        gift_service.send_reply(gift.id, client_user.id, "You're welcome")

        replies = gift_service.list_replies(gift.id, client_user.id)
        assert [r.message for r in replies] == ["Thank you!", "You're welcome"]
        assert replies[0].to_dict()["sender_name"] == lady.username

    def test_outsiders_cannot_read_thread(self, gift, make_user):
        stranger = make_user()
        with pytest.raises(UnauthorizedError):
            gift_service.list_replies(gift.id, stranger.id)

    def test_edit_and_delete_own_reply(self, gift, client_user, lady):
        reply = gift_service.send_reply(gift.id, lady.id, "Thanks")

        with pytest.raises(UnauthorizedError):
            gift_service.update_reply(reply.id, client_user.id, "Hijack")

        updated = gift_service.update_reply(reply.id, lady.id, "Thanks a lot")
        assert updated.message == "Thanks a lot"

        gift_service.delete_reply(reply.id, lady.id)
        with pytest.raises(NotFoundError):
            gift_service.delete_reply(reply.id, lady.id)

    def test_empty_reply_rejected(self, gift, lady):
        with pytest.raises(ValidationError):
            gift_service.send_reply(gift.id, lady.id, "   ")
