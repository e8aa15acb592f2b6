"""
API tests.

Verifies:
- Protected endpoints return 401 without a token
- Service errors map to their HTTP status and code
- Register/login/logout flow
- Main route surface for credits, gifts, fan posts, reviews and dashboard
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from giftledger.services import credit_service, gift_service


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/credits/balance"),
            ("GET", "/api/credits/transactions"),
            ("POST", "/api/credits/purchase"),
            ("POST", "/api/credits/transactions/1/refund"),
            ("POST", "/api/gifts"),
            ("GET", "/api/gifts/received"),
            ("POST", "/api/gifts/1/collect"),
            ("POST", "/api/fanposts/1/unlock"),
            ("POST", "/api/reviews"),
            ("PUT", "/api/reviews/1/interaction"),
            ("GET", "/api/dashboard/stats"),
            ("GET", "/api/notifications"),
            ("POST", "/api/notifications/read-all"),
            ("POST", "/api/reviews/1/reply"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "UNAUTHENTICATED"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/credits/balance", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# =============================================================================
# AUTH FLOW
# =============================================================================


class TestAuthFlow:

    def test_register_login_logout(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "bob",
            "email": "bob@example.com",
            "password": "Password123!",
        })
        assert resp.status_code == 201
        assert resp.get_json()["user"]["credits"] == 0

        resp = client.post("/api/auth/login", json={"username": "bob", "password": "Password123!"})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.get_json()['token']}"}

        assert client.get("/api/auth/me", headers=headers).get_json()["user"]["username"] == "bob"
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_register_lady_creates_profile(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "clara",
            "email": "clara@example.com",
            "password": "Password123!",
            "role": "lady",
            "profile_name": "Clara",
        })
        assert resp.status_code == 201

    def test_weak_password(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "weak",
            "email": "weak@example.com",
            "password": "password",
        })
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_duplicate_username(self, client, client_user):
        resp = client.post("/api/auth/register", json={
            "username": client_user.username,
            "email": "other@example.com",
            "password": "Password123!",
        })
        assert resp.status_code == 409

    def test_admin_cannot_self_register(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "root",
            "email": "root@example.com",
            "password": "Password123!",
            "role": "admin",
        })
        assert resp.status_code == 403

    def test_bad_credentials(self, client, client_user):
        resp = client.post("/api/auth/login", json={"username": client_user.username, "password": "Wrong123!"})
        assert resp.status_code == 401


# =============================================================================
# CREDITS
# =============================================================================


class TestCreditRoutes:

    def test_balance_and_statement(self, client, client_user, login):
        headers = login(client_user)

        resp = client.get("/api/credits/balance", headers=headers)
        assert resp.get_json()["balance"] == 100

        resp = client.get("/api/credits/transactions?limit=10", headers=headers)
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["items"][0]["amount"] == 100
        assert body["next_cursor"] is None

    def test_purchase_with_idempotency_key(self, client, client_user, login):
        headers = dict(login(client_user), **{"Idempotency-Key": "order-77"})
        payload = {"packages": [{"id": "lite", "quantity": 1}]}

        first = client.post("/api/credits/purchase", json=payload, headers=headers)
        second = client.post("/api/credits/purchase", json=payload, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.get_json()["balance"] == 125
        assert second.get_json()["replayed"] is True

        resp = client.post("/api/credits/purchase", json={"packages": [{"id": "ultra"}]}, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "CONFLICT"
        assert client.get("/api/credits/balance", headers=headers).get_json()["balance"] == 125

    @pytest.mark.parametrize("packages", [["lite"], [{"id": 7}], "lite", [{"id": ["lite"]}]])
    def test_malformed_packages_rejected(self, client, client_user, login, packages):
        resp = client.post("/api/credits/purchase", json={"packages": packages}, headers=login(client_user))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_refund_requires_admin(self, client, client_user, admin_user, login):
        debit = credit_service.spend_credits(client_user.id, 10, "Spend")

        resp = client.post(f"/api/credits/transactions/{debit.id}/refund", json={}, headers=login(client_user))
        assert resp.status_code == 403

        admin_headers = login(admin_user)
        resp = client.post(
            f"/api/credits/transactions/{debit.id}/refund",
            json={"reason": "Support ticket"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["amount"] == 10

        resp = client.post(f"/api/credits/transactions/{debit.id}/refund", json={}, headers=admin_headers)
        assert resp.status_code == 409

    def test_check_balance(self, client, client_user, login):
        headers = login(client_user)
        body = client.get("/api/credits/check?required=130", headers=headers).get_json()
        assert body == {"has_enough": False, "current_balance": 100, "shortfall": 30}
        assert client.get("/api/credits/check", headers=headers).status_code == 400

    def test_reconcile(self, client, client_user, login):
        resp = client.get("/api/credits/reconcile", headers=login(client_user))
        assert resp.get_json()["drift"] == 0


# =============================================================================
# GIFTS
# =============================================================================


class TestGiftRoutes:

    def test_send_partial_success(self, client, make_user, lady, gift_types, login):
        sender = make_user(credits=30)
        resp = client.post("/api/gifts", json={
            "recipient": "Alice",
            "gifts": [{"kind": "heart", "credits": 10}, {"kind": "star", "credits": 25}],
        }, headers=login(sender))

        body = resp.get_json()
        assert resp.status_code == 201
        assert body["succeeded"] == 1
        assert body["failed"] == 1
        assert body["lines"][1]["code"] == "INSUFFICIENT_CREDITS"
        assert body["balance"] == 20

    def test_all_lines_failed_returns_first_error(self, client, client_user, lady, gift_types, login, monkeypatch):
        def _boom(**fields):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(gift_service, "_create_gift_record", _boom)

        resp = client.post("/api/gifts", json={
            "recipient": "Alice",
            "gifts": [{"kind": "rose"}, {"kind": "heart"}],
        }, headers=login(client_user))

        body = resp.get_json()
        assert resp.status_code == 500
        assert body["code"] == "STORAGE_ERROR"
        assert body["failed"] == 2
        assert body["balance"] == 100

    def test_precheck_rejects_unaffordable_send(self, client, make_user, lady, gift_types, login):
        sender = make_user(credits=4)
        resp = client.post("/api/gifts", json={
            "recipient": "Alice",
            "gifts": [{"kind": "rose"}],
        }, headers=login(sender))
        assert resp.status_code == 402
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_CREDITS"
        assert body["available"] == 4

    @pytest.mark.parametrize("payload", [
        {"recipient": "Alice", "gifts": ["rose"]},
        {"recipient": "Alice", "gifts": [{"kind": 5}]},
        {"recipient": "Alice", "gifts": {"kind": "rose"}},
        {"recipient": ["Alice"], "gifts": [{"kind": "rose"}]},
        {"recipient": "Alice", "gifts": [{"kind": "rose"}], "message": 12},
    ])
    def test_malformed_send_is_rejected(self, client, client_user, lady, gift_types, login, payload):
        resp = client.post("/api/gifts", json=payload, headers=login(client_user))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"
        assert credit_service.get_balance(client_user.id) == 100

    def test_unknown_recipient(self, client, client_user, gift_types, login):
        resp = client.post("/api/gifts", json={
            "recipient": "Ghost",
            "gifts": [{"kind": "rose"}],
        }, headers=login(client_user))
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "RECIPIENT_NOT_FOUND"

    def test_collect_and_reply(self, client, client_user, lady, gift_types, login):
        sender_headers = login(client_user)
        lady_headers = login(lady)

        resp = client.post("/api/gifts", json={"recipient": "alice", "gifts": [{"kind": "rose"}]}, headers=sender_headers)
        gift_id = resp.get_json()["lines"][0]["gift"]["id"]

        resp = client.get("/api/gifts/received?status=pending", headers=lady_headers)
        assert [g["id"] for g in resp.get_json()["items"]] == [gift_id]

        assert client.post(f"/api/gifts/{gift_id}/collect", headers=sender_headers).status_code == 403
        assert client.post(f"/api/gifts/{gift_id}/collect", headers=lady_headers).status_code == 200
        assert client.post(f"/api/gifts/{gift_id}/collect", headers=lady_headers).status_code == 409

        resp = client.post(f"/api/gifts/{gift_id}/replies", json={"message": "Merci!"}, headers=lady_headers)
        assert resp.status_code == 201
        reply_id = resp.get_json()["reply"]["id"]

        resp = client.patch(f"/api/gifts/replies/{reply_id}", json={"message": "Thanks!"}, headers=lady_headers)
        assert resp.get_json()["reply"]["message"] == "Thanks!"

        resp = client.get(f"/api/gifts/{gift_id}/replies", headers=sender_headers)
        assert [r["message"] for r in resp.get_json()["items"]] == ["Thanks!"]

        assert client.delete(f"/api/gifts/replies/{reply_id}", headers=sender_headers).status_code == 403
        assert client.delete(f"/api/gifts/replies/{reply_id}", headers=lady_headers).status_code == 200

    def test_types_are_public(self, client, gift_types):
        resp = client.get("/api/gifts/types")
        assert resp.status_code == 200
        assert resp.get_json()["types"][0]["slug"] == "rose"


# =============================================================================
# FAN POSTS, REVIEWS, DASHBOARD
# =============================================================================


class TestFanPostRoutes:

    def test_unlock_then_conflict(self, client, make_user, lady, make_fan_post, login):
        buyer = make_user(credits=15)
        post = make_fan_post(lady, credits_cost=15)
        headers = login(buyer)

        resp = client.post(f"/api/fanposts/{post.id}/unlock", headers=headers)
        assert resp.status_code == 201
        assert resp.get_json()["balance"] == 0

        resp = client.post(f"/api/fanposts/{post.id}/unlock", headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ALREADY_UNLOCKED"

        resp = client.get("/api/fanposts/unlocked", headers=headers)
        assert resp.get_json()["post_ids"] == [post.id]


class TestReviewRoutes:

    def test_review_and_interactions(self, client, client_user, lady_profile, make_booking, login):
        make_booking(client_user, lady_profile)
        headers = login(client_user)

        resp = client.post("/api/reviews", json={"profile_id": lady_profile.id, "rating": 9}, headers=headers)
        assert resp.status_code == 201
        review_id = resp.get_json()["review"]["id"]

        resp = client.post("/api/reviews", json={"profile_id": lady_profile.id, "rating": 9}, headers=headers)
        assert resp.status_code == 409

        resp = client.put(f"/api/reviews/{review_id}/interaction", json={"interaction": "like"}, headers=headers)
        assert resp.get_json()["review"]["likes"] == 1

        resp = client.put(f"/api/reviews/{review_id}/interaction", json={"interaction": "dislike"}, headers=headers)
        assert (resp.get_json()["review"]["likes"], resp.get_json()["review"]["dislikes"]) == (0, 1)

        resp = client.get(f"/api/reviews/{review_id}/interaction", headers=headers)
        assert resp.get_json()["interaction"] == "dislike"

        resp = client.delete(f"/api/reviews/{review_id}/interaction", headers=headers)
        assert resp.get_json()["review"]["dislikes"] == 0

        assert client.delete(f"/api/reviews/{review_id}", headers=headers).status_code == 200

    def test_review_without_booking_is_forbidden(self, client, client_user, lady_profile, login):
        resp = client.post("/api/reviews", json={"profile_id": lady_profile.id, "rating": 5}, headers=login(client_user))
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "UNAUTHORIZED"


class TestDashboard:

    def test_client_and_recipient_stats(self, client, client_user, lady, gift_types, login):
        client.post("/api/gifts", json={"recipient": "Alice", "gifts": [{"kind": "kiss"}]}, headers=login(client_user))

        stats = client.get("/api/dashboard/stats", headers=login(client_user)).get_json()["stats"]
        assert stats["gifts_given"] == 1
        assert stats["credits_spent_on_gifts"] == 15
        assert stats["credits_remaining"] == 85

        stats = client.get("/api/dashboard/stats", headers=login(lady)).get_json()["stats"]
        assert stats["gifts_received"] == 1
        assert stats["gifts_pending"] == 1

        items = client.get("/api/dashboard/activity", headers=login(client_user)).get_json()["items"]
        assert items[0]["description"] == "Sent a gift to Alice"


class TestPublicEndpoints:

    def test_health(self, client, gift_types):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_health_degraded_without_catalog(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "degraded"


class TestReviewReplyRoutes:

    def test_owner_reply_shown_with_review(self, client, client_user, lady, lady_profile, make_booking, login):
        make_booking(client_user, lady_profile)
        client_headers = login(client_user)
        lady_headers = login(lady)

        review_id = client.post(
            "/api/reviews", json={"profile_id": lady_profile.id, "rating": 9}, headers=client_headers
        ).get_json()["review"]["id"]

        resp = client.post(f"/api/reviews/{review_id}/reply", json={"message": "Hi"}, headers=client_headers)
        assert resp.status_code == 403

        resp = client.post(f"/api/reviews/{review_id}/reply", json={"message": "Thank you!"}, headers=lady_headers)
        assert resp.status_code == 201
        reply_id = resp.get_json()["reply"]["id"]

        resp = client.post(f"/api/reviews/{review_id}/reply", json={"message": "Again"}, headers=lady_headers)
        assert resp.status_code == 409

        items = client.get(f"/api/reviews/profile/{lady_profile.id}").get_json()["items"]
        assert items[0]["reply"]["message"] == "Thank you!"

        resp = client.patch(f"/api/reviews/replies/{reply_id}", json={"message": "Thanks!"}, headers=lady_headers)
        assert resp.get_json()["reply"]["message"] == "Thanks!"

        assert client.delete(f"/api/reviews/replies/{reply_id}", headers=client_headers).status_code == 403
        assert client.delete(f"/api/reviews/replies/{reply_id}", headers=lady_headers).status_code == 200

        items = client.get(f"/api/reviews/profile/{lady_profile.id}").get_json()["items"]
        assert items[0]["reply"] is None


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class TestNotificationRoutes:

    def test_recipient_sees_and_reads_gift_notifications(self, client, client_user, lady, gift_types, login):
        client.post("/api/gifts", json={
            "recipient": "Alice",
            "gifts": [{"kind": "rose"}, {"kind": "heart"}],
        }, headers=login(client_user))
        headers = login(lady)

        body = client.get("/api/notifications", headers=headers).get_json()
        assert body["unread_count"] == 2
        assert [n["type"] for n in body["items"]] == ["gift", "gift"]
        assert body["items"][0]["payload"]["gift_type"] == "heart"

        newest_id = body["items"][0]["id"]
        resp = client.post("/api/notifications/read", json={"ids": [newest_id]}, headers=headers)
        assert resp.get_json() == {"updated": 1, "unread_count": 1}

        unread = client.get("/api/notifications?unread=true", headers=headers).get_json()["items"]
        assert [n["id"] for n in unread] == [body["items"][1]["id"]]

        resp = client.post("/api/notifications/read-all", headers=headers)
        assert resp.get_json()["updated"] == 1
        assert client.get("/api/notifications/unread-count", headers=headers).get_json()["unread_count"] == 0

    def test_notifications_are_private(self, client, client_user, lady, gift_types, login):
        client.post("/api/gifts", json={"recipient": "Alice", "gifts": [{"kind": "rose"}]}, headers=login(client_user))
        notification_id = client.get("/api/notifications", headers=login(lady)).get_json()["items"][0]["id"]
        sender_headers = login(client_user)

        assert client.get("/api/notifications", headers=sender_headers).get_json()["items"] == []

        resp = client.post("/api/notifications/read", json={"ids": [notification_id]}, headers=sender_headers)
        assert resp.get_json()["updated"] == 0

        assert client.delete(f"/api/notifications/{notification_id}", headers=sender_headers).status_code == 404
        assert client.delete(f"/api/notifications/{notification_id}", headers=login(lady)).status_code == 200

    def test_read_requires_ids(self, client, client_user, login):
        headers = login(client_user)
        assert client.post("/api/notifications/read", json={}, headers=headers).status_code == 400
        resp = client.post("/api/notifications/read", json={"ids": "all"}, headers=headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"
