# tests/test_api.py
"""JSON HTTP surface, end to end through the Flask test client."""
import json

import pytest
from flask_login import login_user

from models import UserRole, Order
from blueprints.realtime import handle_client_message
from extensions import notification_hub


# =============================================================================
# TEST CLASS: registration and login
# =============================================================================

class TestAuth:

    def register(self, client, username, referral_code=None):
        payload = {
            "username": username,
            "email": f"{username}@example.com",
            "fullName": username.title(),
            "password": "secret123",
        }
        if referral_code is not None:
            payload["referralCode"] = referral_code
        return client.post("/api/register", json=payload)

    def test_register_with_referral_code(self, client, make_user):
        sponsor = make_user("sponsor")

        response = self.register(client, "newbie", sponsor.referral_code.lower())

        assert response.status_code == 201
        body = response.get_json()["user"]
        assert body["role"] == "USER"
        assert body["referredBy"] == sponsor.id
        assert len(body["referralCode"]) == 8
        assert body["referralLink"].endswith(f"/auth?ref={body['referralCode']}")

    def test_register_unknown_referral_code(self, client):
        response = self.register(client, "newbie", "NOPE1234")
        assert response.status_code == 400
        assert response.get_json() == {"error": "Invalid referral code"}

    def test_register_duplicate(self, client, make_user):
        make_user("taken")
        response = self.register(client, "taken")
        assert response.status_code == 400

    @pytest.mark.parametrize("field, value", [
        ("email", "not-an-email"),
        ("password", "123"),
        ("username", "x"),
    ])
    def test_register_validation(self, client, field, value):
        payload = {"username": "valid_name", "email": "valid@example.com", "fullName": "Valid", "password": "secret123"}
        payload[field] = value
        assert client.post("/api/register", json=payload).status_code == 400

    def test_register_requires_json(self, client):
        response = client.post("/api/register", data="nope", content_type="text/plain")
        assert response.status_code == 400

    def test_login_logout(self, client, make_user):
        user = make_user("alice")

        bad = client.post("/api/login", json={"username": "alice", "password": "wrong"})
        assert bad.status_code == 401

        good = client.post("/api/login", json={"username": "alice", "password": "password123"})
        assert good.status_code == 200
        assert client.get("/api/user").get_json()["id"] == user.id

        assert client.post("/api/logout").status_code == 200
        assert client.get("/api/user").status_code == 401

    def test_login_by_email(self, client, make_user):
        make_user("alice")
        response = client.post("/api/login", json={"email": "alice@example.com", "password": "password123"})
        assert response.status_code == 200

    def test_protected_routes_require_login(self, client, app):
        for path in ("/api/user", "/api/transactions", "/api/earnings", "/api/orders", "/api/referrals"):
            response = client.get(path)
            assert response.status_code == 401
            assert response.get_json() == {"error": "Unauthorized"}


# =============================================================================
# TEST CLASS: activation and ledger over HTTP
# =============================================================================

class TestActivationApi:

    def test_activate_and_read_ledger(self, make_user, login):
        a = make_user("a", role=UserRole.AFFILIATOR)
        b = make_user("b", role=UserRole.ACTIVE_USER, referrer=a)
        c = make_user("c", referrer=b)

        client = login(c)
        response = client.post("/api/users/activate", json={"role": "ACTIVE_USER"})
        assert response.status_code == 200
        assert response.get_json()["user"]["role"] == "ACTIVE_USER"

        ledger = client.get("/api/transactions").get_json()
        assert [(tx["type"], tx["amount"]) for tx in ledger] == [("ACTIVATION_FEE", -100.0)]

        earnings = client.get("/api/earnings").get_json()
        assert earnings["balance"] == -100.0
        assert earnings["activationFees"] == -100.0

    def test_activate_twice(self, make_user, login):
        user = make_user("u", role=UserRole.AFFILIATOR)
        client = login(user)

        response = client.post("/api/users/activate", json={"role": "AFFILIATOR"})

        assert response.status_code == 400
        assert "already has this role or higher" in response.get_json()["error"]

    def test_activate_invalid_role(self, make_user, login):
        client = login(make_user("u"))
        response = client.post("/api/users/activate", json={"role": "ADMIN"})
        assert response.status_code == 400

    def test_activate_requires_role(self, make_user, login):
        client = login(make_user("u"))
        response = client.post("/api/users/activate", json={})
        assert response.status_code == 400

    def test_upline_and_referrals(self, make_user, login):
        a = make_user("a", role=UserRole.AFFILIATOR)
        b = make_user("b", referrer=a)
        make_user("c", referrer=b)

        client = login(b)
        upline = client.get("/api/referrals/upline").get_json()
        assert [(u["level"], u["username"]) for u in upline] == [(1, "a")]

        referrals = client.get("/api/referrals").get_json()
        assert [u["username"] for u in referrals] == ["c"]

        link = client.get("/api/referrals/link").get_json()
        assert link["referralLink"].endswith(link["referralCode"])


# =============================================================================
# TEST CLASS: products, orders and withdrawals
# =============================================================================

class TestCommerceApi:

    def product_payload(self, **overrides):
        payload = {
            "name": "Course",
            "description": "A course",
            "price": 40,
            "imageUrl": "https://images.example.com/c.png",
            "commission": 25,
        }
        payload.update(overrides)
        return payload

    def test_product_crud_admin_only(self, make_user, login):
        client = login(make_user("plain"))
        assert client.post("/api/products", json=self.product_payload()).status_code == 403

        client = login(make_user("root", role=UserRole.ADMIN))
        created = client.post("/api/products", json=self.product_payload())
        assert created.status_code == 201
        product_id = created.get_json()["id"]

        updated = client.put(f"/api/products/{product_id}", json={"price": "45.50"})
        assert updated.get_json()["price"] == 45.5

        assert client.get("/api/products").get_json()[0]["id"] == product_id
        assert client.delete(f"/api/products/{product_id}").status_code == 200
        assert client.get(f"/api/products/{product_id}").status_code == 404

    @pytest.mark.parametrize("overrides", [{"price": 0}, {"price": "abc"}, {"commission": 101}, {"commission": -1}])
    def test_product_validation(self, make_user, login, overrides):
        client = login(make_user("root", role=UserRole.ADMIN))
        assert client.post("/api/products", json=self.product_payload(**overrides)).status_code == 400

    def test_product_with_orders_cannot_be_deleted(self, make_user, make_product, login):
        buyer = make_user("buyer")
        product = make_product()
        login(buyer).post("/api/orders", json={"productId": product.id})

        client = login(make_user("root", role=UserRole.ADMIN))
        response = client.delete(f"/api/products/{product.id}")

        assert response.status_code == 400
        assert Order.query.count() == 1

    def test_order_with_affiliate_code(self, make_user, make_product, login):
        affiliate = make_user("aff", role=UserRole.AFFILIATOR)
        product = make_product(price="40.00", commission="25")
        buyer = make_user("buyer")

        client = login(buyer)
        response = client.post("/api/orders", json={"productId": product.id, "referralCode": affiliate.referral_code})
        assert response.status_code == 201
        assert response.get_json()["amount"] == 40.0
        assert [o["productId"] for o in client.get("/api/orders").get_json()] == [product.id]

        client = login(affiliate)
        earnings = client.get("/api/earnings").get_json()
        assert earnings["productCommission"] == 10.0
        assert earnings["balance"] == 10.0

        response = client.post("/api/withdrawals", json={
            "amount": 10, "paymentMethod": "bank", "accountNumber": "0123456789"
        })
        assert response.status_code == 201
        assert client.get("/api/earnings").get_json()["balance"] == 0.0

    def test_order_unknown_product(self, make_user, login):
        client = login(make_user("buyer"))
        response = client.post("/api/orders", json={"productId": 999})
        assert response.status_code == 404
        assert response.get_json() == {"error": "Product not found"}

    def test_withdrawal_insufficient_balance(self, make_user, login):
        client = login(make_user("broke"))
        response = client.post("/api/withdrawals", json={
            "amount": 20, "paymentMethod": "bank", "accountNumber": "0123456789"
        })
        assert response.status_code == 400
        assert response.get_json() == {"error": "Insufficient balance"}


# =============================================================================
# TEST CLASS: users and admin
# =============================================================================

class TestAdminApi:

    def test_user_detail_self_or_admin(self, make_user, login):
        alice = make_user("alice")
        bob = make_user("bob")

        client = login(alice)
        assert client.get(f"/api/users/{alice.id}").status_code == 200
        assert client.get(f"/api/users/{bob.id}").status_code == 403
        assert client.get("/api/users").status_code == 403

        client = login(make_user("root", role=UserRole.ADMIN))
        assert client.get(f"/api/users/{bob.id}").get_json()["username"] == "bob"
        assert client.get("/api/users/999").status_code == 404
        assert len(client.get("/api/users").get_json()) == 3

    def test_admin_stats(self, make_user, login, sink):
        from commissions.services import CommissionService

        a = make_user("a", role=UserRole.AFFILIATOR)
        b = make_user("b", referrer=a)
        CommissionService.activate_role(b.id, "ACTIVE_USER", sink=sink)

        client = login(make_user("root", role=UserRole.ADMIN))
        stats = client.get("/api/admin/stats").get_json()

        assert stats["totalUsers"] == 3
        assert stats["usersByRole"]["ACTIVE_USER"] == 1
        assert stats["activationFeesCollected"] == 100.0
        assert stats["referralCommissionsPaid"] == 20.0
        assert stats["referralCycles"] == []
        assert stats["commissionStructure"]["max_level"] == 3

    def test_admin_stats_forbidden(self, make_user, login):
        client = login(make_user("plain"))
        assert client.get("/api/admin/stats").status_code == 403

    def test_healthz(self, client):
        assert client.get("/healthz").get_json()["status"] == "ok"


# =============================================================================
# TEST CLASS: websocket message handling
# =============================================================================

class TestRealtimeMessages:

    def test_subscribe_own_channel(self, app, make_user):
        user = make_user("u")
        subscription = notification_hub.open()

        with app.test_request_context():
            login_user(user)
            reply = handle_client_message(json.dumps({"action": "subscribe", "userId": user.id}), subscription)
            assert reply == {"event": "subscribed", "data": {"userId": user.id}}
            assert notification_hub.subscriber_count(user.id) == 1

            reply = handle_client_message(json.dumps({"action": "unsubscribe", "userId": user.id}), subscription)
            assert reply["event"] == "unsubscribed"
            assert notification_hub.subscriber_count(user.id) == 0

        subscription.close()

    def test_cannot_subscribe_to_others(self, app, make_user):
        user = make_user("u")
        other = make_user("other")
        subscription = notification_hub.open()

        with app.test_request_context():
            login_user(user)
            reply = handle_client_message(json.dumps({"action": "subscribe", "userId": other.id}), subscription)

        assert reply["event"] == "error"
        assert notification_hub.subscriber_count(other.id) == 0
        subscription.close()

    @pytest.mark.parametrize("raw", ["not json", "[]", json.dumps({"action": "subscribe"}),
                                     json.dumps({"action": "dance", "userId": 1})])
    def test_bad_messages(self, app, raw):
        subscription = notification_hub.open()
        with app.test_request_context():
            assert handle_client_message(raw, subscription)["event"] == "error"
        subscription.close()
