from decimal import Decimal

from paywallet.models.order_models import Order, OrderStatus
from paywallet.models.payout_models import PayoutRequest, PayoutStatus
from paywallet.models.transaction_models import Transaction
from paywallet.models.user_models import ApiToken, User
from paywallet.services.gateways.razorpay_gateway import payment_signature

MERCHANT_SECRET = "test_secret_key"


def _balance(db, user_id):
    db.expire_all()
    return db.get(User, user_id).balance


def _create_order(client, api_auth, amount=50000, **extra):
    response = client.post("/api/v1/orders", json={"amount": amount, **extra}, auth=api_auth)
    assert response.status_code == 200, response.text
    return response.json()


def _verify(client, api_auth, order_id, payment_id, secret=MERCHANT_SECRET):
    return client.post("/api/v1/payments/verify", json={
        "order_id": order_id,
        "payment_id": payment_id,
        "signature": payment_signature(order_id, payment_id, secret),
    }, auth=api_auth)


# ==================== AUTHENTIFICATION ====================

def test_missing_credentials(client):
    response = client.get("/api/v1/balance")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_invalid_key_prefix(client):
    response = client.get("/api/v1/balance", auth=("rzp_live_abc", "secret"))
    assert response.status_code == 401
    assert response.json()["error"]["description"].startswith("Invalid Key ID format")


def test_wrong_secret(client, api_token):
    response = client.get("/api/v1/balance", auth=(api_token.key_id, "nope"))
    assert response.status_code == 401
    assert response.json()["error"] == {
        "code": "BAD_REQUEST_ERROR",
        "description": "Authentication failed. Invalid Key ID or Secret Key.",
        "source": "api",
    }


def test_revoked_key_is_refused(client, db, api_token, api_auth):
    api_token.status = "revoked"
    db.commit()
    assert client.get("/api/v1/balance", auth=api_auth).status_code == 401


def test_connection_test_updates_last_used(client, db, api_token, api_auth, user):
    response = client.get("/api/v1/test", auth=api_auth)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"]["email"] == user.email
    assert body["user"]["mode"] == "test"

    db.expire_all()
    assert db.get(ApiToken, api_token.id).last_used_at is not None


# ==================== COMMANDES ====================

def test_create_order(client, api_auth):
    order = _create_order(client, api_auth, receipt="rcpt_1", notes={"description": "T-shirt"})
    assert order["id"].startswith("order_")
    assert order["entity"] == "order"
    assert order["amount"] == 50000
    assert order["amount_due"] == 50000
    assert order["amount_paid"] == 0
    assert order["status"] == "created"
    assert order["payment_url"].endswith(f"/pay/{order['id']}")


def test_create_order_amount_validation(client, api_auth):
    for amount, message in (
        (None, "The amount field is required and must be greater than 0"),
        (0, "The amount field is required and must be greater than 0"),
        (99, "The minimum amount is 100 paise (₹1.00)"),
        (150.5, "The amount must be an integer in paise"),
        ("5000", "The amount field is required and must be greater than 0"),
    ):
        response = client.post("/api/v1/orders", json={"amount": amount}, auth=api_auth)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "BAD_REQUEST_ERROR"
        assert error["description"] == message
        assert error["field"] == "amount"


def test_get_and_list_orders(client, api_auth):
    first = _create_order(client, api_auth, amount=1000)
    second = _create_order(client, api_auth, amount=2000)

    fetched = client.get(f"/api/v1/orders/{first['id']}", auth=api_auth).json()
    assert fetched["amount"] == 1000

    listing = client.get("/api/v1/orders", params={"count": 1}, auth=api_auth).json()
    assert listing["entity"] == "collection"
    assert listing["count"] == 1
    assert listing["items"][0]["id"] == second["id"]


def test_orders_are_scoped_to_merchant(client, db, api_auth, make_user):
    order = _create_order(client, api_auth)
    other = make_user(email="other@example.com")
    other_token = ApiToken(user_id=other.id, name="Autre", key_id="sat_test_ffffffffffffffffffffffff",
                           secret_key="other_secret", mode="test", status="active")
    db.add(other_token)
    db.commit()

    response = client.get(f"/api/v1/orders/{order['id']}", auth=(other_token.key_id, "other_secret"))
    assert response.status_code == 404
    assert response.json()["error"]["description"] == f"Order {order['id']} not found"


# ==================== VÉRIFICATION ====================

def test_verify_payment_credits_merchant_once(client, db, user, api_auth):
    order = _create_order(client, api_auth, amount=50000)

    first = _verify(client, api_auth, order["id"], "pay_api_1")
    assert first.status_code == 200
    assert first.json() == {"status": "verified", "message": "Payment signature verified successfully"}

    replay = _verify(client, api_auth, order["id"], "pay_api_1")
    assert replay.status_code == 200

    assert _balance(db, user.id) == Decimal("1500.00")
    assert db.query(Transaction).filter(Transaction.transaction_id == "pay_api_1").count() == 1

    stored = db.query(Order).filter(Order.order_id == order["id"]).one()
    assert stored.status == OrderStatus.PAID
    assert stored.amount_paid == 50000
    assert stored.signature_verified is True


def test_verify_payment_bad_signature(client, db, user, api_auth):
    order = _create_order(client, api_auth)
    response = _verify(client, api_auth, order["id"], "pay_api_2", secret="wrong")
    assert response.status_code == 400
    assert response.json()["error"]["description"] == "Payment signature verification failed"
    assert _balance(db, user.id) == Decimal("1000.00")


def test_verify_payment_requires_all_fields(client, api_auth):
    response = client.post("/api/v1/payments/verify", json={"order_id": "order_x"}, auth=api_auth)
    assert response.status_code == 400
    assert response.json()["error"]["description"] == "order_id, payment_id, and signature are required"


def test_verify_paid_order_with_other_payment_is_refused(client, db, user, api_auth):
    order = _create_order(client, api_auth, amount=10000)
    _verify(client, api_auth, order["id"], "pay_first")

    response = _verify(client, api_auth, order["id"], "pay_second")
    assert response.status_code == 400
    assert _balance(db, user.id) == Decimal("1100.00")


# ==================== PAIEMENTS ET REMBOURSEMENTS ====================

def test_get_payment_and_refund(client, db, user, api_auth):
    order = _create_order(client, api_auth, amount=20000)
    _verify(client, api_auth, order["id"], "pay_refund_1")

    payment = client.get("/api/v1/payments/pay_refund_1", auth=api_auth).json()
    assert payment["status"] == "captured"
    assert payment["order_id"] == order["id"]
    assert payment["method"] == "upi"

    too_much = client.post("/api/v1/payments/pay_refund_1/refunds", json={"amount": 30000}, auth=api_auth)
    assert too_much.status_code == 400

    refund = client.post("/api/v1/payments/pay_refund_1/refunds", json={"amount": 5000}, auth=api_auth)
    assert refund.status_code == 200
    assert refund.json()["id"].startswith("rfnd_")
    assert refund.json()["status"] == "processed"
    assert refund.json()["amount"] == 5000

    again = client.post("/api/v1/payments/pay_refund_1/refunds", json={}, auth=api_auth)
    assert again.json()["error"]["description"] == "Refund can only be initiated for captured payments"

    # Remboursement déclaratif: le solde ne bouge pas
    assert _balance(db, user.id) == Decimal("1200.00")


def test_unknown_payment(client, api_auth):
    response = client.get("/api/v1/payments/pay_missing", auth=api_auth)
    assert response.status_code == 404
    assert response.json()["error"]["description"] == "Payment pay_missing not found"


# ==================== VERSEMENTS ET SOLDE ====================

def test_balance_in_paise(client, api_auth):
    balance = client.get("/api/v1/balance", auth=api_auth).json()
    assert balance == {
        "entity": "balance",
        "balance": 100000,
        "currency": "INR",
        "balance_formatted": "₹1000.00",
    }


def test_create_bank_payout(client, db, user, api_auth, api_token):
    response = client.post("/api/v1/payouts", json={
        "amount": 25000,
        "method": "bank",
        "bank_account": {
            "account_number": "123456789012",
            "ifsc_code": "HDFC0001234",
            "account_holder_name": "Asha Merchant",
            "bank_name": "HDFC",
        },
        "notes": {"purpose": "settlement"},
    }, auth=api_auth)

    assert response.status_code == 200
    payout = response.json()
    assert payout["id"].startswith("pout_")
    assert payout["amount"] == 25000
    assert payout["status"] == "requested"
    assert payout["bank_account"]["account_number"] == "********9012"
    assert payout["message"] == "Payout request submitted for admin approval"

    stored = db.query(PayoutRequest).filter(PayoutRequest.payout_id == payout["id"]).one()
    assert stored.source == "api"
    assert stored.api_key_id == api_token.key_id
    # Aucun débit avant l'approbation
    assert _balance(db, user.id) == Decimal("1000.00")


def test_payout_validation(client, api_auth):
    response = client.post("/api/v1/payouts", json={"amount": 1000, "method": "card"}, auth=api_auth)
    assert response.json()["error"]["field"] == "method"

    response = client.post("/api/v1/payouts", json={"amount": 1000, "method": "upi"}, auth=api_auth)
    assert response.json()["error"]["description"] == "UPI ID is required"

    response = client.post("/api/v1/payouts", json={"amount": 1000, "method": "bank", "bank_account": {}},
                           auth=api_auth)
    assert response.json()["error"]["field"] == "bank_account"


def test_payout_insufficient_balance(client, api_auth):
    response = client.post("/api/v1/payouts", json={
        "amount": 200000, "method": "upi", "upi": {"upi_id": "asha@okhdfc"},
    }, auth=api_auth)
    assert response.status_code == 400
    assert response.json()["error"] == {
        "code": "INSUFFICIENT_BALANCE",
        "description": "Insufficient balance. Available: ₹1000.00, Required: ₹2000.00",
        "source": "business",
    }


def test_list_get_and_cancel_payout(client, db, api_auth):
    created = client.post("/api/v1/payouts", json={
        "amount": 10000, "method": "upi", "upi": {"upi_id": "asha@okhdfc"},
    }, auth=api_auth).json()

    listing = client.get("/api/v1/payouts", auth=api_auth).json()
    assert listing["total"] == 1
    assert listing["items"][0]["upi"] == {"upi_id": "asha@okhdfc"}

    fetched = client.get(f"/api/v1/payouts/{created['id']}", auth=api_auth).json()
    assert fetched["status"] == "requested"

    cancelled = client.post(f"/api/v1/payouts/{created['id']}/cancel", auth=api_auth).json()
    assert cancelled == {
        "id": created["id"],
        "entity": "payout",
        "status": PayoutStatus.CANCELLED,
        "message": "Payout cancelled successfully",
    }

    again = client.post(f"/api/v1/payouts/{created['id']}/cancel", auth=api_auth)
    assert again.status_code == 400
    assert "Only 'requested' payouts can be cancelled" in again.json()["error"]["description"]


def test_unknown_payout(client, api_auth):
    response = client.get("/api/v1/payouts/pout_missing", auth=api_auth)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND_ERROR"
