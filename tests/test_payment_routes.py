import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from paywallet.config import settings
from paywallet.exceptions import GatewayError
from paywallet.models.order_models import Order, OrderStatus
from paywallet.models.receivable_models import LinkStatus, PaymentLink
from paywallet.models.transaction_models import (
    Transaction, TransactionCategory, TransactionStatus, TransactionType,
)
from paywallet.models.user_models import User
from paywallet.services import payment_service
from paywallet.services.gateways import OrderMetadata
from paywallet.services.gateways.payu_gateway import reverse_hash
from paywallet.services.gateways.razorpay_gateway import payment_signature
from paywallet.utils.security import hmac_sha256_hex

REQUEST_TARGET = "paywallet.services.gateways.base.requests.request"
WEBHOOK_SECRET = "whsec_test"


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = payload or {}
    return response


def _balance(db, user_id):
    db.expire_all()
    return db.get(User, user_id).balance


# ==================== DÉPÔT ====================

def test_create_order_without_any_gateway(client, user_headers):
    response = client.post("/api/payment/create-order", json={"amount": 500}, headers=user_headers)
    assert response.status_code == 400
    assert "No payment gateway configured" in response.json()["detail"]


def test_create_order_rejects_invalid_amount(client, user_headers, razorpay_active):
    response = client.post("/api/payment/create-order", json={"amount": "abc"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid amount"


def test_create_order_requires_authentication(client):
    response = client.post("/api/payment/create-order", json={"amount": 500})
    assert response.status_code in (401, 403)


def test_create_order_with_active_razorpay(client, user_headers, razorpay_active):
    order = {"id": "order_deposit_1", "amount": 50000, "currency": "INR"}
    with patch(REQUEST_TARGET, return_value=_response(200, order)):
        response = client.post("/api/payment/create-order", json={"amount": 500}, headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["gateway"] == "razorpay"
    assert body["key"] == "rzp_test_key"
    assert body["order"]["id"] == "order_deposit_1"


def test_gateway_failure_is_reported_as_server_error(client, user_headers, razorpay_active):
    with patch(REQUEST_TARGET, return_value=_response(401, {"error": {"description": "Bad key"}})):
        response = client.post("/api/payment/create-order", json={"amount": 500}, headers=user_headers)

    assert response.status_code == 500
    assert "Razorpay order creation failed" in response.json()["detail"]


def test_verify_deposit_credits_once(client, db, user, user_headers, razorpay_active):
    payload = {
        "razorpay_order_id": "order_deposit_1",
        "razorpay_payment_id": "pay_deposit_1",
        "razorpay_signature": payment_signature("order_deposit_1", "pay_deposit_1", razorpay_active.key_secret),
        "amount": 500,
    }

    first = client.post("/api/payment/verify", json=payload, headers=user_headers)
    assert first.status_code == 200
    assert first.json()["message"] == "Payment verified & balance updated"

    replay = client.post("/api/payment/verify", json=payload, headers=user_headers)
    assert replay.status_code == 200
    assert replay.json()["message"] == "Payment already processed"

    assert _balance(db, user.id) == Decimal("1500.00")


def test_verify_deposit_rejects_bad_signature(client, db, user, user_headers, razorpay_active):
    response = client.post("/api/payment/verify", json={
        "razorpay_order_id": "order_x",
        "razorpay_payment_id": "pay_x",
        "razorpay_signature": "0" * 64,
        "amount": 500,
    }, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
    assert _balance(db, user.id) == Decimal("1000.00")
    assert db.query(Transaction).count() == 0


def test_verify_deposit_missing_fields(client, user_headers):
    response = client.post("/api/payment/verify", json={"razorpay_order_id": "order_x"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing payment details"


# ==================== PAYU ====================

def _payu_form(user_id, salt, status="success", amount="250.00", flow="deposit", target="",
               txnid="TXN_DEP_1", mihpayid="403993715"):
    form = {
        "key": "payu_key",
        "txnid": txnid,
        "amount": amount,
        "productinfo": "Wallet Deposit",
        "firstname": "Asha",
        "email": "merchant@example.com",
        "status": status,
        "udf1": str(user_id),
        "udf2": target,
        "udf3": flow,
        "mihpayid": mihpayid,
    }
    form["hash"] = reverse_hash(form, salt)
    return form


def test_payu_success_callback_credits_and_redirects(client, db, user, configure_gateway):
    configure_gateway("payu", "payu_key", "payu_salt")
    form = _payu_form(user.id, "payu_salt")

    response = client.post("/api/payment/payu/success", data=form, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].endswith("/user/deposit-money?status=success&amount=250.00")
    assert _balance(db, user.id) == Decimal("1250.00")

    # Rejeu du même callback: aucun second crédit
    client.post("/api/payment/payu/success", data=form, follow_redirects=False)
    assert _balance(db, user.id) == Decimal("1250.00")


def test_payu_callback_with_bad_hash_is_not_credited(client, db, user, configure_gateway):
    configure_gateway("payu", "payu_key", "payu_salt")
    form = _payu_form(user.id, "wrong_salt")

    response = client.post("/api/payment/payu/success", data=form, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].endswith("/payment/failed?reason=hash_mismatch")
    assert _balance(db, user.id) == Decimal("1000.00")


def test_payu_callback_without_configuration_redirects_to_failure(client, user):
    response = client.post("/api/payment/payu/success", data=_payu_form(user.id, "payu_salt"),
                           follow_redirects=False)
    assert response.status_code == 302
    assert "reason=server_error" in response.headers["location"]


def test_payu_failure_redirect(client):
    response = client.post("/api/payment/payu/failure", data={"udf3": "checkout", "udf2": "PAY123"},
                           follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].endswith("/payment/failed?linkId=PAY123")


def _generate_link(client, headers, amount=299):
    response = client.post("/api/payment/generate-link", json={
        "name": "Ravi Kumar", "email": "ravi@example.com", "amount": amount, "description": "Invoice 42",
    }, headers=headers)
    assert response.status_code == 200
    return response.json()["linkId"]


def test_payu_checkout_callback_pays_link(client, db, user, user_headers, configure_gateway):
    link_id = _generate_link(client, user_headers)
    configure_gateway("payu", "payu_key", "payu_salt")
    form = _payu_form(user.id, "payu_salt", amount="299.00", flow="checkout", target=link_id,
                      txnid="TXN_LINK_1", mihpayid="403993801")

    response = client.post("/api/payment/payu/success", data=form, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].endswith(f"/payment/success?linkId={link_id}")

    client.post("/api/payment/payu/success", data=form, follow_redirects=False)
    assert _balance(db, user.id) == Decimal("1299.00")
    link = db.query(PaymentLink).filter(PaymentLink.link_id == link_id).one()
    assert link.status == LinkStatus.PAID
    assert link.provider_payment_id == "403993801"


def test_payu_checkout_callback_pays_api_order(client, db, user, configure_gateway):
    db.add(Order(order_id="order_api_payu", merchant_id=user.id, amount=50000, status=OrderStatus.CREATED))
    db.commit()
    configure_gateway("payu", "payu_key", "payu_salt")
    form = _payu_form(user.id, "payu_salt", amount="500.00", flow="checkout", target="order_api_payu",
                      txnid="TXN_API_1", mihpayid="403993802")

    response = client.post("/api/payment/payu/success", data=form, follow_redirects=False)
    assert response.headers["location"].endswith("/payment/success?linkId=order_api_payu")
    assert _balance(db, user.id) == Decimal("1500.00")

    order = db.query(Order).filter(Order.order_id == "order_api_payu").one()
    assert order.status == OrderStatus.PAID
    assert order.amount_paid == 50000
    assert order.payment_id == "403993802"


# ==================== CASHFREE ====================

def test_cashfree_return_credits_paid_deposit(client, db, user, configure_gateway):
    configure_gateway("cashfree", "cf_app", "cf_secret")
    paid = {
        "order_id": "CF_1700000000000",
        "order_status": "PAID",
        "order_amount": 300,
        "customer_details": {"customer_id": str(user.id)},
    }
    body = {"flow": "deposit", "orderId": "CF_1700000000000"}

    with patch(REQUEST_TARGET, return_value=_response(200, paid)):
        first = client.post("/api/payment/cashfree/verify-return", json=body)
        client.post("/api/payment/cashfree/verify-return", json=body)

    assert first.status_code == 200
    assert first.json()["message"] == "Deposit payment verified"
    assert _balance(db, user.id) == Decimal("1300.00")


def test_cashfree_return_not_paid(client, db, user, configure_gateway):
    configure_gateway("cashfree", "cf_app", "cf_secret")
    with patch(REQUEST_TARGET, return_value=_response(200, {"order_status": "ACTIVE"})):
        response = client.post("/api/payment/cashfree/verify-return", json={"flow": "deposit", "orderId": "CF_2"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "detail": "Payment is not completed yet", "status": "ACTIVE"}
    assert _balance(db, user.id) == Decimal("1000.00")


def test_cashfree_return_pays_checkout_link(client, db, user, user_headers, configure_gateway):
    link_id = _generate_link(client, user_headers)
    configure_gateway("cashfree", "cf_app", "cf_secret")
    paid = {"order_id": "CF_LINK_1", "order_status": "PAID", "order_amount": 299}
    body = {"flow": "checkout", "orderId": "CF_LINK_1", "linkId": link_id}

    with patch(REQUEST_TARGET, return_value=_response(200, paid)) as request:
        first = client.post("/api/payment/cashfree/verify-return", json=body)
        client.post("/api/payment/cashfree/verify-return", json=body)

    assert first.json()["message"] == "Checkout payment verified"
    assert request.call_args.args[:2] == ("GET", "https://sandbox.cashfree.com/pg/orders/CF_LINK_1")
    assert _balance(db, user.id) == Decimal("1299.00")
    assert db.query(PaymentLink).filter(PaymentLink.link_id == link_id).one().status == LinkStatus.PAID


def test_cashfree_return_unknown_checkout_target(client, configure_gateway):
    configure_gateway("cashfree", "cf_app", "cf_secret")
    paid = {"order_id": "CF_LINK_2", "order_status": "PAID", "order_amount": 10}
    with patch(REQUEST_TARGET, return_value=_response(200, paid)):
        response = client.post("/api/payment/cashfree/verify-return",
                               json={"flow": "checkout", "orderId": "CF_LINK_2", "linkId": "PAY_MISSING"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Payment order not found"


# ==================== WEBHOOK RAZORPAY ====================

def _signed(event):
    body = json.dumps(event).encode()
    return body, {"x-razorpay-signature": hmac_sha256_hex(WEBHOOK_SECRET, body),
                  "content-type": "application/json"}


def test_payment_link_webhook_completes_pending_credit_once(client, db, user):
    db.add(Transaction(
        user_id=user.id,
        transaction_id="plink_123",
        description="Payment from Ravi",
        type=TransactionType.CREDIT,
        amount=Decimal("750.00"),
        status=TransactionStatus.PENDING,
        category=TransactionCategory.PAYMENT_LINK,
    ))
    db.commit()

    body, headers = _signed({
        "event": "payment_link.paid",
        "payload": {
            "payment_link": {"entity": {"id": "plink_123"}},
            "payment": {"entity": {"id": "pay_link_1", "amount": 75000}},
        },
    })

    first = client.post("/api/payment/webhook", content=body, headers=headers)
    assert first.json() == {"status": "ok"}
    replay = client.post("/api/payment/webhook", content=body, headers=headers)
    assert replay.json() == {"status": "already processed"}

    assert _balance(db, user.id) == Decimal("1750.00")


def test_webhook_rejects_invalid_signature(client, db, user):
    body = json.dumps({"event": "payment_link.paid", "payload": {}}).encode()
    response = client.post("/api/payment/webhook", content=body,
                           headers={"x-razorpay-signature": "bad", "content-type": "application/json"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


def test_webhook_ignores_other_events(client):
    body, headers = _signed({"event": "payment.captured", "payload": {}})
    assert client.post("/api/payment/webhook", content=body, headers=headers).json() == {"status": "ignored"}


# ==================== LIENS DE PAIEMENT ====================

def test_payment_link_checkout_flow(client, db, user, user_headers, razorpay_active):
    created = client.post("/api/payment/generate-link", json={
        "name": "Ravi Kumar", "email": "ravi@example.com", "amount": 299, "description": "Invoice 42",
    }, headers=user_headers)
    assert created.status_code == 200
    link_id = created.json()["linkId"]
    assert created.json()["paymentLink"].endswith(f"/pay/{link_id}")

    page = client.get(f"/api/payment/checkout/{link_id}")
    assert page.status_code == 200
    assert page.json()["paymentLink"]["amount"] == 299.0
    assert page.json()["paymentLink"]["merchant"] == user.full_name

    verify = {
        "razorpay_order_id": "order_link_1",
        "razorpay_payment_id": "pay_link_1",
        "razorpay_signature": payment_signature("order_link_1", "pay_link_1", razorpay_active.key_secret),
        "linkId": link_id,
    }
    assert client.post("/api/payment/checkout/verify", json=verify).json()["message"] == "Payment successful"
    assert client.post("/api/payment/checkout/verify", json=verify).json()["message"] == "Payment already verified"
    assert _balance(db, user.id) == Decimal("1299.00")

    link = db.query(PaymentLink).filter(PaymentLink.link_id == link_id).one()
    assert link.status == LinkStatus.PAID

    paid_page = client.get(f"/api/payment/checkout/{link_id}")
    assert paid_page.status_code == 400
    assert paid_page.json()["status"] == "paid"


def test_checkout_unknown_link(client):
    response = client.get("/api/payment/checkout/PAY_DOES_NOT_EXIST")
    assert response.status_code == 404
    assert response.json()["detail"] == "Payment link not found"


def test_checkout_create_order_requires_link_id(client):
    response = client.post("/api/payment/checkout/create-order", json={})
    assert response.status_code == 400
    assert response.json()["detail"] == "Link ID is required"


def test_request_money_records_pending_credit(client, db, user, user_headers, razorpay_active):
    link = {"id": "plink_rm_1", "short_url": "https://rzp.io/i/abc"}
    with patch(REQUEST_TARGET, return_value=_response(200, link)):
        response = client.post("/api/payment/request-money", json={
            "name": "Ravi", "email": "ravi@example.com", "amount": 120,
        }, headers=user_headers)

    assert response.status_code == 200
    assert response.json()["paymentLink"] == "https://rzp.io/i/abc"
    entry = db.query(Transaction).filter(Transaction.transaction_id == "plink_rm_1").one()
    assert entry.status == TransactionStatus.PENDING
    assert _balance(db, user.id) == Decimal("1000.00")


def test_transaction_history(client, db, user, user_headers, razorpay_active):
    verify = {
        "razorpay_order_id": "order_h",
        "razorpay_payment_id": "pay_h",
        "razorpay_signature": payment_signature("order_h", "pay_h", razorpay_active.key_secret),
        "amount": 42,
    }
    client.post("/api/payment/verify", json=verify, headers=user_headers)

    history = client.get("/api/payment/transactions", headers=user_headers).json()
    assert history["balance"] == 1042.0
    assert [t["transactionId"] for t in history["transactions"]] == ["pay_h"]


# ==================== ÉCHEC DE CRÉATION DE COMMANDE ====================

def _deposit_metadata():
    return OrderMetadata(flow_type="deposit", receipt="rcpt_policy", udf1="1", customer_id="1")


def test_razorpay_failure_retries_once_with_env_credentials(db, razorpay_active, monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_env_key")
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", "rzp_env_secret")
    responses = [
        _response(401, {"error": {"description": "Authentication failed"}}),
        _response(200, {"id": "order_env_1", "amount": 50000, "currency": "INR"}),
    ]

    with patch(REQUEST_TARGET, side_effect=responses) as request:
        result = payment_service.create_gateway_order(db, 500, _deposit_metadata())

    assert request.call_count == 2
    assert result["key"] == "rzp_env_key"
    assert result["order"]["id"] == "order_env_1"


def test_razorpay_failure_with_same_env_credentials_is_not_retried(db, razorpay_active, monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", razorpay_active.key_id)
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", razorpay_active.key_secret)

    with patch(REQUEST_TARGET, return_value=_response(401, {"error": {"description": "Bad key"}})) as request:
        with pytest.raises(GatewayError) as exc:
            payment_service.create_gateway_order(db, 500, _deposit_metadata())

    assert request.call_count == 1
    assert "Razorpay order creation failed" in exc.value.message


def test_cashfree_failure_never_falls_back_to_razorpay(db, configure_gateway, monkeypatch):
    configure_gateway("cashfree", "cf_app", "cf_secret")
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_env_key")
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", "rzp_env_secret")

    with patch(REQUEST_TARGET, return_value=_response(401, {"message": "authentication Failed"})) as request:
        with pytest.raises(GatewayError) as exc:
            payment_service.create_gateway_order(db, 500, _deposit_metadata())

    assert request.call_count == 1
    assert exc.value.message.startswith("Payment failed: Cashfree order creation failed.")
    assert "Admin > Payment Gateway Settings" in exc.value.message
