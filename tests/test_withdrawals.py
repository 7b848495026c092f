from decimal import Decimal

import pytest

from paywallet.exceptions import PaymentError
from paywallet.models.admin_models import AdminLog
from paywallet.models.payout_models import PayoutRequest, Withdrawal
from paywallet.services import withdrawal_service
from paywallet.models.transaction_models import Transaction, TransactionStatus
from paywallet.models.user_models import User

BANK_DETAILS = {
    "accountName": "Asha Merchant",
    "accountNumber": "123456789012",
    "ifsc": "HDFC0001234",
    "bankName": "HDFC",
}


def _balance(db, user_id):
    db.expire_all()
    return db.get(User, user_id).balance


# ==================== RETRAITS BANCAIRES ====================

def test_withdrawal_request_adds_commission_and_pending_debit(client, db, user, user_headers):
    response = client.post("/api/withdraw/request", json={"amount": 500, **BANK_DETAILS}, headers=user_headers)
    assert response.status_code == 200
    withdrawal = response.json()["withdrawal"]
    assert withdrawal["commission"] == 10.0
    assert withdrawal["total"] == 510.0
    assert withdrawal["status"] == "Pending"
    assert withdrawal["type"] == "withdrawal"

    entry = db.query(Transaction).filter(Transaction.transaction_id == withdrawal["withdrawalId"]).one()
    assert entry.type == "Debit"
    assert entry.status == TransactionStatus.PENDING
    # Rien n'est débité à la demande
    assert _balance(db, user.id) == Decimal("1000.00")


def test_withdrawal_limits(client, user_headers):
    too_small = client.post("/api/withdraw/request", json={"amount": 10, **BANK_DETAILS}, headers=user_headers)
    assert too_small.status_code == 400
    assert too_small.json()["detail"] == "Minimum withdrawal is ₹50"

    too_big = client.post("/api/withdraw/request", json={"amount": 600000, **BANK_DETAILS}, headers=user_headers)
    assert too_big.json()["detail"] == "Maximum withdrawal is ₹500,000"

    over_balance = client.post("/api/withdraw/request", json={"amount": 990, **BANK_DETAILS}, headers=user_headers)
    assert over_balance.json()["detail"] == "Insufficient balance. Required ₹1009.80, Available ₹1000.00"


def test_withdrawal_requires_all_fields(client, user_headers):
    response = client.post("/api/withdraw/request", json={"amount": 100}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "All fields are required"


def test_admin_approves_withdrawal(client, db, user, user_headers, admin_headers):
    withdrawal = client.post("/api/withdraw/request", json={"amount": 500, **BANK_DETAILS},
                             headers=user_headers).json()["withdrawal"]

    response = client.post(f"/api/withdraw/admin/approve/{withdrawal['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["newBalance"] == 490.0
    assert response.json()["withdrawal"]["status"] == "Approved"
    assert _balance(db, user.id) == Decimal("490.00")

    entry = db.query(Transaction).filter(Transaction.transaction_id == withdrawal["withdrawalId"]).one()
    assert entry.status == TransactionStatus.COMPLETED
    assert db.query(AdminLog).filter(AdminLog.action == "withdrawal_approved").count() == 1

    again = client.post(f"/api/withdraw/admin/approve/{withdrawal['id']}", headers=admin_headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Already processed"
    assert _balance(db, user.id) == Decimal("490.00")


def test_approval_rechecks_balance(client, db, user, user_headers, admin_headers):
    withdrawal = client.post("/api/withdraw/request", json={"amount": 900, **BANK_DETAILS},
                             headers=user_headers).json()["withdrawal"]
    db.query(User).filter(User.id == user.id).update({User.balance: Decimal("100.00")})
    db.commit()

    response = client.post(f"/api/withdraw/admin/approve/{withdrawal['id']}", headers=admin_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Insufficient user balance"
    assert body["shortfall"] == 818.0
    assert _balance(db, user.id) == Decimal("100.00")
    assert db.get(Withdrawal, withdrawal["id"]).status == "Pending"


def test_stale_approval_does_not_debit_twice(client, db, user, admin, user_headers, admin_headers,
                                             session_factory):
    """Une seconde approbation partie d'une lecture périmée relit le statut en base."""
    user_id, admin_id = user.id, admin.id
    withdrawal = client.post("/api/withdraw/request", json={"amount": 500, **BANK_DETAILS},
                             headers=user_headers).json()["withdrawal"]
    db.close()

    stale = session_factory(expire_on_commit=False)
    try:
        assert stale.get(Withdrawal, withdrawal["id"]).status == "Pending"
        stale.commit()

        approved = client.post(f"/api/withdraw/admin/approve/{withdrawal['id']}", headers=admin_headers)
        assert approved.status_code == 200
        db.close()

        with pytest.raises(PaymentError) as exc:
            withdrawal_service.approve_withdrawal(stale, withdrawal["id"], admin_id)
        assert exc.value.message == "Already processed"
        stale.rollback()
    finally:
        stale.close()

    assert _balance(db, user_id) == Decimal("490.00")


def test_admin_rejects_withdrawal(client, db, user, user_headers, admin_headers):
    withdrawal = client.post("/api/withdraw/request", json={"amount": 100, **BANK_DETAILS},
                             headers=user_headers).json()["withdrawal"]

    response = client.post(f"/api/withdraw/admin/reject/{withdrawal['id']}", json={"reason": "KYC pending"},
                           headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["withdrawal"]["rejectionReason"] == "KYC pending"

    entry = db.query(Transaction).filter(Transaction.transaction_id == withdrawal["withdrawalId"]).one()
    assert entry.status == TransactionStatus.FAILED
    assert _balance(db, user.id) == Decimal("1000.00")


def test_admin_routes_require_admin(client, user_headers):
    assert client.get("/api/withdraw/admin/all", headers=user_headers).status_code == 403
    assert client.get("/api/payment/admin/withdrawals", headers=user_headers).status_code == 403


def test_payment_withdraw_is_listed_as_payout(client, user_headers, admin_headers):
    response = client.post("/api/payment/withdraw", json={"amount": 200, **BANK_DETAILS}, headers=user_headers)
    assert response.json()["message"] == "Payout request submitted. Awaiting admin approval."
    assert response.json()["withdrawal"]["type"] == "payout"

    payouts = client.get("/api/payment/admin/withdrawals", headers=admin_headers).json()["withdrawals"]
    withdrawals = client.get("/api/withdraw/admin/all", headers=admin_headers).json()["withdrawals"]
    assert len(payouts) == 1
    assert withdrawals == []

    mine = client.get("/api/withdraw/mine", headers=user_headers).json()["withdrawals"]
    assert [w["withdrawalId"] for w in mine] == [payouts[0]["withdrawalId"]]


# ==================== DEMANDES DE VERSEMENT ====================

def _request_payout(client, headers, **body):
    payload = {"amount": 300, "method": "upi", "upiId": "asha@okhdfc"}
    payload.update(body)
    return client.post("/api/payout/request", json=payload, headers=headers)


def test_payout_request_lifecycle(client, db, user, user_headers, admin_headers):
    created = _request_payout(client, user_headers)
    assert created.status_code == 201
    request = created.json()["request"]
    assert request["status"] == "requested"

    approved = client.put(f"/api/payout/admin/approve/{request['id']}", json={"fee": 5, "adminNote": "ok"},
                          headers=admin_headers)
    assert approved.status_code == 200
    assert approved.json()["deducted"] == 305.0
    assert approved.json()["vendorNewBalance"] == 695.0
    assert _balance(db, user.id) == Decimal("695.00")

    completed = client.put(f"/api/payout/admin/complete/{request['id']}", json={"transactionId": "UTR123"},
                           headers=admin_headers)
    assert completed.json()["request"]["status"] == "completed"
    assert completed.json()["request"]["transactionId"] == "UTR123"

    entry = db.query(Transaction).filter(Transaction.transaction_id == request["payoutId"]).one()
    assert entry.status == TransactionStatus.COMPLETED
    assert entry.net_amount == Decimal("305.00")


def test_payout_request_validation(client, user_headers):
    response = _request_payout(client, user_headers, method="bank", upiId=None)
    assert response.status_code == 400
    assert response.json()["detail"] == "Bank transfer requires accountNumber, ifscCode, and accountHolderName"
    assert response.json()["field"] == "bank_account"

    response = _request_payout(client, user_headers, amount=5000)
    assert response.json()["detail"] == "Insufficient balance"
    assert response.json()["requested"] == 5000.0


def test_complete_requires_approval(client, user_headers, admin_headers):
    request = _request_payout(client, user_headers).json()["request"]
    response = client.put(f"/api/payout/admin/complete/{request['id']}", json={}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Only approved requests can be marked as completed"


def test_reject_requires_reason(client, user_headers, admin_headers):
    request = _request_payout(client, user_headers).json()["request"]
    missing = client.put(f"/api/payout/admin/reject/{request['id']}", json={}, headers=admin_headers)
    assert missing.json()["detail"] == "Rejection reason is required"

    rejected = client.put(f"/api/payout/admin/reject/{request['id']}", json={"reason": "Duplicate"},
                          headers=admin_headers)
    assert rejected.json()["request"]["status"] == "rejected"


def test_vendor_cancel_and_listing(client, user_headers, admin_headers):
    request = _request_payout(client, user_headers).json()["request"]
    _request_payout(client, user_headers, amount=100)

    cancelled = client.put(f"/api/payout/cancel/{request['payoutId']}", headers=user_headers)
    assert cancelled.json()["request"]["status"] == "cancelled"

    mine = client.get("/api/payout/my-requests", params={"status": "requested"}, headers=user_headers).json()
    assert mine["pagination"]["total"] == 1

    admin_view = client.get("/api/payout/admin/all", headers=admin_headers).json()
    assert admin_view["pagination"]["total"] == 2
    assert {s["status"] for s in admin_view["stats"]} == {"requested", "cancelled"}


def test_stale_payout_approval_does_not_debit_twice(client, db, user, admin, user_headers, admin_headers,
                                                     session_factory):
    user_id, admin_id = user.id, admin.id
    request = _request_payout(client, user_headers).json()["request"]
    db.close()

    stale = session_factory(expire_on_commit=False)
    try:
        assert stale.get(PayoutRequest, request["id"]).status == "requested"
        stale.commit()

        approved = client.put(f"/api/payout/admin/approve/{request['id']}", json={}, headers=admin_headers)
        assert approved.status_code == 200
        db.close()

        with pytest.raises(PaymentError) as exc:
            withdrawal_service.approve_payout(stale, request["id"], admin_id)
        assert exc.value.message == "Request already processed"
        stale.rollback()
    finally:
        stale.close()

    assert _balance(db, user_id) == Decimal("700.00")
