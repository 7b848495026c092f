"""
SERVICE DE RETRAIT - retraits bancaires et demandes de versement

Le solde n'est jamais réservé à la demande: il est revérifié et débité à
l'approbation, sous verrou de la ligne du compte.
"""
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from paywallet.exceptions import InsufficientBalanceError, NotFoundError, PaymentError
from paywallet.models.admin_models import AdminLog
from paywallet.models.payout_models import PayoutRequest, PayoutStatus, Withdrawal, WithdrawalStatus
from paywallet.models.transaction_models import TransactionCategory, TransactionStatus
from paywallet.models.user_models import User
from paywallet.services.ledger_service import (
    debit_balance, get_payment_settings, record_pending_debit, set_transaction_status, to_decimal,
)
from paywallet.utils.clock import utcnow
from paywallet.utils.ids import generate_payout_id, generate_withdrawal_id

logger = logging.getLogger(__name__)

WITHDRAWAL_KINDS = {
    # type: (libellé des messages, catégorie de transaction, préfixe de description)
    "withdrawal": ("withdrawal", TransactionCategory.WITHDRAWAL, "Withdrawal Request"),
    "payout": ("payout", TransactionCategory.PAYOUT, "Payout Request"),
}
PAYOUT_METHODS = ("bank", "upi")


# ==================== RETRAITS ====================

def request_withdrawal(db: Session, user_id: int, amount: Any, account_name: str,
                       account_number: str, ifsc: str, bank_name: Optional[str] = None,
                       kind: str = "withdrawal") -> Withdrawal:
    """Créer une demande en attente et son écriture Debit Pending."""
    if not amount or not account_name or not account_number or not ifsc:
        raise PaymentError("All fields are required")
    label, category, description_prefix = WITHDRAWAL_KINDS[kind]

    payment_settings = get_payment_settings(db)
    min_amount = to_decimal(payment_settings.min_withdrawal or 50)
    max_amount = to_decimal(payment_settings.max_withdrawal or 500000)
    rate = to_decimal(payment_settings.commission_rate or 2)

    value = to_decimal(amount)
    if value < min_amount:
        raise PaymentError(f"Minimum {label} is ₹{min_amount.normalize():f}")
    if value > max_amount:
        raise PaymentError(f"Maximum {label} is ₹{max_amount:,.0f}")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    commission = to_decimal(value * rate / 100)
    total = value + commission
    balance = to_decimal(user.balance or 0)
    if total > balance:
        raise PaymentError(f"Insufficient balance. Required ₹{total:.2f}, Available ₹{balance:.2f}")

    withdrawal = Withdrawal(
        user_id=user_id,
        withdrawal_id=generate_withdrawal_id(),
        amount=value,
        commission=commission,
        total=total,
        account_name=account_name,
        account_number=account_number,
        ifsc=ifsc,
        bank_name=bank_name or "",
        type=kind,
        status=WithdrawalStatus.PENDING,
    )
    db.add(withdrawal)
    entry = record_pending_debit(
        db, user_id, withdrawal.withdrawal_id, value,
        description=f"{description_prefix} to {bank_name or 'Bank'} ({account_number[-4:]})",
        category=category,
        method="bank",
        fee=commission,
        account_number=account_number,
        ifsc_code=ifsc,
        bank_name=bank_name or "",
    )
    entry.net_amount = total
    entry.notes = f"Platform Fee: {rate.normalize():f}% (₹{commission:.2f})"
    db.commit()
    db.refresh(withdrawal)

    logger.info(f"🏦 Demande {kind} {withdrawal.withdrawal_id}: {value} ₹ + {commission} ₹ user={user_id}")
    return withdrawal


def _pending_withdrawal(db: Session, withdrawal_id: int) -> Withdrawal:
    # Ligne verrouillée et relue: le statut vu ici est celui de la base
    withdrawal = (
        db.query(Withdrawal)
        .filter(Withdrawal.id == withdrawal_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not withdrawal:
        raise NotFoundError("Withdrawal not found")
    if withdrawal.status != WithdrawalStatus.PENDING:
        raise PaymentError("Already processed")
    return withdrawal


def approve_withdrawal(db: Session, withdrawal_id: int, admin_id: int) -> Dict:
    withdrawal = _pending_withdrawal(db, withdrawal_id)

    try:
        new_balance = debit_balance(db, withdrawal.user_id, withdrawal.total)
    except InsufficientBalanceError as e:
        db.rollback()
        raise PaymentError("Insufficient user balance", extra={
            "currentBalance": float(e.balance),
            "required": float(e.required),
            "shortfall": float(e.required - e.balance),
        })

    withdrawal.status = WithdrawalStatus.APPROVED
    withdrawal.approved_at = utcnow()
    set_transaction_status(db, withdrawal.user_id, withdrawal.withdrawal_id, TransactionStatus.COMPLETED)
    db.add(AdminLog.create_audit_log(
        admin_id=admin_id,
        action="withdrawal_approved",
        details={"withdrawalId": withdrawal.withdrawal_id, "total": str(withdrawal.total)},
        related_user_id=withdrawal.user_id,
        related_transaction_id=withdrawal.withdrawal_id,
    ))
    db.commit()
    db.refresh(withdrawal)

    logger.info(f"✅ Retrait {withdrawal.withdrawal_id} approuvé par admin={admin_id}")
    return {"withdrawal": withdrawal, "newBalance": new_balance}


def reject_withdrawal(db: Session, withdrawal_id: int, admin_id: int, reason: Optional[str] = None) -> Withdrawal:
    withdrawal = _pending_withdrawal(db, withdrawal_id)

    withdrawal.status = WithdrawalStatus.REJECTED
    withdrawal.rejection_reason = reason or "Rejected by admin"
    withdrawal.rejected_at = utcnow()
    set_transaction_status(db, withdrawal.user_id, withdrawal.withdrawal_id, TransactionStatus.FAILED)
    db.add(AdminLog.create_audit_log(
        admin_id=admin_id,
        action="withdrawal_rejected",
        details={"withdrawalId": withdrawal.withdrawal_id, "reason": withdrawal.rejection_reason},
        related_user_id=withdrawal.user_id,
        related_transaction_id=withdrawal.withdrawal_id,
    ))
    db.commit()
    db.refresh(withdrawal)

    logger.info(f"⛔ Retrait {withdrawal.withdrawal_id} rejeté par admin={admin_id}")
    return withdrawal


def list_withdrawals(db: Session, kind: Optional[str] = None):
    query = db.query(Withdrawal)
    if kind:
        query = query.filter(Withdrawal.type == kind)
    return query.order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc()).all()


# ==================== DEMANDES DE VERSEMENT ====================

def create_payout_request(db: Session, vendor_id: int, amount: Any, method: str,
                          account_number: Optional[str] = None, ifsc_code: Optional[str] = None,
                          account_holder_name: Optional[str] = None, bank_name: Optional[str] = None,
                          upi_id: Optional[str] = None, notes: Optional[dict] = None,
                          source: str = "dashboard", api_key_id: Optional[str] = None) -> PayoutRequest:
    """
    Valider puis enregistrer une demande au statut requested.
    Les erreurs de validation portent le champ concerné dans extra["field"].
    """
    try:
        value = to_decimal(amount) if amount else Decimal("0")
    except (ArithmeticError, ValueError, TypeError):
        value = Decimal("0")
    if value <= 0:
        raise PaymentError("Invalid amount", extra={"field": "amount"})

    if method not in PAYOUT_METHODS:
        raise PaymentError("Invalid method. Must be 'bank' or 'upi'", extra={"field": "method"})
    if method == "bank" and not (account_number and ifsc_code and account_holder_name):
        raise PaymentError(
            "Bank transfer requires accountNumber, ifscCode, and accountHolderName",
            extra={"field": "bank_account"},
        )
    if method == "upi" and not upi_id:
        raise PaymentError("UPI transfer requires upiId", extra={"field": "upi"})

    vendor = db.query(User).filter(User.id == vendor_id).first()
    if not vendor:
        raise NotFoundError("User not found")

    balance = to_decimal(vendor.balance or 0)
    if balance < value:
        raise InsufficientBalanceError(
            "Insufficient balance", balance=balance, required=value,
            extra={"balance": float(balance), "requested": float(value)},
        )

    is_bank = method == "bank"
    payout = PayoutRequest(
        payout_id=generate_payout_id(),
        vendor_id=vendor_id,
        amount=value,
        method=method,
        account_number=account_number if is_bank else None,
        ifsc_code=ifsc_code if is_bank else None,
        account_holder_name=account_holder_name if is_bank else None,
        bank_name=bank_name if is_bank else None,
        upi_id=upi_id if not is_bank else None,
        status=PayoutStatus.REQUESTED,
        notes=notes or {},
        source=source,
        api_key_id=api_key_id,
    )
    db.add(payout)
    db.commit()
    db.refresh(payout)

    logger.info(f"📤 Demande de versement {payout.payout_id} ({value} ₹, {method}, {source}) vendor={vendor_id}")
    return payout


def _get_payout(db: Session, payout_pk: int) -> PayoutRequest:
    payout = (
        db.query(PayoutRequest)
        .filter(PayoutRequest.id == payout_pk)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not payout:
        raise NotFoundError("Request not found")
    return payout


def get_vendor_payout(db: Session, vendor_id: int, reference: Any) -> PayoutRequest:
    """Par identifiant externe pout_… ou par clé primaire."""
    query = db.query(PayoutRequest).filter(PayoutRequest.vendor_id == vendor_id)
    payout = query.filter(PayoutRequest.payout_id == str(reference)).first()
    if not payout and str(reference).isdigit():
        payout = query.filter(PayoutRequest.id == int(reference)).first()
    if not payout:
        raise NotFoundError("Request not found")
    return payout


def list_vendor_payouts(db: Session, vendor_id: int, status: Optional[str] = None,
                        limit: int = 10, offset: int = 0) -> Dict:
    query = db.query(PayoutRequest).filter(PayoutRequest.vendor_id == vendor_id)
    if status:
        query = query.filter(PayoutRequest.status == status)
    total = query.count()
    items = query.order_by(PayoutRequest.created_at.desc(), PayoutRequest.id.desc()).offset(offset).limit(limit).all()
    return {"items": items, "total": total}


def list_all_payouts(db: Session, status: Optional[str] = None, page: int = 1, limit: int = 20) -> Dict:
    query = db.query(PayoutRequest)
    if status:
        query = query.filter(PayoutRequest.status == status)
    total = query.count()
    page = max(int(page), 1)
    items = (
        query.order_by(PayoutRequest.created_at.desc(), PayoutRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    stats = [
        {"status": status_value, "count": count, "totalAmount": float(total_amount or 0)}
        for status_value, count, total_amount in (
            db.query(PayoutRequest.status, func.count(PayoutRequest.id), func.sum(PayoutRequest.amount))
            .group_by(PayoutRequest.status)
            .all()
        )
    ]
    return {
        "items": items,
        "stats": stats,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


def approve_payout(db: Session, payout_pk: int, admin_id: int, fee: Any = 0,
                   admin_note: Optional[str] = None) -> Dict:
    payout = _get_payout(db, payout_pk)
    if payout.status != PayoutStatus.REQUESTED:
        raise PaymentError("Request already processed")

    fee = to_decimal(fee or 0)
    total = to_decimal(payout.amount) + fee
    try:
        new_balance = debit_balance(db, payout.vendor_id, total)
    except InsufficientBalanceError as e:
        db.rollback()
        raise PaymentError("Insufficient vendor balance", extra={
            "balance": float(e.balance),
            "required": float(e.required),
        })

    payout.status = PayoutStatus.APPROVED
    payout.fee = fee
    payout.net_amount = payout.amount
    payout.admin_note = admin_note
    payout.approved_at = utcnow()

    entry = record_pending_debit(
        db, payout.vendor_id, payout.payout_id, payout.amount,
        description=f"Payout via {payout.method.upper()}"
                    + (f" to {payout.bank_name or 'Bank'} ({(payout.account_number or '')[-4:]})"
                       if payout.method == "bank" else f" to {payout.upi_id}"),
        category=TransactionCategory.PAYOUT,
        method=payout.method,
        fee=fee,
        reference_id=payout.payout_id,
        account_number=payout.account_number,
        ifsc_code=payout.ifsc_code,
        upi_id=payout.upi_id,
        bank_name=payout.bank_name,
        status=TransactionStatus.COMPLETED,
    )
    entry.net_amount = total
    db.add(AdminLog.create_audit_log(
        admin_id=admin_id,
        action="payout_approved",
        details={"payoutId": payout.payout_id, "fee": str(fee), "deducted": str(total)},
        related_user_id=payout.vendor_id,
        related_transaction_id=payout.payout_id,
    ))
    db.commit()
    db.refresh(payout)

    logger.info(f"✅ Versement {payout.payout_id} approuvé: -{total} ₹ vendor={payout.vendor_id}")
    return {"request": payout, "vendorNewBalance": new_balance, "deducted": total}


def reject_payout(db: Session, payout_pk: int, admin_id: int, reason: Optional[str]) -> PayoutRequest:
    if not reason:
        raise PaymentError("Rejection reason is required")
    payout = _get_payout(db, payout_pk)
    if payout.status != PayoutStatus.REQUESTED:
        raise PaymentError("Request already processed")

    payout.status = PayoutStatus.REJECTED
    payout.rejection_reason = reason
    payout.rejected_at = utcnow()
    db.add(AdminLog.create_audit_log(
        admin_id=admin_id,
        action="payout_rejected",
        details={"payoutId": payout.payout_id, "reason": reason},
        related_user_id=payout.vendor_id,
    ))
    db.commit()
    db.refresh(payout)
    logger.info(f"⛔ Versement {payout.payout_id} rejeté par admin={admin_id}")
    return payout


def complete_payout(db: Session, payout_pk: int, admin_id: int,
                    transaction_id: Optional[str] = None) -> PayoutRequest:
    payout = _get_payout(db, payout_pk)
    if payout.status != PayoutStatus.APPROVED:
        raise PaymentError("Only approved requests can be marked as completed")

    payout.status = PayoutStatus.COMPLETED
    payout.transaction_id = transaction_id
    payout.completed_at = utcnow()
    db.add(AdminLog.create_audit_log(
        admin_id=admin_id,
        action="payout_completed",
        details={"payoutId": payout.payout_id, "bankReference": transaction_id},
        related_user_id=payout.vendor_id,
    ))
    db.commit()
    db.refresh(payout)
    logger.info(f"🏁 Versement {payout.payout_id} terminé (réf. {transaction_id})")
    return payout


def cancel_payout(db: Session, payout: PayoutRequest) -> PayoutRequest:
    """Annulation par le marchand, possible uniquement au statut requested."""
    if payout.status != PayoutStatus.REQUESTED:
        raise PaymentError(
            f"Cannot cancel payout with status '{payout.status}'. Only 'requested' payouts can be cancelled."
        )
    payout.status = PayoutStatus.CANCELLED
    payout.rejection_reason = "Cancelled by user"
    payout.rejected_at = utcnow()
    db.commit()
    db.refresh(payout)
    logger.info(f"↩️ Versement {payout.payout_id} annulé par vendor={payout.vendor_id}")
    return payout
